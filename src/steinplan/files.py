"""File payload reads with at most one read in flight per input slot.

    slot = InputSlot("import")
    result = await slot.read_text(path)
    if result.ok:
        ...result.payload...

A read either completes with a payload or fails with a message; there is no
timeout and no cancellation. Starting a second read on a busy slot raises
SlotBusyError instead of queueing.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from steinplan.errors import SlotBusyError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("steinplan.files")

DEFAULT_IMAGE_MIME = "image/jpeg"


@dataclass
class ReadResult:
    payload: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def split_data_url(value: str) -> tuple[str | None, str]:
    """Split "data:<mime>;base64,<payload>" into (mime, payload).

    A bare base64 string comes back as (None, value).
    """
    if value.startswith("data:") and "," in value:
        header, _, payload = value.partition(",")
        mime = header[len("data:"):].split(";", 1)[0]
        return (mime or None), payload
    return None, value


def guess_image_mime(path: Path | str) -> str:
    mime, _ = mimetypes.guess_type(str(path))
    if mime and mime.startswith("image/"):
        return mime
    return DEFAULT_IMAGE_MIME


class InputSlot:
    """One input channel (import file, image attach, scan) with single-flight reads."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    async def read_text(self, path: Path | str) -> ReadResult:
        """Read path as UTF-8 text (a leading BOM is dropped)."""
        return await self._read(path, lambda data: data.decode("utf-8-sig"))

    async def read_data_url(self, path: Path | str, mime_type: str | None = None) -> ReadResult:
        """Read path as a base64 data URL."""
        mime = mime_type or guess_image_mime(path)
        return await self._read(path, lambda data: to_data_url(data, mime))

    async def _read(self, path: Path | str, convert: Callable[[bytes], str]) -> ReadResult:
        if self._busy:
            msg = f"A read is already in progress on the {self.name} input"
            raise SlotBusyError(msg)
        self._busy = True
        try:
            data = await asyncio.to_thread(Path(path).read_bytes)
            return ReadResult(payload=convert(data))
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("%s: failed to read %s: %s", self.name, path, exc)
            return ReadResult(error=f"Could not read {path}: {exc}")
        finally:
            self._busy = False
