"""Draft records from photographed forms via Gemini.

The model gets the image plus a fixed instruction naming every canonical
field (and the options of the pick-list fields) and must answer with one JSON
object of strings. Whatever comes back is reconciled into a draft: no id, no
images. Any failure yields an empty draft for manual entry instead of an
exception; only a second concurrent extraction is rejected.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any

from steinplan.config import DEFAULT_EXTRACTION_MODEL
from steinplan.errors import ExtractionBusyError
from steinplan.files import DEFAULT_IMAGE_MIME, split_data_url
from steinplan.models import Record
from steinplan.schema import FIELDS, canonical_default, options_for, reconcile, snap_option

logger = logging.getLogger("steinplan.extraction")

FORM_TITLE = "Maschinen-Einstellparameter für Steinformate"


def response_schema() -> dict[str, Any]:
    """JSON schema for the model's answer: every canonical field as a string."""
    return {
        "type": "OBJECT",
        "properties": {name: {"type": "STRING"} for name in FIELDS},
    }


def build_instruction() -> str:
    choices = "; ".join(
        f"'{name}': " + ", ".join(f"'{o}'" for o in options_for(name))
        for name in FIELDS
        if options_for(name)
    )
    return (
        f'Analysieren Sie dieses Bild eines deutschen technischen Formulars mit dem Titel "{FORM_TITLE}". '
        "Extrahieren Sie alle Werte aus den Eingabefeldern und geben Sie sie als JSON-Objekt zurück. "
        f"Die JSON-Schlüssel müssen genau diese sein: {', '.join(FIELDS)}. "
        f"Ordnen Sie Auswahlfelder einer der Optionen zu ({choices}); "
        "ist keine Option erkennbar, geben Sie einen leeren String zurück. "
        "Wenn ein Feld leer oder unleserlich ist, geben Sie einen leeren String zurück. "
        "Die Ausgabe darf nur ein gültiges JSON-Objekt sein."
    )


@dataclass
class ExtractionResult:
    """A draft, plus whether it came from the image or is the empty fallback."""

    draft: Record
    ok: bool = True
    error: str | None = None


def draft_from_response(payload: dict[str, Any]) -> Record:
    """Reconcile a model answer into a draft. Option fields are snapped first."""
    cleaned: dict[str, Any] = {}
    for name, value in payload.items():
        if name in FIELDS and isinstance(value, str):
            cleaned[name] = snap_option(name, value)
        else:
            cleaned[name] = value
    return reconcile(cleaned).as_draft()


class ExtractionFailedError(Exception):
    """Internal: the collaborator's answer could not be used."""


@dataclass
class GeminiExtractor:
    """Image → draft Record using google-genai's async client."""

    model: str = DEFAULT_EXTRACTION_MODEL
    default_mime_type: str = DEFAULT_IMAGE_MIME
    api_key: str | None = None
    client: Any = field(default=None, repr=False)

    _busy: bool = field(default=False, repr=False, init=False)

    def _client(self) -> Any:
        """Get or create the Gemini client (lazy)."""
        if self.client is None:
            try:
                from google import genai
            except ImportError as e:
                msg = "google-genai is required for form extraction: pip install google-genai"
                raise ImportError(msg) from e
            key = self.api_key or os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
            self.client = genai.Client(api_key=key) if key else genai.Client()
        return self.client

    @property
    def busy(self) -> bool:
        return self._busy

    async def extract(self, image: str) -> ExtractionResult:
        """Turn one image (data URL or bare base64) into a draft record."""
        if self._busy:
            msg = "An extraction is already in progress"
            raise ExtractionBusyError(msg)
        self._busy = True
        try:
            payload = await self._request(image)
            draft = draft_from_response(payload)
        except Exception as exc:
            logger.warning("form extraction failed: %s", exc, exc_info=True)
            return ExtractionResult(draft=canonical_default(), ok=False, error=str(exc) or type(exc).__name__)
        finally:
            self._busy = False
        logger.info("extracted %d non-empty field(s)", sum(1 for v in draft.values.values() if v))
        return ExtractionResult(draft=draft)

    def extract_sync(self, image: str) -> ExtractionResult:
        return asyncio.run(self.extract(image))

    async def _request(self, image: str) -> dict[str, Any]:
        mime, encoded = split_data_url(image)
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            msg = f"image is not valid base64: {exc}"
            raise ExtractionFailedError(msg) from exc

        response = await self._client().aio.models.generate_content(
            model=self.model,
            contents=[{
                "role": "user",
                "parts": [
                    {"inline_data": {"mime_type": mime or self.default_mime_type, "data": data}},
                    {"text": build_instruction()},
                ],
            }],
            config={
                "response_mime_type": "application/json",
                "response_schema": response_schema(),
            },
        )
        text = getattr(response, "text", None)
        if not text:
            msg = "Gemini returned an empty response"
            raise ExtractionFailedError(msg)
        try:
            payload = json.loads(text.strip())
        except json.JSONDecodeError as exc:
            msg = f"Gemini response is not JSON: {exc}"
            raise ExtractionFailedError(msg) from exc
        if not isinstance(payload, dict):
            msg = f"Gemini response is not a JSON object (got {type(payload).__name__})"
            raise ExtractionFailedError(msg)
        return payload
