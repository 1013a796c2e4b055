"""Additive import of externally supplied record batches.

Import never changes or removes a record the store already has: an incoming
record whose id is already stored is ignored, and so is one without an id.
Accepted records are appended in their original order with one flush.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from steinplan.errors import ImportFormatError
from steinplan.schema import reconcile

if TYPE_CHECKING:
    from steinplan.models import Record
    from steinplan.store import RecordStore

logger = logging.getLogger("steinplan.merge")

NOT_AN_ARRAY = "The import file must be an array of records."


@dataclass
class ImportResult:
    """Outcome of a merge. `added` is empty when nothing new was found."""

    added: list[Record] = field(default_factory=list)
    skipped_existing: int = 0
    skipped_without_id: int = 0

    @property
    def nothing_new(self) -> bool:
        return not self.added

    @property
    def skipped(self) -> int:
        return self.skipped_existing + self.skipped_without_id


def merge_batch(store: RecordStore, raw: Any) -> ImportResult:
    """Merge a decoded JSON value into store. Raises ImportFormatError unless raw is a list."""
    if not isinstance(raw, list):
        raise ImportFormatError(NOT_AN_ARRAY)

    result = ImportResult()
    taken = store.ids()
    for item in raw:
        record = reconcile(item)
        if record.is_draft:
            result.skipped_without_id += 1
        elif record.id in taken:
            result.skipped_existing += 1
        else:
            taken.add(record.id)
            result.added.append(record)

    if result.nothing_new:
        logger.info("import found nothing new (%d skipped)", result.skipped)
        return result

    store.extend(result.added)
    logger.info("imported %d record(s), skipped %d", len(result.added), result.skipped)
    return result


def import_text(store: RecordStore, text: str | bytes) -> ImportResult:
    """Parse an import file's contents and merge them into store."""
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            msg = f"The import file is not UTF-8 text: {exc}"
            raise ImportFormatError(msg) from exc
    try:
        raw = json.loads(text)
    except (ValueError, RecursionError) as exc:
        # ValueError also covers integers past the str-conversion digit limit
        msg = f"The import file is not valid JSON: {exc}"
        raise ImportFormatError(msg) from exc
    return merge_batch(store, raw)
