"""Portable JSON snapshots of the collection.

Export files are named steinplan-export-<YYYY-MM-DD>.json and hold a
pretty-printed UTF-8 JSON array of full records, re-importable as-is.
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from steinplan.models import Record

EXPORT_PREFIX = "steinplan-export-"


def serialize(records: Iterable[Record], indent: int | None = 2) -> str:
    """JSON array of every record, in collection order, with the full field set."""
    return json.dumps([r.to_dict() for r in records], indent=indent, ensure_ascii=False)


def export_filename(day: date | None = None) -> str:
    return f"{EXPORT_PREFIX}{(day or date.today()).isoformat()}.json"


def write_export(records: Iterable[Record], directory: Path | str, day: date | None = None) -> Path:
    """Write an export file into directory and return its path."""
    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / export_filename(day)
    path.write_text(serialize(records) + "\n", encoding="utf-8")
    return path
