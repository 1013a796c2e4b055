"""Read-only filtered view over a record collection."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from steinplan.models import Record


def filter_records(records: Iterable[Record], term: str) -> list[Record]:
    """Records whose display name contains term, case-insensitively, in input order.

    An empty term matches everything. Recomputed on every call; collections
    are small enough that no index is kept.
    """
    if not term:
        return list(records)
    needle = term.lower()
    return [r for r in records if needle in r.display_name.lower()]
