"""RecordStore: the one authoritative collection and its durable mirror.

    store = RecordStore.open(cfg)          # or RecordStore(backend, key).load()
    store.upsert(record)                   # replace in place or append, then flush
    store.delete(record_id)                # no-op when absent, then flush
    store.query("f100")                    # case-insensitive display-name filter

The mirror is a single JSON array stored under one key (default
"steinformat-forms"). Every mutation rewrites the whole array. A failed
write is logged and leaves the in-memory state authoritative; `in_sync`
reports the divergence until a later write succeeds.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from steinplan.config import DEFAULT_STORAGE_KEY
from steinplan.errors import DraftRecordError
from steinplan.export import serialize
from steinplan.models import Record, new_record_id
from steinplan.query import filter_records
from steinplan.schema import reconcile

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from steinplan.backend import BlobBackend
    from steinplan.config import SteinplanConfig

logger = logging.getLogger("steinplan.store")

CORRUPT_SUFFIX = ".corrupt"


class RecordStore:
    """Ordered, id-unique collection of records mirrored to a blob backend."""

    def __init__(self, backend: BlobBackend, key: str = DEFAULT_STORAGE_KEY) -> None:
        self.backend = backend
        self.key = key
        self._records: list[Record] = []
        self._in_sync = True

    @classmethod
    def open(cls, cfg: SteinplanConfig) -> RecordStore:
        """Build the configured backend and load the collection from it."""
        from steinplan.backend import get_backend

        cfg.ensure_dirs()
        store = cls(get_backend(cfg), cfg.storage.key)
        store.load()
        return store

    # ------------------------------------------------------------------
    # Load / flush
    # ------------------------------------------------------------------

    @property
    def backup_key(self) -> str:
        return self.key + CORRUPT_SUFFIX

    @property
    def has_backup(self) -> bool:
        """Whether a corrupt blob was kept aside under backup_key."""
        try:
            return self.backend.get(self.backup_key) is not None
        except UnicodeDecodeError:
            return True

    def load(self) -> list[Record]:
        """Replace the in-memory collection with the durable one.

        Missing blob: empty collection. A blob that is not UTF-8 text, not
        parseable JSON or not an array is logged, copied byte for byte to
        backup_key, and replaced by an empty collection. Entries without an id
        and repeated ids are dropped so the uniqueness invariant holds from
        the first read.
        """
        self._records = []
        self._in_sync = True
        try:
            blob = self.backend.get(self.key)
        except UnicodeDecodeError as exc:
            self._quarantine(f"not UTF-8 text ({exc})")
            return self.all()
        except Exception:
            logger.exception("failed to read %s; starting with an empty collection", self.key)
            return self.all()
        if blob is None:
            return self.all()

        try:
            raw = json.loads(blob)
        except (ValueError, RecursionError) as exc:
            # ValueError also covers integers past the str-conversion digit limit
            self._quarantine(f"not valid JSON ({exc})")
            return self.all()
        if not isinstance(raw, list):
            self._quarantine(f"expected a JSON array, got {type(raw).__name__}")
            return self.all()

        seen: set[str] = set()
        for i, item in enumerate(raw):
            record = reconcile(item)
            if record.is_draft:
                logger.warning("dropping stored entry %d of %s: no id", i, self.key)
                continue
            if record.id in seen:
                logger.warning("dropping stored entry %d of %s: duplicate id %s", i, self.key, record.id)
                continue
            seen.add(record.id)
            self._records.append(record)
        logger.debug("loaded %d record(s) from %s", len(self._records), self.key)
        return self.all()

    def _quarantine(self, reason: str) -> None:
        logger.warning(
            "stored collection %s is corrupt (%s); kept a copy under %s and reset to empty",
            self.key, reason, self.backup_key,
        )
        try:
            self.backend.copy(self.key, self.backup_key)
        except Exception:
            logger.exception("failed to back up corrupt collection %s", self.key)

    def save(self) -> bool:
        """Rewrite the durable mirror from memory. Returns True on success."""
        try:
            self.backend.set(self.key, serialize(self._records, indent=None))
        except Exception:
            logger.exception("failed to write %s; in-memory collection is ahead of storage", self.key)
            self._in_sync = False
            return False
        self._in_sync = True
        logger.debug("wrote %d record(s) to %s", len(self._records), self.key)
        return True

    flush = save

    @property
    def in_sync(self) -> bool:
        """False after a failed write, until the next successful one."""
        return self._in_sync

    def close(self) -> None:
        self.backend.close()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def all(self) -> list[Record]:
        """Current collection, oldest first."""
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self.all())

    def ids(self) -> set[str]:
        return {r.id for r in self._records}

    def get(self, record_id: str) -> Record | None:
        for r in self._records:
            if r.id == record_id:
                return r
        return None

    def query(self, term: str = "") -> list[Record]:
        return filter_records(self._records, term)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def _index_of(self, record_id: str) -> int:
        for i, r in enumerate(self._records):
            if r.id == record_id:
                return i
        return -1

    def upsert(self, record: Record) -> Record:
        """Replace the record with the same id in place, or append it. Then flush."""
        if record.is_draft:
            msg = "Cannot store a draft: record has no id"
            raise DraftRecordError(msg)
        stored = reconcile(record)
        index = self._index_of(stored.id)
        if index >= 0:
            self._records[index] = stored
            logger.info("updated record %s", stored.id)
        else:
            self._records.append(stored)
            logger.info("added record %s", stored.id)
        self.save()
        return stored

    def save_draft(self, record: Record) -> Record:
        """Upsert, assigning a fresh id first when record is a draft."""
        if record.is_draft:
            record = record.with_id(new_record_id())
        return self.upsert(record)

    def delete(self, record_id: str) -> bool:
        """Remove the record with record_id. Returns whether one was removed."""
        index = self._index_of(record_id)
        if index >= 0:
            del self._records[index]
            logger.info("deleted record %s", record_id)
        else:
            logger.debug("delete of unknown record %s ignored", record_id)
        self.save()
        return index >= 0

    def extend(self, records: Iterable[Record]) -> list[Record]:
        """Append new records with a single flush.

        Every record must have an id not already stored and not repeated in
        the batch; otherwise nothing is appended.
        """
        batch = [reconcile(r) for r in records]
        taken = self.ids()
        for r in batch:
            if r.is_draft:
                msg = "Cannot store a draft: record has no id"
                raise DraftRecordError(msg)
            if r.id in taken:
                msg = f"Record id already present: {r.id}"
                raise ValueError(msg)
            taken.add(r.id)
        if not batch:
            return []
        self._records.extend(batch)
        logger.info("appended %d record(s)", len(batch))
        self.save()
        return batch
