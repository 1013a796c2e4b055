"""Local repository of Steinformat machine-setting forms.

Layout:
    steinplan.toml
    .steinplan/
        store/                        # diskcache blob store (default backend)
        steinformat-forms.json        # or: plain file blob (backend = "file")

Durable mirror:
    key "steinformat-forms" → JSON array of full records, rewritten as a whole
    on every mutation. "steinformat-forms.corrupt" holds the last unreadable
    blob, if any.

Exchange:
    steinplan-export-<YYYY-MM-DD>.json   # pretty-printed array, re-importable
"""

from steinplan.config import SteinplanConfig, init_config, load_config
from steinplan.models import Record, new_record_id
from steinplan.schema import canonical_default, new_draft, reconcile
from steinplan.store import RecordStore

__all__ = [
    "Record",
    "RecordStore",
    "SteinplanConfig",
    "canonical_default",
    "init_config",
    "load_config",
    "new_draft",
    "new_record_id",
    "reconcile",
]
