"""Recoverable error conditions raised by the repository layer.

Everything here derives from SteinplanError so the CLI can turn any of them
into a clean one-line failure. Faults that are recovered locally (corrupt
durable blob, failed durable write, failed extraction) never raise.
"""

from __future__ import annotations


class SteinplanError(Exception):
    """Base class for steinplan's typed, recoverable conditions."""


class DraftRecordError(SteinplanError, ValueError):
    """A record without an id was handed to an operation that needs one."""


class ImportFormatError(SteinplanError, ValueError):
    """An import payload is not a JSON array of records."""


class ExtractionBusyError(SteinplanError, RuntimeError):
    """An extraction was requested while another one is still in flight."""


class SlotBusyError(SteinplanError, RuntimeError):
    """A file read was requested on an input slot that is already reading."""
