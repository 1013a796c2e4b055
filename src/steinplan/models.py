"""Data model for one Steinformat form."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Any

IMAGES_KEY = "hilfsmittelFotos"
SINGLE_IMAGE_KEY = "mundstueckFoto"
DISPLAY_FIELD = "formatBezeichnung"


def new_record_id() -> str:
    """Generate a globally unique record id (UUID4 string)."""
    return str(uuid.uuid4())


@dataclass
class Record:
    """A form: id, flat text fields, and two image slots.

    `values` always holds the full canonical field set when the record was
    built by steinplan.schema (canonical_default / reconcile). Mutation is by
    full replacement: helpers below return a new Record.
    """

    id: str
    values: dict[str, str] = field(default_factory=dict)
    images: list[str] = field(default_factory=list)   # data URLs, display order
    single_image: str | None = None                    # data URL

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            **self.values,
            IMAGES_KEY: list(self.images),
            SINGLE_IMAGE_KEY: self.single_image,
        }

    @property
    def is_draft(self) -> bool:
        return not self.id

    @property
    def display_name(self) -> str:
        return self.values.get(DISPLAY_FIELD, "")

    def __getitem__(self, name: str) -> str:
        return self.values[name]

    def copy(self) -> Record:
        return replace(self, values=dict(self.values), images=list(self.images))

    def with_values(self, **changes: str) -> Record:
        """New record with the given canonical fields replaced. Unknown names raise KeyError."""
        unknown = [k for k in changes if k not in self.values]
        if unknown:
            msg = f"Unknown field(s): {', '.join(sorted(unknown))}"
            raise KeyError(msg)
        new = self.copy()
        new.values.update(changes)
        return new

    def with_id(self, record_id: str) -> Record:
        new = self.copy()
        new.id = record_id
        return new

    def append_image(self, data_url: str) -> Record:
        new = self.copy()
        new.images.append(data_url)
        return new

    def remove_image(self, index: int) -> Record:
        """Drop the image at index. Raises IndexError when out of range."""
        if not 0 <= index < len(self.images):
            msg = f"No image at index {index} (record has {len(self.images)})"
            raise IndexError(msg)
        new = self.copy()
        del new.images[index]
        return new

    def with_single_image(self, data_url: str | None) -> Record:
        new = self.copy()
        new.single_image = data_url or None
        return new

    def as_draft(self) -> Record:
        """Same field values, no id and no images."""
        return Record(id="", values=dict(self.values))
