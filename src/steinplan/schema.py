"""Canonical field set for a Steinformat form, and reconciliation against it.

Every record the system materialises (loaded, imported, extracted) passes
through reconcile() exactly once. Nothing downstream inspects raw JSON.

Wire shape of one record (JSON object, keys in canonical order):

    {"id": "...", "artNr": "", ..., "parameterFuerDrehteller": "",
     "hilfsmittelFotos": ["data:image/jpeg;base64,..."],
     "mundstueckFoto": null}
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any

from steinplan.models import DISPLAY_FIELD, IMAGES_KEY, SINGLE_IMAGE_KEY, Record

_ON_OFF = ("Ein", "Aus")

# Enumerated fields: (options, default). Default is always one of the options.
ENUM_FIELDS: dict[str, tuple[tuple[str, ...], str]] = {
    "abschneidetisch": (("Normal", "Deckenziegel", "Juwö"), "Normal"),
    "drehvorrichtung": (_ON_OFF, "Aus"),
    "drahtreiniger": (_ON_OFF, "Aus"),
    "abfallAuswerfer": (_ON_OFF, "Aus"),
    "drahtnachzug": (_ON_OFF, "Aus"),
}

# Free text with a pick list in the form; "" means "not chosen yet".
SUGGESTED_OPTIONS: dict[str, tuple[str, ...]] = {
    "pressprogramm": (
        "Presse ohne Siebmischer,Tonreiniger",
        "Presse+Siebmischer",
        "Presse+Siebmischer+Tonreiniger",
    ),
}

# Canonical order. Enumerated fields sit where the form shows them.
FIELDS: tuple[str, ...] = (
    "artNr", "formatBezeichnung", "material", "datum", "abmessungen",
    "mundstueckNr", "presskopf", "sonstigeEinstellungen", "pressprogramm",
    "zahnradAbschneider",
    # Beschriftung auf dem Stein
    "beschriftungSchlagmann", "beschriftungCE", "beschriftungRO", "beschriftungT",
    "druckfestigkeit", "beschriftungSchicht", "beschriftungSchichtzeitraum",
    "beschriftungDatum",
    # Grundeinstellung Vortrieb
    "vortriebOben1", "vortriebOben2", "vortriebOben3",
    "vortriebUnten1", "vortriebUnten2", "vortriebUnten3",
    "vortriebLinks1", "vortriebLinks2", "vortriebLinks3",
    "vortriebRechts1", "vortriebRechts2", "vortriebRechts3",
    "vortriebZentrum", "presskopfLeiste",
    # Presse
    "austrag", "schnittlaengeNass", "siebmischer", "wasserSiebmischer",
    "dampfSiebmischer", "gewichtNass", "mischer", "wasserMischer", "dampfMischer",
    "pressendruck", "presse", "tonreiniger", "schnecke", "rostkorb", "styropor",
    # Abschneider
    "abschneidetisch", "freimatikProduktname", "hubhoehe", "schnittlaenge",
    "vorschub", "drehvorrichtung", "anzahlSchneidedraehte", "offsetDrehvorr",
    "drahtabstand", "geschwLinglBandbruecke", "abziehblechNr", "drahtreiniger",
    "schablone", "schabloneninfo", "abfallAuswerfer", "drahtdurchmesser",
    "drahtnachzug", "geschwFuerNachfBand", "parameterFuerDrehteller",
)

TEXT_FIELDS: tuple[str, ...] = tuple(f for f in FIELDS if f not in ENUM_FIELDS)

# Stored as decimal strings ("12", "3,5", "0.75").
NUMERIC_FIELDS: frozenset[str] = frozenset({
    "schnittlaengeNass", "gewichtNass", "pressendruck", "hubhoehe",
    "schnittlaenge", "vorschub", "anzahlSchneidedraehte", "drahtabstand",
    "drahtdurchmesser",
})

# Every key a serialised record carries.
WIRE_KEYS: tuple[str, ...] = ("id", *FIELDS, IMAGES_KEY, SINGLE_IMAGE_KEY)

_DECIMAL_RE = re.compile(r"^[+-]?(\d+([.,]\d*)?|[.,]\d+)$")


def _field_default(name: str) -> str:
    if name in ENUM_FIELDS:
        return ENUM_FIELDS[name][1]
    return ""


def canonical_default() -> Record:
    """Return a fresh draft: empty id, every field at its default, no images."""
    return Record(id="", values={name: _field_default(name) for name in FIELDS})


def new_draft(day: date | None = None) -> Record:
    """Canonical default with `datum` set to day (today if omitted)."""
    draft = canonical_default()
    draft.values["datum"] = (day or date.today()).isoformat()
    return draft


def _text(value: Any, default: str) -> str:
    """Coerce one raw value into a text slot."""
    if isinstance(value, str):
        return value
    if isinstance(value, float):
        return repr(value)
    # bool is an int subclass; JSON true/false is not a decimal
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return str(value)
        except ValueError:
            # longer than sys.get_int_max_str_digits()
            return default
    return default


def reconcile(raw: Any) -> Record:
    """Overlay raw onto the canonical default. Total: never raises.

    Raw values win for every canonical key present; missing keys keep the
    default; unknown keys are dropped; a non-mapping raw yields the default.
    """
    record = canonical_default()
    if isinstance(raw, Record):
        raw = raw.to_dict()
    if not isinstance(raw, dict):
        return record

    record.id = _text(raw.get("id"), "")
    for name in FIELDS:
        if name in raw:
            record.values[name] = _text(raw[name], record.values[name])

    images = raw.get(IMAGES_KEY)
    if isinstance(images, list):
        record.images = [img for img in images if isinstance(img, str)]

    single = raw.get(SINGLE_IMAGE_KEY)
    if isinstance(single, str) and single:
        record.single_image = single

    return record


def options_for(name: str) -> tuple[str, ...]:
    """Documented options for an enumerated or pick-list field, else ()."""
    if name in ENUM_FIELDS:
        return ENUM_FIELDS[name][0]
    return SUGGESTED_OPTIONS.get(name, ())


def snap_option(name: str, value: str) -> str:
    """Map value onto one of name's options, case-insensitively.

    Fields without options pass through unchanged. Unrecognisable values for
    fields with options become "".
    """
    options = options_for(name)
    if not options:
        return value
    wanted = value.strip().casefold()
    for option in options:
        if option.casefold() == wanted:
            return option
    return ""


def is_decimal(value: str) -> bool:
    """True for "" (unset) or a decimal number with "." or "," separator."""
    return value == "" or bool(_DECIMAL_RE.match(value.strip()))
