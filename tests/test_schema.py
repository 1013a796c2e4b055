"""Tests for the canonical field set and reconcile()."""

from __future__ import annotations

from datetime import date

import pytest

from steinplan.models import Record
from steinplan.schema import (
    ENUM_FIELDS,
    FIELDS,
    IMAGES_KEY,
    SINGLE_IMAGE_KEY,
    TEXT_FIELDS,
    WIRE_KEYS,
    canonical_default,
    is_decimal,
    new_draft,
    reconcile,
    snap_option,
)


def test_canonical_default_shape() -> None:
    d = canonical_default()
    assert d.id == ""
    assert tuple(d.values) == FIELDS
    assert all(d.values[name] == "" for name in TEXT_FIELDS)
    assert d.images == []
    assert d.single_image is None


def test_enum_defaults_are_documented_options() -> None:
    d = canonical_default()
    for name, (options, default) in ENUM_FIELDS.items():
        assert d[name] == default
        assert default in options
    assert d["abschneidetisch"] == "Normal"
    assert d["drahtnachzug"] == "Aus"


def test_canonical_default_returns_fresh_objects() -> None:
    a = canonical_default()
    a.values["material"] = "Ton"
    a.images.append("x")
    b = canonical_default()
    assert b["material"] == ""
    assert b.images == []


@pytest.mark.parametrize(
    "raw",
    [
        {},
        None,
        [],
        "not a record",
        42,
        {"unknown": "x", "another": [1, 2]},
        {"formatBezeichnung": "F100"},
        {"id": None, IMAGES_KEY: "oops", SINGLE_IMAGE_KEY: 7},
        {"hubhoehe": {"nested": True}, "material": None, "drehvorrichtung": True},
        {"id": "1", "hubhoehe": 10**5000},
        {"id": 10**5000, "material": -(10**4400)},
    ],
)
def test_reconcile_is_total_and_canonical(raw: object) -> None:
    r = reconcile(raw)
    assert isinstance(r, Record)
    assert tuple(r.values) == FIELDS
    assert tuple(r.to_dict()) == WIRE_KEYS
    assert all(isinstance(v, str) for v in r.values.values())


def test_reconcile_raw_values_win_and_missing_keep_default() -> None:
    r = reconcile({"id": "1", "formatBezeichnung": "F100", "abschneidetisch": "Juwö"})
    assert r.id == "1"
    assert r["formatBezeichnung"] == "F100"
    assert r["abschneidetisch"] == "Juwö"
    assert r["drehvorrichtung"] == "Aus"
    assert r["material"] == ""


def test_reconcile_keeps_empty_string_over_enum_default() -> None:
    assert reconcile({"abschneidetisch": ""})["abschneidetisch"] == ""


def test_reconcile_drops_unknown_keys() -> None:
    r = reconcile({"id": "1", "espNr": "17", "beschriftung000": "x"})
    assert "espNr" not in r.to_dict()
    assert "beschriftung000" not in r.to_dict()


def test_reconcile_coerces_numbers_to_decimal_strings() -> None:
    r = reconcile({"id": 7, "hubhoehe": 120, "drahtdurchmesser": 0.5, "pressendruck": False})
    assert r.id == "7"
    assert r["hubhoehe"] == "120"
    assert r["drahtdurchmesser"] == "0.5"
    assert r["pressendruck"] == ""


def test_reconcile_images() -> None:
    r = reconcile({IMAGES_KEY: ["data:a", 3, None, "data:b"], SINGLE_IMAGE_KEY: "data:c"})
    assert r.images == ["data:a", "data:b"]
    assert r.single_image == "data:c"
    assert reconcile({SINGLE_IMAGE_KEY: ""}).single_image is None


@pytest.mark.parametrize(
    "raw",
    [
        None,
        {},
        {"id": "x", "hubhoehe": 3, IMAGES_KEY: ["a", 1], "extra": 1},
        {"abschneidetisch": "", SINGLE_IMAGE_KEY: "s"},
    ],
)
def test_reconcile_is_idempotent(raw: object) -> None:
    once = reconcile(raw)
    assert reconcile(once) == once
    assert reconcile(once.to_dict()) == once


def test_snap_option() -> None:
    assert snap_option("abschneidetisch", "deckenziegel") == "Deckenziegel"
    assert snap_option("drahtreiniger", " ein ") == "Ein"
    assert snap_option("drahtreiniger", "vielleicht") == ""
    assert snap_option("pressprogramm", "presse+siebmischer") == "Presse+Siebmischer"
    assert snap_option("material", "Ton") == "Ton"


@pytest.mark.parametrize("value", ["", "12", "3,5", "0.75", "-2", ".5"])
def test_is_decimal_accepts(value: str) -> None:
    assert is_decimal(value)


@pytest.mark.parametrize("value", ["abc", "1.2.3", "12 mm", ","])
def test_is_decimal_rejects(value: str) -> None:
    assert not is_decimal(value)


def test_reconcile_drops_numbers_too_long_to_render() -> None:
    r = reconcile({"id": "1", "hubhoehe": 10**5000, "vorschub": 10**4000})
    assert r.id == "1"
    assert r["hubhoehe"] == ""
    assert r["vorschub"] == str(10**4000)
    assert reconcile({"id": 10**5000}).is_draft


def test_new_draft_sets_date_only() -> None:
    draft = new_draft(date(2026, 3, 1))
    assert draft.is_draft
    assert draft["datum"] == "2026-03-01"
    assert draft.with_values(datum="") == canonical_default()


def test_new_draft_defaults_to_today() -> None:
    assert new_draft()["datum"] == date.today().isoformat()
