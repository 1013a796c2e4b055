"""End-to-end tests for the steinplan CLI."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest
from click.testing import CliRunner
from conftest import FakeModels, fake_client

from steinplan.cli import cli
from steinplan.config import load_config
from steinplan.extraction import GeminiExtractor
from steinplan.store import RecordStore


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def invoke(runner: CliRunner, *args: str, input: str | None = None):
    return runner.invoke(cli, list(args), input=input, catch_exceptions=False)


def stored(project: Path) -> RecordStore:
    return RecordStore.open(load_config(project))


def test_init_creates_config(tmp_path: Path, runner: CliRunner) -> None:
    result = invoke(runner, "init", "werk-9", "--dir", str(tmp_path))
    assert result.exit_code == 0
    assert (tmp_path / "steinplan.toml").exists()
    assert (tmp_path / ".steinplan").is_dir()
    again = invoke(runner, "init", "--dir", str(tmp_path))
    assert "already exists" in again.output


def test_new_list_edit_delete(project: Path, runner: CliRunner) -> None:
    result = invoke(runner, "new", "--set", "formatBezeichnung=F100", "--set", "material=Ton")
    assert result.exit_code == 0
    record_id = result.output.strip()

    record = stored(project).get(record_id)
    assert record["formatBezeichnung"] == "F100"
    assert record["datum"] == date.today().isoformat()

    listing = invoke(runner, "list", "f100", "--ids")
    assert listing.output.split() == [record_id]
    assert invoke(runner, "list", "nomatch").output.startswith("No forms match")
    assert "F100" in invoke(runner, "list").output

    assert invoke(runner, "edit", record_id, "--set", "formatBezeichnung=F100-rev2").exit_code == 0
    assert stored(project).get(record_id)["formatBezeichnung"] == "F100-rev2"
    assert len(stored(project)) == 1

    assert invoke(runner, "delete", record_id, "--yes").exit_code == 0
    assert len(stored(project)) == 0


def test_set_validation(project: Path, runner: CliRunner) -> None:
    for bad in ["nofield=1", "abschneidetisch=Rund", "hubhoehe=hoch", "missing-equals"]:
        result = runner.invoke(cli, ["new", "--set", bad])
        assert result.exit_code == 2, bad
    assert len(stored(project)) == 0


def test_show_unknown_id_fails(project: Path, runner: CliRunner) -> None:
    result = runner.invoke(cli, ["show", "nope"])
    assert result.exit_code == 1
    assert "Form not found" in result.output


def test_show_json(project: Path, runner: CliRunner) -> None:
    record_id = invoke(runner, "new", "--set", "formatBezeichnung=F7").output.strip()
    data = json.loads(invoke(runner, "show", record_id, "--json").output)
    assert data["id"] == record_id
    assert data["abschneidetisch"] == "Normal"


def test_attach_and_detach(project: Path, runner: CliRunner) -> None:
    record_id = invoke(runner, "new").output.strip()
    image = project / "photo.png"
    image.write_bytes(b"\x89PNG")

    assert invoke(runner, "attach", record_id, str(image)).exit_code == 0
    assert invoke(runner, "attach", record_id, str(image), "--single").exit_code == 0
    record = stored(project).get(record_id)
    assert len(record.images) == 1
    assert record.images[0].startswith("data:image/png;base64,")
    assert record.single_image is not None

    assert invoke(runner, "detach", record_id, "0").exit_code == 0
    assert invoke(runner, "detach", record_id, "--single").exit_code == 0
    record = stored(project).get(record_id)
    assert record.images == []
    assert record.single_image is None

    assert runner.invoke(cli, ["detach", record_id, "3"]).exit_code == 1


def test_export_then_import_elsewhere(
    project: Path, runner: CliRunner, tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch,
) -> None:
    assert "no forms to export" in invoke(runner, "export").output

    invoke(runner, "new", "--set", "formatBezeichnung=F100")
    invoke(runner, "new", "--set", "formatBezeichnung=F200")
    out_dir = project / "out"
    result = invoke(runner, "export", "--out", str(out_dir))
    assert "Exported 2 form(s)" in result.output
    (export_file,) = out_dir.glob("steinplan-export-*.json")
    assert export_file.name == f"steinplan-export-{date.today().isoformat()}.json"

    # importing into the same store finds nothing new
    assert "No new forms" in invoke(runner, "import", str(export_file)).output

    other = tmp_path_factory.mktemp("other")
    invoke(runner, "init", "--dir", str(other))
    monkeypatch.chdir(other)
    assert "Imported 2 new form(s)" in invoke(runner, "import", str(export_file)).output
    assert [r.display_name for r in stored(other).all()] == ["F100", "F200"]


def test_import_rejects_non_array(project: Path, runner: CliRunner) -> None:
    bad = project / "bad.json"
    bad.write_text('{"id": "1"}')
    result = runner.invoke(cli, ["import", str(bad)])
    assert result.exit_code == 1
    assert "array of records" in result.output


def test_import_missing_file(project: Path, runner: CliRunner) -> None:
    result = runner.invoke(cli, ["import", str(project / "missing.json")])
    assert result.exit_code == 1
    assert "Could not read" in result.output


def test_scan_save(project: Path, runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
    models = FakeModels(json.dumps({"formatBezeichnung": "Gescannt", "id": "ignored"}))
    monkeypatch.setattr(GeminiExtractor, "_client", lambda self: fake_client(models))
    image = project / "form.jpg"
    image.write_bytes(b"\xff\xd8jpeg")

    result = invoke(runner, "scan", str(image), "--save")
    assert result.exit_code == 0
    records = stored(project).all()
    assert len(records) == 1
    assert records[0].display_name == "Gescannt"
    assert records[0].id != "ignored"
    assert models.calls[0]["contents"][0]["parts"][0]["inline_data"]["mime_type"] == "image/jpeg"


def test_scan_failure_falls_back_to_manual_draft(project: Path, runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
    models = FakeModels(exc=ConnectionError("offline"))
    monkeypatch.setattr(GeminiExtractor, "_client", lambda self: fake_client(models))
    image = project / "form.jpg"
    image.write_bytes(b"\xff\xd8jpeg")

    result = invoke(runner, "scan", str(image), "--save")
    assert result.exit_code == 0
    assert "fill it in manually" in result.output
    (record,) = stored(project).all()
    assert record.display_name == ""
    assert record["datum"] == date.today().isoformat()


def test_status(project: Path, runner: CliRunner) -> None:
    invoke(runner, "new", "--set", "formatBezeichnung=F1")
    result = invoke(runner, "status")
    assert result.exit_code == 0
    assert "Forms" in result.output


def test_import_deeply_nested_file_fails_cleanly(project: Path, runner: CliRunner) -> None:
    bad = project / "nested.json"
    bad.write_text("[" * 200_000 + "]" * 200_000)
    result = runner.invoke(cli, ["import", str(bad)])
    assert result.exit_code == 1
    assert "Import failed" in result.output
    assert "not valid JSON" in result.output


def test_status_reports_undecodable_backup(project: Path, runner: CliRunner) -> None:
    cfg = load_config(project)
    cfg.ensure_dirs()
    store = RecordStore.open(cfg)
    store.backend._cache.set("steinformat-forms", b"[\xff]")
    store.close()

    assert len(stored(project)) == 0
    result = invoke(runner, "status")
    assert result.exit_code == 0
    assert "Corrupt backup" in result.output
