"""steinplan CLI — Steinformat forms kept in a local store.

Commands:
    steinplan init [NAME]              create steinplan.toml + .steinplan/
    steinplan list [TERM]              list forms, filtered by Format-Bezeichnung
    steinplan show ID                  dump one form
    steinplan new --set K=V ...        create a form (id assigned)
    steinplan edit ID --set K=V ...    replace fields of a form
    steinplan delete ID                delete a form
    steinplan attach ID IMAGE          add a photo (--single: Mundstück photo)
    steinplan detach ID [INDEX]        remove a photo (--single: Mundstück photo)
    steinplan export [--out DIR]       write steinplan-export-<date>.json
    steinplan import FILE              merge forms from an export file
    steinplan scan IMAGE [--save]      draft a form from a photo via Gemini
    steinplan status                   config and store health
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import click

from steinplan.config import SteinplanConfig, init_config, load_config
from steinplan.errors import SteinplanError
from steinplan.export import serialize, write_export
from steinplan.files import InputSlot, ReadResult
from steinplan.merge import import_text
from steinplan.models import Record
from steinplan.schema import ENUM_FIELDS, FIELDS, NUMERIC_FIELDS, is_decimal, new_draft
from steinplan.store import RecordStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg() -> SteinplanConfig:
    try:
        return load_config()
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc


def _open_store(cfg: SteinplanConfig) -> RecordStore:
    return RecordStore.open(cfg)


def _check_sync(store: RecordStore) -> None:
    if not store.in_sync:
        click.echo("Warning: the change is kept in memory only, writing the store failed (see log)", err=True)


def _require(store: RecordStore, record_id: str) -> Record:
    record = store.get(record_id)
    if record is None:
        raise click.ClickException(f"Form not found: {record_id}")
    return record


def _parse_assignments(pairs: tuple[str, ...]) -> dict[str, str]:
    """Turn ("material=Ton", ...) into a field dict, validating names and values."""
    changes: dict[str, str] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        name = name.strip()
        if not sep:
            raise click.BadParameter(f"expected FIELD=VALUE, got {pair!r}", param_hint="--set")
        if name not in FIELDS:
            raise click.BadParameter(f"unknown field {name!r}", param_hint="--set")
        if name in ENUM_FIELDS and value not in ENUM_FIELDS[name][0]:
            options = ", ".join(ENUM_FIELDS[name][0])
            raise click.BadParameter(f"{name} must be one of: {options}", param_hint="--set")
        if name in NUMERIC_FIELDS and not is_decimal(value):
            raise click.BadParameter(f"{name} must be a number, got {value!r}", param_hint="--set")
        changes[name] = value
    return changes


def _read(slot: InputSlot, path: Path, *, as_image: bool) -> str:
    if as_image:
        result: ReadResult = asyncio.run(slot.read_data_url(path))
    else:
        result = asyncio.run(slot.read_text(path))
    if not result.ok or result.payload is None:
        raise click.ClickException(result.error or f"Could not read {path}")
    return result.payload


def _na(value: str) -> str:
    return value or "N/A"


def _summary(record: Record) -> str:
    return (
        f"Art-Nr: {_na(record['artNr'])} | Material: {_na(record['material'])}"
        f" | Datum: {_na(record['datum'])}"
    )


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="steinplan")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def cli(verbose: bool) -> None:
    """steinplan — machine-setting forms for brick formats."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


# ---------------------------------------------------------------------------
# steinplan init
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
def init(name: str | None, root: str) -> None:
    """Create steinplan.toml and the .steinplan/ data directory."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path, name=name)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("steinplan.toml already exists — skipping init")

    cfg = load_config(root_path)
    cfg.ensure_dirs()
    click.echo(f"Data dir : {cfg.data_dir}")
    click.echo(f"Backend  : {cfg.storage.backend} (key {cfg.storage.key})")


# ---------------------------------------------------------------------------
# steinplan list / show
# ---------------------------------------------------------------------------


@cli.command("list")
@click.argument("term", required=False, default="")
@click.option("--ids", is_flag=True, help="Print ids only")
def list_cmd(term: str, ids: bool) -> None:
    """List saved forms, optionally filtered by Format-Bezeichnung."""
    from rich.console import Console
    from rich.table import Table

    store = _open_store(_load_cfg())
    records = store.query(term)
    if ids:
        for r in records:
            click.echo(r.id)
        return
    if not records:
        if term:
            click.echo(f"No forms match {term!r}.")
        else:
            click.echo("No forms yet — create one with `steinplan new` or `steinplan scan`.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Format-Bezeichnung", style="bold blue")
    table.add_column("Details")
    table.add_column("ID", style="dim", no_wrap=True)
    for r in records:
        table.add_row(_na(r.display_name), _summary(r), r.id)
    Console().print(table)


@cli.command()
@click.argument("record_id")
@click.option("--json", "as_json", is_flag=True, help="Print the stored JSON object")
@click.option("--all-fields", is_flag=True, help="Include empty fields")
def show(record_id: str, as_json: bool, all_fields: bool) -> None:
    """Show one form."""
    store = _open_store(_load_cfg())
    record = _require(store, record_id)
    if as_json:
        click.echo(json.dumps(record.to_dict(), indent=2, ensure_ascii=False))
        return

    from rich.console import Console
    from rich.table import Table

    table = Table(title=_na(record.display_name), show_header=True, header_style="bold")
    table.add_column("Field", style="dim", no_wrap=True)
    table.add_column("Value")
    table.add_row("id", record.id)
    for name in FIELDS:
        value = record[name]
        if value or all_fields:
            table.add_row(name, value)
    table.add_row("Fotos", str(len(record.images)))
    table.add_row("Mundstück-Foto", "yes" if record.single_image else "no")
    Console().print(table)


# ---------------------------------------------------------------------------
# steinplan new / edit / delete
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--set", "assignments", multiple=True, metavar="FIELD=VALUE", help="Field value (repeatable)")
def new(assignments: tuple[str, ...]) -> None:
    """Create a form with today's date and print its id."""
    changes = _parse_assignments(assignments)
    store = _open_store(_load_cfg())
    record = store.save_draft(new_draft().with_values(**changes))
    _check_sync(store)
    click.echo(record.id)


@cli.command()
@click.argument("record_id")
@click.option("--set", "assignments", multiple=True, required=True, metavar="FIELD=VALUE")
def edit(record_id: str, assignments: tuple[str, ...]) -> None:
    """Replace fields of an existing form."""
    changes = _parse_assignments(assignments)
    store = _open_store(_load_cfg())
    record = _require(store, record_id)
    store.upsert(record.with_values(**changes))
    _check_sync(store)
    click.echo(f"Updated {record_id} ({len(changes)} field(s))")


@cli.command()
@click.argument("record_id")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation")
def delete(record_id: str, yes: bool) -> None:
    """Delete a form by id."""
    store = _open_store(_load_cfg())
    record = _require(store, record_id)
    if not yes:
        click.confirm(f"Delete {_na(record.display_name)} ({record_id})?", abort=True)
    store.delete(record_id)
    _check_sync(store)
    click.echo(f"Deleted {record_id}")


# ---------------------------------------------------------------------------
# steinplan attach / detach
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("record_id")
@click.argument("image", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--single", is_flag=True, help="Set the Mundstück photo instead of adding a Hilfsmittel photo")
def attach(record_id: str, image: Path, single: bool) -> None:
    """Attach a photo to a form."""
    store = _open_store(_load_cfg())
    record = _require(store, record_id)
    data_url = _read(InputSlot("image"), image, as_image=True)
    if single:
        record = record.with_single_image(data_url)
    else:
        record = record.append_image(data_url)
    store.upsert(record)
    _check_sync(store)
    click.echo(f"Attached {image.name} to {record_id}")


@cli.command()
@click.argument("record_id")
@click.argument("index", type=int, required=False)
@click.option("--single", is_flag=True, help="Remove the Mundstück photo")
def detach(record_id: str, index: int | None, single: bool) -> None:
    """Remove a photo from a form (INDEX counts from 0)."""
    store = _open_store(_load_cfg())
    record = _require(store, record_id)
    if single:
        record = record.with_single_image(None)
    elif index is None:
        raise click.UsageError("give an INDEX or --single")
    else:
        try:
            record = record.remove_image(index)
        except IndexError as exc:
            raise click.ClickException(str(exc)) from exc
    store.upsert(record)
    _check_sync(store)
    click.echo(f"Removed photo from {record_id}")


# ---------------------------------------------------------------------------
# steinplan export / import
# ---------------------------------------------------------------------------


@cli.command("export")
@click.option("--out", "out_dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Target directory (default: [export] dir)")
@click.option("--stdout", is_flag=True, help="Print the JSON instead of writing a file")
def export_cmd(out_dir: Path | None, stdout: bool) -> None:
    """Export all forms as JSON."""
    cfg = _load_cfg()
    store = _open_store(cfg)
    records = store.all()
    if stdout:
        click.echo(serialize(records))
        return
    if not records:
        click.echo("There are no forms to export.")
        return
    path = write_export(records, out_dir or cfg.export_dir)
    click.echo(f"Exported {len(records)} form(s) to {path}")


@cli.command("import")
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path))
def import_cmd(file: Path) -> None:
    """Import forms from an export file. Forms that already exist are skipped."""
    store = _open_store(_load_cfg())
    text = _read(InputSlot("import"), file, as_image=False)
    try:
        result = import_text(store, text)
    except SteinplanError as exc:
        raise click.ClickException(f"Import failed: {exc}") from exc
    if result.nothing_new:
        click.echo("No new forms to import. All forms in the file already exist.")
        return
    _check_sync(store)
    click.echo(f"Imported {len(result.added)} new form(s).")
    if result.skipped:
        click.echo(f"Skipped {result.skipped} form(s) already present or without id.")


# ---------------------------------------------------------------------------
# steinplan scan
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("image", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--save", is_flag=True, help="Save the draft as a new form")
@click.option("--model", default=None, help="Gemini model (default: [extraction] model)")
def scan(image: Path, save: bool, model: str | None) -> None:
    """Read a photographed form with Gemini and print (or save) the draft."""
    from steinplan.extraction import GeminiExtractor

    cfg = _load_cfg()
    data_url = _read(InputSlot("scan"), image, as_image=True)
    extractor = GeminiExtractor(
        model=model or cfg.extraction.model,
        default_mime_type=cfg.extraction.mime_type,
    )
    click.echo("Analysing form…", err=True)
    result = extractor.extract_sync(data_url)
    draft = result.draft
    if not result.ok:
        click.echo(
            f"The form could not be read automatically ({result.error}). Please fill it in manually.",
            err=True,
        )
        draft = new_draft()

    if not save:
        click.echo(json.dumps(draft.to_dict(), indent=2, ensure_ascii=False))
        return
    store = _open_store(cfg)
    record = store.save_draft(draft)
    _check_sync(store)
    click.echo(record.id)


# ---------------------------------------------------------------------------
# steinplan status
# ---------------------------------------------------------------------------


@cli.command()
def status() -> None:
    """Show config and store health."""
    from rich.console import Console
    from rich.table import Table

    cfg = _load_cfg()
    store = _open_store(cfg)

    table = Table(title=f"steinplan — {cfg.name}", show_header=True, header_style="bold")
    table.add_column("Metric", style="dim", no_wrap=True)
    table.add_column("Value", justify="right")

    from importlib.metadata import version as _pkg_version
    try:
        _ver = _pkg_version("steinplan")
    except Exception:
        _ver = "unknown"
    table.add_row("Version", _ver)
    table.add_row("Config", str(cfg.root / "steinplan.toml"))
    table.add_row("Backend", f"{cfg.storage.backend}  {cfg.data_dir}")
    table.add_row("Key", cfg.storage.key)
    table.add_row("Forms", str(len(store)))
    table.add_row("Photos", str(sum(len(r.images) + bool(r.single_image) for r in store)))
    if store.has_backup:
        table.add_row("Corrupt backup", f"[yellow]⚠ {store.backup_key}[/yellow]")
    table.add_row("Extraction model", cfg.extraction.model)
    Console().print(table)
