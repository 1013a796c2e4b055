"""Shared pytest fixtures for the steinplan test suite."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from steinplan.backend import FileBackend
from steinplan.models import Record
from steinplan.schema import canonical_default
from steinplan.store import RecordStore

KEY = "steinformat-forms"


class FlakyBackend(FileBackend):
    """FileBackend whose writes can be switched to fail."""

    def __init__(self, directory: Path) -> None:
        super().__init__(directory)
        self.fail_writes = False
        self.writes = 0

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.writes += 1
        super().set(key, value)


class FakeModels:
    """Stands in for client.aio.models of google-genai."""

    def __init__(self, text: str | None = None, exc: Exception | None = None) -> None:
        self.text = text
        self.exc = exc
        self.calls: list[dict[str, Any]] = []

    async def generate_content(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        if self.exc is not None:
            raise self.exc
        return SimpleNamespace(text=self.text)


def fake_client(models: FakeModels) -> SimpleNamespace:
    return SimpleNamespace(aio=SimpleNamespace(models=models))


def make_record(record_id: str, name: str = "", **values: str) -> Record:
    record = canonical_default().with_values(formatBezeichnung=name, **values)
    return record.with_id(record_id)


@pytest.fixture
def backend(tmp_path: Path) -> FlakyBackend:
    return FlakyBackend(tmp_path / "data")


@pytest.fixture
def store(backend: FlakyBackend) -> RecordStore:
    s = RecordStore(backend, KEY)
    s.load()
    return s


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A project root with a default steinplan.toml, used as cwd."""
    from steinplan.config import init_config

    init_config(tmp_path, name="werk-test")
    monkeypatch.chdir(tmp_path)
    return tmp_path
