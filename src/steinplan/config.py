"""SteinplanConfig: project-local config for a form collection.

Default layout (all relative to the project root):

    steinplan.toml        # project config
    .env                  # optional: GEMINI_API_KEY / GOOGLE_API_KEY (gitignore this)
    .steinplan/
        store/            # diskcache directory (backend = "diskcache")
        steinformat-forms.json   # single blob (backend = "file")
        .gitignore        # auto-written: ignores everything in .steinplan/

steinplan.toml example:

    [steinplan]
    name = "werk-1"
    # data_dir = ".steinplan"   # default

    [storage]
    backend = "diskcache"       # diskcache | file
    key = "steinformat-forms"

    [extraction]
    model = "gemini-2.5-flash"
    mime_type = "image/jpeg"

    [export]
    # dir = "."                 # default: project root
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_CONFIG_FILENAME = "steinplan.toml"
_DEFAULT_DATA_DIR = ".steinplan"
_GITIGNORE_CONTENT = "*\n"

DEFAULT_STORAGE_KEY = "steinformat-forms"
DEFAULT_EXTRACTION_MODEL = "gemini-2.5-flash"
STORAGE_BACKENDS = ("diskcache", "file")


@dataclass
class StorageConfig:
    backend: str = "diskcache"          # diskcache | file
    key: str = DEFAULT_STORAGE_KEY      # blob key of the durable mirror


@dataclass
class ExtractionConfig:
    model: str = DEFAULT_EXTRACTION_MODEL
    mime_type: str = "image/jpeg"       # assumed when an image carries no data-URL header


@dataclass
class SteinplanConfig:
    """Resolved configuration for a steinplan project."""

    root: Path                      # directory that contains steinplan.toml
    name: str = ""
    data_dir: Path = field(default_factory=Path)
    export_dir: Path = field(default_factory=Path)
    storage: StorageConfig = field(default_factory=StorageConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)

    @property
    def cache_dir(self) -> Path:
        return self.data_dir / "store"

    def ensure_dirs(self) -> None:
        """Create data_dir if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._write_gitignore()

    def _write_gitignore(self) -> None:
        gitignore = self.data_dir / ".gitignore"
        if not gitignore.exists():
            gitignore.write_text(_GITIGNORE_CONTENT)


def _load_env(root: Path) -> dict[str, str]:
    """Parse a simple KEY=VALUE .env file (no external dependency)."""
    env_file = root / ".env"
    if not env_file.exists():
        return {}
    env: dict[str, str] = {}
    for line in env_file.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            k, _, v = line.partition("=")
            env[k.strip()] = v.strip().strip('"').strip("'")
    return env


def load_config(root: Path | str | None = None) -> SteinplanConfig:
    """Load steinplan.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    # Inject API keys so the Gemini client can find them
    env = _load_env(root_path)
    for key in ("GEMINI_API_KEY", "GOOGLE_API_KEY"):
        if key in env:
            os.environ.setdefault(key, env[key])

    section = raw.get("steinplan", {})
    storage_section = raw.get("storage", {})
    extraction_section = raw.get("extraction", {})
    export_section = raw.get("export", {})

    backend = str(storage_section.get("backend", "diskcache"))
    if backend not in STORAGE_BACKENDS:
        msg = f"Unknown storage backend {backend!r} in {config_path} (expected one of {', '.join(STORAGE_BACKENDS)})"
        raise ValueError(msg)

    return SteinplanConfig(
        root=root_path,
        name=section.get("name", root_path.name),
        data_dir=root_path / section.get("data_dir", _DEFAULT_DATA_DIR),
        export_dir=root_path / export_section.get("dir", "."),
        storage=StorageConfig(
            backend=backend,
            key=str(storage_section.get("key", DEFAULT_STORAGE_KEY)),
        ),
        extraction=ExtractionConfig(
            model=extraction_section.get("model", DEFAULT_EXTRACTION_MODEL),
            mime_type=extraction_section.get("mime_type", "image/jpeg"),
        ),
    )


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for steinplan.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path, name: str | None = None) -> Path:
    """Write a default steinplan.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"steinplan.toml already exists at {config_path}"
        raise FileExistsError(msg)

    project_name = name or root.name
    content = f"""\
[steinplan]
name = "{project_name}"
# data_dir = ".steinplan"   # default

[storage]
backend = "diskcache"       # diskcache | file
key = "{DEFAULT_STORAGE_KEY}"

# [extraction]
# model = "{DEFAULT_EXTRACTION_MODEL}"   # reads GEMINI_API_KEY from env or .env
# mime_type = "image/jpeg"

# [export]
# dir = "."                 # where `steinplan export` writes files
"""
    config_path.write_text(content)
    return config_path
