"""
Persisted configuration for EFT Mod Manager.

The config is a single JSON document:

{
    "gamePath": "D:/SPT",
    "mods": [
        {
            "name": "SAIN",
            "archivePath": "D:/Downloads/SAIN-3.1.0.zip",
            "modType": "ClientMod",
            "enabled": true
        }
    ]
}

Files written by the original Windows release (PascalCase keys such as
``GamePath`` / ``FilePath`` / ``IsEnabled`` and localized type labels) are
accepted on load; saves always use the layout above.

Loading is forgiving about individual fields: a missing or unknown
``modType`` becomes Unrecognized, a missing ``enabled`` becomes false, and a
missing ``name`` is derived from the archive file name.  Only an unreadable
file, invalid JSON, or a document that is not an object is a ConfigError.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from errors import ConfigError
from mod_types import ModType, parse_mod_type

CONFIG_FILENAME = "config.json"

_log = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "1", "yes", "on"}


def default_config_path() -> Path:
    """config.json next to the application: the frozen exe dir or the source tree."""
    if getattr(sys, "frozen", False):
        return Path(sys.executable).parent / CONFIG_FILENAME
    return Path(__file__).resolve().parent / CONFIG_FILENAME


def mod_name_from_archive(archive_path: str | Path) -> str:
    """Archive file name without its extension (handles either separator)."""
    filename = os.fspath(archive_path).replace("\\", "/").rsplit("/", 1)[-1]
    return os.path.splitext(filename)[0]


# ── Schema ────────────────────────────────────────────────────────────


class Mod(BaseModel):
    """One managed mod archive and its desired installation state."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field("", validation_alias=AliasChoices("name", "Name"))
    archive_path: str = Field(
        "",
        validation_alias=AliasChoices("archive_path", "archivePath", "FilePath"),
        serialization_alias="archivePath",
    )
    mod_type: ModType = Field(
        ModType.UNRECOGNIZED,
        validation_alias=AliasChoices("mod_type", "modType", "Type"),
        serialization_alias="modType",
    )
    enabled: bool = Field(False, validation_alias=AliasChoices("enabled", "IsEnabled"))

    @model_validator(mode="before")
    @classmethod
    def _default_name(cls, data):
        if not isinstance(data, dict) or data.get("name") or data.get("Name"):
            return data
        archive = data.get("archive_path") or data.get("archivePath") or data.get("FilePath")
        if isinstance(archive, str) and archive:
            data = {**data, "name": mod_name_from_archive(archive)}
        return data

    @field_validator("name", "archive_path", mode="before")
    @classmethod
    def _text(cls, v) -> str:
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)

    @field_validator("mod_type", mode="before")
    @classmethod
    def _mod_type(cls, v) -> ModType:
        return parse_mod_type(v)

    @field_validator("enabled", mode="before")
    @classmethod
    def _enabled(cls, v) -> bool:
        if isinstance(v, bool):
            return v
        if isinstance(v, (int, float)):
            return bool(v)
        if isinstance(v, str):
            return v.strip().lower() in _TRUE_STRINGS
        return False


class Config(BaseModel):
    """Game directory plus the ordered mod list."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    game_path: str = Field(
        "",
        validation_alias=AliasChoices("game_path", "gamePath", "GamePath"),
        serialization_alias="gamePath",
    )
    mods: tuple[Mod, ...] = Field((), validation_alias=AliasChoices("mods", "Mods"))

    @field_validator("game_path", mode="before")
    @classmethod
    def _game_path(cls, v) -> str:
        if v is None:
            return ""
        return (v if isinstance(v, str) else str(v)).strip()

    @field_validator("mods", mode="before")
    @classmethod
    def _drop_bad_entries(cls, v):
        if v is None:
            return ()
        if not isinstance(v, (list, tuple)):
            _log.warning("Ignoring mods list of type %s", type(v).__name__)
            return ()
        kept = []
        for i, item in enumerate(v):
            if isinstance(item, (dict, Mod)):
                kept.append(item)
            else:
                _log.warning("Ignoring mod entry %d: expected an object, got %r", i, item)
        return kept


# ── Load / Save ───────────────────────────────────────────────────────


def parse_config(data: dict) -> Config:
    """Validate an already-decoded config document.

    Raises ``pydantic.ValidationError`` if a field cannot be coerced.
    """
    return Config.model_validate(data)


def load_config(path: str | Path) -> Config:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise ConfigError(path, f"cannot read file: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(path, f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(path, f"expected a JSON object, got {type(data).__name__}")

    try:
        config = parse_config(data)
    except ValidationError as e:
        raise ConfigError(path, f"invalid config: {e}") from e

    _log.info("Loaded config from %s: %d mod(s)", path, len(config.mods))
    return config


def load_config_or_default(path: str | Path) -> tuple[Config, ConfigError | None]:
    """Load the config, falling back to an empty one.

    A missing file is the normal first-run case and is not an error; any
    other failure is returned alongside the default so the caller can show it.
    """
    path = Path(path)
    if not path.exists():
        return Config(), None
    try:
        return load_config(path), None
    except ConfigError as e:
        _log.warning("%s; starting with an empty configuration", e)
        return Config(), e


def save_config(path: str | Path, config: Config):
    path = Path(path)
    data = config.model_dump(mode="json", by_alias=True)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as e:
        raise ConfigError(path, f"cannot write file: {e}") from e
    _log.info("Saved config to %s: %d mod(s)", path, len(config.mods))


# ── Snapshot diff ─────────────────────────────────────────────────────


def diff_configs(before: Config, after: Config) -> list[str]:
    """Describe what changed between two config snapshots.

    Mods are compared position by position, matching how the list is shown
    and applied.  An empty list means the snapshots are equivalent.
    """
    changes: list[str] = []
    if before.game_path != after.game_path:
        changes.append(f"Game path: {before.game_path or '(not set)'} -> {after.game_path or '(not set)'}")

    for i in range(max(len(before.mods), len(after.mods))):
        if i >= len(before.mods):
            changes.append(f"Added: {after.mods[i].name}")
        elif i >= len(after.mods):
            changes.append(f"Removed: {before.mods[i].name}")
        else:
            old, new = before.mods[i], after.mods[i]
            if old == new:
                continue
            if old.model_copy(update={"enabled": new.enabled}) == new:
                state = "Enabled" if new.enabled else "Disabled"
                changes.append(f"{state}: {new.name}")
            else:
                changes.append(f"Changed: {old.name}" + (f" -> {new.name}" if old.name != new.name else ""))
    return changes
