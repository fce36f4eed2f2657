"""
Mod type labels and archive classification.

A mod's type decides where its files land in the game directory (see
path_mapping).  The type is detected once, when the archive is added, by
looking for BepInEx / SPT ``user`` marker directories and plugin DLLs.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Iterable

from archive_reader import ModArchiveReader
from errors import ArchiveOpenError

_log = logging.getLogger(__name__)


class ModType(str, Enum):
    CLIENT = "ClientMod"
    SERVER = "ServerMod"
    PLUGIN_MOD = "PluginMod"
    COMBINED = "CombinedMod"
    PLUGIN_TYPE = "PluginType"
    UNKNOWN = "Unknown"  # Classified, but no markers found
    UNRECOGNIZED = "Unrecognized"  # Classification itself failed


# Labels written by the original Windows release of the manager.
LEGACY_LABELS = {
    "客户端模组": ModType.CLIENT,
    "服务器模组": ModType.SERVER,
    "插件模组": ModType.PLUGIN_TYPE,
    "组合模组": ModType.COMBINED,
    "未知类型": ModType.UNKNOWN,
    "无法识别": ModType.UNRECOGNIZED,
}


def parse_mod_type(value) -> ModType:
    """Coerce a persisted label to a ModType; anything unknown is UNRECOGNIZED."""
    if isinstance(value, ModType):
        return value
    if not isinstance(value, str):
        return ModType.UNRECOGNIZED

    label = value.strip()
    if label in LEGACY_LABELS:
        return LEGACY_LABELS[label]
    for mod_type in ModType:
        if label.lower() in (mod_type.value.lower(), mod_type.name.lower()):
            return mod_type
    return ModType.UNRECOGNIZED


def _has_marker(path: str, marker: str) -> bool:
    return path.startswith(marker + "/") or f"/{marker}/" in path


def classify_entry_paths(paths: Iterable[str]) -> ModType:
    """Classify a mod from the paths of its (non-directory) archive entries."""
    has_bepinex = False
    has_user = False
    has_dll = False

    for raw in paths:
        path = raw.replace("\\", "/").lower()
        if _has_marker(path, "bepinex"):
            has_bepinex = True
        if _has_marker(path, "user"):
            has_user = True
        if path.endswith(".dll"):
            has_dll = True

    if has_bepinex and has_user:
        return ModType.COMBINED
    if has_bepinex:
        return ModType.CLIENT
    if has_user:
        return ModType.SERVER
    if has_dll:
        return ModType.PLUGIN_TYPE
    return ModType.UNKNOWN


def detect_mod_type(filepath: str | Path) -> ModType:
    try:
        with ModArchiveReader(filepath) as reader:
            mod_type = classify_entry_paths(
                e.path for e in reader.entries() if not e.is_dir
            )
    except ArchiveOpenError as e:
        _log.warning("Could not classify %s: %s", filepath, e)
        return ModType.UNRECOGNIZED

    _log.info("Detected %s as %s", Path(filepath).name, mod_type.value)
    return mod_type
