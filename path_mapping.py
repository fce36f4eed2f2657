"""
Install layout: where each archive entry goes under the game directory.

map_entry() is the single source of truth for placement.  Install,
uninstall and the install preview all call it, so whatever an install
wrote, an uninstall of the same (mod type, archive) finds again.

Layouts are plain data keyed by ModType:

    ClientMod    BepInEx/...  kept, anything else -> BepInEx/plugins/<path>
    ServerMod    user/...     kept, anything else -> user/mods/<path>
    PluginType   always       -> BepInEx/plugins/<file name>
    CombinedMod  BepInEx/... or user/... kept, anything else skipped
    Unknown / Unrecognized    nothing is installed

Prefix checks are case-insensitive and only look at the start of the path
(classification in mod_types also matches markers mid-path).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from mod_types import ModType


@dataclass(frozen=True)
class Layout:
    keep_prefixes: tuple[str, ...] = ()  # Entries under these stay where they are
    fallback_prefix: str | None = None  # Prepended to every other entry; None = skip
    flatten: bool = False  # Drop the entry's directories, keep only the file name


_PLUGINS = Layout(fallback_prefix="BepInEx/plugins/", flatten=True)

_LAYOUTS: dict[ModType, Layout] = {
    ModType.CLIENT: Layout(keep_prefixes=("BepInEx/",), fallback_prefix="BepInEx/plugins/"),
    ModType.SERVER: Layout(keep_prefixes=("user/",), fallback_prefix="user/mods/"),
    ModType.PLUGIN_TYPE: _PLUGINS,
    ModType.PLUGIN_MOD: _PLUGINS,
    ModType.COMBINED: Layout(keep_prefixes=("BepInEx/", "user/")),
}


def has_layout(mod_type: ModType) -> bool:
    return mod_type in _LAYOUTS


def map_entry(mod_type: ModType, entry_path: str) -> str | None:
    """Return the destination of ``entry_path`` relative to the game root,
    or None if this mod type does not install the entry."""
    layout = _LAYOUTS.get(mod_type)
    if layout is None or not entry_path or entry_path.endswith("/"):
        return None

    if layout.flatten:
        return layout.fallback_prefix + entry_path.rsplit("/", 1)[-1]

    folded = entry_path.casefold()
    if any(folded.startswith(p.casefold()) for p in layout.keep_prefixes):
        return entry_path
    if layout.fallback_prefix is not None:
        return layout.fallback_prefix + entry_path
    return None


# ── Game root helpers ─────────────────────────────────────────────────


def normalize_root(path: str | Path) -> str:
    """Absolute, normalized form of a directory path (no trailing separator)."""
    return os.path.normpath(os.path.abspath(os.fspath(path)))


def is_within(path: str | Path, root: str | Path) -> bool:
    """True if ``path`` is ``root`` or lies below it (case-insensitive where the
    platform's filesystem is)."""
    root_key = os.path.normcase(normalize_root(root))
    path_key = os.path.normcase(normalize_root(path))
    try:
        return os.path.commonpath([root_key, path_key]) == root_key
    except ValueError:  # Different drives
        return False


def resolve_destination(game_path: str | Path, relative: str) -> Path | None:
    """Join a mapped destination onto the game root.

    Returns None when the result would not be strictly inside the root, e.g.
    for archive entries containing ``..`` segments.
    """
    root = normalize_root(game_path)
    dest = os.path.normpath(os.path.join(root, *relative.split("/")))
    if not is_within(dest, root) or os.path.normcase(dest) == os.path.normcase(root):
        return None
    return Path(dest)
