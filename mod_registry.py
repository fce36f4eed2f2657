"""
In-memory, ordered list of managed mods.

Mods are immutable; edits replace the entry at its index, so a Config
snapshot taken earlier never changes underneath the caller.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator

from config_store import Config, Mod, mod_name_from_archive
from mod_types import ModType, detect_mod_type

_log = logging.getLogger(__name__)


class ModRegistry:
    def __init__(self, mods: Iterable[Mod] = ()):
        self._mods: list[Mod] = list(mods)

    @classmethod
    def from_config(cls, config: Config) -> ModRegistry:
        return cls(config.mods)

    def __len__(self) -> int:
        return len(self._mods)

    def __iter__(self) -> Iterator[Mod]:
        return iter(self._mods)

    def __getitem__(self, index: int) -> Mod:
        return self._mods[index]

    @property
    def mods(self) -> tuple[Mod, ...]:
        return tuple(self._mods)

    def snapshot(self, game_path: str) -> Config:
        return Config(game_path=game_path, mods=tuple(self._mods))

    # ── Edits ─────────────────────────────────────────────────────────

    def add_archive(self, archive_path: str | Path) -> Mod:
        """Classify an archive and append it as a new, disabled mod."""
        mod = Mod(
            name=mod_name_from_archive(archive_path),
            archive_path=str(archive_path),
            mod_type=detect_mod_type(archive_path),
            enabled=False,
        )
        self._mods.append(mod)
        _log.info("Added mod '%s' (%s)", mod.name, mod.mod_type.value)
        return mod

    def remove(self, indices: Iterable[int]) -> list[Mod]:
        """Remove the mods at ``indices`` and return them in list order.

        Only the list entry is dropped; installed files are left alone.
        """
        removed = []
        for i in sorted(set(indices), reverse=True):
            removed.append(self._mods.pop(i))
        removed.reverse()
        for mod in removed:
            _log.info("Removed mod '%s' from the list", mod.name)
        return removed

    def set_enabled(self, index: int, enabled: bool) -> Mod:
        mod = self._mods[index].model_copy(update={"enabled": enabled})
        self._mods[index] = mod
        return mod

    def rename(self, index: int, name: str) -> Mod:
        mod = self._mods[index].model_copy(update={"name": name})
        self._mods[index] = mod
        return mod

    def retry_unrecognized(self) -> list[Mod]:
        """Re-classify mods whose archive could not be read when they were added.

        Mods that already have a type (including Unknown) are never touched.
        Returns the mods whose type changed.
        """
        updated = []
        for i, mod in enumerate(self._mods):
            if mod.mod_type is not ModType.UNRECOGNIZED:
                continue
            mod_type = detect_mod_type(mod.archive_path)
            if mod_type is ModType.UNRECOGNIZED:
                continue
            self._mods[i] = mod.model_copy(update={"mod_type": mod_type})
            updated.append(self._mods[i])
            _log.info("Re-detected '%s' as %s", mod.name, mod_type.value)
        return updated
