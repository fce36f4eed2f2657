"""
EFT Mod Manager - Core Logic

Installs and uninstalls mod archives into the game directory and applies a
whole mod list in one pass.

Workflow:
    manager = ModManager(game_path)
    report = manager.apply_mods(config.mods)   # install enabled, remove disabled

Every archive entry is placed with path_mapping.map_entry(), so install and
uninstall of the same mod always agree on the destination.  Failures are
best-effort throughout: one bad entry does not stop its mod, and one bad mod
does not stop the pass.  Everything that went wrong is returned in the
ModResult / ReconcileReport.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, Iterator, Literal, Optional

from archive_reader import ArchiveEntry, ModArchiveReader
from config_store import Mod
from errors import (
    ArchiveReadError,
    FilesystemDeleteError,
    FilesystemWriteError,
    ModManagerError,
)
from path_mapping import has_layout, is_within, map_entry, normalize_root, resolve_destination

_log = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024

Action = Literal["install", "uninstall"]


@dataclass
class ModResult:
    """Outcome of installing or uninstalling one mod."""

    mod_name: str
    action: Action
    files: list[str] = field(default_factory=list)  # Destinations written/removed, relative to game root
    skipped: list[str] = field(default_factory=list)  # Entries with no destination
    failures: list[ModManagerError] = field(default_factory=list)  # Per-entry errors
    error: Exception | None = None  # Set when the mod could not be processed at all

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failures

    def summary(self) -> str:
        verb = "Installed" if self.action == "install" else "Removed"
        if self.error is not None:
            return f"{self.mod_name}: {self.action} failed: {self.error}"
        text = f"{self.mod_name}: {verb} {len(self.files)} file(s)"
        if self.failures:
            text += f", {len(self.failures)} failure(s)"
        return text

    def error_lines(self) -> list[str]:
        if self.error is not None:
            return [str(self.error)]
        return [str(f) for f in self.failures]


@dataclass
class ReconcileReport:
    results: list[ModResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failed(self) -> list[ModResult]:
        return [r for r in self.results if not r.ok]

    def summary(self) -> str:
        return (
            f"Applied {len(self.results)} mod(s): "
            f"{len(self.results) - len(self.failed)} succeeded, {len(self.failed)} failed"
        )


def _read_chunks(entry_path: str, stream: BinaryIO) -> Iterator[bytes]:
    while True:
        try:
            chunk = stream.read(COPY_CHUNK_SIZE)
        except Exception as e:
            raise ArchiveReadError(entry_path, e) from e
        if not chunk:
            return
        yield chunk


class ModManager:
    def __init__(
        self,
        game_path: str | Path,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.game_path = Path(game_path)
        self._log_cb = log_callback or _log.info

    # ── Logging ───────────────────────────────────────────────────────

    def log(self, msg: str):
        self._log_cb(msg)

    # ── Validation ────────────────────────────────────────────────────

    def validate_paths(self) -> list[str]:
        issues = []
        if not str(self.game_path).strip():
            issues.append("Game directory is not set")
        elif not self.game_path.exists():
            issues.append(f"Game directory does not exist: {self.game_path}")
        elif not self.game_path.is_dir():
            issues.append(f"Game path is not a directory: {self.game_path}")
        return issues

    # ── Destinations ──────────────────────────────────────────────────

    def _destination(self, mod: Mod, entry_path: str) -> tuple[str, Path] | None:
        relative = map_entry(mod.mod_type, entry_path)
        if relative is None:
            return None
        dst = resolve_destination(self.game_path, relative)
        if dst is None:
            self.log(f"  WARNING: '{entry_path}' would land outside the game directory, skipping")
            return None
        return relative, dst

    def plan_mod(self, mod: Mod) -> list[tuple[str, Path]]:
        """List (entry path, destination) pairs an install would write, without
        touching the game directory."""
        if not has_layout(mod.mod_type):
            return []
        plan = []
        with ModArchiveReader(mod.archive_path) as reader:
            for entry in reader.entries():
                if entry.is_dir:
                    continue
                target = self._destination(mod, entry.path)
                if target is not None:
                    plan.append((entry.path, target[1]))
        return plan

    # ── Install ───────────────────────────────────────────────────────

    def _open_destination(self, dst: Path) -> BinaryIO:
        dst.parent.mkdir(parents=True, exist_ok=True)
        return dst.open("wb")

    def _write_entry(self, entry: ArchiveEntry, dst: Path):
        try:
            src = entry.open()
        except Exception as e:
            raise ArchiveReadError(entry.path, e) from e

        with src:
            try:
                out = self._open_destination(dst)
            except OSError as e:
                raise FilesystemWriteError(entry.path, dst, e) from e
            with out:
                for chunk in _read_chunks(entry.path, src):
                    try:
                        out.write(chunk)
                    except OSError as e:
                        raise FilesystemWriteError(entry.path, dst, e) from e

    def install_mod(self, mod: Mod) -> ModResult:
        """Write every mapped entry of the mod's archive into the game directory.

        Raises ``ArchiveOpenError`` if the archive cannot be opened; per-entry
        failures are collected in the returned result instead.
        """
        self.log(f"Installing '{mod.name}' ({mod.mod_type.value}) from {mod.archive_path}...")
        result = ModResult(mod.name, "install")

        if not has_layout(mod.mod_type):
            self.log(f"  No install layout for {mod.mod_type.value}, nothing to do")
            return result

        with ModArchiveReader(mod.archive_path) as reader:
            for entry in reader.entries():
                if entry.is_dir:
                    continue
                target = self._destination(mod, entry.path)
                if target is None:
                    result.skipped.append(entry.path)
                    continue

                relative, dst = target
                try:
                    self._write_entry(entry, dst)
                except (ArchiveReadError, FilesystemWriteError) as e:
                    self.log(f"  WARNING: {e}")
                    result.failures.append(e)
                    continue
                result.files.append(relative)
                self.log(f"  Copied: {relative}")

        if result.skipped:
            self.log(f"  Skipped {len(result.skipped)} entr{'y' if len(result.skipped) == 1 else 'ies'} with no destination")
        self.log(f"  {result.summary()}")
        return result

    # ── Uninstall ─────────────────────────────────────────────────────

    def uninstall_mod(self, mod: Mod) -> ModResult:
        """Delete every file the mod's archive maps to, then prune directories
        left empty.  Files that are already gone are ignored.

        Raises ``ArchiveOpenError`` if the archive cannot be opened.
        """
        self.log(f"Uninstalling '{mod.name}' ({mod.mod_type.value})...")
        result = ModResult(mod.name, "uninstall")

        if not has_layout(mod.mod_type):
            self.log(f"  No install layout for {mod.mod_type.value}, nothing to do")
            return result

        with ModArchiveReader(mod.archive_path) as reader:
            for entry in reader.entries():
                if entry.is_dir:
                    continue
                target = self._destination(mod, entry.path)
                if target is None:
                    result.skipped.append(entry.path)
                    continue

                relative, dst = target
                if not (dst.exists() or dst.is_symlink()):
                    continue
                try:
                    dst.unlink()
                except OSError as e:
                    err = FilesystemDeleteError(dst, e, entry_path=entry.path)
                    self.log(f"  WARNING: {err}")
                    result.failures.append(err)
                    continue
                result.files.append(relative)
                self.log(f"  Removed: {relative}")

                for d in self.remove_empty_parents(dst.parent):
                    self.log(f"  Removed empty dir: {d.relative_to(normalize_root(self.game_path)).as_posix()}")

        self.log(f"  {result.summary()}")
        return result

    def remove_empty_parents(self, directory: str | Path) -> list[Path]:
        """Delete ``directory`` and its ancestors while they are empty.

        Stops at the first non-empty directory and never deletes the game
        root or anything outside it.  Errors stop the walk and are not
        raised.
        """
        root = normalize_root(self.game_path)
        current = Path(normalize_root(directory))
        removed: list[Path] = []

        while is_within(current, root) and os.path.normcase(str(current)) != os.path.normcase(root):
            try:
                if any(current.iterdir()):
                    break
                current.rmdir()
            except OSError as e:
                _log.debug("Stopped empty-directory cleanup at %s: %s", current, e)
                break
            removed.append(current)
            current = current.parent

        return removed

    # ── Apply ─────────────────────────────────────────────────────────

    def apply_mods(self, mods: Iterable[Mod]) -> ReconcileReport:
        """Install every enabled mod and uninstall every disabled one, in order."""
        report = ReconcileReport()
        for mod in mods:
            action: Action = "install" if mod.enabled else "uninstall"
            try:
                if mod.enabled:
                    result = self.install_mod(mod)
                else:
                    result = self.uninstall_mod(mod)
            except Exception as e:
                self.log(f"  ERROR: could not {action} mod '{mod.name}': {e}")
                result = ModResult(mod.name, action, error=e)
            report.results.append(result)

        self.log(report.summary())
        return report
