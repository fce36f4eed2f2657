"""
Exception hierarchy for EFT Mod Manager.

Archive errors are raised by archive_reader, filesystem errors by the
installer/uninstaller in mod_manager, and ConfigError by config_store.
Per-entry errors carry the archive entry path so they can be reported in
aggregate after a mod has been processed.
"""

from __future__ import annotations

from pathlib import Path


class ModManagerError(Exception):
    """Base exception for all mod manager errors."""


# ── Archive ───────────────────────────────────────────────────────────


class ArchiveError(ModManagerError):
    """Base exception for archive-related errors."""


class ArchiveOpenError(ArchiveError):
    """Raised when an archive is missing, unreadable, or not a supported format."""

    def __init__(self, archive_path: str | Path, reason: str):
        self.archive_path = Path(archive_path)
        self.reason = reason
        super().__init__(f"Cannot open archive {self.archive_path}: {reason}")


class ArchiveReadError(ArchiveError):
    """Raised when a single entry's content cannot be streamed."""

    def __init__(self, entry_path: str, cause: BaseException):
        self.entry_path = entry_path
        self.cause = cause
        super().__init__(f"Cannot read '{entry_path}' from archive: {cause}")


# ── Filesystem ────────────────────────────────────────────────────────


class FilesystemError(ModManagerError):
    """Base exception for errors touching the game directory."""


class FilesystemWriteError(FilesystemError):
    """Raised when creating a directory or writing a file fails."""

    def __init__(self, entry_path: str, destination: Path, cause: BaseException):
        self.entry_path = entry_path
        self.destination = destination
        self.cause = cause
        super().__init__(f"Cannot write '{entry_path}' to {destination}: {cause}")


class FilesystemDeleteError(FilesystemError):
    """Raised when deleting an installed file fails."""

    def __init__(self, path: Path, cause: BaseException, entry_path: str | None = None):
        self.path = path
        self.cause = cause
        self.entry_path = entry_path
        super().__init__(f"Cannot delete {path}: {cause}")


# ── Configuration ─────────────────────────────────────────────────────


class ConfigError(ModManagerError):
    """Raised when the persisted configuration cannot be read, parsed, or saved."""

    def __init__(self, config_path: str | Path, reason: str):
        self.config_path = Path(config_path)
        self.reason = reason
        super().__init__(f"Config {self.config_path}: {reason}")
