"""
Read-only access to mod archives (.zip / .7z / .rar).

ModArchiveReader opens an archive by path and yields its entries in stored
order.  Each entry exposes a forward-slash path, a directory flag and a
readable byte stream.  The format is sniffed from the file contents, so a
misnamed archive still opens.

    with ModArchiveReader(path) as reader:
        for entry in reader.entries():
            if not entry.is_dir:
                with entry.open() as fh:
                    data = fh.read()

7z members are unpacked into a scratch directory the first time one is read
because py7zr has no per-member streaming API; the directory is removed on
close.  Listing a 7z archive never decompresses it.
"""

from __future__ import annotations

import logging
import shutil
import sys
import tempfile
import zipfile
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import BinaryIO, Callable, Iterator

import py7zr
import rarfile

from errors import ArchiveOpenError

_log = logging.getLogger(__name__)

# Point rarfile at UnRAR.exe: frozen exe uses _MEIPASS, dev uses assets/
if getattr(sys, "frozen", False):
    _unrar = Path(sys._MEIPASS) / "UnRAR.exe"
else:
    _unrar = Path(__file__).parent / "assets" / "UnRAR.exe"
if _unrar.exists():
    rarfile.UNRAR_TOOL = str(_unrar)

SUPPORTED_EXTENSIONS = {".zip", ".7z", ".rar"}


def normalize_entry_path(name: str) -> str:
    return name.replace("\\", "/")


@dataclass(frozen=True)
class ArchiveEntry:
    """One member of an archive."""

    path: str  # Forward-slash path as stored in the archive
    is_dir: bool
    _opener: Callable[[], BinaryIO] = field(repr=False, compare=False)

    def open(self) -> BinaryIO:
        return self._opener()


class ModArchiveReader:
    def __init__(self, filepath: str | Path):
        self.filepath = Path(filepath)
        self._zip: zipfile.ZipFile | None = None
        self._rar: rarfile.RarFile | None = None
        self._7z: py7zr.SevenZipFile | None = None
        self._7z_whole: bool | None = None  # None until the first member is read
        self._scratch: Path | None = None
        self._entries: list[ArchiveEntry] = []
        self._open()

    def __enter__(self) -> ModArchiveReader:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── Opening ───────────────────────────────────────────────────────

    def _open(self):
        if not self.filepath.is_file():
            raise ArchiveOpenError(self.filepath, "file not found")

        try:
            if zipfile.is_zipfile(self.filepath):
                self._open_zip()
            elif py7zr.is_7zfile(self.filepath):
                self._open_7z()
            elif rarfile.is_rarfile(self.filepath):
                self._open_rar()
            else:
                raise ArchiveOpenError(self.filepath, "not a recognized archive format")
        except ArchiveOpenError:
            self.close()
            raise
        except Exception as e:
            self.close()
            raise ArchiveOpenError(self.filepath, str(e) or type(e).__name__) from e

        _log.debug("Opened %s (%d entries)", self.filepath.name, len(self._entries))

    def _open_zip(self):
        self._zip = zipfile.ZipFile(self.filepath, "r")
        self._entries = [
            ArchiveEntry(
                path=normalize_entry_path(info.filename),
                is_dir=info.is_dir(),
                _opener=partial(self._zip.open, info),
            )
            for info in self._zip.infolist()
        ]

    def _open_rar(self):
        self._rar = rarfile.RarFile(self.filepath, "r")
        self._entries = [
            ArchiveEntry(
                path=normalize_entry_path(info.filename),
                is_dir=info.is_dir(),
                _opener=partial(self._rar.open, info),
            )
            for info in self._rar.infolist()
        ]

    def _open_7z(self):
        self._7z = py7zr.SevenZipFile(self.filepath, "r")
        self._scratch = Path(tempfile.mkdtemp(prefix="eftmm_7z_"))
        for info in self._7z.list():
            self._entries.append(
                ArchiveEntry(
                    path=normalize_entry_path(info.filename),
                    is_dir=info.is_directory,
                    _opener=partial(self._open_7z_member, info.filename),
                )
            )

    def _open_7z_member(self, filename: str) -> BinaryIO:
        # First read unpacks the whole archive in one pass.  If that fails,
        # members are unpacked one at a time so only unreadable ones raise.
        if self._7z_whole is None:
            try:
                self._7z.extractall(path=self._scratch)
                self._7z_whole = True
            except Exception as e:
                _log.warning("%s: full extraction failed (%s), reading members individually",
                             self.filepath.name, e)
                shutil.rmtree(self._scratch, ignore_errors=True)
                self._scratch.mkdir()
                self._7z_whole = False

        if not self._7z_whole:
            self._7z.reset()
            self._7z.extract(path=self._scratch, targets=[filename])
        return open(self._scratch / filename, "rb")

    # ── Access ────────────────────────────────────────────────────────

    def entries(self) -> Iterator[ArchiveEntry]:
        yield from self._entries

    def close(self):
        if self._zip is not None:
            self._zip.close()
            self._zip = None
        if self._rar is not None:
            self._rar.close()
            self._rar = None
        if self._7z is not None:
            self._7z.close()
            self._7z = None
        if self._scratch is not None:
            shutil.rmtree(self._scratch, ignore_errors=True)
            self._scratch = None
