"""
Shared fixtures and helpers for the EFT Mod Manager test suite.
"""

import zipfile
from pathlib import Path

import py7zr
import pytest


def write_zip(path: Path, members: dict) -> Path:
    """Write a zip with {archive_path: content} members; a None value or a
    name ending in "/" creates a directory entry."""
    with zipfile.ZipFile(path, "w") as zf:
        for member, data in members.items():
            if data is None or member.endswith("/"):
                zf.writestr(member.rstrip("/") + "/", b"")
            else:
                zf.writestr(member, data)
    return path


def write_7z(path: Path, members: dict) -> Path:
    """Write a 7z with {archive_path: bytes} members, stored uncompressed so
    member data can be located in the raw file."""
    with py7zr.SevenZipFile(path, "w", filters=[{"id": py7zr.FILTER_COPY}]) as sz:
        for member, data in members.items():
            sz.writestr(data, member)
    return path


def corrupt_member(path: Path, data: bytes) -> Path:
    """Flip one byte inside a stored member's data so its CRC no longer matches."""
    raw = bytearray(path.read_bytes())
    offset = raw.index(data) + len(data) // 2
    raw[offset] ^= 0xFF
    path.write_bytes(bytes(raw))
    return path


def tree_snapshot(root: Path) -> set[str]:
    """Every file and directory under root, as posix paths relative to it."""
    return {p.relative_to(root).as_posix() for p in root.rglob("*")}


@pytest.fixture
def dirs(tmp_path):
    """Return (archives_dir, game_dir) as fresh tmp_path subdirectories."""
    archives = tmp_path / "archives"
    game = tmp_path / "game"
    archives.mkdir()
    game.mkdir()
    return archives, game


@pytest.fixture
def make_zip(dirs):
    """Factory: make_zip("name", {member: data}) -> path of archives/name.zip."""
    archives, _ = dirs

    def _make(name: str, members: dict) -> Path:
        return write_zip(archives / f"{name}.zip", members)

    return _make
