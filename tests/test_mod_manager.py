"""
Tests for ModManager: install, uninstall, empty-directory cleanup and
applying a whole mod list.
"""

import pytest

from config_store import Mod
from errors import ArchiveOpenError, ArchiveReadError, FilesystemDeleteError, FilesystemWriteError
from mod_manager import ModManager
from mod_types import ModType
from tests.conftest import corrupt_member, tree_snapshot, write_7z, write_zip


# ── helpers ──────────────────────────────────────────────────────────────────

def make_manager(game_dir):
    return ModManager(game_dir, log_callback=lambda _: None)


def make_mod(path, mod_type, enabled=True, name=None):
    return Mod(
        name=name or path.stem,
        archive_path=str(path),
        mod_type=mod_type,
        enabled=enabled,
    )


def seed_game(game_dir):
    (game_dir / "EscapeFromTarkov.exe").write_bytes(b"exe")
    core = game_dir / "BepInEx" / "core"
    core.mkdir(parents=True)
    (core / "BepInEx.dll").write_bytes(b"core")
    (game_dir / "user" / "mods" / "existing").mkdir(parents=True)
    (game_dir / "user" / "mods" / "existing" / "package.json").write_text("{}")


# ── install ──────────────────────────────────────────────────────────────────

def test_install_client_mod(dirs, make_zip):
    _, game = dirs
    path = make_zip("client", {
        "SAIN/SAIN.dll": b"sain",
        "BepInEx/config/sain.cfg": b"cfg",
    })
    manager = make_manager(game)

    result = manager.install_mod(make_mod(path, ModType.CLIENT))

    assert result.ok
    assert (game / "BepInEx" / "plugins" / "SAIN" / "SAIN.dll").read_bytes() == b"sain"
    assert (game / "BepInEx" / "config" / "sain.cfg").read_bytes() == b"cfg"
    assert sorted(result.files) == ["BepInEx/config/sain.cfg", "BepInEx/plugins/SAIN/SAIN.dll"]


def test_install_server_mod(dirs, make_zip):
    _, game = dirs
    path = make_zip("server", {"config/settings.json": b'{"a": 1}'})
    manager = make_manager(game)

    result = manager.install_mod(make_mod(path, ModType.SERVER))

    assert result.ok
    assert (game / "user" / "mods" / "config" / "settings.json").read_bytes() == b'{"a": 1}'


def test_install_plugin_flattens(dirs, make_zip):
    _, game = dirs
    path = make_zip("plugin", {"plugin.dll": b"p", "nested/deeper/other.dll": b"o"})
    manager = make_manager(game)

    result = manager.install_mod(make_mod(path, ModType.PLUGIN_TYPE))

    assert result.ok
    assert (game / "BepInEx" / "plugins" / "plugin.dll").read_bytes() == b"p"
    assert (game / "BepInEx" / "plugins" / "other.dll").read_bytes() == b"o"


def test_install_combined_skips_loose_files(dirs, make_zip):
    _, game = dirs
    path = make_zip("combined", {
        "BepInEx/plugins/x.dll": b"x",
        "user/mods/y/package.json": b"{}",
        "readme.txt": b"read me",
    })
    manager = make_manager(game)

    result = manager.install_mod(make_mod(path, ModType.COMBINED))

    assert result.ok
    assert result.skipped == ["readme.txt"]
    assert (game / "BepInEx" / "plugins" / "x.dll").exists()
    assert (game / "user" / "mods" / "y" / "package.json").exists()
    assert not (game / "readme.txt").exists()


def test_install_overwrites_existing_file(dirs, make_zip):
    _, game = dirs
    target = game / "BepInEx" / "plugins" / "plugin.dll"
    target.parent.mkdir(parents=True)
    target.write_bytes(b"old version, longer than the new one")
    path = make_zip("plugin", {"plugin.dll": b"new"})

    make_manager(game).install_mod(make_mod(path, ModType.PLUGIN_TYPE))

    assert target.read_bytes() == b"new"


def test_install_twice_is_idempotent(dirs, make_zip):
    _, game = dirs
    seed_game(game)
    path = make_zip("client", {"A/a.dll": b"a", "B/b.dll": b"b"})
    manager = make_manager(game)
    mod = make_mod(path, ModType.CLIENT)

    manager.install_mod(mod)
    once = {p: (game / p).read_bytes() for p in tree_snapshot(game) if (game / p).is_file()}
    manager.install_mod(mod)
    twice = {p: (game / p).read_bytes() for p in tree_snapshot(game) if (game / p).is_file()}

    assert once == twice


@pytest.mark.parametrize("mod_type", [ModType.UNKNOWN, ModType.UNRECOGNIZED])
def test_install_without_layout_is_noop(dirs, mod_type):
    archives, game = dirs
    # The archive need not even exist: nothing can be installed for these types.
    result = make_manager(game).install_mod(make_mod(archives / "missing.zip", mod_type))

    assert result.ok
    assert result.files == []
    assert list(game.iterdir()) == []


def test_install_missing_archive_raises(dirs):
    archives, game = dirs
    with pytest.raises(ArchiveOpenError):
        make_manager(game).install_mod(make_mod(archives / "missing.zip", ModType.CLIENT))


def test_install_skips_entries_escaping_game_dir(dirs, make_zip, tmp_path):
    _, game = dirs
    # user/mods/../../../outside.txt resolves to the game dir's parent
    path = make_zip("evil", {"../../../outside.txt": b"x", "ok.json": b"{}"})

    result = make_manager(game).install_mod(make_mod(path, ModType.SERVER))

    assert result.files == ["user/mods/ok.json"]
    assert result.skipped == ["../../../outside.txt"]
    assert not (tmp_path / "outside.txt").exists()


# ── partial failure ──────────────────────────────────────────────────────────

def test_one_unwritable_entry_does_not_stop_the_rest(dirs, make_zip):
    _, game = dirs
    members = {f"mymod/file{i}.json": f"{i}".encode() for i in range(1, 6)}
    path = make_zip("server", members)
    # A directory where entry 2 should be written makes that write fail.
    blocker = game / "user" / "mods" / "mymod" / "file2.json"
    blocker.mkdir(parents=True)
    (blocker / "keep").write_text("x")

    result = make_manager(game).install_mod(make_mod(path, ModType.SERVER))

    assert not result.ok
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert isinstance(failure, FilesystemWriteError)
    assert failure.entry_path == "mymod/file2.json"
    for i in (1, 3, 4, 5):
        assert (game / "user" / "mods" / "mymod" / f"file{i}.json").read_bytes() == f"{i}".encode()


def test_permission_error_is_reported_per_entry(dirs, make_zip):
    _, game = dirs
    members = {f"file{i}.dll": b"x" for i in range(1, 6)}
    path = make_zip("plugins", members)

    class DeniedManager(ModManager):
        def _open_destination(self, dst):
            if dst.name == "file2.dll":
                raise PermissionError(13, "Permission denied", str(dst))
            return super()._open_destination(dst)

    manager = DeniedManager(game, log_callback=lambda _: None)
    result = manager.install_mod(make_mod(path, ModType.PLUGIN_TYPE))

    assert [f.entry_path for f in result.failures] == ["file2.dll"]
    assert isinstance(result.failures[0].cause, PermissionError)
    assert sorted(result.files) == [f"BepInEx/plugins/file{i}.dll" for i in (1, 3, 4, 5)]


def _json_members(count=5):
    return {f"user/mods/f{i}.json": f'{{"file": "f{i}", "pad": "{i * 40}"}}'.encode() for i in range(1, count + 1)}


def test_unreadable_zip_entry_does_not_stop_the_rest(dirs):
    archives, game = dirs
    members = _json_members()
    path = corrupt_member(write_zip(archives / "server.zip", members), members["user/mods/f3.json"])

    result = make_manager(game).install_mod(make_mod(path, ModType.SERVER))

    assert result.error is None
    assert [type(f) for f in result.failures] == [ArchiveReadError]
    assert result.failures[0].entry_path == "user/mods/f3.json"
    for i in (1, 2, 4, 5):
        assert (game / "user" / "mods" / f"f{i}.json").read_bytes() == members[f"user/mods/f{i}.json"]


def test_unreadable_7z_entry_is_a_per_entry_failure(dirs):
    archives, game = dirs
    members = _json_members()
    path = corrupt_member(write_7z(archives / "server.7z", members), members["user/mods/f5.json"])

    result = make_manager(game).install_mod(make_mod(path, ModType.SERVER))

    assert result.error is None
    assert [f.entry_path for f in result.failures] == ["user/mods/f5.json"]
    assert isinstance(result.failures[0], ArchiveReadError)
    assert sorted(result.files) == [f"user/mods/f{i}.json" for i in range(1, 5)]
    for i in range(1, 5):
        assert (game / "user" / "mods" / f"f{i}.json").read_bytes() == members[f"user/mods/f{i}.json"]


def test_7z_entries_before_a_bad_one_still_install(dirs):
    archives, game = dirs
    members = _json_members()
    path = corrupt_member(write_7z(archives / "server.7z", members), members["user/mods/f3.json"])

    result = make_manager(game).install_mod(make_mod(path, ModType.SERVER))

    # Later members share the bad member's solid block and cannot be verified.
    assert result.error is None
    assert result.failures[0].entry_path == "user/mods/f3.json"
    assert "user/mods/f1.json" in result.files
    assert "user/mods/f2.json" in result.files


def test_uninstall_7z_with_unreadable_entry(dirs):
    archives, game = dirs
    members = _json_members()
    path = corrupt_member(write_7z(archives / "server.7z", members), members["user/mods/f2.json"])
    (game / "user" / "mods").mkdir(parents=True)
    for name in members:
        (game / name).write_bytes(b"installed")

    result = make_manager(game).uninstall_mod(make_mod(path, ModType.SERVER, enabled=False))

    assert result.ok
    assert sorted(result.files) == sorted(members)
    assert not (game / "user").exists()


# ── uninstall ────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("mod_type, members", [
    (ModType.CLIENT, {"SAIN/SAIN.dll": b"s", "SAIN/sub/data.bin": b"d", "BepInEx/config/sain.cfg": b"c"}),
    (ModType.SERVER, {"foo/package.json": b"{}", "foo/src/mod.js": b"js", "user/mods/bar/bar.json": b"{}"}),
])
def test_install_then_uninstall_restores_game_dir(dirs, make_zip, mod_type, members):
    _, game = dirs
    seed_game(game)
    before = tree_snapshot(game)
    path = make_zip("mod", members)
    manager = make_manager(game)
    mod = make_mod(path, mod_type)

    manager.install_mod(mod)
    assert tree_snapshot(game) != before
    result = manager.uninstall_mod(mod)

    assert result.ok
    assert tree_snapshot(game) == before


def test_uninstall_absent_mod_is_noop(dirs, make_zip):
    _, game = dirs
    seed_game(game)
    before = tree_snapshot(game)
    path = make_zip("client", {"A/a.dll": b"a"})

    result = make_manager(game).uninstall_mod(make_mod(path, ModType.CLIENT, enabled=False))

    assert result.ok
    assert result.files == []
    assert tree_snapshot(game) == before


def test_uninstall_combined_leaves_loose_files_alone(dirs, make_zip):
    _, game = dirs
    (game / "readme.txt").write_text("game readme")
    path = make_zip("combined", {"BepInEx/plugins/x.dll": b"x", "readme.txt": b"mod readme"})
    manager = make_manager(game)
    mod = make_mod(path, ModType.COMBINED)

    manager.install_mod(mod)
    manager.uninstall_mod(mod)

    assert (game / "readme.txt").read_text() == "game readme"
    assert not (game / "BepInEx").exists()


def test_uninstall_stops_cleanup_at_non_empty_dir(dirs, make_zip):
    _, game = dirs
    (game / "user" / "mods").mkdir(parents=True)
    (game / "user" / "mods" / "other.txt").write_text("keep")
    path = make_zip("server", {"foo/bar/x.json": b"{}"})
    manager = make_manager(game)
    mod = make_mod(path, ModType.SERVER)

    manager.install_mod(mod)
    manager.uninstall_mod(mod)

    assert not (game / "user" / "mods" / "foo").exists()
    assert (game / "user" / "mods" / "other.txt").exists()


def test_uninstall_cleanup_never_removes_game_root(dirs, make_zip):
    _, game = dirs
    path = make_zip("server", {"foo/bar/x.json": b"{}"})
    manager = make_manager(game)
    mod = make_mod(path, ModType.SERVER)

    manager.install_mod(mod)
    manager.uninstall_mod(mod)

    assert game.is_dir()
    assert list(game.iterdir()) == []


def test_uninstall_delete_failure_is_recorded(dirs, make_zip):
    _, game = dirs
    path = make_zip("server", {"a.json": b"a", "b.json": b"b"})
    manager = make_manager(game)
    mod = make_mod(path, ModType.SERVER)
    manager.install_mod(mod)
    # Replace a.json with a non-empty directory so unlink fails.
    a = game / "user" / "mods" / "a.json"
    a.unlink()
    a.mkdir()
    (a / "inner").write_text("x")

    result = manager.uninstall_mod(mod)

    assert len(result.failures) == 1
    assert isinstance(result.failures[0], FilesystemDeleteError)
    assert result.failures[0].entry_path == "a.json"
    assert not (game / "user" / "mods" / "b.json").exists()


# ── remove_empty_parents ─────────────────────────────────────────────────────

def test_remove_empty_parents_ascends_to_root(dirs):
    _, game = dirs
    deep = game / "user" / "mods" / "foo" / "bar"
    deep.mkdir(parents=True)

    removed = make_manager(game).remove_empty_parents(deep)

    assert [p.name for p in removed] == ["bar", "foo", "mods", "user"]
    assert game.is_dir()


def test_remove_empty_parents_with_trailing_separator_root(dirs):
    _, game = dirs
    deep = game / "a" / "b"
    deep.mkdir(parents=True)
    manager = ModManager(str(game) + "/", log_callback=lambda _: None)

    manager.remove_empty_parents(deep)

    assert game.is_dir()
    assert not (game / "a").exists()


def test_remove_empty_parents_ignores_paths_outside_root(dirs, tmp_path):
    _, game = dirs
    outside = tmp_path / "elsewhere" / "empty"
    outside.mkdir(parents=True)

    assert make_manager(game).remove_empty_parents(outside) == []
    assert outside.is_dir()


def test_remove_empty_parents_missing_dir_is_quiet(dirs):
    _, game = dirs
    assert make_manager(game).remove_empty_parents(game / "does" / "not" / "exist") == []


# ── plan ─────────────────────────────────────────────────────────────────────

def test_plan_matches_install(dirs, make_zip):
    _, game = dirs
    path = make_zip("combined", {
        "BepInEx/plugins/x.dll": b"x",
        "readme.txt": b"r",
        "user/mods/y.json": b"{}",
    })
    manager = make_manager(game)
    mod = make_mod(path, ModType.COMBINED)

    plan = manager.plan_mod(mod)

    assert list(game.iterdir()) == []
    assert [entry for entry, _ in plan] == ["BepInEx/plugins/x.dll", "user/mods/y.json"]
    assert [dst for _, dst in plan] == [game / "BepInEx/plugins/x.dll", game / "user/mods/y.json"]


# ── apply_mods ───────────────────────────────────────────────────────────────

def test_apply_installs_enabled_and_removes_disabled(dirs, make_zip):
    _, game = dirs
    on = make_zip("on", {"on.dll": b"on"})
    off = make_zip("off", {"off.dll": b"off"})
    stale = game / "BepInEx" / "plugins" / "off.dll"
    stale.parent.mkdir(parents=True)
    stale.write_bytes(b"off")

    report = make_manager(game).apply_mods([
        make_mod(on, ModType.PLUGIN_TYPE, enabled=True),
        make_mod(off, ModType.PLUGIN_TYPE, enabled=False),
    ])

    assert report.ok
    assert [r.action for r in report.results] == ["install", "uninstall"]
    assert (game / "BepInEx" / "plugins" / "on.dll").exists()
    assert not stale.exists()


def test_apply_continues_after_failed_mod(dirs, make_zip):
    archives, game = dirs
    good = make_zip("good", {"good.dll": b"g"})
    mods = [
        make_mod(archives / "missing.zip", ModType.CLIENT, name="Broken"),
        make_mod(good, ModType.PLUGIN_TYPE, name="Good"),
    ]

    report = make_manager(game).apply_mods(mods)

    assert not report.ok
    assert [r.mod_name for r in report.failed] == ["Broken"]
    assert isinstance(report.failed[0].error, ArchiveOpenError)
    assert (game / "BepInEx" / "plugins" / "good.dll").exists()


def test_apply_twice_gives_same_state(dirs, make_zip):
    _, game = dirs
    path = make_zip("client", {"A/a.dll": b"a"})
    mods = [make_mod(path, ModType.CLIENT)]
    manager = make_manager(game)

    manager.apply_mods(mods)
    first = tree_snapshot(game)
    report = manager.apply_mods(mods)

    assert report.ok
    assert tree_snapshot(game) == first


def test_log_callback_receives_progress(dirs, make_zip):
    _, game = dirs
    path = make_zip("plugin", {"p.dll": b"p"})
    lines = []
    manager = ModManager(game, log_callback=lines.append)

    manager.install_mod(make_mod(path, ModType.PLUGIN_TYPE))

    assert any("Copied: BepInEx/plugins/p.dll" in line for line in lines)


def test_validate_paths(dirs, tmp_path):
    _, game = dirs
    assert make_manager(game).validate_paths() == []
    assert "does not exist" in make_manager(tmp_path / "nope").validate_paths()[0]
