#!/usr/bin/env python3
"""EFT Mod Manager — Entry Point

    python main.py                              # desktop window
    python main.py reconcile --config PATH      # apply config headlessly
    python main.py plan --config PATH           # list what enabled mods would install
    python main.py classify ARCHIVE [ARCHIVE ...]

reconcile exits 0 when every mod was applied cleanly, 1 when any mod
failed (one line per error on stderr), 2 when the config cannot be used.
plan exits 1 when an archive cannot be opened and 2 for an unusable config.
"""

import argparse
import faulthandler
import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

from config_store import Config, default_config_path, load_config
from errors import ArchiveOpenError, ConfigError
from mod_manager import ModManager
from mod_types import detect_mod_type

LOGGER_NAME = "eftmodmanager"
_HANDLER_NAME = "eftmodmanager"


def setup_logging(verbose: bool = False) -> tuple[logging.Logger, Path]:
    log_dir = Path(os.environ.get("APPDATA", "~")).expanduser() / "EFTModManager"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "eftmodmanager.log"

    root = logging.getLogger()
    for old in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(old)
        old.close()

    handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    root.addHandler(handler)

    if verbose:
        console = logging.StreamHandler(sys.stderr)
        console.set_name(_HANDLER_NAME)
        console.setFormatter(logging.Formatter("%(levelname)s  %(message)s"))
        root.addHandler(console)

    root.setLevel(logging.DEBUG)
    return logging.getLogger(LOGGER_NAME), log_dir


def install_crash_handler(logger: logging.Logger, log_dir: Path):
    # Python-level unhandled exceptions
    def handle_exception(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            "Unhandled exception:\n%s",
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        )

    sys.excepthook = handle_exception

    # C-level crashes (segfault, abort): faulthandler writes to a separate
    # file because it can't use Python logging machinery after a crash
    crash_file = log_dir / "crash.log"
    faulthandler.enable(open(crash_file, "w"), all_threads=True)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="EFT Mod Manager")
    parser.add_argument("--config", help="Path to config.json (default: next to the application)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Also log to stderr")
    subparsers = parser.add_subparsers(dest="command")

    reconcile = subparsers.add_parser(
        "reconcile", help="Install enabled mods and remove disabled ones, then exit"
    )
    reconcile.add_argument("--config", default=argparse.SUPPRESS, help="Path to config.json")

    plan = subparsers.add_parser(
        "plan", help="List the files each enabled mod would install, without writing anything"
    )
    plan.add_argument("--config", default=argparse.SUPPRESS, help="Path to config.json")

    classify = subparsers.add_parser("classify", help="Print the detected type of mod archives")
    classify.add_argument("archives", nargs="+")

    return parser.parse_args(argv)


def _load_cli_config(config_path: Path) -> Config | None:
    try:
        config = load_config(config_path)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return None

    if not config.game_path:
        print(f"error: {config_path} has no gamePath", file=sys.stderr)
        return None
    return config


def run_reconcile(config_path: Path) -> int:
    config = _load_cli_config(config_path)
    if config is None:
        return 2

    manager = ModManager(config.game_path)
    for issue in manager.validate_paths():
        logging.getLogger(LOGGER_NAME).warning(issue)

    report = manager.apply_mods(config.mods)
    for result in report.failed:
        for line in result.error_lines():
            print(f"{result.mod_name}: {line}", file=sys.stderr)

    print(report.summary())
    return 0 if report.ok else 1


def run_plan(config_path: Path) -> int:
    config = _load_cli_config(config_path)
    if config is None:
        return 2

    manager = ModManager(config.game_path, log_callback=logging.getLogger(LOGGER_NAME).debug)
    code = 0
    for mod in config.mods:
        if not mod.enabled:
            continue
        try:
            plan = manager.plan_mod(mod)
        except ArchiveOpenError as e:
            print(f"{mod.name}: {e}", file=sys.stderr)
            code = 1
            continue
        print(f"{mod.name} ({mod.mod_type.value}): {len(plan)} file(s)")
        for entry_path, dst in plan:
            print(f"  {entry_path} -> {dst}")
    return code


def run_classify(archives: list[str]) -> int:
    for archive in archives:
        print(f"{archive}: {detect_mod_type(archive).value}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    config_path = Path(args.config) if args.config else default_config_path()

    logger, log_dir = setup_logging(verbose=args.verbose)

    if args.command == "reconcile":
        logger.info("Reconciling %s", config_path)
        return run_reconcile(config_path)
    if args.command == "plan":
        return run_plan(config_path)
    if args.command == "classify":
        return run_classify(args.archives)

    install_crash_handler(logger, log_dir)
    logger.info("Starting EFT Mod Manager")

    from gui import main as gui_main
    return gui_main(logger, config_path=config_path)


if __name__ == "__main__":
    sys.exit(main())
