"""
EFT Mod Manager - GUI (PySide6)
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from PySide6.QtCore import Qt, QThread, Signal
from PySide6.QtGui import QColor, QFont
from PySide6.QtWidgets import (
    QApplication,
    QFileDialog,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPlainTextEdit,
    QProgressBar,
    QPushButton,
    QSplitter,
    QTreeWidget,
    QTreeWidgetItem,
    QVBoxLayout,
    QWidget,
)

from archive_reader import SUPPORTED_EXTENSIONS
from config_store import Config, diff_configs, load_config_or_default, save_config
from errors import ArchiveOpenError, ConfigError
from mod_manager import ModManager, ReconcileReport
from mod_registry import ModRegistry
from mod_types import ModType

ARCHIVE_FILTER = (
    "Archives ("
    + " ".join(f"*{ext}" for ext in sorted(SUPPORTED_EXTENSIONS))
    + ");;All files (*.*)"
)

TYPE_LABELS = {
    ModType.CLIENT: "Client mod",
    ModType.SERVER: "Server mod",
    ModType.PLUGIN_MOD: "Plugin mod",
    ModType.PLUGIN_TYPE: "Plugin mod",
    ModType.COMBINED: "Combined mod",
    ModType.UNKNOWN: "Unknown type",
    ModType.UNRECOGNIZED: "Unrecognized",
}


# ── Worker Thread ─────────────────────────────────────────────────────

class WorkerThread(QThread):
    """Run a blocking operation off the main thread."""

    finished_signal = Signal(object)  # return value of func
    failed_signal = Signal(str)

    def __init__(self, func, *args, **kwargs):
        super().__init__()
        self.func = func
        self.args = args
        self.kwargs = kwargs

    def run(self):
        try:
            self.finished_signal.emit(self.func(*self.args, **self.kwargs))
        except Exception as e:
            self.failed_signal.emit(str(e))


# ── Main Window ───────────────────────────────────────────────────────

class MainWindow(QMainWindow):
    # Signal used to safely append log messages from background threads.
    # Qt automatically queues cross-thread signal emissions to the main thread.
    _log_message = Signal(str)

    def __init__(self, logger: logging.Logger | None = None, *, config_path: Path):
        super().__init__()
        self._logger = logger or logging.getLogger("eftmodmanager")
        self.setWindowTitle("EFT Mod Manager")
        self.setMinimumSize(820, 560)

        self.config_path = Path(config_path)
        self.worker: Optional[WorkerThread] = None

        config, error = load_config_or_default(self.config_path)
        self._saved: Config = config
        self.registry = ModRegistry.from_config(config)

        self._build_ui()
        self._log_message.connect(self.log_text.appendPlainText)

        self.game_path_edit.setText(config.game_path)
        self._populate_tree()
        self._append_log(f"Config: {self.config_path}")
        if error:
            self._append_log(f"Warning: {error}")
            QMessageBox.warning(
                self,
                "Config Error",
                f"{error}\n\nStarting with an empty configuration.",
            )

    def _build_ui(self):
        central = QWidget()
        self.setCentralWidget(central)
        main_layout = QVBoxLayout(central)

        # ── Game directory row ────────────────────────────────────────
        game_group = QGroupBox("Game Directory (SPT / EFT install)")
        game_row = QHBoxLayout(game_group)
        self.game_path_edit = QLineEdit()
        self.game_path_edit.setPlaceholderText("(not set)")
        game_row.addWidget(self.game_path_edit, 1)
        self.browse_btn = QPushButton("Browse...")
        self.browse_btn.clicked.connect(self._browse_game)
        game_row.addWidget(self.browse_btn)
        main_layout.addWidget(game_group)

        # ── Splitter: mod list | log ──────────────────────────────────
        splitter = QSplitter(Qt.Vertical)

        top_widget = QWidget()
        top_layout = QVBoxLayout(top_widget)
        top_layout.setContentsMargins(0, 0, 0, 0)
        top_layout.addWidget(QLabel("<b>Mods</b>  <small>(tick to enable, double-click a name to rename, then Save)</small>"))

        self.tree = QTreeWidget()
        self.tree.setHeaderLabels(["Mod", "Type", "Archive"])
        self.tree.setColumnWidth(0, 260)
        self.tree.setColumnWidth(1, 120)
        self.tree.setRootIsDecorated(False)
        self.tree.setSelectionMode(QTreeWidget.ExtendedSelection)
        self.tree.setEditTriggers(QTreeWidget.NoEditTriggers)
        self.tree.itemDoubleClicked.connect(self._on_item_double_clicked)
        self.tree.itemChanged.connect(self._on_item_changed)
        top_layout.addWidget(self.tree, 1)

        action_row = QHBoxLayout()
        self.add_btn = QPushButton("➕ Add Mods")
        self.add_btn.clicked.connect(self._add_mods)
        action_row.addWidget(self.add_btn)

        self.remove_btn = QPushButton("🗑 Remove Selected")
        self.remove_btn.clicked.connect(self._remove_selected)
        action_row.addWidget(self.remove_btn)

        self.redetect_btn = QPushButton("🔄 Re-detect Unrecognized")
        self.redetect_btn.clicked.connect(self._redetect)
        action_row.addWidget(self.redetect_btn)

        self.preview_btn = QPushButton("🔍 Preview Install")
        self.preview_btn.clicked.connect(self._preview_selected)
        action_row.addWidget(self.preview_btn)

        action_row.addStretch()

        self.save_btn = QPushButton("💾 Save && Apply")
        self.save_btn.clicked.connect(self._save_and_apply)
        action_row.addWidget(self.save_btn)
        top_layout.addLayout(action_row)

        splitter.addWidget(top_widget)

        bottom_widget = QWidget()
        bottom_layout = QVBoxLayout(bottom_widget)
        bottom_layout.setContentsMargins(0, 0, 0, 0)
        bottom_layout.addWidget(QLabel("<b>Log</b>"))

        self.log_text = QPlainTextEdit()
        self.log_text.setReadOnly(True)
        self.log_text.setFont(QFont("Consolas", 9))
        self.log_text.setMaximumBlockCount(5000)
        bottom_layout.addWidget(self.log_text, 1)

        splitter.addWidget(bottom_widget)
        splitter.setChildrenCollapsible(False)
        splitter.setStretchFactor(0, 5)
        splitter.setStretchFactor(1, 2)
        main_layout.addWidget(splitter)

        # ── Progress bar ──────────────────────────────────────────────
        self.progress = QProgressBar()
        self.progress.setVisible(False)
        self.progress.setRange(0, 0)  # indeterminate
        main_layout.addWidget(self.progress)

    # ── Logging ───────────────────────────────────────────────────────

    def _append_log(self, msg: str):
        self._logger.info(msg)
        self._log_message.emit(msg)

    # ── Mod list ──────────────────────────────────────────────────────

    def _populate_tree(self):
        self.tree.blockSignals(True)
        self.tree.clear()
        for mod in self.registry:
            item = QTreeWidgetItem()
            item.setFlags(item.flags() | Qt.ItemIsUserCheckable | Qt.ItemIsEditable)
            item.setCheckState(0, Qt.Checked if mod.enabled else Qt.Unchecked)
            item.setText(0, mod.name)
            item.setText(1, TYPE_LABELS[mod.mod_type])
            item.setText(2, mod.archive_path)
            item.setToolTip(2, mod.archive_path)
            if mod.mod_type in (ModType.UNKNOWN, ModType.UNRECOGNIZED):
                item.setForeground(1, QColor("#c62828"))
            self.tree.addTopLevelItem(item)
        self.tree.blockSignals(False)

    def _on_item_changed(self, item: QTreeWidgetItem, column: int):
        if column != 0:
            return
        index = self.tree.indexOfTopLevelItem(item)
        if index < 0:
            return
        mod = self.registry[index]
        enabled = item.checkState(0) == Qt.Checked
        if mod.enabled != enabled:
            self.registry.set_enabled(index, enabled)

        name = item.text(0).strip()
        if not name:
            self.tree.blockSignals(True)
            item.setText(0, mod.name)
            self.tree.blockSignals(False)
        elif name != mod.name:
            self.registry.rename(index, name)
            self._append_log(f"Renamed '{mod.name}' to '{name}'")

    def _on_item_double_clicked(self, item: QTreeWidgetItem, column: int):
        # Only the name column is editable
        if column == 0:
            self.tree.editItem(item, 0)

    def _selected_indices(self) -> list[int]:
        return [self.tree.indexOfTopLevelItem(item) for item in self.tree.selectedItems()]

    def _browse_game(self):
        d = QFileDialog.getExistingDirectory(
            self, "Select Game Directory", self.game_path_edit.text()
        )
        if d:
            self.game_path_edit.setText(d)

    def _add_mods(self):
        files, _ = QFileDialog.getOpenFileNames(self, "Add Mod Archives", "", ARCHIVE_FILTER)
        for f in files:
            mod = self.registry.add_archive(f)
            self._append_log(f"Added '{mod.name}' as {TYPE_LABELS[mod.mod_type]}")
        if files:
            self._populate_tree()

    def _remove_selected(self):
        indices = self._selected_indices()
        if not indices:
            return
        for mod in self.registry.remove(indices):
            self._append_log(f"Removed '{mod.name}' from the list")
        self._populate_tree()

    def _redetect(self):
        updated = self.registry.retry_unrecognized()
        for mod in updated:
            self._append_log(f"Re-detected '{mod.name}' as {TYPE_LABELS[mod.mod_type]}")
        if not updated:
            self._append_log("No unrecognized mods could be re-detected")
        self._populate_tree()

    def _preview_selected(self):
        indices = self._selected_indices()
        if not indices:
            self._append_log("Select one or more mods to preview")
            return
        game_path = self.game_path_edit.text().strip()
        if not game_path:
            QMessageBox.critical(self, "Error", "Please choose the game directory first.")
            return
        manager = ModManager(game_path, log_callback=self._append_log)
        for index in sorted(indices):
            mod = self.registry[index]
            try:
                plan = manager.plan_mod(mod)
            except ArchiveOpenError as e:
                self._append_log(f"Preview of '{mod.name}' failed: {e}")
                continue
            self._append_log(f"Preview of '{mod.name}' ({len(plan)} file(s)):")
            for entry_path, dst in plan:
                self._append_log(f"  {entry_path} -> {dst}")

    # ── Save / Apply ──────────────────────────────────────────────────

    def _current_config(self) -> Config:
        return self.registry.snapshot(self.game_path_edit.text().strip())

    def _write_config(self) -> Optional[Config]:
        config = self._current_config()
        if not config.game_path:
            QMessageBox.critical(self, "Error", "Please choose the game directory first.")
            return None
        try:
            save_config(self.config_path, config)
        except ConfigError as e:
            QMessageBox.critical(self, "Error", f"Could not save the configuration:\n\n{e}")
            return None
        self._saved = config
        self._append_log(f"Saved configuration ({len(config.mods)} mod(s))")
        return config

    def _save_and_apply(self):
        config = self._write_config()
        if config is None:
            return
        manager = ModManager(config.game_path, log_callback=self._append_log)
        for issue in manager.validate_paths():
            self._append_log(f"Warning: {issue}")
        self._run_in_worker(manager.apply_mods, config.mods)

    def _show_report(self, report: ReconcileReport):
        self._append_log(report.summary())
        if report.ok:
            QMessageBox.information(self, "Success", "Configuration saved and applied.")
            return
        lines = []
        for result in report.failed:
            lines.append(result.summary())
            lines.extend(f"    {line}" for line in result.error_lines()[:5])
        QMessageBox.warning(
            self,
            "Some Mods Failed",
            "Configuration saved, but some mods could not be applied:\n\n" + "\n".join(lines),
        )

    # ── Worker Thread Management ──────────────────────────────────────

    def _run_in_worker(self, func, *args, **kwargs):
        self._set_busy(True)

        self.worker = WorkerThread(func, *args, **kwargs)
        self.worker.finished_signal.connect(self._on_worker_finished)
        self.worker.failed_signal.connect(self._on_worker_failed)
        self.worker.start()

    def _on_worker_finished(self, report: ReconcileReport):
        self._set_busy(False)
        self._show_report(report)

    def _on_worker_failed(self, message: str):
        self._set_busy(False)
        self._append_log(f"❌ {message}")
        QMessageBox.warning(self, "Operation Failed", message)

    def _set_busy(self, busy: bool):
        self.progress.setVisible(busy)
        for widget in (
            self.add_btn,
            self.remove_btn,
            self.redetect_btn,
            self.preview_btn,
            self.save_btn,
            self.browse_btn,
            self.game_path_edit,
            self.tree,
        ):
            widget.setEnabled(not busy)

    # ── Close ─────────────────────────────────────────────────────────

    def closeEvent(self, event):
        if self.worker and self.worker.isRunning():
            reply = QMessageBox.question(
                self,
                "Operation in Progress",
                "Mods are still being applied. Quit anyway?",
                QMessageBox.Yes | QMessageBox.No,
            )
            if reply != QMessageBox.Yes:
                event.ignore()
                return
            event.accept()
            return

        changes = diff_configs(self._saved, self._current_config())
        if changes:
            reply = QMessageBox.question(
                self,
                "Unsaved Changes",
                "You have unsaved changes. Save them?\n\n" + "\n".join(changes[:10]),
                QMessageBox.Yes | QMessageBox.No | QMessageBox.Cancel,
            )
            if reply == QMessageBox.Cancel:
                event.ignore()
                return
            if reply == QMessageBox.Yes:
                config = self._write_config()
                if config is None:
                    event.ignore()
                    return
                QApplication.setOverrideCursor(Qt.WaitCursor)
                try:
                    report = ModManager(config.game_path, log_callback=self._append_log).apply_mods(config.mods)
                finally:
                    QApplication.restoreOverrideCursor()
                self._show_report(report)
        event.accept()


# ── Entry Point ───────────────────────────────────────────────────────

def main(logger: logging.Logger | None = None, *, config_path: Path) -> int:
    app = QApplication(sys.argv)
    app.setStyle("Fusion")

    window = MainWindow(logger=logger, config_path=config_path)
    window.show()

    return app.exec()


if __name__ == "__main__":
    from config_store import default_config_path

    sys.exit(main(config_path=default_config_path()))
