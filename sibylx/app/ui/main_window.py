from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from PySide6.QtCore import Qt, QTimer
from PySide6.QtGui import QAction, QKeySequence
from PySide6.QtWidgets import QFileDialog, QLabel, QMainWindow, QMessageBox

from sibylx.app import config
from sibylx.app.client import AnalysisClient
from sibylx.app.config import SibylConfig
from sibylx.app.coordinator import ChangeCoordinator, RequestRunner
from sibylx.app.links import link_definitions
from .preview_window import PreviewSurface
from .todo_editor import TodoEditor

logger = logging.getLogger(__name__)

STATUS_TIMEOUT_MS = 4000


class MainWindow(QMainWindow):
    def __init__(
        self,
        cfg: Optional[SibylConfig] = None,
        *,
        client: Optional[AnalysisClient] = None,
        runner: Optional[RequestRunner] = None,
        parent=None,
    ) -> None:
        super().__init__(parent)
        self.cfg = cfg or config.load_sibyl_config()
        self.client = client or AnalysisClient(self.cfg.rest_url, timeout=self.cfg.request_timeout)
        self._owns_client = client is None
        self._torn_down = False
        self.setWindowTitle("Sibyl")

        self.editor = TodoEditor(self)
        self.editor.set_link_definitions(link_definitions(self.cfg))
        self.setCentralWidget(self.editor)
        self.editor.fileLoaded.connect(self._on_file_loaded)

        self.coordinator = ChangeCoordinator(self.client, self.cfg, runner=runner, parent=self)
        self.coordinator.serviceFailed.connect(self._on_service_failed)
        self.coordinator.stateChanged.connect(self._on_sync_state_changed)

        self.preview = PreviewSurface(self.coordinator, self)
        self.preview.jumpRequested.connect(self._on_jump_requested)
        self.preview.alertRaised.connect(self._alert)

        self._sync_label = QLabel("")
        self.statusBar().addPermanentWidget(self._sync_label)
        self._build_menus()

    def _build_menus(self) -> None:
        file_menu = self.menuBar().addMenu("&File")
        self._add_action(file_menu, "&Open…", self._open_dialog, QKeySequence.Open)
        self._add_action(file_menu, "&Save", self.save, QKeySequence.Save)
        self._add_action(file_menu, "&Reload", self.reload)
        file_menu.addSeparator()
        self._add_action(file_menu, "&Quit", self.close, QKeySequence.Quit)

        todo_menu = self.menuBar().addMenu("&Todos")
        self._add_action(todo_menu, "Show &Preview", self.show_preview, QKeySequence("Ctrl+Shift+V"))
        self._add_action(todo_menu, "&Refresh Annotations", self.coordinator.request_refresh, QKeySequence("F5"))
        todo_menu.addSeparator()
        self._add_action(todo_menu, "&Clean Done Todos", self.clean_todos)
        self._add_action(todo_menu, "&Trash Done Todos", self.trash_todos)

        view_menu = self.menuBar().addMenu("&View")
        self._add_action(view_menu, "Toggle &Fold", self.editor.toggle_fold_at_cursor, QKeySequence("Ctrl+Shift+F"))
        self._add_action(view_menu, "Fold &All", self.editor.folds.fold_all)
        self._add_action(view_menu, "&Unfold All", self.editor.folds.unfold_all)

    def _add_action(self, menu, text: str, slot, shortcut=None) -> QAction:
        action = QAction(text, self)
        if shortcut is not None:
            action.setShortcut(shortcut)
        action.triggered.connect(lambda checked=False: slot())
        menu.addAction(action)
        return action

    def open_file(self, path: str) -> bool:
        try:
            self.editor.load_file(path)
        except OSError as exc:
            self._alert(f"Failed to open {path}: {exc}")
            return False
        config.save_last_file(str(Path(path).resolve()))
        self.setWindowTitle(f"Sibyl – {Path(path).name}")
        if not self.coordinator.is_watched(self.editor):
            self.statusBar().showMessage(
                f"{Path(path).name} does not match '{self.cfg.todo_file_name}'; annotations are off",
                STATUS_TIMEOUT_MS,
            )
        return True

    def _on_file_loaded(self, _path: str) -> None:
        # The editor may now show a different file; re-evaluate watching.
        self.coordinator.set_active_editor(self.editor)

    def _open_dialog(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Open todo file", "", "Text files (*.txt);;All files (*)")
        if path:
            self.open_file(path)

    def save(self) -> None:
        if not self.editor.file_path:
            path, _ = QFileDialog.getSaveFileName(self, "Save todo file", self.cfg.todo_file_name)
            if not path:
                return
            self.editor.set_file_path(path)
            self.coordinator.set_active_editor(self.editor)
        try:
            saved = self.editor.save_file()
        except OSError as exc:
            self._alert(f"Failed to save: {exc}")
            return
        self.statusBar().showMessage(f"Saved {saved}", STATUS_TIMEOUT_MS)

    def reload(self) -> None:
        if self.editor.file_path:
            line = self.editor.current_line()
            if self.open_file(self.editor.file_path):
                self.editor.jump_to_line(min(line, self.editor.document().blockCount() - 1))

    def show_preview(self) -> None:
        self.preview.get_or_create()

    def clean_todos(self) -> None:
        self._run_service_command(self.client.clean_todos, "Cleaned done todos!", "Failed to clean done todos")

    def trash_todos(self) -> None:
        self._run_service_command(self.client.trash_todos, "Trashed done todos!", "Failed to trash done todos")

    def _run_service_command(self, job, success_message: str, failure_prefix: str) -> None:
        if self.editor.document().isModified() and self.editor.file_path:
            # The service rewrites the file on disk; unsaved edits would be lost on reload.
            self.save()

        def on_success(_result) -> None:
            self._notify(success_message)
            self.reload()

        def on_failure(exc) -> None:
            self._alert(f"{failure_prefix}: {exc}")

        self.coordinator.runner.submit(job, on_success, on_failure)

    def _on_jump_requested(self, line: int) -> None:
        if not self.editor.jump_to_line(line):
            self.statusBar().showMessage(f"Line {line + 1} is not in the document", STATUS_TIMEOUT_MS)
            return
        self.raise_()
        self.activateWindow()

    def _on_service_failed(self, concern: str, message: str) -> None:
        if concern == "preview" and self.preview.is_open():
            self._alert(f"Failed to update preview: {message}")
            return
        self.statusBar().showMessage(f"Failed to update {concern}: {message}", STATUS_TIMEOUT_MS)

    def _on_sync_state_changed(self, state: str) -> None:
        self._sync_label.setText("" if state == "idle" else f"⟳ {state}")

    def _notify(self, message: str) -> None:
        self.statusBar().showMessage(message, STATUS_TIMEOUT_MS)

    def _alert(self, message: str) -> None:
        print(f"[UI] {message}", file=sys.stderr)
        if os.getenv("SIBYLX_NO_DIALOGS", "0") not in ("0", "false", "False", ""):
            return
        box = QMessageBox(QMessageBox.Critical, "Sibyl", message, QMessageBox.Ok, self)
        box.setAttribute(Qt.WA_DeleteOnClose)
        box.setModal(False)
        box.show()

    def teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True
        try:
            self.preview.dispose()
        finally:
            try:
                self.coordinator.dispose()
            finally:
                if self._owns_client:
                    self.client.close()

    def closeEvent(self, event):  # type: ignore[override]
        if self.editor.document().isModified():
            answer = QMessageBox.question(
                self,
                "Unsaved changes",
                "Save changes before closing?",
                QMessageBox.Save | QMessageBox.Discard | QMessageBox.Cancel,
            )
            if answer == QMessageBox.Cancel:
                event.ignore()
                return
            if answer == QMessageBox.Save:
                self.save()
        self.teardown()
        super().closeEvent(event)

    def startup(self, path: Optional[str]) -> None:
        target = path or config.load_last_file()
        if target and Path(target).exists():
            QTimer.singleShot(0, lambda: self.open_file(target))
