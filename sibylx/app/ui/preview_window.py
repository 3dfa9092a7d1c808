from __future__ import annotations

import logging
from typing import Callable, Optional

from PySide6.QtCore import QObject, Signal
from PySide6.QtWidgets import QVBoxLayout, QWidget

from .preview_panel import PreviewPanel

logger = logging.getLogger(__name__)


class PreviewWindow(QWidget):
    """Top-level window hosting the preview panel."""

    closed = Signal()
    revealed = Signal()

    def __init__(self, parent=None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Sibyl Preview")
        self.resize(720, 820)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(6, 6, 6, 6)
        self.panel = PreviewPanel(self)
        layout.addWidget(self.panel)

    def showEvent(self, event):  # type: ignore[override]
        super().showEvent(event)
        self.revealed.emit()

    def closeEvent(self, event):  # type: ignore[override]
        super().closeEvent(event)
        if event.isAccepted():
            self.closed.emit()


class PreviewSurface(QObject):
    """Owns the single preview window of the application.

    ``get_or_create()`` builds the window on first use and afterwards only
    brings the existing one forward. Every subscription made for the window is
    released exactly once, when the window closes or the surface is disposed.
    """

    jumpRequested = Signal(int)
    alertRaised = Signal(str)

    def __init__(self, coordinator, parent=None, *, window_factory: Optional[Callable[[], PreviewWindow]] = None) -> None:
        super().__init__(parent)
        self._coordinator = coordinator
        self._window_factory = window_factory or PreviewWindow
        self._window: Optional[PreviewWindow] = None
        self._subscriptions: list[tuple[object, Callable]] = []

    @property
    def window(self) -> Optional[PreviewWindow]:
        return self._window

    @property
    def panel(self) -> Optional[PreviewPanel]:
        return self._window.panel if self._window is not None else None

    def is_open(self) -> bool:
        return self._window is not None

    def get_or_create(self) -> PreviewWindow:
        if self._window is not None:
            self._window.show()
            self._window.raise_()
            self._window.activateWindow()
            return self._window
        window = self._window_factory()
        self._window = window
        self._subscribe(self._coordinator.previewReady, self._on_preview_ready)
        self._subscribe(window.panel.messagePosted, self._on_panel_message)
        self._subscribe(window.closed, self.release)
        self._subscribe(window.revealed, self._coordinator.request_preview)
        self._coordinator.set_preview_enabled(True)
        window.show()
        return window

    def release(self) -> None:
        """Tear down the current window and its subscriptions."""
        window, self._window = self._window, None
        subscriptions, self._subscriptions = self._subscriptions, []
        try:
            for signal, slot in subscriptions:
                try:
                    signal.disconnect(slot)
                except (RuntimeError, TypeError):
                    logger.debug("Preview subscription already gone")
        finally:
            self._coordinator.set_preview_enabled(False)
            if window is not None:
                window.hide()
                window.deleteLater()

    def dispose(self) -> None:
        self.release()

    def _subscribe(self, signal, slot: Callable) -> None:
        signal.connect(slot)
        self._subscriptions.append((signal, slot))

    def _on_preview_ready(self, payload) -> None:
        if self._window is None:
            return
        self._window.panel.handle_message({"command": "update", "preview": payload})

    def _on_panel_message(self, message: dict) -> None:
        command = message.get("command")
        if command == "jumpToLine":
            self.jumpRequested.emit(int(message.get("line", 0)))
        elif command == "alert":
            self.alertRaised.emit(str(message.get("text", "")))
        else:
            logger.debug("Ignoring preview message %r", message)
