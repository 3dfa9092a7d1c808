from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from PySide6.QtCore import QEvent, Qt, QUrl, Signal
from PySide6.QtGui import QDesktopServices, QFontDatabase, QKeySequence, QShortcut, QTextCursor
from PySide6.QtWidgets import QPlainTextEdit, QToolTip

from sibylx.app.links import DocumentLink, LinkDefinition, extract_links, link_at
from .decorations import DecorationLayer
from .folding import FoldRegions

logger = logging.getLogger(__name__)


def _codepoint_offset(text: str, utf16_position: int) -> int:
    """Translate an editor (UTF-16) position into a code-point offset of ``text``."""
    pos = 0
    for idx, ch in enumerate(text):
        if pos >= utf16_position:
            return idx
        pos += 2 if ord(ch) > 0xFFFF else 1
    return len(text)


class TodoEditor(QPlainTextEdit):
    """Plain-text todo editor carrying the annotation state of one document."""

    edited = Signal(int)  # document version after the edit
    fileLoaded = Signal(str)

    def __init__(self, parent=None) -> None:
        super().__init__(parent)
        self._file_path: Optional[str] = None
        self._version = 0
        self._layout_guard = False
        self._link_definitions: list[LinkDefinition] = []
        self.setPlaceholderText("Open a todo file to begin editing…")
        self.setLineWrapMode(QPlainTextEdit.LineWrapMode.NoWrap)
        mono = QFontDatabase.systemFont(QFontDatabase.SystemFont.FixedFont)
        if mono.family():
            self.setFont(mono)
        self.setTabStopDistance(4 * self.fontMetrics().horizontalAdvance(" "))
        self.decorations = DecorationLayer(self)
        self.folds = FoldRegions(self.document(), on_layout_changed=self._relayout)
        self.document().contentsChange.connect(self._on_contents_change)
        self.viewport().setMouseTracking(True)

        self._fold_shortcut = QShortcut(QKeySequence("Ctrl+Shift+["), self)
        self._fold_shortcut.activated.connect(self.fold_at_cursor)
        self._unfold_shortcut = QShortcut(QKeySequence("Ctrl+Shift+]"), self)
        self._unfold_shortcut.activated.connect(self.unfold_at_cursor)

    @property
    def file_path(self) -> Optional[str]:
        return self._file_path

    def set_file_path(self, path: Optional[str]) -> None:
        self._file_path = path

    @property
    def version(self) -> int:
        return self._version

    def load_file(self, path: str) -> None:
        content = Path(path).read_text(encoding="utf-8")
        self._file_path = str(path)
        self.folds.unfold_all()
        self.setPlainText(content)
        self.document().setModified(False)
        self.fileLoaded.emit(self._file_path)

    def save_file(self, path: Optional[str] = None) -> str:
        target = path or self._file_path
        if not target:
            raise ValueError("No file path to save to")
        Path(target).write_text(self.toPlainText(), encoding="utf-8")
        self._file_path = str(target)
        self.document().setModified(False)
        return self._file_path

    def set_link_definitions(self, definitions: Iterable[LinkDefinition]) -> None:
        self._link_definitions = list(definitions)

    def links(self) -> list[DocumentLink]:
        return extract_links(self.toPlainText(), self._link_definitions)

    def current_line(self) -> int:
        return self.textCursor().blockNumber()

    def jump_to_line(self, line: int) -> bool:
        """Move the cursor to the start of zero-based ``line`` and reveal it."""
        if line < 0 or line >= self.document().blockCount():
            logger.debug("Ignoring jump to line %s outside the document", line)
            return False
        self.folds.unfold(line)
        block = self.document().findBlockByNumber(line)
        cursor = QTextCursor(block)
        self.setTextCursor(cursor)
        self.ensureCursorVisible()
        self.setFocus(Qt.OtherFocusReason)
        return True

    def fold_at_cursor(self) -> None:
        self.folds.fold(self.current_line())

    def unfold_at_cursor(self) -> None:
        self.folds.unfold(self.current_line())

    def toggle_fold_at_cursor(self) -> None:
        self.folds.toggle(self.current_line())

    def _on_contents_change(self, position: int, removed: int, added: int) -> None:
        if self._layout_guard or (removed == 0 and added == 0):
            return
        self._version += 1
        self.edited.emit(self._version)

    def _relayout(self) -> None:
        self._layout_guard = True
        try:
            document = self.document()
            document.markContentsDirty(0, document.characterCount())
        finally:
            self._layout_guard = False
        self.viewport().update()

    def _link_at_position(self, position: int) -> Optional[DocumentLink]:
        if not self._link_definitions:
            return None
        text = self.toPlainText()
        return link_at(extract_links(text, self._link_definitions), _codepoint_offset(text, position))

    def viewportEvent(self, event):  # type: ignore[override]
        if event.type() == QEvent.ToolTip:
            position = self.cursorForPosition(event.pos()).position()
            link = self._link_at_position(position)
            hover = link.url if link else self.decorations.hover_text_at(position)
            if hover:
                QToolTip.showText(event.globalPos(), hover, self.viewport())
            else:
                QToolTip.hideText()
                event.ignore()
            return True
        return super().viewportEvent(event)

    def mouseMoveEvent(self, event):  # type: ignore[override]
        # Pointing hand over a link while Ctrl is held
        link = None
        if event.modifiers() & Qt.ControlModifier:
            link = self._link_at_position(self.cursorForPosition(event.position().toPoint()).position())
        self.viewport().setCursor(Qt.PointingHandCursor if link else Qt.IBeamCursor)
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event):  # type: ignore[override]
        if event.button() == Qt.LeftButton and event.modifiers() & Qt.ControlModifier:
            position = self.cursorForPosition(event.position().toPoint()).position()
            link = self._link_at_position(position)
            if link is not None:
                QDesktopServices.openUrl(QUrl(link.url))
                event.accept()
                return
        super().mouseReleaseEvent(event)
