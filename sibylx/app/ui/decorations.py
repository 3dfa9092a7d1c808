"""Map ``/format`` output onto categorized editor decorations.

Each line of the service response reads ``start,end,category`` where ``start``
and ``end`` are code-point offsets into the text that was sent. Every category
of the closed taxonomy has exactly one style; every analysis cycle replaces the
ranges of every category, so a category without matches clears what an earlier
cycle painted.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional

from PySide6.QtGui import QColor, QFont, QTextCharFormat, QTextCursor
from PySide6.QtWidgets import QTextEdit

logger = logging.getLogger(__name__)

MAX_DUE_DAYS = 11

# Increasingly pale urgency colors, most urgent first.
DUE_COLORS = ["#ff0000", "#ff4040", "#ff7d7d", "#fea4a4", "#fec7c7"]
PRIORITY_BORDER = "#ff0000"
DONE_COLOR = "#1e420f"


def due_bucket(days: int) -> Optional[int]:
    """Return the urgency bucket (0 = most urgent) for ``days`` until due."""
    if days < 0 or days > MAX_DUE_DAYS:
        return None
    if days <= 1:
        return 0
    if days <= 2:
        return 1
    if days <= 4:
        return 2
    if days <= 7:
        return 3
    return 4


class CategoryId(str, Enum):
    """Closed set of decoration categories; values are the service's wire keys."""

    CATEGORY_LABEL = "cat"
    ITEM = "mom"
    ITEM_PRIORITY = "mom.priority"
    ITEM_DONE = "mom.done"
    DATE = "date"
    TIME = "time"
    IDENTIFIER = "id"
    COMMENT_DONE = "com.done"
    DUE_UNTIL_0 = "mom.until0"
    DUE_UNTIL_1 = "mom.until1"
    DUE_UNTIL_2 = "mom.until2"
    DUE_UNTIL_3 = "mom.until3"
    DUE_UNTIL_4 = "mom.until4"
    DUE_UNTIL_5 = "mom.until5"
    DUE_UNTIL_6 = "mom.until6"
    DUE_UNTIL_7 = "mom.until7"
    DUE_UNTIL_8 = "mom.until8"
    DUE_UNTIL_9 = "mom.until9"
    DUE_UNTIL_10 = "mom.until10"
    DUE_UNTIL_11 = "mom.until11"
    DUE_UNTIL_0_PRIORITY = "mom.until0.priority"
    DUE_UNTIL_1_PRIORITY = "mom.until1.priority"
    DUE_UNTIL_2_PRIORITY = "mom.until2.priority"
    DUE_UNTIL_3_PRIORITY = "mom.until3.priority"
    DUE_UNTIL_4_PRIORITY = "mom.until4.priority"
    DUE_UNTIL_5_PRIORITY = "mom.until5.priority"
    DUE_UNTIL_6_PRIORITY = "mom.until6.priority"
    DUE_UNTIL_7_PRIORITY = "mom.until7.priority"
    DUE_UNTIL_8_PRIORITY = "mom.until8.priority"
    DUE_UNTIL_9_PRIORITY = "mom.until9.priority"
    DUE_UNTIL_10_PRIORITY = "mom.until10.priority"
    DUE_UNTIL_11_PRIORITY = "mom.until11.priority"

    @classmethod
    def due(cls, days: int, priority: bool = False) -> Optional["CategoryId"]:
        """Return the due-proximity category for ``days``, or None past the horizon."""
        if due_bucket(days) is None:
            return None
        suffix = ".priority" if priority else ""
        return cls(f"mom.until{days}{suffix}")

    @classmethod
    def from_wire(cls, key: str) -> Optional["CategoryId"]:
        """Resolve a category sent by the service; unknown keys give None."""
        key = key.strip()
        try:
            return cls(key)
        except ValueError:
            pass
        alias = _ALIASES.get(key)
        if alias is not None:
            return alias
        match = _DUE_ALIAS.match(key)
        if match:
            return cls.due(int(match.group("days")), priority=bool(match.group("prio") or match.group("prio2")))
        return None

    @property
    def due_days(self) -> Optional[int]:
        match = _DUE_WIRE.match(self.value)
        return int(match.group(1)) if match else None

    @property
    def is_priority(self) -> bool:
        return self.value.endswith(".priority")


_ALIASES = {
    "category-label": CategoryId.CATEGORY_LABEL,
    "item": CategoryId.ITEM,
    "item.priority": CategoryId.ITEM_PRIORITY,
    "item.done": CategoryId.ITEM_DONE,
    "identifier": CategoryId.IDENTIFIER,
    "comment.done": CategoryId.COMMENT_DONE,
}
_DUE_WIRE = re.compile(r"^mom\.until(\d+)")
# "due.until3", "due.until3.priority" and the older "mom.priority.until3".
_DUE_ALIAS = re.compile(r"^(?:due|mom)(?P<prio>\.priority)?\.until(?P<days>\d+)(?P<prio2>\.priority)?$")


@dataclass(frozen=True)
class StyleDescriptor:
    color: Optional[str] = None
    bold: bool = False
    border: Optional[str] = None
    background: Optional[str] = None
    hover: Optional[str] = None

    def with_border(self, color: str) -> "StyleDescriptor":
        return StyleDescriptor(self.color, self.bold, color, self.background, self.hover)

    def char_format(self) -> QTextCharFormat:
        fmt = QTextCharFormat()
        if self.color:
            fmt.setForeground(QColor(self.color))
        if self.bold:
            fmt.setFontWeight(QFont.Weight.Bold)
        if self.background:
            fmt.setBackground(QColor(self.background))
        if self.border:
            # Character formats have no box border; an underline in the border color stands in.
            fmt.setUnderlineStyle(QTextCharFormat.UnderlineStyle.SingleUnderline)
            fmt.setUnderlineColor(QColor(self.border))
        if self.hover:
            fmt.setToolTip(self.hover)
        return fmt


def _build_style_table() -> dict[CategoryId, StyleDescriptor]:
    table = {
        CategoryId.CATEGORY_LABEL: StyleDescriptor(color="orange", bold=True),
        CategoryId.ITEM: StyleDescriptor(bold=True),
        CategoryId.ITEM_PRIORITY: StyleDescriptor(bold=True, border=PRIORITY_BORDER),
        CategoryId.ITEM_DONE: StyleDescriptor(color=DONE_COLOR, bold=True),
        CategoryId.DATE: StyleDescriptor(background="#2d3b4d", hover="Date"),
        CategoryId.TIME: StyleDescriptor(background="#3b2d4d", hover="Time"),
        CategoryId.IDENTIFIER: StyleDescriptor(color="#3f679a", hover="ID"),
        CategoryId.COMMENT_DONE: StyleDescriptor(color=DONE_COLOR),
    }
    for days in range(MAX_DUE_DAYS + 1):
        base = StyleDescriptor(color=DUE_COLORS[due_bucket(days)], bold=True)
        table[CategoryId.due(days)] = base
        table[CategoryId.due(days, priority=True)] = base.with_border(PRIORITY_BORDER)
    missing = [c for c in CategoryId if c not in table]
    if missing:
        raise RuntimeError(f"No style for categories: {missing}")
    return table


STYLE_TABLE: dict[CategoryId, StyleDescriptor] = _build_style_table()


@dataclass(frozen=True)
class StyleRange:
    start: int
    end: int
    category: CategoryId


def empty_ranges() -> dict[CategoryId, list[StyleRange]]:
    return {category: [] for category in CategoryId}


def parse_format_lines(
    lines: Iterable[str], document_length: Optional[int] = None
) -> dict[CategoryId, list[StyleRange]]:
    """Turn ``start,end,category`` lines into ranges keyed by category.

    Every category is present in the result, with an empty list when nothing
    matched. Lines without exactly three tokens, with non-integer offsets, with
    an unknown category or with offsets outside ``document_length`` are skipped.
    """
    result = empty_ranges()
    malformed = unknown = out_of_range = 0
    for line in lines:
        parts = line.split(",")
        if len(parts) != 3:
            if line.strip():
                malformed += 1
            continue
        try:
            start = int(parts[0])
            end = int(parts[1])
        except ValueError:
            malformed += 1
            continue
        category = CategoryId.from_wire(parts[2])
        if category is None:
            unknown += 1
            continue
        if start < 0 or end < start or (document_length is not None and end > document_length):
            out_of_range += 1
            continue
        result[category].append(StyleRange(start, end, category))
    if malformed or unknown or out_of_range:
        logger.debug(
            "Skipped format lines: malformed=%d unknown=%d out_of_range=%d", malformed, unknown, out_of_range
        )
    return result


def _utf16_positions(text: str) -> list[int]:
    """Map each code-point index of ``text`` (and its end) to a UTF-16 position."""
    positions = [0] * (len(text) + 1)
    pos = 0
    for idx, ch in enumerate(text):
        positions[idx] = pos
        pos += 2 if ord(ch) > 0xFFFF else 1
    positions[len(text)] = pos
    return positions


class DecorationLayer:
    """Holds the applied ranges of one editor and paints them as extra selections."""

    def __init__(self, editor) -> None:
        self._editor = editor
        self._ranges = empty_ranges()
        self._formats = {category: STYLE_TABLE[category].char_format() for category in CategoryId}
        self._selections: list[tuple[CategoryId, QTextEdit.ExtraSelection]] = []

    def ranges(self, category: CategoryId) -> list[StyleRange]:
        return list(self._ranges[category])

    def all_ranges(self) -> list[StyleRange]:
        return [r for category in CategoryId for r in self._ranges[category]]

    def set_ranges(self, category: CategoryId, ranges: Iterable[StyleRange]) -> None:
        """Replace the ranges of one category; an empty list clears it."""
        self._ranges[category] = list(ranges)
        self._repaint()

    def apply(self, mapping: Mapping[CategoryId, Iterable[StyleRange]]) -> None:
        for category, ranges in mapping.items():
            self._ranges[category] = list(ranges)
        self._repaint()

    def clear(self) -> None:
        self.apply(empty_ranges())

    def hover_text_at(self, position: int) -> Optional[str]:
        """Hover text of the decoration covering the editor ``position``, if any."""
        for category, selection in self._selections:
            hover = STYLE_TABLE[category].hover
            if not hover:
                continue
            cursor = selection.cursor
            if cursor.selectionStart() <= position < cursor.selectionEnd():
                return hover
        return None

    def _repaint(self) -> None:
        document = self._editor.document()
        text = self._editor.toPlainText()
        positions = _utf16_positions(text)
        self._selections = []
        for category in CategoryId:
            for style_range in self._ranges[category]:
                if style_range.end > len(text):
                    continue
                cursor = QTextCursor(document)
                cursor.setPosition(positions[style_range.start])
                cursor.setPosition(positions[style_range.end], QTextCursor.MoveMode.KeepAnchor)
                selection = QTextEdit.ExtraSelection()
                selection.cursor = cursor
                selection.format = self._formats[category]
                self._selections.append((category, selection))
        self._editor.setExtraSelections([sel for _, sel in self._selections])
