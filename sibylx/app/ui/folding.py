from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from PySide6.QtGui import QTextCursor, QTextDocument

logger = logging.getLogger(__name__)

FOLD_KIND_REGION = "region"

LineToken = Union[int, str, None]


def _line_token(token: Optional[str]) -> LineToken:
    # Non-numeric tokens are passed through untouched; callers decide what to do with them.
    if token is None:
        return None
    try:
        return int(token)
    except ValueError:
        return token


@dataclass(frozen=True)
class FoldRange:
    """Foldable region from ``start_line`` (the header line, kept visible) through ``end_line``.

    Both ends are inclusive: the service reports the region's last line, not
    the line after it, so folding hides ``start_line + 1`` up to and including
    ``end_line``.
    """

    start_line: LineToken
    end_line: LineToken
    kind: str = FOLD_KIND_REGION

    @property
    def is_numeric(self) -> bool:
        return isinstance(self.start_line, int) and isinstance(self.end_line, int)


def parse_fold_lines(lines: Iterable[str]) -> list[FoldRange]:
    """Parse ``startLine-endLine`` lines; each line yields exactly one range."""
    ranges = []
    for line in lines:
        parts = line.split("-")
        start = _line_token(parts[0])
        end = _line_token(parts[1]) if len(parts) > 1 else None
        ranges.append(FoldRange(start, end))
    return ranges


class _Region:
    """A fold range anchored to block starts so it follows edits."""

    def __init__(self, document: QTextDocument, start_line: int, end_line: int, kind: str) -> None:
        self._start = QTextCursor(document.findBlockByNumber(start_line))
        self._end = QTextCursor(document.findBlockByNumber(end_line))
        self.kind = kind
        self.folded = False

    @property
    def start_line(self) -> int:
        return self._start.blockNumber()

    @property
    def end_line(self) -> int:
        return self._end.blockNumber()

    def covers(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line

    def foldable(self) -> bool:
        return self.end_line > self.start_line

    def as_range(self) -> FoldRange:
        return FoldRange(self.start_line, self.end_line, self.kind)


class FoldRegions:
    """Fold state of one document.

    Region lists are replaced wholesale on every analysis cycle. Folding a
    region hides the blocks after its header line up to and including
    ``end_line`` (zero-based block numbers). Regions and their fold state are
    anchored to the header and last blocks, so line numbers reported here
    follow edits made since the last ``set_ranges``.
    """

    def __init__(self, document: QTextDocument, on_layout_changed=None) -> None:
        self._document = document
        self._regions: list[_Region] = []
        self._on_layout_changed = on_layout_changed

    def set_document(self, document: QTextDocument) -> None:
        self._document = document
        self._regions = []

    def ranges(self) -> list[FoldRange]:
        return [region.as_range() for region in self._regions]

    def folded_lines(self) -> set[int]:
        return {region.start_line for region in self._regions if region.folded}

    def set_ranges(self, ranges: Iterable[FoldRange]) -> None:
        block_count = self._document.blockCount()
        folded = self.folded_lines()
        regions = []
        for fold in ranges:
            if not fold.is_numeric:
                logger.debug("Ignoring non-numeric fold range %r", fold)
                continue
            if not 0 <= fold.start_line < block_count:
                logger.debug("Ignoring fold range outside the document %r", fold)
                continue
            end = min(max(fold.end_line, fold.start_line), block_count - 1)
            region = _Region(self._document, fold.start_line, end, fold.kind)
            # A fold survives when its header block is still a region header.
            region.folded = fold.start_line in folded and region.foldable()
            regions.append(region)
        self._regions = regions
        self._sync_visibility()

    def clear(self) -> None:
        self.set_ranges([])

    def region_at(self, line: int) -> Optional[FoldRange]:
        """Return the region whose header is ``line``."""
        for region in self._regions:
            if region.start_line == line:
                return region.as_range()
        return None

    def region_containing(self, line: int) -> Optional[FoldRange]:
        """Return the innermost region covering ``line``."""
        region = self._innermost(line)
        return region.as_range() if region is not None else None

    def is_folded(self, line: int) -> bool:
        return line in self.folded_lines()

    def fold(self, line: int) -> bool:
        region = self._innermost(line)
        if region is None or not region.foldable():
            return False
        region.folded = True
        self._sync_visibility()
        return True

    def unfold(self, line: int) -> bool:
        changed = False
        for region in self._regions:
            if region.folded and region.covers(line):
                region.folded = False
                changed = True
        if changed:
            self._sync_visibility()
        return changed

    def toggle(self, line: int) -> bool:
        if self.is_folded(line):
            return self.unfold(line)
        return self.fold(line)

    def fold_all(self) -> None:
        for region in self._regions:
            region.folded = region.foldable()
        self._sync_visibility()

    def unfold_all(self) -> None:
        for region in self._regions:
            region.folded = False
        self._sync_visibility()

    def hidden_lines(self) -> set[int]:
        hidden: set[int] = set()
        for region in self._regions:
            if region.folded:
                hidden.update(range(region.start_line + 1, region.end_line + 1))
        return hidden

    def _innermost(self, line: int) -> Optional[_Region]:
        best = None
        for region in self._regions:
            if region.covers(line) and (best is None or region.start_line >= best.start_line):
                best = region
        return best

    def _sync_visibility(self) -> None:
        hidden = self.hidden_lines()
        block = self._document.firstBlock()
        changed = False
        while block.isValid():
            visible = block.blockNumber() not in hidden
            if block.isVisible() != visible:
                block.setVisible(visible)
                changed = True
            block = block.next()
        if changed and self._on_layout_changed is not None:
            self._on_layout_changed()
