"""Preview surface: due-today/due-this-week lists, category overview board and
week calendar, all rebuilt from the latest ``PreviewPayload``.

The panel talks to its host only through messages. Inbound it accepts
``{"command": "update", "preview": payload}``; outbound it posts
``{"command": "jumpToLine", "line": n}`` when an entry is clicked and
``{"command": "alert", "text": message}`` when it cannot render an update.
It never moves the editor itself.
"""

from __future__ import annotations

import logging
import os
from datetime import date
from typing import Any, Optional

from PySide6.QtCore import QDate, QLocale, Qt, Signal
from PySide6.QtWidgets import (
    QAbstractItemView,
    QFrame,
    QHeaderView,
    QLabel,
    QListWidget,
    QListWidgetItem,
    QScrollArea,
    QTableWidget,
    QVBoxLayout,
    QWidget,
)

from sibylx.app.preview import (
    CalendarEvent,
    Category,
    Instance,
    PreviewFormatError,
    PreviewPayload,
    WorkState,
)
from .week_calendar import WeekCalendarView

logger = logging.getLogger(__name__)

LINE_ROLE = Qt.UserRole + 2

KANBAN_COLUMNS = (WorkState.NEW, WorkState.WAITING, WorkState.IN_PROGRESS)


def _debug_enabled(var_name: str) -> bool:
    return os.getenv(var_name, "0") not in ("0", "false", "False", "", None)


def format_end_date(instance: Instance) -> str:
    """Short locale date of the instance's end, in local time."""
    if instance.end is None:
        return ""
    end = instance.end
    if end.tzinfo is not None:
        end = end.astimezone()
    return QLocale().toString(QDate(end.year, end.month, end.day), QLocale.ShortFormat)


class MomentCell(QLabel):
    """Clickable moment entry in an overview lane."""

    clicked = Signal(int)  # line number

    def __init__(self, text: str, line_number: int, parent=None) -> None:
        super().__init__(text, parent)
        self.line_number = line_number
        self.setObjectName("momentCell")
        self.setToolTip(text)
        self.setWordWrap(True)
        self.setCursor(Qt.PointingHandCursor)

    def click(self) -> None:
        self.clicked.emit(self.line_number)

    def mouseReleaseEvent(self, event):  # type: ignore[override]
        if event.button() == Qt.LeftButton and self.rect().contains(event.position().toPoint()):
            self.click()
            event.accept()
            return
        super().mouseReleaseEvent(event)


class OverviewLane(QFrame):
    """One category of the overview board: optional heading plus a New/Waiting/In Progress table."""

    momentClicked = Signal(int)

    def __init__(self, category: Category, parent=None) -> None:
        super().__init__(parent)
        self.setObjectName("kanbanLane")
        self.category_name = category.name
        self.heading: Optional[QLabel] = None
        self.cells: dict[WorkState, list[MomentCell]] = {state: [] for state in KANBAN_COLUMNS}

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 4, 0, 4)
        if category.has_heading:
            self.heading = QLabel(category.name)
            self.heading.setObjectName("laneHeading")
            font = self.heading.font()
            font.setBold(True)
            self.heading.setFont(font)
            layout.addWidget(self.heading)

        self.table = QTableWidget(1, len(KANBAN_COLUMNS), self)
        self.table.setObjectName("kanbanTable")
        self.table.setHorizontalHeaderLabels([state.title for state in KANBAN_COLUMNS])
        self.table.verticalHeader().setVisible(False)
        self.table.horizontalHeader().setSectionResizeMode(QHeaderView.Stretch)
        self.table.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self.table.setSelectionMode(QAbstractItemView.NoSelection)
        layout.addWidget(self.table)

        column_layouts = {}
        for column, state in enumerate(KANBAN_COLUMNS):
            holder = QWidget()
            column_layout = QVBoxLayout(holder)
            column_layout.setContentsMargins(2, 2, 2, 2)
            column_layout.setAlignment(Qt.AlignTop)
            column_layouts[state] = column_layout
            self.table.setCellWidget(0, column, holder)

        for moment in category.moments:
            # Moments in a state outside the three columns are left off the board.
            if moment.work_state not in column_layouts:
                continue
            cell = MomentCell(moment.name, moment.line_number)
            cell.clicked.connect(self.momentClicked)
            column_layouts[moment.work_state].addWidget(cell)
            self.cells[moment.work_state].append(cell)

        tallest = max((len(cells) for cells in self.cells.values()), default=0)
        row_height = max(28, tallest * 24 + 8)
        self.table.setRowHeight(0, row_height)
        self.table.setFixedHeight(row_height + self.table.horizontalHeader().sizeHint().height() + 4)

    def cell_texts(self, state: WorkState) -> list[str]:
        return [cell.text() for cell in self.cells[state]]


class PreviewPanel(QWidget):
    messagePosted = Signal(dict)

    def __init__(self, parent=None, *, today=None) -> None:
        super().__init__(parent)
        self._payload: Optional[PreviewPayload] = None
        self._calendar_events: list[CalendarEvent] = []
        self._debug = _debug_enabled("SIBYLX_DEBUG_PREVIEW")
        self.lanes: list[OverviewLane] = []

        layout = QVBoxLayout(self)
        layout.addWidget(self._section_label("Due today"))
        self.today_list = self._build_instance_list("dueToday")
        layout.addWidget(self.today_list)

        layout.addWidget(self._section_label("Due this week"))
        self.week_list = self._build_instance_list("dueWeek")
        layout.addWidget(self.week_list)

        layout.addWidget(self._section_label("Calendar"))
        self.calendar = WeekCalendarView(self, today=today)
        self.calendar.set_event_source(self._calendar_events_between)
        layout.addWidget(self.calendar)

        layout.addWidget(self._section_label("Overview"))
        self._overview_scroll = QScrollArea(self)
        self._overview_scroll.setWidgetResizable(True)
        self._overview_host = QWidget()
        self._overview_layout = QVBoxLayout(self._overview_host)
        self._overview_layout.setAlignment(Qt.AlignTop)
        self._overview_scroll.setWidget(self._overview_host)
        layout.addWidget(self._overview_scroll, 1)

    @property
    def payload(self) -> Optional[PreviewPayload]:
        return self._payload

    def _section_label(self, text: str) -> QLabel:
        label = QLabel(text)
        font = label.font()
        font.setBold(True)
        font.setPointSize(font.pointSize() + 1)
        label.setFont(font)
        return label

    def _build_instance_list(self, name: str) -> QListWidget:
        widget = QListWidget(self)
        widget.setObjectName(name)
        widget.setSelectionMode(QAbstractItemView.NoSelection)
        widget.setMaximumHeight(140)
        widget.itemClicked.connect(self._on_instance_clicked)
        return widget

    def handle_message(self, message: Any) -> None:
        """Entry point for messages from the host."""
        if not isinstance(message, dict):
            logger.debug("Ignoring non-dict preview message %r", message)
            return
        command = message.get("command")
        if command != "update":
            logger.debug("Ignoring preview message with command %r", command)
            return
        preview = message.get("preview")
        try:
            payload = preview if isinstance(preview, PreviewPayload) else PreviewPayload.from_json(preview)
        except PreviewFormatError as exc:
            self.post_message({"command": "alert", "text": f"Cannot render preview: {exc}"})
            return
        self.render(payload)

    def post_message(self, message: dict) -> None:
        self.messagePosted.emit(message)

    def render(self, payload: PreviewPayload) -> None:
        """Discard everything shown so far and rebuild from ``payload``."""
        self._payload = payload
        self._fill_instance_list(self.today_list, payload.today, show_end_date=False)
        self._fill_instance_list(self.week_list, payload.week, show_end_date=True)
        self._rebuild_overview(payload.overview.categories)
        self._calendar_events = list(payload.calendar)
        self.calendar.refetch_events()
        if self._debug:
            print(
                f"[PREVIEW] rendered today={len(payload.today)} week={len(payload.week)} "
                f"lanes={len(self.lanes)} events={len(self._calendar_events)}"
            )

    def _fill_instance_list(self, widget: QListWidget, instances: list[Instance], *, show_end_date: bool) -> None:
        widget.clear()
        for instance in instances:
            text = instance.name
            if show_end_date:
                end = format_end_date(instance)
                if end:
                    text += f" ({end})"
            item = QListWidgetItem(text)
            item.setToolTip(text)
            item.setData(LINE_ROLE, instance.line_number)
            widget.addItem(item)

    def _rebuild_overview(self, categories: list[Category]) -> None:
        for lane in self.lanes:
            self._overview_layout.removeWidget(lane)
            lane.momentClicked.disconnect(self._post_jump)
            lane.deleteLater()
        self.lanes = []
        for category in categories:
            lane = OverviewLane(category, self._overview_host)
            lane.momentClicked.connect(self._post_jump)
            self._overview_layout.addWidget(lane)
            self.lanes.append(lane)

    def _calendar_events_between(self, start: date, end: date) -> list[CalendarEvent]:
        # The whole event list goes to the view; it keeps what falls in its week.
        return list(self._calendar_events)

    def _on_instance_clicked(self, item: QListWidgetItem) -> None:
        line = item.data(LINE_ROLE)
        if line is None:
            return
        self._post_jump(int(line))

    def _post_jump(self, line: int) -> None:
        self.post_message({"command": "jumpToLine", "line": line})
