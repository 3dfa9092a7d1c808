from __future__ import annotations

from datetime import date, timedelta
from typing import Callable, Optional

from PySide6.QtCore import QDate, QLocale, Qt
from PySide6.QtWidgets import (
    QAbstractItemView,
    QHeaderView,
    QLabel,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from sibylx.app.preview import CalendarEvent

EventSource = Callable[[date, date], list[CalendarEvent]]

EVENT_ROLE = Qt.UserRole + 1


def start_of_week(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


class WeekCalendarView(QWidget):
    """One-week grid (Monday first) that pulls its events from a source callback.

    Events are never pushed in; ``refetch_events()`` asks the source again and
    redraws the grid.
    """

    def __init__(self, parent=None, *, today: Optional[Callable[[], date]] = None) -> None:
        super().__init__(parent)
        self._today = today or date.today
        self._source: Optional[EventSource] = None
        self._events: list[CalendarEvent] = []
        self._week_start = start_of_week(self._today())

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        self.title_label = QLabel()
        self.title_label.setObjectName("calendarTitle")
        layout.addWidget(self.title_label)
        self.table = QTableWidget(0, 7, self)
        self.table.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self.table.setSelectionMode(QAbstractItemView.NoSelection)
        self.table.verticalHeader().setVisible(False)
        self.table.horizontalHeader().setSectionResizeMode(QHeaderView.Stretch)
        self.table.setMaximumHeight(150)
        layout.addWidget(self.table)
        self._update_headers()

    @property
    def week_start(self) -> date:
        return self._week_start

    @property
    def week_end(self) -> date:
        """Exclusive end of the shown week."""
        return self._week_start + timedelta(days=7)

    def set_event_source(self, source: Optional[EventSource]) -> None:
        self._source = source

    def events(self) -> list[CalendarEvent]:
        return list(self._events)

    def show_week_of(self, day: date) -> None:
        self._week_start = start_of_week(day)
        self._update_headers()
        self.refetch_events()

    def refetch_events(self) -> None:
        fetched = self._source(self._week_start, self.week_end) if self._source else []
        self._events = [event for event in fetched if self._day_columns(event)]
        self._populate()

    def events_on(self, day: date) -> list[CalendarEvent]:
        column = (day - self._week_start).days
        return [event for event in self._events if column in self._day_columns(event)]

    def _day_columns(self, event: CalendarEvent) -> list[int]:
        """Columns covered by ``event``; its end date is exclusive."""
        start = event.start
        if start is None:
            return []
        end = event.end
        first = (start.date() - self._week_start).days
        last = (end.date() - self._week_start).days - 1 if end is not None else first
        last = max(first, last)
        return [column for column in range(max(first, 0), min(last, 6) + 1)]

    def _update_headers(self) -> None:
        locale = QLocale()
        labels = []
        for offset in range(7):
            day = self._week_start + timedelta(days=offset)
            qdate = QDate(day.year, day.month, day.day)
            labels.append(f"{locale.dayName(qdate.dayOfWeek(), QLocale.ShortFormat)} {day.day}")
        self.table.setHorizontalHeaderLabels(labels)
        last = self._week_start + timedelta(days=6)
        self.title_label.setText(f"{self._week_start.isoformat()} – {last.isoformat()}")

    def _populate(self) -> None:
        # Events keep the order the service sent them in (highest priority first).
        per_day: list[list[CalendarEvent]] = [[] for _ in range(7)]
        for event in self._events:
            for column in self._day_columns(event):
                per_day[column].append(event)
        self.table.clearContents()
        self.table.setRowCount(max((len(events) for events in per_day), default=0))
        for column, events in enumerate(per_day):
            for row, event in enumerate(events):
                item = QTableWidgetItem(self._event_label(event))
                item.setToolTip(event.title)
                item.setData(EVENT_ROLE, event.raw)
                self.table.setItem(row, column, item)

    @staticmethod
    def _event_label(event: CalendarEvent) -> str:
        start = event.start
        if start is not None and (start.hour or start.minute):
            return f"{start:%H:%M} {event.title}"
        return event.title
