from __future__ import annotations

from typing import Callable, Optional

from PySide6.QtCore import QObject, Qt, QTimer


class DelayedTask(QObject):
    """Single-slot delayed call on the Qt event loop.

    Scheduling while a call is pending cancels it and starts the delay over, so
    a burst of ``schedule()`` calls runs ``callback`` once, ``delay_ms`` after
    the last one.
    """

    def __init__(self, callback: Callable[[], None], delay_ms: int, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._callback = callback
        self._disposed = False
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        # Coarse timers may fire up to 5% early.
        self._timer.setTimerType(Qt.PreciseTimer)
        self._timer.setInterval(max(0, int(delay_ms)))
        self._timer.timeout.connect(self._run)

    @property
    def delay_ms(self) -> int:
        return self._timer.interval()

    def set_delay(self, delay_ms: int) -> None:
        self._timer.setInterval(max(0, int(delay_ms)))

    def schedule(self) -> None:
        if self._disposed:
            return
        # QTimer.start() on an active timer restarts it.
        self._timer.start()

    def cancel(self) -> None:
        self._timer.stop()

    def is_pending(self) -> bool:
        return self._timer.isActive()

    def fire_now(self) -> None:
        """Run the pending call immediately instead of waiting for the delay."""
        if self._disposed:
            return
        self._timer.stop()
        self._run()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._timer.stop()
        self._timer.timeout.disconnect(self._run)

    def _run(self) -> None:
        if self._disposed:
            return
        self._callback()
