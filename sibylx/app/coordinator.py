"""Keeps the active todo editor's annotations in sync with the analysis service.

Per watched editor the coordinator moves through ``idle -> pending`` (debounce
timer running) ``-> requesting`` (service calls in flight) ``-> idle``. Edits
while pending restart the debounce window; edits while requesting leave the
calls alone and queue another cycle once they have all resolved.

All state lives on the Qt event loop. Service calls run on worker threads and
report back through queued signals, so results are applied on the GUI thread
in arrival order; each request is tagged with a sequence number and a result
older than the newest one already applied for its concern is dropped.
"""

from __future__ import annotations

import itertools
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from PySide6.QtCore import QObject, QThread, Signal, Slot

from sibylx.app.client import AnalysisClient, ServiceError
from sibylx.app.config import SibylConfig
from sibylx.app.scheduler import DelayedTask
from sibylx.app.ui.decorations import parse_format_lines
from sibylx.app.ui.folding import parse_fold_lines

logger = logging.getLogger(__name__)

CONCERN_FORMAT = "format"
CONCERN_FOLDING = "folding"
CONCERN_PREVIEW = "preview"
CONCERNS = (CONCERN_FORMAT, CONCERN_FOLDING, CONCERN_PREVIEW)


def _debug_enabled(var_name: str) -> bool:
    return os.getenv(var_name, "0") not in ("0", "false", "False", "", None)


class SyncState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    REQUESTING = "requesting"


@dataclass(frozen=True)
class RequestTag:
    sequence: int
    version: int
    editor: Any


class RequestRunner(Protocol):
    def submit(
        self,
        job: Callable[[], Any],
        on_success: Callable[[Any], None],
        on_failure: Callable[[Exception], None],
    ) -> None: ...

    def shutdown(self) -> None: ...


class InlineRunner:
    """Runs jobs synchronously on the calling thread."""

    def submit(self, job, on_success, on_failure) -> None:
        try:
            result = job()
        except ServiceError as exc:
            on_failure(exc)
            return
        on_success(result)

    def shutdown(self) -> None:
        pass


class RequestWorker(QThread):
    done = Signal(int, bool, object)  # job id, succeeded, result or exception

    def __init__(self, job_id: int, job: Callable[[], Any], parent=None) -> None:
        super().__init__(parent)
        self.job_id = job_id
        self._job = job

    def run(self) -> None:
        try:
            result = self._job()
        except ServiceError as exc:
            self.done.emit(self.job_id, False, exc)
            return
        except Exception as exc:
            logger.exception("Analysis request crashed")
            self.done.emit(self.job_id, False, exc)
            return
        self.done.emit(self.job_id, True, result)


class ThreadedRunner(QObject):
    """Runs each job on its own worker thread and calls back on the GUI thread."""

    def __init__(self, parent=None) -> None:
        super().__init__(parent)
        self._ids = itertools.count(1)
        self._callbacks: dict[int, tuple[Callable, Callable]] = {}
        self._workers: dict[int, RequestWorker] = {}
        self._closed = False

    def submit(self, job, on_success, on_failure) -> None:
        if self._closed:
            return
        job_id = next(self._ids)
        worker = RequestWorker(job_id, job)
        worker.done.connect(self._on_done)
        worker.finished.connect(self._on_worker_finished)
        self._callbacks[job_id] = (on_success, on_failure)
        self._workers[job_id] = worker
        worker.start()

    @Slot(int, bool, object)
    def _on_done(self, job_id: int, ok: bool, value: object) -> None:
        callbacks = self._callbacks.pop(job_id, None)
        if callbacks is None or self._closed:
            return
        on_success, on_failure = callbacks
        if ok:
            on_success(value)
        else:
            on_failure(value)

    @Slot()
    def _on_worker_finished(self) -> None:
        worker = self.sender()
        if not isinstance(worker, RequestWorker):
            return
        worker.wait()
        self._workers.pop(worker.job_id, None)

    def shutdown(self, wait_ms: int = 5000) -> None:
        if self._closed:
            return
        self._closed = True
        self._callbacks.clear()
        workers, self._workers = self._workers, {}
        for worker in workers.values():
            try:
                worker.done.disconnect(self._on_done)
                worker.finished.disconnect(self._on_worker_finished)
            except (RuntimeError, TypeError):
                pass
            if not worker.wait(wait_ms):
                logger.warning("Analysis request still running at shutdown")


class ChangeCoordinator(QObject):
    stateChanged = Signal(str)
    previewReady = Signal(object)
    serviceFailed = Signal(str, str)  # concern, message
    cycleFinished = Signal(int)  # document version the cycle was issued for

    def __init__(
        self,
        client: AnalysisClient,
        cfg: SibylConfig,
        *,
        runner: Optional[RequestRunner] = None,
        parent=None,
    ) -> None:
        super().__init__(parent)
        self._client = client
        self._config = cfg
        self._runner = runner if runner is not None else ThreadedRunner(self)
        self._debounce = DelayedTask(self._on_debounce_elapsed, cfg.debounce_ms, self)
        self._editor = None
        self._state = SyncState.IDLE
        self._dirty = False
        self._preview_enabled = False
        self._sequence = 0
        self._applied = {concern: 0 for concern in CONCERNS}
        self._outstanding: dict[int, int] = {}
        self._disposed = False
        self._debug = _debug_enabled("SIBYLX_DEBUG_SYNC")

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def active_editor(self):
        return self._editor

    @property
    def runner(self) -> RequestRunner:
        return self._runner

    @property
    def config(self) -> SibylConfig:
        return self._config

    def is_watched(self, editor) -> bool:
        return editor is not None and self._config.is_todo_file(editor.file_path)

    def set_active_editor(self, editor) -> None:
        """Watch ``editor`` if it shows a todo file; stop watching the previous one.

        The previous editor's decorations and folds are cleared explicitly.
        """
        if self._disposed:
            return
        self._debounce.cancel()
        self._release_editor()
        self._dirty = False
        if not self.is_watched(editor):
            self._set_state(SyncState.IDLE if not self._outstanding else SyncState.REQUESTING)
            return
        self._editor = editor
        editor.edited.connect(self._on_edited)
        self.schedule_update()

    def set_preview_enabled(self, enabled: bool) -> None:
        self._preview_enabled = bool(enabled)

    def schedule_update(self) -> None:
        if self._disposed or self._editor is None:
            return
        if self._state == SyncState.REQUESTING:
            self._dirty = True
            return
        self._debounce.schedule()
        self._set_state(SyncState.PENDING)

    def request_refresh(self) -> None:
        """Dispatch a full cycle now, without waiting for the debounce window."""
        if self._disposed or self._editor is None:
            return
        self._debounce.cancel()
        self._dispatch(self._cycle_concerns())

    def request_preview(self) -> None:
        """Dispatch a preview request now.

        A debounced cycle still pending is sent along with it rather than left armed.
        """
        if self._disposed or self._editor is None:
            return
        if self._debounce.is_pending():
            self._debounce.cancel()
            self._dispatch(CONCERNS)
            return
        self._dispatch((CONCERN_PREVIEW,))

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        try:
            self._debounce.dispose()
        finally:
            try:
                self._release_editor()
            finally:
                self._outstanding.clear()
                self._runner.shutdown()
                self._set_state(SyncState.IDLE)

    def _cycle_concerns(self) -> tuple[str, ...]:
        if self._preview_enabled:
            return CONCERNS
        return (CONCERN_FORMAT, CONCERN_FOLDING)

    def _release_editor(self) -> None:
        editor, self._editor = self._editor, None
        if editor is None:
            return
        try:
            editor.edited.disconnect(self._on_edited)
        except (RuntimeError, TypeError):
            pass
        try:
            editor.decorations.clear()
            editor.folds.clear()
        except RuntimeError:
            # Editor widget already destroyed.
            pass

    def _set_state(self, state: SyncState) -> None:
        if state == self._state:
            return
        self._state = state
        if self._debug:
            print(f"[SYNC] state -> {state.value}")
        self.stateChanged.emit(state.value)

    def _on_edited(self, version: int) -> None:
        self.schedule_update()

    def _on_debounce_elapsed(self) -> None:
        self._dispatch(self._cycle_concerns())

    def _dispatch(self, concerns: tuple[str, ...]) -> None:
        editor = self._editor
        if editor is None:
            self._set_state(SyncState.IDLE)
            return
        text = editor.toPlainText()
        self._sequence += 1
        tag = RequestTag(self._sequence, editor.version, editor)
        self._outstanding[tag.sequence] = len(concerns)
        self._dirty = False
        self._set_state(SyncState.REQUESTING)
        if self._debug:
            print(f"[SYNC] dispatch seq={tag.sequence} version={tag.version} concerns={concerns}")
        for concern in concerns:
            self._runner.submit(
                self._job_for(concern, text),
                lambda result, c=concern: self._on_result(tag, c, result),
                lambda exc, c=concern: self._on_failure(tag, c, exc),
            )

    def _job_for(self, concern: str, text: str) -> Callable[[], Any]:
        if concern == CONCERN_FORMAT:
            return lambda: self._client.format_todos(text)
        if concern == CONCERN_FOLDING:
            return lambda: self._client.fold_todos(text)
        return lambda: self._client.preview_todos(text)

    def _is_current(self, tag: RequestTag, concern: str) -> bool:
        if self._disposed or tag.editor is not self._editor:
            return False
        return tag.sequence > self._applied[concern]

    def _on_result(self, tag: RequestTag, concern: str, result: Any) -> None:
        try:
            if not self._is_current(tag, concern):
                logger.debug("Dropping stale %s result (seq=%s)", concern, tag.sequence)
                return
            self._applied[concern] = tag.sequence
            self._apply(concern, result)
        finally:
            self._settle(tag)

    def _apply(self, concern: str, result: Any) -> None:
        editor = self._editor
        if concern == CONCERN_FORMAT:
            ranges = parse_format_lines(result, len(editor.toPlainText()))
            editor.decorations.apply(ranges)
        elif concern == CONCERN_FOLDING:
            editor.folds.set_ranges(parse_fold_lines(result))
        else:
            self.previewReady.emit(result)

    def _on_failure(self, tag: RequestTag, concern: str, exc: Exception) -> None:
        try:
            if self._disposed or tag.editor is not self._editor:
                return
            logger.warning("Analysis request '%s' failed: %s", concern, exc)
            self.serviceFailed.emit(concern, str(exc))
        finally:
            self._settle(tag)

    def _settle(self, tag: RequestTag) -> None:
        remaining = self._outstanding.get(tag.sequence)
        if remaining is None:
            return
        if remaining > 1:
            self._outstanding[tag.sequence] = remaining - 1
            return
        del self._outstanding[tag.sequence]
        self.cycleFinished.emit(tag.version)
        if self._outstanding or self._disposed:
            return
        if self._dirty and self._editor is not None:
            self._dirty = False
            self._set_state(SyncState.IDLE)
            self.schedule_update()
        else:
            self._set_state(SyncState.IDLE)
