"""Tests for the change coordinator: debounce, request ordering and editor lifecycle."""
import time

import pytest

from sibylx.app.client import ServiceError
from sibylx.app.config import SibylConfig
from sibylx.app.coordinator import ChangeCoordinator, InlineRunner, SyncState, ThreadedRunner
from sibylx.app.preview import PreviewPayload
from sibylx.app.ui.decorations import CategoryId, StyleRange
from sibylx.app.ui.folding import FoldRange
from sibylx.app.ui.todo_editor import TodoEditor


class FakeClient:
    def __init__(self) -> None:
        self.format_lines = ["0,3,cat"]
        self.fold_lines = ["0-1"]
        self.sent: list[tuple[str, str]] = []
        self.sent_at: list[float] = []
        self.error = None

    def _call(self, concern: str, text: str):
        self.sent.append((concern, text))
        self.sent_at.append(time.monotonic())
        if self.error is not None:
            raise self.error

    def format_todos(self, text):
        self._call("format", text)
        return list(self.format_lines)

    def fold_todos(self, text):
        self._call("folding", text)
        return list(self.fold_lines)

    def preview_todos(self, text):
        self._call("preview", text)
        return PreviewPayload()

    def calls(self, concern: str) -> list[str]:
        return [text for c, text in self.sent if c == concern]


class ManualRunner:
    """Keeps submitted jobs until the test resolves them, in any order."""

    def __init__(self) -> None:
        self.jobs = []
        self.closed = False

    def submit(self, job, on_success, on_failure) -> None:
        self.jobs.append((job, on_success, on_failure))

    def resolve(self, index: int, result=None) -> None:
        job, on_success, _ = self.jobs[index]
        on_success(job() if result is None else result)

    def shutdown(self) -> None:
        self.closed = True


def _editor(text: str = "abc\ndef\nghi", path: str = "/tmp/project/todo.txt") -> TodoEditor:
    editor = TodoEditor()
    editor.set_file_path(path)
    editor.setPlainText(text)
    return editor


@pytest.fixture
def client():
    return FakeClient()


def test_burst_of_edits_sends_one_request_after_quiet_period(qtbot, client) -> None:
    editor = _editor()
    coordinator = ChangeCoordinator(client, SibylConfig(debounce_ms=250), runner=InlineRunner())
    coordinator.set_active_editor(editor)
    assert coordinator.state == SyncState.PENDING

    for ch in "xyz":
        editor.insertPlainText(ch)
        qtbot.wait(30)
    assert client.sent == []

    qtbot.waitUntil(lambda: len(client.calls("format")) == 1, timeout=2000)
    qtbot.wait(350)
    assert client.calls("format") == [editor.toPlainText()]
    assert len(client.calls("folding")) == 1
    assert client.calls("preview") == []
    assert coordinator.state == SyncState.IDLE
    coordinator.dispose()


def test_each_edit_restarts_the_debounce_window(qtbot, client) -> None:
    editor = _editor()
    coordinator = ChangeCoordinator(client, SibylConfig(debounce_ms=250), runner=InlineRunner())
    coordinator.set_active_editor(editor)

    started = time.monotonic()
    for index, ch in enumerate("xyz"):
        if index:
            qtbot.wait(50)
        editor.insertPlainText(ch)
    last_edit = time.monotonic()

    # Past the window measured from the first edit, short of the one from the last.
    qtbot.wait(max(0, int((started + 0.3 - time.monotonic()) * 1000)))
    assert client.sent == []

    qtbot.waitUntil(lambda: len(client.calls("format")) == 1, timeout=2000)
    assert client.sent_at[0] - last_edit >= 0.245
    qtbot.wait(100)
    assert client.calls("format") == [editor.toPlainText()]
    assert len(client.calls("folding")) == 1
    coordinator.dispose()


def test_preview_request_takes_over_pending_cycle(qapp, client) -> None:
    runner = ManualRunner()
    editor = _editor()
    coordinator = ChangeCoordinator(client, SibylConfig(debounce_ms=10_000), runner=runner)
    coordinator.set_active_editor(editor)
    assert coordinator.state == SyncState.PENDING

    coordinator.request_preview()
    assert coordinator.state == SyncState.REQUESTING
    assert not coordinator._debounce.is_pending()
    assert len(runner.jobs) == 3

    for index in range(3):
        runner.resolve(index)
    assert sorted(concern for concern, _ in client.sent) == ["folding", "format", "preview"]
    assert editor.folds.ranges() == [FoldRange(0, 1)]
    assert coordinator.state == SyncState.IDLE
    coordinator.dispose()


def test_results_are_applied_to_the_editor(qapp, client) -> None:
    editor = _editor()
    coordinator = ChangeCoordinator(client, SibylConfig(), runner=InlineRunner())
    coordinator.set_active_editor(editor)
    coordinator.request_refresh()

    assert editor.decorations.ranges(CategoryId.CATEGORY_LABEL) == [StyleRange(0, 3, CategoryId.CATEGORY_LABEL)]
    assert editor.folds.ranges() == [FoldRange(0, 1)]
    assert coordinator.state == SyncState.IDLE
    coordinator.dispose()


def test_older_response_arriving_late_is_discarded(qapp, client) -> None:
    runner = ManualRunner()
    editor = _editor()
    coordinator = ChangeCoordinator(client, SibylConfig(), runner=runner)
    coordinator.set_active_editor(editor)
    coordinator.request_refresh()  # jobs 0 (format), 1 (folding)
    coordinator.request_refresh()  # jobs 2 (format), 3 (folding)

    runner.resolve(2, ["0,3,cat"])
    runner.resolve(0, ["4,7,mom"])

    assert editor.decorations.ranges(CategoryId.CATEGORY_LABEL) == [StyleRange(0, 3, CategoryId.CATEGORY_LABEL)]
    assert editor.decorations.ranges(CategoryId.ITEM) == []
    assert coordinator.state == SyncState.REQUESTING

    runner.resolve(3, ["1-2"])
    runner.resolve(1, ["0-2"])
    assert editor.folds.ranges() == [FoldRange(1, 2)]
    assert coordinator.state == SyncState.IDLE
    coordinator.dispose()


def test_edit_while_requesting_schedules_another_cycle(qtbot, client) -> None:
    runner = ManualRunner()
    editor = _editor()
    coordinator = ChangeCoordinator(client, SibylConfig(debounce_ms=20), runner=runner)
    coordinator.set_active_editor(editor)
    coordinator.request_refresh()
    assert coordinator.state == SyncState.REQUESTING

    editor.insertPlainText("!")
    assert coordinator.state == SyncState.REQUESTING
    assert len(runner.jobs) == 2

    runner.resolve(0)
    runner.resolve(1)
    assert coordinator.state == SyncState.PENDING

    qtbot.waitUntil(lambda: len(runner.jobs) == 4, timeout=1000)
    assert runner.jobs[2][0]() == ["0,3,cat"]
    assert client.calls("format")[-1] == editor.toPlainText()
    coordinator.dispose()


def test_stale_version_result_drops_offsets_past_the_end(qapp, client) -> None:
    runner = ManualRunner()
    editor = _editor("Work:\n[] a")
    coordinator = ChangeCoordinator(client, SibylConfig(), runner=runner)
    coordinator.set_active_editor(editor)
    coordinator.request_refresh()

    editor.setPlainText("Wo")
    runner.resolve(0, ["0,5,cat", "0,2,cat"])

    assert editor.decorations.ranges(CategoryId.CATEGORY_LABEL) == [StyleRange(0, 2, CategoryId.CATEGORY_LABEL)]
    runner.resolve(1, [])
    assert coordinator.state == SyncState.PENDING
    coordinator.dispose()


def test_non_todo_file_is_ignored(qtbot, client) -> None:
    runner = ManualRunner()
    editor = _editor(path="/tmp/project/notes.txt")
    coordinator = ChangeCoordinator(client, SibylConfig(debounce_ms=10), runner=runner)
    coordinator.set_active_editor(editor)

    editor.insertPlainText("edit")
    qtbot.wait(60)
    assert runner.jobs == []
    assert coordinator.active_editor is None
    assert coordinator.state == SyncState.IDLE
    coordinator.dispose()


def test_deactivation_clears_decorations_and_folds(qapp, client) -> None:
    editor = _editor()
    coordinator = ChangeCoordinator(client, SibylConfig(), runner=InlineRunner())
    coordinator.set_active_editor(editor)
    coordinator.request_refresh()
    assert editor.decorations.all_ranges()

    coordinator.set_active_editor(None)
    assert editor.decorations.all_ranges() == []
    assert editor.folds.ranges() == []
    assert editor.extraSelections() == []

    editor.insertPlainText("more")
    assert coordinator.state == SyncState.IDLE
    coordinator.dispose()


def test_switching_editor_discards_results_for_previous_one(qapp, client) -> None:
    runner = ManualRunner()
    first = _editor()
    second = _editor("xyz", path="/tmp/other/todo.txt")
    coordinator = ChangeCoordinator(client, SibylConfig(), runner=runner)
    coordinator.set_active_editor(first)
    coordinator.request_refresh()

    coordinator.set_active_editor(second)
    runner.resolve(0)
    runner.resolve(1)

    assert first.decorations.all_ranges() == []
    assert second.decorations.all_ranges() == []
    assert coordinator.state == SyncState.PENDING
    coordinator.dispose()


def test_service_error_keeps_previous_state(qapp, client) -> None:
    failures = []
    editor = _editor()
    coordinator = ChangeCoordinator(client, SibylConfig(), runner=InlineRunner())
    coordinator.serviceFailed.connect(lambda concern, message: failures.append((concern, message)))
    coordinator.set_active_editor(editor)
    coordinator.request_refresh()
    before = editor.decorations.all_ranges()

    client.error = ServiceError("/format", status_code=500)
    coordinator.request_refresh()

    assert editor.decorations.all_ranges() == before
    assert editor.folds.ranges() == [FoldRange(0, 1)]
    assert ("format", "HTTP 500") in failures
    assert ("folding", "HTTP 500") in failures
    assert coordinator.state == SyncState.IDLE
    coordinator.dispose()


def test_preview_is_requested_only_when_enabled(qapp, client) -> None:
    payloads = []
    editor = _editor()
    coordinator = ChangeCoordinator(client, SibylConfig(), runner=InlineRunner())
    coordinator.previewReady.connect(payloads.append)
    coordinator.set_active_editor(editor)

    coordinator.request_refresh()
    assert client.calls("preview") == []

    coordinator.set_preview_enabled(True)
    coordinator.request_refresh()
    assert len(client.calls("preview")) == 1
    assert isinstance(payloads[0], PreviewPayload)

    coordinator.request_preview()
    assert len(client.calls("preview")) == 2
    assert len(client.calls("format")) == 2
    coordinator.dispose()


def test_dispose_is_idempotent_and_silences_late_results(qtbot, client) -> None:
    runner = ManualRunner()
    editor = _editor()
    coordinator = ChangeCoordinator(client, SibylConfig(debounce_ms=10), runner=runner)
    coordinator.set_active_editor(editor)
    coordinator.request_refresh()

    coordinator.dispose()
    coordinator.dispose()
    assert runner.closed
    assert editor.decorations.all_ranges() == []

    runner.resolve(0)
    editor.insertPlainText("late")
    qtbot.wait(50)
    assert editor.decorations.all_ranges() == []
    assert len(runner.jobs) == 2


def test_threaded_runner_delivers_results_on_gui_thread(qtbot, client) -> None:
    editor = _editor()
    coordinator = ChangeCoordinator(client, SibylConfig(), runner=ThreadedRunner())
    coordinator.set_active_editor(editor)
    with qtbot.waitSignal(coordinator.cycleFinished, timeout=3000):
        coordinator.request_refresh()

    assert editor.decorations.ranges(CategoryId.CATEGORY_LABEL)
    assert editor.folds.ranges() == [FoldRange(0, 1)]
    coordinator.dispose()
