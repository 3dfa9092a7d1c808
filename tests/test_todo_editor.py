"""Tests for the todo editor widget."""
from sibylx.app.links import LinkDefinition
from sibylx.app.ui.folding import FoldRange
from sibylx.app.ui.todo_editor import TodoEditor, _codepoint_offset


def test_codepoint_offset_from_utf16() -> None:
    text = "a\U0001F527b"
    assert _codepoint_offset(text, 0) == 0
    assert _codepoint_offset(text, 1) == 1
    assert _codepoint_offset(text, 3) == 2
    assert _codepoint_offset(text, 99) == 3


def test_edits_bump_version_and_emit(qapp) -> None:
    editor = TodoEditor()
    seen = []
    editor.edited.connect(seen.append)
    editor.setPlainText("abc")
    start = editor.version
    editor.insertPlainText("d")
    assert editor.version == start + 1
    assert seen[-1] == editor.version


def test_folding_does_not_count_as_edit(qapp) -> None:
    editor = TodoEditor()
    editor.setPlainText("\n".join(str(i) for i in range(6)))
    version = editor.version
    editor.folds.set_ranges([FoldRange(1, 3)])
    editor.folds.fold(1)
    editor.folds.unfold_all()
    assert editor.version == version


def test_load_and_save_file(qapp, tmp_path) -> None:
    path = tmp_path / "todo.txt"
    path.write_text("Work:\n[] a\n", encoding="utf-8")
    editor = TodoEditor()
    loaded = []
    editor.fileLoaded.connect(loaded.append)
    editor.load_file(str(path))

    assert editor.toPlainText() == "Work:\n[] a\n"
    assert loaded == [str(path)]
    assert not editor.document().isModified()

    editor.insertPlainText("x")
    editor.save_file()
    assert "x" in path.read_text(encoding="utf-8")


def test_jump_to_line_unfolds_and_moves_cursor(qapp) -> None:
    editor = TodoEditor()
    editor.setPlainText("\n".join(f"line {i}" for i in range(10)))
    editor.folds.set_ranges([FoldRange(2, 6)])
    editor.folds.fold(2)
    assert 4 in editor.folds.hidden_lines()

    assert editor.jump_to_line(4)
    assert editor.current_line() == 4
    assert not editor.folds.is_folded(2)
    assert editor.document().findBlockByNumber(4).isVisible()


def test_jump_to_line_out_of_range(qapp) -> None:
    editor = TodoEditor()
    editor.setPlainText("one\ntwo")
    assert not editor.jump_to_line(5)
    assert not editor.jump_to_line(-1)
    assert editor.current_line() == 0


def test_fold_at_cursor(qapp) -> None:
    editor = TodoEditor()
    editor.setPlainText("\n".join(f"line {i}" for i in range(5)))
    editor.folds.set_ranges([FoldRange(1, 3)])
    editor.jump_to_line(1)
    editor.fold_at_cursor()
    assert editor.folds.is_folded(1)
    editor.toggle_fold_at_cursor()
    assert not editor.folds.is_folded(1)


def test_links_follow_definitions(qapp) -> None:
    editor = TodoEditor()
    editor.setPlainText("[] see T-9")
    assert editor.links() == []
    editor.set_link_definitions([LinkDefinition(r"T-\d+", "https://t.test/$1")])
    (link,) = editor.links()
    assert link.url == "https://t.test/T-9"
    assert (link.start, link.end) == (7, 10)
