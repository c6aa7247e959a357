from __future__ import annotations

import json
from pathlib import Path

import pytest

from mathnb.core.errors import ImportFormatError
from mathnb.notebook.lines import Feedback, Hint, Line
from mathnb.notebook.persistence import (
    SnapshotStore,
    decode_document,
    encode_document,
    export_latex,
    loads_document,
)


def _document() -> dict:
    return {
        "lines": [
            {"id": "p", "content": "Given", "mode": "text", "isProblem": True},
            {"id": "w", "content": "x = 1", "mode": "math", "isProblem": False},
            {"id": "h", "content": "Title", "mode": "header"},
        ],
        "hints": {"w": "think", "ghost": "dropped"},
        "feedback": {
            "w": {"status": "issue", "latex": "\\text{no}"},
            "p": {"status": "ok"},
            "h": {"status": "ok"},
        },
    }


def test_encode_uses_wire_field_names() -> None:
    line = Line(content="x", kind="math", is_problem_context=True, id="a")

    encoded = encode_document(
        [line],
        {"a": Hint(line_id="a", text="h")},
        {"a": Feedback(line_id="a", status="ok")},
    )

    assert encoded == {
        "lines": [{"id": "a", "content": "x", "mode": "math", "isProblem": True}],
        "hints": {"a": "h"},
        "feedback": {"a": {"status": "ok"}},
    }


def test_decode_filters_annotations() -> None:
    payload = decode_document(_document())

    assert [line.id for line in payload.lines] == ["p", "w", "h"]
    assert set(payload.hints) == {"w"}
    assert payload.feedback == {"w": Feedback(line_id="w", status="issue", message="\\text{no}")}


@pytest.mark.parametrize(
    "document",
    [
        {},
        {"lines": []},
        {"lines": "nope"},
        {"lines": [{"content": "x", "mode": "math"}]},
        {"lines": [{"id": "a", "mode": "math"}]},
        {"lines": [{"id": "a", "content": "x", "mode": "chart"}]},
        {"lines": [{"id": "a", "content": "x", "mode": "math"}, {"id": "a", "content": "y", "mode": "math"}]},
        ["not", "an", "object"],
    ],
)
def test_invalid_documents_are_rejected(document) -> None:
    with pytest.raises(ImportFormatError):
        decode_document(document)


def test_invalid_json_is_rejected() -> None:
    with pytest.raises(ImportFormatError):
        loads_document("{not json")


def test_export_latex_flattens_blocks() -> None:
    lines = [
        Line(content="Title", kind="header"),
        Line(content="Here is a note", kind="text"),
        Line(content="", kind="text"),
        Line(content="", kind="break"),
        Line(content="data:image/png;base64,AA", kind="image"),
        Line(content="x^2 = 4", kind="math"),
    ]

    assert export_latex(lines) == "Title\n\n\\text{Here is a note}\n\nx^2 = 4"


def test_snapshot_round_trip(tmp_path: Path) -> None:
    store = SnapshotStore(tmp_path / "nested" / "autosave.json")
    assert store.load() is None

    store.save(_document())

    payload = store.load()
    assert payload is not None
    assert [line.id for line in payload.lines] == ["p", "w", "h"]
    assert not (tmp_path / "nested" / "autosave.json.tmp").exists()

    store.clear()
    assert store.exists() is False


def test_corrupt_snapshot_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "autosave.json"
    path.write_text(json.dumps({"lines": []}), encoding="utf-8")

    assert SnapshotStore(path).load() is None
