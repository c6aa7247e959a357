from __future__ import annotations

import random

import pytest

from mathnb.notebook.lines import LINE_KINDS, Line
from mathnb.notebook.sections import bounds_containing, iter_sections, section_line_ids, section_number


def _doc(kinds: str) -> list[Line]:
    mapping = {"h": "header", "t": "text", "m": "math", "i": "image", "b": "break"}
    return [Line(content=f"line {index}", kind=mapping[code]) for index, code in enumerate(kinds)]


def test_bounds_without_breaks_cover_whole_document() -> None:
    lines = _doc("htmm")
    assert bounds_containing(lines, 2) == (0, 4)


def test_bounds_stop_at_surrounding_breaks() -> None:
    lines = _doc("tmbmmbt")
    assert bounds_containing(lines, 0) == (0, 2)
    assert bounds_containing(lines, 3) == (3, 5)
    assert bounds_containing(lines, 4) == (3, 5)
    assert bounds_containing(lines, 6) == (6, 7)


def test_break_line_has_empty_bounds() -> None:
    lines = _doc("tbt")
    assert bounds_containing(lines, 1) == (1, 1)
    assert section_number(lines, 1) is None


def test_iter_sections_includes_empty_sections() -> None:
    lines = _doc("bbt")
    assert list(iter_sections(lines)) == [(0, 0), (1, 1), (2, 3)]


def test_section_numbers_are_one_indexed() -> None:
    lines = _doc("tbmbm")
    assert [section_number(lines, index) for index in range(len(lines))] == [1, None, 2, None, 3]


def test_section_line_ids_match_bounds() -> None:
    lines = _doc("tmbm")
    assert section_line_ids(lines, 1) == [lines[0].id, lines[1].id]


def test_out_of_range_index_raises() -> None:
    with pytest.raises(IndexError):
        bounds_containing(_doc("t"), 5)


@pytest.mark.parametrize("seed", range(25))
def test_every_non_break_line_belongs_to_exactly_one_section(seed: int) -> None:
    rng = random.Random(seed)
    lines = [Line(kind=rng.choice(LINE_KINDS)) for _ in range(rng.randint(1, 30))]
    sections = list(iter_sections(lines))

    for index, line in enumerate(lines):
        containing = [bounds for bounds in sections if bounds[0] <= index < bounds[1]]
        if line.kind == "break":
            assert containing == []
            continue
        assert len(containing) == 1
        assert bounds_containing(lines, index) == containing[0]
        start, end = containing[0]
        assert all(entry.kind != "break" for entry in lines[start:end])
