"""Section boundaries derived from break lines."""

from __future__ import annotations

from typing import Iterator, List, Sequence, Tuple

from mathnb.notebook.lines import Line

Bounds = Tuple[int, int]


def bounds_containing(lines: Sequence[Line], index: int) -> Bounds:
    """Return the half-open ``[start, end)`` range of the section holding ``index``.

    Break lines belong to no section; asking about one returns the empty
    range ``(index, index)``.
    """
    if not 0 <= index < len(lines):
        raise IndexError(f"Line index {index} out of range (0..{len(lines) - 1})")
    if lines[index].kind == "break":
        return index, index

    start = 0
    for cursor in range(index - 1, -1, -1):
        if lines[cursor].kind == "break":
            start = cursor + 1
            break

    end = len(lines)
    for cursor in range(index + 1, len(lines)):
        if lines[cursor].kind == "break":
            end = cursor
            break

    return start, end


def iter_sections(lines: Sequence[Line]) -> Iterator[Bounds]:
    """Yield the bounds of every section in document order, empty ones included."""
    start = 0
    for cursor, line in enumerate(lines):
        if line.kind == "break":
            yield start, cursor
            start = cursor + 1
    yield start, len(lines)


def section_number(lines: Sequence[Line], index: int) -> int | None:
    """1-indexed section number of ``index``; ``None`` for break lines."""
    if lines[index].kind == "break":
        return None
    return sum(1 for line in lines[:index] if line.kind == "break") + 1


def section_line_ids(lines: Sequence[Line], index: int) -> List[str]:
    start, end = bounds_containing(lines, index)
    return [line.id for line in lines[start:end]]


__all__ = ["Bounds", "bounds_containing", "iter_sections", "section_line_ids", "section_number"]
