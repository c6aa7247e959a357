"""Ordered line store backing a notebook document."""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, Iterator, List, Literal, Sequence

LineKind = Literal["header", "text", "math", "image", "break"]
FeedbackStatus = Literal["ok", "issue"]

LINE_KINDS: tuple[str, ...] = ("header", "text", "math", "image", "break")
# Kinds that never carry problem context and never count as work.
STRUCTURAL_KINDS: frozenset[str] = frozenset({"header", "break"})

LOGGER = logging.getLogger("mathnb.notebook.lines")

_GATHER_TAGS = re.compile(r"\\(?:begin|end)\{gather\}")

ChangeListener = Callable[[str], None]


def generate_line_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Line:
    """One addressable unit of notebook content."""

    content: str = ""
    kind: LineKind = "text"
    is_problem_context: bool = False
    id: str = field(default_factory=generate_line_id)

    @property
    def counts_as_problem(self) -> bool:
        return self.is_problem_context and self.kind not in STRUCTURAL_KINDS

    @property
    def is_work(self) -> bool:
        return not self.is_problem_context and self.kind not in STRUCTURAL_KINDS


@dataclass(frozen=True)
class Feedback:
    line_id: str
    status: FeedbackStatus
    message: str | None = None


@dataclass(frozen=True)
class Hint:
    line_id: str
    text: str


def empty_line() -> Line:
    return Line(content="", kind="text")


def strip_gather(content: str) -> str:
    """Unwrap a ``gather`` environment into newline-separated plain rows."""
    if "\\begin{gather}" not in content:
        return content
    stripped = _GATHER_TAGS.sub("", content)
    return stripped.replace("\\\\", "\n").strip()


def _validate_lines(lines: List[Line]) -> List[Line]:
    """Reject unknown kinds and repeated ids; returns ``lines`` unchanged."""
    seen: set[str] = set()
    for line in lines:
        if line.kind not in LINE_KINDS:
            raise ValueError(f"Unknown line kind {line.kind!r}")
        if line.id in seen:
            raise ValueError(f"Duplicate line id {line.id}")
        seen.add(line.id)
    return lines


class LineStore:
    """Single source of truth for notebook lines and their line-keyed annotations.

    The store never holds zero lines: every mutation that would empty it
    leaves a single empty text line behind. Feedback and hint entries are keyed
    by line id and are dropped together with the line they reference.
    """

    def __init__(self, lines: Iterable[Line] | None = None) -> None:
        self._lines: List[Line] = _validate_lines(list(lines or []))
        if not self._lines:
            self._lines = [empty_line()]
        self.feedback: Dict[str, Feedback] = {}
        self.hints: Dict[str, Hint] = {}
        self._listeners: List[ChangeListener] = []

    # ------------------------------------------------------------------ views

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[Line]:
        return iter(self._lines)

    def __getitem__(self, index: int) -> Line:
        return self._lines[self._check_index(index)]

    @property
    def lines(self) -> Sequence[Line]:
        return tuple(self._lines)

    def find_index(self, line_id: str) -> int | None:
        for index, line in enumerate(self._lines):
            if line.id == line_id:
                return index
        return None

    def has_line(self, line_id: str) -> bool:
        return self.find_index(line_id) is not None

    # -------------------------------------------------------------- listeners

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _notify(self, operation: str) -> None:
        for listener in list(self._listeners):
            listener(operation)

    # -------------------------------------------------------------- mutations

    def insert_after(self, index: int, line: Line) -> Line:
        """Insert ``line`` after ``index``; ``-1`` inserts at the front."""
        if index != -1:
            self._check_index(index)
        _validate_lines([*self._lines, line])
        self._lines.insert(index + 1, line)
        self._notify("insert")
        return line

    def new_line_after(self, index: int) -> Line:
        """Insert an empty line after ``index`` inheriting its kind."""
        current = self[index]
        kind: LineKind = "text" if current.kind in ("header", "image") else current.kind
        return self.insert_after(index, Line(content="", kind=kind))

    def paste_lines(self, index: int, contents: Sequence[str]) -> List[Line]:
        """Replace the line at ``index`` with one line per pasted string."""
        target = self[index]
        if not contents:
            return []
        new_lines = [Line(content=text, kind=target.kind) for text in contents]
        self._lines[index : index + 1] = new_lines
        self._drop_annotations(target.id)
        self._notify("paste")
        return new_lines

    def delete_at(self, index: int) -> Line:
        removed = self._lines.pop(self._check_index(index))
        self._drop_annotations(removed.id)
        if not self._lines:
            self._lines.append(empty_line())
        self._notify("delete")
        return removed

    def update_content(self, index: int, content: str) -> Line:
        line = self[index]
        line.content = content
        self._notify("content")
        return line

    def update_kind(self, index: int, kind: LineKind) -> Line:
        if kind not in LINE_KINDS:
            raise ValueError(f"Unknown line kind {kind!r}")
        line = self[index]
        if kind == "text":
            line.content = strip_gather(line.content)
        line.kind = kind
        if kind in STRUCTURAL_KINDS:
            self.feedback.pop(line.id, None)
        self._notify("kind")
        return line

    def toggle_problem_context(self, index: int) -> Line:
        """Flip the problem/work flag; any verdict on the line becomes stale."""
        line = self[index]
        if line.kind in STRUCTURAL_KINDS:
            LOGGER.debug("Ignoring problem-context toggle on %s line", line.kind, extra={"line_id": line.id})
            return line
        line.is_problem_context = not line.is_problem_context
        self.feedback.pop(line.id, None)
        self._notify("toggle")
        return line

    def replace_all(
        self,
        lines: Iterable[Line],
        *,
        hints: Dict[str, Hint] | None = None,
        feedback: Dict[str, Feedback] | None = None,
    ) -> None:
        """Swap in a whole document; annotations not given are cleared."""
        new_lines = _validate_lines([replace(line) for line in lines]) or [empty_line()]
        known = {line.id for line in new_lines}
        self._lines = new_lines
        self.hints = {key: value for key, value in (hints or {}).items() if key in known}
        self.feedback = {}
        for key, value in (feedback or {}).items():
            index = self.find_index(key)
            if index is not None and self._lines[index].is_work:
                self.feedback[key] = value
        self._notify("replace")

    # ------------------------------------------------------------ annotations

    def set_feedback(self, entry: Feedback) -> bool:
        """Attach a verdict; returns False when the line is gone or is not work."""
        index = self.find_index(entry.line_id)
        if index is None or not self._lines[index].is_work:
            return False
        self.feedback[entry.line_id] = entry
        self._notify("feedback")
        return True

    def clear_feedback(self, line_ids: Iterable[str]) -> None:
        removed = [self.feedback.pop(line_id, None) for line_id in line_ids]
        if any(entry is not None for entry in removed):
            self._notify("feedback")

    def set_hint(self, entry: Hint) -> bool:
        if not self.has_line(entry.line_id):
            return False
        self.hints[entry.line_id] = entry
        self._notify("hint")
        return True

    def clear_hint(self, line_id: str) -> bool:
        if self.hints.pop(line_id, None) is None:
            return False
        self._notify("hint")
        return True

    def _drop_annotations(self, line_id: str) -> None:
        self.feedback.pop(line_id, None)
        self.hints.pop(line_id, None)

    def _check_index(self, index: int) -> int:
        if not 0 <= index < len(self._lines):
            raise IndexError(f"Line index {index} out of range (0..{len(self._lines) - 1})")
        return index


__all__ = [
    "Feedback",
    "FeedbackStatus",
    "Hint",
    "LINE_KINDS",
    "Line",
    "LineKind",
    "LineStore",
    "STRUCTURAL_KINDS",
    "empty_line",
    "generate_line_id",
    "strip_gather",
]
