"""Section-scoped context extraction for reasoning checks and hints."""

from __future__ import annotations

from typing import Dict, List, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field

from mathnb.core.errors import InvalidRequestError
from mathnb.notebook.lines import Feedback, Hint, Line, LineKind
from mathnb.notebook.sections import bounds_containing


class ProblemLine(BaseModel):
    """A given/axiomatic line as sent to the reasoning service."""

    model_config = ConfigDict(frozen=True)

    kind: LineKind
    content: str


class WorkLine(BaseModel):
    """A student reasoning step; its 1-indexed position is the step number."""

    model_config = ConfigDict(frozen=True)

    kind: LineKind
    content: str
    line_id: str


class ExtractedContext(BaseModel):
    """Problem and work lines visible to a target line, plus their annotations."""

    bounds: tuple[int, int]
    target_line_id: str
    section_line_ids: List[str] = Field(default_factory=list)
    problem_lines: List[ProblemLine] = Field(default_factory=list)
    work_lines: List[WorkLine] = Field(default_factory=list)
    hints: Dict[str, Hint] = Field(default_factory=dict)
    feedback: Dict[str, Feedback] = Field(default_factory=dict)

    def hint_texts(self) -> Dict[str, str]:
        return {line_id: hint.text for line_id, hint in self.hints.items()}

    def line_id_for_step(self, step_index: int) -> str | None:
        """Map a 1-indexed step number back to its line id."""
        if 1 <= step_index <= len(self.work_lines):
            return self.work_lines[step_index - 1].line_id
        return None


def extract(
    lines: Sequence[Line],
    up_to_index: int,
    *,
    hints: Mapping[str, Hint] | None = None,
    feedback: Mapping[str, Feedback] | None = None,
) -> ExtractedContext:
    """Collect the problem and work lines from the section start through ``up_to_index``.

    Lines after ``up_to_index`` are never included, even when they share the
    section: only what the student has written so far is considered.
    """
    if not 0 <= up_to_index < len(lines):
        raise IndexError(f"Line index {up_to_index} out of range (0..{len(lines) - 1})")
    target = lines[up_to_index]
    if target.kind == "break":
        raise InvalidRequestError("Cannot extract context for a section break line")

    start, end = bounds_containing(lines, up_to_index)
    window = lines[start : up_to_index + 1]
    hints = hints or {}
    feedback = feedback or {}

    problem_lines = [ProblemLine(kind=line.kind, content=line.content) for line in window if line.counts_as_problem]
    work_lines = [
        WorkLine(kind=line.kind, content=line.content, line_id=line.id) for line in window if line.is_work
    ]
    window_ids = [line.id for line in window]

    return ExtractedContext(
        bounds=(start, end),
        target_line_id=target.id,
        section_line_ids=[line.id for line in lines[start:end]],
        problem_lines=problem_lines,
        work_lines=work_lines,
        hints={line_id: hints[line_id] for line_id in window_ids if line_id in hints},
        feedback={line_id: feedback[line_id] for line_id in window_ids if line_id in feedback},
    )


__all__ = ["ExtractedContext", "ProblemLine", "WorkLine", "extract"]
