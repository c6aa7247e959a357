"""Persisted document format: JSON import/export, autosave snapshots, LaTeX export."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

from mathnb.core.errors import ImportFormatError
from mathnb.notebook.lines import LINE_KINDS, Feedback, Hint, Line

LOGGER = logging.getLogger("mathnb.notebook.persistence")

FEEDBACK_STATUSES = ("ok", "issue")


@dataclass
class DocumentPayload:
    """Decoded document ready to be handed to ``LineStore.replace_all``."""

    lines: List[Line]
    hints: Dict[str, Hint] = field(default_factory=dict)
    feedback: Dict[str, Feedback] = field(default_factory=dict)


def line_to_dict(line: Line) -> Dict[str, Any]:
    return {
        "id": line.id,
        "content": line.content,
        "mode": line.kind,
        "isProblem": line.is_problem_context,
    }


def feedback_to_dict(entry: Feedback) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"status": entry.status}
    if entry.message is not None:
        payload["latex"] = entry.message
    return payload


def encode_document(
    lines: Sequence[Line],
    hints: Mapping[str, Hint] | None = None,
    feedback: Mapping[str, Feedback] | None = None,
) -> Dict[str, Any]:
    return {
        "lines": [line_to_dict(line) for line in lines],
        "hints": {line_id: hint.text for line_id, hint in (hints or {}).items()},
        "feedback": {line_id: feedback_to_dict(entry) for line_id, entry in (feedback or {}).items()},
    }


def dumps_document(
    lines: Sequence[Line],
    hints: Mapping[str, Hint] | None = None,
    feedback: Mapping[str, Feedback] | None = None,
) -> str:
    return json.dumps(encode_document(lines, hints, feedback), indent=2, ensure_ascii=False)


def _decode_line(raw: Any, position: int) -> Line:
    if not isinstance(raw, dict):
        raise ImportFormatError(f"Line {position} is not an object")
    line_id = raw.get("id")
    content = raw.get("content")
    mode = raw.get("mode")
    if not isinstance(line_id, str):
        raise ImportFormatError(f"Line {position} is missing a string id")
    if not isinstance(content, str):
        raise ImportFormatError(f"Line {position} is missing string content")
    if mode not in LINE_KINDS:
        raise ImportFormatError(f"Line {position} has unsupported mode {mode!r}")
    # Documents saved before problem context existed have no isProblem field.
    is_problem = raw.get("isProblem", False)
    return Line(id=line_id, content=content, kind=mode, is_problem_context=bool(is_problem))


def decode_lines(raw_lines: Any) -> List[Line]:
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ImportFormatError("Document must contain a non-empty 'lines' list")
    lines = [_decode_line(raw, position) for position, raw in enumerate(raw_lines)]
    seen: set[str] = set()
    for line in lines:
        if line.id in seen:
            raise ImportFormatError(f"Duplicate line id {line.id}")
        seen.add(line.id)
    return lines


def _decode_hints(raw: Any, known_ids: set[str]) -> Dict[str, Hint]:
    if not isinstance(raw, dict):
        return {}
    return {
        line_id: Hint(line_id=line_id, text=text)
        for line_id, text in raw.items()
        if line_id in known_ids and isinstance(text, str)
    }


def _decode_feedback(raw: Any, work_ids: set[str]) -> Dict[str, Feedback]:
    if not isinstance(raw, dict):
        return {}
    entries: Dict[str, Feedback] = {}
    for line_id, value in raw.items():
        if line_id not in work_ids or not isinstance(value, dict):
            continue
        status = value.get("status")
        if status not in FEEDBACK_STATUSES:
            continue
        message = value.get("latex")
        entries[line_id] = Feedback(
            line_id=line_id,
            status=status,
            message=message if isinstance(message, str) else None,
        )
    return entries


def decode_document(data: Any) -> DocumentPayload:
    """Validate a parsed document; the whole import fails on any bad line."""
    if not isinstance(data, dict):
        raise ImportFormatError("Document root must be an object")
    lines = decode_lines(data.get("lines"))
    known_ids = {line.id for line in lines}
    work_ids = {line.id for line in lines if line.is_work}
    return DocumentPayload(
        lines=lines,
        hints=_decode_hints(data.get("hints"), known_ids),
        feedback=_decode_feedback(data.get("feedback"), work_ids),
    )


def loads_document(text: str) -> DocumentPayload:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ImportFormatError(f"Invalid JSON: {exc}") from exc
    return decode_document(data)


def export_latex(lines: Sequence[Line]) -> str:
    """Flatten the notebook into LaTeX blocks separated by blank lines."""
    blocks: List[str] = []
    for line in lines:
        if line.kind in ("break", "image"):
            continue
        if line.kind == "text":
            block = f"\\text{{{line.content}}}" if line.content else ""
        else:
            block = line.content
        if block.strip():
            blocks.append(block)
    return "\n\n".join(blocks)


class SnapshotStore:
    """Autosave target standing in for browser local storage."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def save(self, document: Mapping[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(document, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self.path)

    def load(self) -> DocumentPayload | None:
        """Return the saved document, or ``None`` when missing or unreadable."""
        if not self.path.exists():
            return None
        try:
            return loads_document(self.path.read_text(encoding="utf-8"))
        except (ImportFormatError, OSError) as exc:
            LOGGER.warning("Ignoring invalid autosave snapshot", extra={"path": str(self.path), "error": str(exc)})
            return None

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


__all__ = [
    "DocumentPayload",
    "SnapshotStore",
    "decode_document",
    "decode_lines",
    "dumps_document",
    "encode_document",
    "export_latex",
    "line_to_dict",
    "loads_document",
]
