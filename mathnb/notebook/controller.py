"""Notebook controller: owns the document and reconciles model responses onto lines.

Check and hint requests are split into a synchronous *prepare* step that
captures line ids at call start, and an *apply* step that writes the result
back. The document stays editable in between; results addressed to lines that
no longer exist are dropped instead of failing the whole response.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence

from mathnb.core.config import NotebookConfig
from mathnb.core.errors import ImportFormatError, InvalidRequestError, NotebookError
from mathnb.notebook import persistence
from mathnb.notebook.context import ExtractedContext, extract
from mathnb.notebook.lines import Feedback, Hint, Line, LineKind, LineStore
from mathnb.notebook.persistence import SnapshotStore
from mathnb.notebook.templates import Template
from mathnb.reasoning.client import CheckResult, HintResult, ReasoningServiceClient

LOGGER = logging.getLogger("mathnb.notebook.controller")


class CheckState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    SETTLED_OK = "settled-ok"
    SETTLED_ISSUE = "settled-issue"
    FAILED = "failed"


StateListener = Callable[[str, CheckState], None]


@dataclass(frozen=True)
class PendingRequest:
    """Context captured when a check or hint request starts."""

    target_line_id: str
    context: ExtractedContext


def starter_lines() -> List[Line]:
    return [
        Line(content="My Math Notes", kind="header"),
        Line(content="Here is a note", kind="text"),
        Line(content="\\begin{gather}x=5\\\\y=3\\\\x+y=8\\end{gather}", kind="math"),
    ]


class NotebookController:
    """Single owner of one editing session's document, feedback, and hints."""

    def __init__(
        self,
        lines: Iterable[Line] | None = None,
        *,
        client: ReasoningServiceClient | None = None,
        snapshot: SnapshotStore | None = None,
        demo_mode: bool = False,
    ) -> None:
        self.store = LineStore(lines)
        self.client = client
        self.snapshot = snapshot
        self.demo_mode = demo_mode
        self._check_states: Dict[str, CheckState] = {}
        self._hints_in_flight: set[str] = set()
        self._state_listeners: List[StateListener] = []
        self.store.subscribe(self._persist)

    @classmethod
    def from_config(
        cls,
        config: NotebookConfig,
        *,
        client: ReasoningServiceClient | None = None,
        restore: bool = True,
    ) -> "NotebookController":
        """Build a controller wired to the configured snapshot, restoring it when present."""
        storage = config.storage
        snapshot = None if storage.demo_mode else SnapshotStore(storage.autosave_path)
        controller = cls(
            starter_lines(),
            client=client or ReasoningServiceClient(config.reasoning),
            snapshot=snapshot,
            demo_mode=storage.demo_mode,
        )
        if restore and snapshot is not None:
            saved = snapshot.load()
            if saved is not None:
                controller.store.replace_all(saved.lines, hints=saved.hints, feedback=saved.feedback)
        return controller

    # ------------------------------------------------------------------ views

    @property
    def lines(self) -> Sequence[Line]:
        return self.store.lines

    @property
    def feedback(self) -> Mapping[str, Feedback]:
        return self.store.feedback

    @property
    def hints(self) -> Mapping[str, Hint]:
        return self.store.hints

    def check_state(self, line_id: str) -> CheckState:
        return self._check_states.get(line_id, CheckState.IDLE)

    def hint_in_flight(self, line_id: str) -> bool:
        return line_id in self._hints_in_flight

    def on_state_change(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def context_for(self, index: int) -> ExtractedContext:
        return extract(self.store.lines, index, hints=self.store.hints, feedback=self.store.feedback)

    # -------------------------------------------------------------- mutations

    def insert_after(self, index: int, line: Line) -> Line:
        return self.store.insert_after(index, line)

    def new_line_after(self, index: int) -> Line:
        return self.store.new_line_after(index)

    def paste_lines(self, index: int, contents: Sequence[str]) -> List[Line]:
        replaced_id = self.store[index].id
        created = self.store.paste_lines(index, contents)
        if created:
            self._forget_line(replaced_id)
        return created

    def delete_at(self, index: int) -> Line:
        removed = self.store.delete_at(index)
        self._forget_line(removed.id)
        return removed

    def update_content(self, index: int, content: str) -> Line:
        return self.store.update_content(index, content)

    def update_kind(self, index: int, kind: LineKind) -> Line:
        return self.store.update_kind(index, kind)

    def toggle_problem_context(self, index: int) -> Line:
        return self.store.toggle_problem_context(index)

    def replace_all(self, lines: Iterable[Line]) -> None:
        self._check_states.clear()
        self.store.replace_all(lines)

    def dismiss_feedback(self, line_id: str) -> None:
        self.store.clear_feedback([line_id])

    def dismiss_hint(self, line_id: str) -> None:
        self.store.clear_hint(line_id)

    # ------------------------------------------------------ reasoning checks

    def prepare_check(self, index: int) -> PendingRequest:
        context = self.context_for(index)
        if not context.work_lines:
            raise InvalidRequestError("No user lines to evaluate")
        pending = PendingRequest(target_line_id=context.target_line_id, context=context)
        self._transition(pending.target_line_id, CheckState.CHECKING)
        return pending

    def apply_check_result(self, pending: PendingRequest, result: CheckResult) -> List[str]:
        """Write a verdict back; returns the line ids that received feedback."""
        context = pending.context
        # Stale verdicts from an earlier check in this section must not linger.
        self.store.clear_feedback(context.section_line_ids)

        written: List[str] = []
        if result.status == "ok":
            if self.store.set_feedback(Feedback(line_id=pending.target_line_id, status="ok")):
                written.append(pending.target_line_id)
        else:
            for issue in result.issues:
                line_id = context.line_id_for_step(issue.step_index)
                if line_id is None:
                    LOGGER.debug("Dropping issue for unknown step", extra={"step_index": issue.step_index})
                    continue
                if self.store.set_feedback(Feedback(line_id=line_id, status="issue", message=issue.message)):
                    written.append(line_id)
                else:
                    LOGGER.debug("Dropping issue for removed line", extra={"line_id": line_id})

        settled = CheckState.SETTLED_OK if result.status == "ok" else CheckState.SETTLED_ISSUE
        self._transition(pending.target_line_id, settled)
        return written

    def fail_check(self, pending: PendingRequest, error: Exception) -> None:
        LOGGER.warning(
            "Reasoning check failed",
            extra={"line_id": pending.target_line_id, "error": str(error)},
        )
        self._transition(pending.target_line_id, CheckState.FAILED)
        self._transition(pending.target_line_id, CheckState.IDLE)

    async def check_reasoning(self, index: int) -> CheckResult:
        """Check the work from the section start through ``index``."""
        client = self._require_client()
        pending = self.prepare_check(index)
        context = pending.context
        try:
            result = await client.check_reasoning(context.problem_lines, context.work_lines, context.hint_texts())
        except NotebookError as exc:
            self.fail_check(pending, exc)
            raise
        self.apply_check_result(pending, result)
        return result

    # ------------------------------------------------------------------ hints

    def prepare_hint(self, index: int) -> PendingRequest:
        context = self.context_for(index)
        self._hints_in_flight.add(context.target_line_id)
        return PendingRequest(target_line_id=context.target_line_id, context=context)

    def apply_hint_result(self, pending: PendingRequest, result: HintResult) -> bool:
        self._hints_in_flight.discard(pending.target_line_id)
        stored = self.store.set_hint(Hint(line_id=pending.target_line_id, text=result.text))
        if not stored:
            LOGGER.debug("Dropping hint for removed line", extra={"line_id": pending.target_line_id})
        return stored

    def fail_hint(self, pending: PendingRequest, error: Exception) -> None:
        self._hints_in_flight.discard(pending.target_line_id)
        LOGGER.warning("Hint request failed", extra={"line_id": pending.target_line_id, "error": str(error)})

    async def request_hint(self, index: int) -> HintResult:
        client = self._require_client()
        pending = self.prepare_hint(index)
        context = pending.context
        try:
            result = await client.get_hint(context.problem_lines, context.work_lines)
        except NotebookError as exc:
            self.fail_hint(pending, exc)
            raise
        self.apply_hint_result(pending, result)
        return result

    # ------------------------------------------------------------ documents

    def export_document(self) -> Dict[str, Any]:
        return persistence.encode_document(self.store.lines, self.store.hints, self.store.feedback)

    def export_json(self) -> str:
        return persistence.dumps_document(self.store.lines, self.store.hints, self.store.feedback)

    def export_latex(self) -> str:
        return persistence.export_latex(self.store.lines)

    def import_document(self, data: str | Mapping[str, Any]) -> None:
        """Replace the document; a rejected import resets to a single empty line."""
        try:
            payload = persistence.loads_document(data) if isinstance(data, str) else persistence.decode_document(data)
        except ImportFormatError:
            self.clear()
            raise
        self._check_states.clear()
        self._hints_in_flight.clear()
        self.store.replace_all(payload.lines, hints=payload.hints, feedback=payload.feedback)

    def load_template(self, template: Template) -> None:
        self.replace_all(template.instantiate())

    def new_notebook(self) -> None:
        self.replace_all(starter_lines())

    def clear(self) -> None:
        self._hints_in_flight.clear()
        self.replace_all([])

    # -------------------------------------------------------------- helpers

    def _require_client(self) -> ReasoningServiceClient:
        if self.client is None:
            self.client = ReasoningServiceClient()
        return self.client

    def _forget_line(self, line_id: str) -> None:
        self._check_states.pop(line_id, None)
        self._hints_in_flight.discard(line_id)

    def _transition(self, line_id: str, state: CheckState) -> None:
        if state is CheckState.IDLE:
            self._check_states.pop(line_id, None)
        elif self.store.has_line(line_id):
            self._check_states[line_id] = state
        else:
            self._check_states.pop(line_id, None)
        for listener in list(self._state_listeners):
            listener(line_id, state)

    def _persist(self, operation: str) -> None:
        if self.demo_mode or self.snapshot is None:
            return
        try:
            self.snapshot.save(self.export_document())
        except OSError as exc:
            LOGGER.warning("Autosave failed", extra={"operation": operation, "error": str(exc)})


__all__ = [
    "CheckState",
    "NotebookController",
    "PendingRequest",
    "starter_lines",
]
