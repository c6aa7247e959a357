"""Chat-completion payloads for reasoning checks and hints.

Work lines are numbered ``Step 1``, ``Step 2``, ... in the order given. The
model reports errors by that number, and the controller maps it back with the
same 1-indexed position, so the order must never be changed here.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Mapping, Sequence

from mathnb.notebook.context import ProblemLine, WorkLine
from mathnb.notebook.lines import Feedback

PromptMode = Literal["check", "hint"]
ChatMessage = Dict[str, Any]
ContentPart = Dict[str, Any]

IMAGE_PLACEHOLDER = "[Image attached]"
NO_WORK_PLACEHOLDER = "(No work yet - student is just starting)"

CHECK_SYSTEM_PROMPT = """You are a careful mathematics tutor evaluating a student's reasoning.

IMPORTANT: Read ALL steps first to understand the full context before evaluating any individual step. Later steps may clarify, define, or justify earlier statements. An informal statement followed by a formal definition is valid.

CRITICAL RULES:
1. READ EVERYTHING FIRST - understand the student's full argument before judging
2. Be EXTREMELY conservative - only flag errors you are 100% certain about
3. If a statement is clarified or justified by a later step, it is NOT an error
4. If a statement is arguably correct under some interpretation, mark it as OK
5. NEVER contradict yourself in feedback
6. The student may be using different but equivalent definitions
7. When in doubt, assume the student is correct

You will receive:
- **PROBLEM CONTEXT** - Given information (treat as correct)
- **USER STEPS** - Student's work to evaluate AS A WHOLE

Evaluation process:
1. Read all steps to understand the complete argument
2. For each step, ask: "Given everything else the student wrote, is this wrong?"
3. Only flag a step if it's mathematically incorrect even considering the full context

Response format (JSON only):
- If all steps are correct OR you have ANY doubt: {"status": "ok"}
- If there are DEFINITE errors: {"status": "issue", "issues": [{"stepIndex": N, "latex": "feedback"}, ...]}

N is the 1-indexed step number.

The "latex" field must be valid LaTeX using \\text{} for prose. Keep feedback to ONE clear sentence.

Do NOT explain the correct answer - just identify the error briefly."""

HINT_SYSTEM_PROMPT = """You are a supportive mathematics tutor providing gentle hints. You will receive:

1. **PROBLEM CONTEXT** - The problem statement and given information
2. **USER STEPS** - The student's work so far

Your task:
- Understand what problem the student is trying to solve
- Review their work so far (if any)
- Provide a SMALL, HELPFUL HINT to guide them to the next step
- DO NOT give the solution or do the work for them
- DO NOT point out errors unless they're asking a completely wrong approach

Guidelines for hints:
- If they haven't started: Suggest what to identify or what formula/method might apply
- If they're stuck mid-problem: Hint at the next logical step without doing it
- If they're on the right track: Encourage and nudge toward what comes next
- If they seem lost: Suggest reviewing a concept or formula that would help
- Keep hints brief (1-2 sentences max)

Response format (JSON only):
{"hint": "LaTeX formatted hint"}

The "hint" field must contain valid LaTeX that will be rendered in a math display. Use \\text{} for prose and inline math symbols. Examples:
- "\\text{Try using the quadratic formula: } x = \\frac{-b \\pm \\sqrt{b^2-4ac}}{2a}"
- "\\text{What happens if you substitute } y = 3 \\text{ into the first equation?}"
- "\\text{Consider: what's the derivative of } \\sin(x)\\text{?}"
- "\\text{You're on the right track! Now simplify the left side.}"

Be encouraging but concise. Guide, don't solve."""

SYSTEM_PROMPTS: Dict[str, str] = {"check": CHECK_SYSTEM_PROMPT, "hint": HINT_SYSTEM_PROMPT}

_PROBLEM_HEADINGS = {
    "check": "## PROBLEM CONTEXT (Given Information)\n\n",
    "hint": "## PROBLEM CONTEXT\n\n",
}
_WORK_HEADINGS = {
    "check": "## USER STEPS (To Evaluate)\n\n",
    "hint": "## STUDENT'S WORK SO FAR\n\n",
}
HINT_REQUEST = "\nPlease provide a helpful hint for the next step."


def format_line_content(line: ProblemLine | WorkLine) -> str:
    if line.kind == "math":
        return f"${line.content}$"
    if line.kind == "image":
        return IMAGE_PLACEHOLDER
    return line.content


def is_inline_image(line: ProblemLine | WorkLine) -> bool:
    return line.kind == "image" and line.content.startswith("data:image")


def _image_part(url: str) -> ContentPart:
    return {"type": "image_url", "image_url": {"url": url, "detail": "high"}}


def _text_part(text: str) -> ContentPart:
    return {"type": "text", "text": text}


class _PartBuffer:
    """Accumulates text and flushes it whenever an image part interrupts it."""

    def __init__(self, parts: List[ContentPart], initial: str = "") -> None:
        self.parts = parts
        self.text = initial

    def write(self, text: str) -> None:
        self.text += text

    def image(self, url: str, *, prefix: str = "", suffix: str = "\n") -> None:
        self.flush()
        if prefix:
            self.parts.append(_text_part(prefix))
        self.parts.append(_image_part(url))
        self.parts.append(_text_part(suffix))

    def flush(self, trailer: str = "") -> None:
        if self.text.strip():
            self.parts.append(_text_part(self.text + trailer))
        self.text = ""


def _problem_parts(mode: PromptMode, problem_lines: Sequence[ProblemLine], parts: List[ContentPart]) -> None:
    if not problem_lines:
        return
    buffer = _PartBuffer(parts, _PROBLEM_HEADINGS[mode])
    for line in problem_lines:
        if is_inline_image(line):
            buffer.image(line.content)
        else:
            buffer.write(f"- {format_line_content(line)}\n")
    buffer.flush(trailer="\n")


def _work_parts(
    mode: PromptMode,
    work_lines: Sequence[WorkLine],
    hints: Mapping[str, str],
    parts: List[ContentPart],
) -> None:
    if not work_lines and mode == "hint":
        parts.append(_text_part(f"\n{_WORK_HEADINGS['hint']}{NO_WORK_PLACEHOLDER}\n"))
        return

    buffer = _PartBuffer(parts, _WORK_HEADINGS[mode])
    for position, line in enumerate(work_lines, start=1):
        hint = hints.get(line.line_id) if mode == "check" else None
        hint_text = f"  [Hint given: ${hint}$]\n" if hint else ""
        if is_inline_image(line):
            suffix = f"\n{hint_text}" if hint_text else "\n"
            buffer.image(line.content, prefix=f"Step {position}: ", suffix=suffix)
        else:
            buffer.write(f"Step {position}: {format_line_content(line)}\n{hint_text}")
    buffer.flush()


def build_user_content(
    problem_lines: Sequence[ProblemLine],
    work_lines: Sequence[WorkLine],
    hints: Mapping[str, str] | None = None,
    *,
    mode: PromptMode,
) -> List[ContentPart]:
    """Serialize the transcript into ordered multimodal content parts."""
    parts: List[ContentPart] = []
    _problem_parts(mode, problem_lines, parts)
    _work_parts(mode, work_lines, hints or {}, parts)
    if mode == "hint":
        parts.append(_text_part(HINT_REQUEST))
    return parts


def build(
    problem_lines: Sequence[ProblemLine],
    work_lines: Sequence[WorkLine],
    hints: Mapping[str, str] | None = None,
    feedback: Mapping[str, Feedback] | None = None,
    *,
    mode: PromptMode,
) -> List[ChatMessage]:
    """Return the system + user messages for one request.

    ``feedback`` is accepted so callers can pass a whole extracted context;
    earlier verdicts are not sent to the model.
    """
    if mode not in SYSTEM_PROMPTS:
        raise ValueError(f"Unknown prompt mode {mode!r}")
    return [
        {"role": "system", "content": SYSTEM_PROMPTS[mode]},
        {"role": "user", "content": build_user_content(problem_lines, work_lines, hints, mode=mode)},
    ]


__all__ = [
    "CHECK_SYSTEM_PROMPT",
    "HINT_SYSTEM_PROMPT",
    "IMAGE_PLACEHOLDER",
    "NO_WORK_PLACEHOLDER",
    "PromptMode",
    "build",
    "build_user_content",
    "format_line_content",
]
