"""Notebook document model: lines, sections, and context extraction.

The controller lives in ``mathnb.notebook.controller`` and is imported from
there, since it depends on the reasoning client.
"""

from __future__ import annotations

from .context import ExtractedContext, ProblemLine, WorkLine, extract
from .lines import Feedback, Hint, Line, LineStore
from .sections import bounds_containing, iter_sections

__all__ = [
    "ExtractedContext",
    "Feedback",
    "Hint",
    "Line",
    "LineStore",
    "ProblemLine",
    "WorkLine",
    "bounds_containing",
    "extract",
    "iter_sections",
]
