"""Error taxonomy shared by the notebook core, the reasoning client, and the backend."""

from __future__ import annotations


class NotebookError(Exception):
    """Base class for every error surfaced by the math notebook."""


class ConfigurationError(NotebookError):
    """Raised when the reasoning service credential (or other setup) is missing."""


class InvalidRequestError(NotebookError):
    """Raised for malformed caller input, before any external call is made."""


class UpstreamError(NotebookError):
    """Raised when the external model call fails or returns an unusable payload."""


class ImportFormatError(NotebookError):
    """Raised when a persisted document fails schema validation."""


class TemplateNotFoundError(NotebookError):
    """Raised when a notebook template slug cannot be resolved."""


__all__ = [
    "ConfigurationError",
    "ImportFormatError",
    "InvalidRequestError",
    "NotebookError",
    "TemplateNotFoundError",
    "UpstreamError",
]
