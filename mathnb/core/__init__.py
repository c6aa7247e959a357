"""Configuration and error types shared across the notebook, CLI, and backend."""

from .config import NotebookConfig, ReasoningModelConfig, StorageConfig, load_notebook_config
from .errors import (
    ConfigurationError,
    ImportFormatError,
    InvalidRequestError,
    NotebookError,
    TemplateNotFoundError,
    UpstreamError,
)

__all__ = [
    "ConfigurationError",
    "ImportFormatError",
    "InvalidRequestError",
    "NotebookConfig",
    "NotebookError",
    "ReasoningModelConfig",
    "StorageConfig",
    "TemplateNotFoundError",
    "UpstreamError",
    "load_notebook_config",
]
