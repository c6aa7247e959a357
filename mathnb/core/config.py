"""
Typed configuration helpers for the math notebook.

The same models back the CLI, the HTTP backend, and library callers that
construct a controller directly. Everything has a default so an empty (or
missing) YAML file yields a working configuration.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from mathnb.core.errors import ConfigurationError

DEFAULT_API_BASE = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-5.2"


class ModeSettings(BaseModel):
    """Sampling settings for one request mode (check or hint)."""

    temperature: float = Field(..., ge=0.0, le=2.0)
    max_completion_tokens: int = Field(..., ge=16)


class ReasoningModelConfig(BaseModel):
    """Provider-specific configuration for the hosted reasoning model."""

    model_config = ConfigDict(extra="ignore")

    provider: Literal["openai"] = "openai"
    model: str = DEFAULT_MODEL
    api_key_env: str | None = None
    api_base: str | None = None
    api_base_env: str | None = None
    timeout: float = Field(default=60.0, gt=0)
    check: ModeSettings = Field(default_factory=lambda: ModeSettings(temperature=0.1, max_completion_tokens=500))
    hint: ModeSettings = Field(default_factory=lambda: ModeSettings(temperature=0.7, max_completion_tokens=300))

    @model_validator(mode="before")
    @classmethod
    def coerce_flat_format(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        # Accept "check_temperature: 0.2" style keys alongside nested blocks
        for mode in ("check", "hint"):
            block = dict(payload.get(mode) or {})
            for key in ("temperature", "max_completion_tokens"):
                flat_key = f"{mode}_{key}"
                if flat_key in payload:
                    block[key] = payload.pop(flat_key)
            if block:
                defaults = {"check": (0.1, 500), "hint": (0.7, 300)}[mode]
                block.setdefault("temperature", defaults[0])
                block.setdefault("max_completion_tokens", defaults[1])
                payload[mode] = block
        return payload

    def resolve_api_key(self, override: str | None = None) -> str | None:
        if override:
            return override
        candidates = []
        if self.api_key_env:
            candidates.append(self.api_key_env)
        candidates.append("OPENAI_API_KEY")
        for env_var in candidates:
            if value := os.getenv(env_var):
                return value
        return None

    def require_api_key(self, override: str | None = None) -> str:
        api_key = self.resolve_api_key(override)
        if not api_key:
            expected_env = self.api_key_env or "OPENAI_API_KEY"
            raise ConfigurationError(f"OpenAI API key not configured; set {expected_env}.")
        return api_key

    def resolve_api_base(self) -> str:
        if self.api_base:
            return self.api_base
        candidates = []
        if self.api_base_env:
            candidates.append(self.api_base_env)
        candidates.append("OPENAI_API_BASE")
        for env_var in candidates:
            if value := os.getenv(env_var):
                return value
        return DEFAULT_API_BASE


class StorageConfig(BaseModel):
    """Where the autosave snapshot lives, and whether it is written at all."""

    data_dir: Path = Field(default=Path(".mathnb"))
    autosave_filename: str = Field(default="mathnb-autosave.json")
    demo_mode: bool = Field(default=False, description="Suppress persistence (minimal demo sessions).")

    @field_validator("data_dir", mode="before")
    @classmethod
    def coerce_path(cls, value: Any) -> Path:
        return Path(value).expanduser()

    @property
    def autosave_path(self) -> Path:
        return self.data_dir / self.autosave_filename


class NotebookConfig(BaseModel):
    """Top-level configuration for notebook sessions."""

    reasoning: ReasoningModelConfig = Field(default_factory=ReasoningModelConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    templates_dir: Path = Field(default=Path("templates"))

    @field_validator("templates_dir", mode="before")
    @classmethod
    def coerce_path(cls, value: Any) -> Path:
        return Path(value).expanduser()


def read_yaml_file(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return a dictionary."""
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping at root of {path}, received {type(data)}")
    return data


def _resolve_config_path(value: Any, base_dir: Path) -> str:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    else:
        path = path.resolve()
    return str(path)


def _absolutize_notebook_paths(data: Dict[str, Any], base_dir: Path) -> None:
    if data.get("templates_dir"):
        data["templates_dir"] = _resolve_config_path(data["templates_dir"], base_dir)
    storage = data.get("storage")
    if isinstance(storage, dict) and storage.get("data_dir"):
        storage["data_dir"] = _resolve_config_path(storage["data_dir"], base_dir)


def load_notebook_config(path: Path | None = None, *, base_dir: Path | None = None) -> NotebookConfig:
    """Load the notebook config; a missing path yields the defaults."""
    if path is None:
        return NotebookConfig()
    path = path.expanduser().resolve()
    data = read_yaml_file(path)
    _absolutize_notebook_paths(data, base_dir=(base_dir or path.parent).resolve())
    try:
        return NotebookConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid notebook config in {path}") from exc


__all__ = [
    "DEFAULT_API_BASE",
    "DEFAULT_MODEL",
    "ModeSettings",
    "NotebookConfig",
    "ReasoningModelConfig",
    "StorageConfig",
    "load_notebook_config",
    "read_yaml_file",
]
