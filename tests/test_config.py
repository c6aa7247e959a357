from __future__ import annotations

from pathlib import Path

import pytest

from mathnb.core.config import DEFAULT_API_BASE, ReasoningModelConfig, load_notebook_config
from mathnb.core.errors import ConfigurationError

REPO_ROOT = Path(__file__).resolve().parents[1]


def test_notebook_config_sample_loads() -> None:
    """Ensure the shipped notebook YAML matches the NotebookConfig schema."""

    config = load_notebook_config(REPO_ROOT / "config" / "notebook.yaml")

    assert config.reasoning.model == "gpt-5.2"
    assert config.reasoning.check.temperature == 0.1
    assert config.reasoning.hint.max_completion_tokens == 300
    assert config.templates_dir == (REPO_ROOT / "templates").resolve()
    assert config.storage.autosave_path.name == "mathnb-autosave.json"


def test_missing_path_returns_defaults() -> None:
    config = load_notebook_config(None)

    assert config.reasoning.provider == "openai"
    assert config.storage.demo_mode is False


def test_flat_mode_keys_are_accepted(tmp_path: Path) -> None:
    path = tmp_path / "notebook.yaml"
    path.write_text("reasoning:\n  check_temperature: 0.3\n  hint_max_completion_tokens: 120\n", encoding="utf-8")

    config = load_notebook_config(path)

    assert config.reasoning.check.temperature == 0.3
    assert config.reasoning.check.max_completion_tokens == 500
    assert config.reasoning.hint.max_completion_tokens == 120


def test_invalid_config_raises_value_error(tmp_path: Path) -> None:
    path = tmp_path / "notebook.yaml"
    path.write_text("reasoning:\n  timeout: -1\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_notebook_config(path)


def test_non_mapping_root_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "notebook.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_notebook_config(path)


def test_api_key_resolution_order(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-default")
    monkeypatch.setenv("MATH_KEY", "sk-custom")
    config = ReasoningModelConfig(api_key_env="MATH_KEY")

    assert config.resolve_api_key("sk-override") == "sk-override"
    assert config.resolve_api_key() == "sk-custom"
    monkeypatch.delenv("MATH_KEY")
    assert config.resolve_api_key() == "sk-default"


def test_require_api_key_raises_when_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ConfigurationError):
        ReasoningModelConfig().require_api_key()


def test_api_base_defaults_and_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_BASE", raising=False)
    assert ReasoningModelConfig().resolve_api_base() == DEFAULT_API_BASE

    monkeypatch.setenv("OPENAI_API_BASE", "http://proxy.local/v1")
    assert ReasoningModelConfig().resolve_api_base() == "http://proxy.local/v1"
