"""HTTP client for the hosted reasoning model (OpenAI chat completions)."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Literal, Mapping, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from mathnb.core.config import ReasoningModelConfig
from mathnb.core.errors import ConfigurationError, InvalidRequestError, UpstreamError
from mathnb.notebook.context import ProblemLine, WorkLine
from mathnb.reasoning import prompts

logger = logging.getLogger("mathnb.reasoning.client")

CHAT_COMPLETIONS_PATH = "/chat/completions"


class StepIssue(BaseModel):
    """One flagged step; ``step_index`` is 1-indexed into the work lines sent."""

    model_config = ConfigDict(populate_by_name=True)

    step_index: int = Field(..., alias="stepIndex")
    message: str | None = Field(default=None, alias="latex")


class CheckResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Literal["ok", "issue"]
    issues: List[StepIssue] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def coerce_legacy_format(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        # Older responses carried a single stepIndex/latex pair instead of a list
        if payload.get("status") == "issue" and not payload.get("issues") and payload.get("stepIndex"):
            payload["issues"] = [{"stepIndex": payload.pop("stepIndex"), "latex": payload.pop("latex", None)}]
        if payload.get("status") == "ok":
            payload["issues"] = []
        return payload

    def to_wire(self) -> Dict[str, Any]:
        if self.status == "ok":
            return {"status": "ok"}
        return {
            "status": "issue",
            "issues": [issue.model_dump(by_alias=True) for issue in self.issues],
        }


class HintResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(..., alias="hint")


def decode_check_payload(payload: Any) -> CheckResult:
    try:
        return CheckResult.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamError("Invalid response structure from OpenAI") from exc


def decode_hint_payload(payload: Any) -> HintResult:
    if not isinstance(payload, dict) or not isinstance(payload.get("hint"), str):
        raise UpstreamError("Invalid response structure from OpenAI")
    return HintResult.model_validate(payload)


class ReasoningServiceClient:
    """Async wrapper that checks reasoning and produces hints via chat completions."""

    def __init__(
        self,
        config: ReasoningModelConfig | None = None,
        *,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or ReasoningModelConfig()
        self._api_key = self._config.resolve_api_key(api_key)
        if client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.resolve_api_base(),
                timeout=self._config.timeout,
            )
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def check_reasoning(
        self,
        problem_lines: Sequence[ProblemLine],
        work_lines: Sequence[WorkLine],
        hints: Mapping[str, str] | None = None,
    ) -> CheckResult:
        """Ask the model to verify every work line; returns the normalized verdict."""

        self._require_credentials()
        if not work_lines:
            raise InvalidRequestError("No user lines to evaluate")
        messages = prompts.build(problem_lines, work_lines, hints, mode="check")
        payload = await self._complete(messages, self._config.check)
        result = decode_check_payload(payload)
        logger.info(
            "check_reasoning completed",
            extra={"status": result.status, "issues": len(result.issues), "steps": len(work_lines)},
        )
        return result

    async def get_hint(
        self,
        problem_lines: Sequence[ProblemLine],
        work_lines: Sequence[WorkLine],
    ) -> HintResult:
        """Ask the model for a short next-step hint; empty work is allowed."""

        self._require_credentials()
        messages = prompts.build(problem_lines, work_lines, mode="hint")
        payload = await self._complete(messages, self._config.hint)
        result = decode_hint_payload(payload)
        logger.info("get_hint completed", extra={"steps": len(work_lines)})
        return result

    async def _complete(self, messages: List[Dict[str, Any]], settings: Any) -> Any:
        body = {
            "model": self._config.model,
            "messages": messages,
            "response_format": {"type": "json_object"},
            "max_completion_tokens": settings.max_completion_tokens,
            "temperature": settings.temperature,
        }
        try:
            response = await self._client.post(
                CHAT_COMPLETIONS_PATH,
                json=body,
                headers=self._build_headers(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "OpenAI API returned an error status",
                extra={"status_code": exc.response.status_code},
            )
            raise UpstreamError(_describe_http_error(exc.response)) from exc
        except httpx.HTTPError as exc:
            logger.warning("OpenAI API request failed", extra={"error": str(exc)})
            raise UpstreamError(f"OpenAI API request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError("OpenAI API returned non-JSON payload") from exc

        content = _first_message_content(data)
        if not content:
            raise UpstreamError("Empty response from OpenAI")
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            raise UpstreamError("Failed to parse OpenAI response as JSON") from exc

    def _require_credentials(self) -> None:
        if not self._api_key:
            raise ConfigurationError("OpenAI API key not configured")

    def _build_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    async def aclose(self) -> None:
        if getattr(self, "_owns_client", False):
            await self._client.aclose()

    async def __aenter__(self) -> "ReasoningServiceClient":  # pragma: no cover - convenience
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - convenience
        await self.aclose()


def _first_message_content(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else None


def _describe_http_error(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"OpenAI API error ({response.status_code})"
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str):
        return error
    return f"OpenAI API error ({response.status_code})"


__all__ = [
    "CheckResult",
    "HintResult",
    "ReasoningServiceClient",
    "StepIssue",
    "decode_check_payload",
    "decode_hint_payload",
]
