"""FastAPI mock of the chat-completions endpoint used by the reasoning client."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import httpx
from fastapi import FastAPI, Header, HTTPException
from httpx import ASGITransport
from pydantic import BaseModel, Field


class ChatCompletionPayload(BaseModel):
    model: str
    messages: List[Dict[str, Any]]
    response_format: Dict[str, Any] = Field(default_factory=dict)
    max_completion_tokens: int | None = None
    temperature: float | None = None


class ReasoningAPIMock:
    """In-memory FastAPI app that replays queued model replies and records requests."""

    def __init__(
        self,
        *,
        base_url: str = "http://reasoning-mock.local/v1",
        token: str = "test-token",
    ) -> None:
        self.base_url = base_url
        self.token = token
        self.app = FastAPI()
        self.requests: List[Dict[str, Any]] = []
        self.replies: List[Any] = []
        self._register_routes()

    def queue(self, *replies: Any) -> None:
        """Queue model replies; dicts are JSON-encoded into the message content."""
        self.replies.extend(replies)

    def _register_routes(self) -> None:
        app = self.app

        @app.post("/v1/chat/completions")
        def chat_completions(
            payload: ChatCompletionPayload,
            authorization: Optional[str] = Header(default=None),
        ) -> Dict[str, Any]:
            if self.token and authorization != f"Bearer {self.token}":
                raise HTTPException(status_code=401, detail="invalid token")
            self.requests.append(payload.model_dump())
            if not self.replies:
                raise HTTPException(status_code=503, detail="no reply queued")
            reply = self.replies.pop(0)
            content = reply if isinstance(reply, str) else json.dumps(reply)
            return {"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]}

    # ------------------------------------------------------------------

    def reset(self) -> None:
        self.requests.clear()
        self.replies.clear()

    def build_httpx_client(self, *, timeout: float = 5.0) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            transport=ASGITransport(app=self.app),
            timeout=timeout,
        )

    def user_text(self, request_index: int = -1) -> str:
        """Concatenate the text parts of a recorded user message."""
        messages = self.requests[request_index]["messages"]
        parts = messages[-1]["content"]
        return "".join(part.get("text", "") for part in parts)


__all__ = ["ReasoningAPIMock"]
