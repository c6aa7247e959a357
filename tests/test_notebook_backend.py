from __future__ import annotations

import json
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from apps.notebook_backend.main import BackendSettings, app, get_reasoning_client, get_settings
from mathnb.core.config import NotebookConfig, ReasoningModelConfig
from mathnb.reasoning.client import ReasoningServiceClient
from tests.mocks.reasoning_api import ReasoningAPIMock

CHECK_BODY = {
    "problemLines": [{"mode": "text", "content": "Solve x + 2 = 5"}],
    "userLines": [
        {"mode": "math", "content": "x = 5 + 2", "lineId": "a"},
        {"mode": "math", "content": "x = 7", "lineId": "b"},
    ],
    "hints": {"a": "move the 2"},
}


@pytest.fixture()
def reasoning_api() -> ReasoningAPIMock:
    return ReasoningAPIMock()


@pytest.fixture()
def backend_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[BackendSettings]:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    templates_dir = tmp_path / "templates"
    templates_dir.mkdir()
    (templates_dir / "algebra.json").write_text(
        json.dumps(
            {
                "meta": {"title": "Algebra", "category": "Algebra", "difficulty": "Beginner"},
                "lines": [{"content": "Solve", "mode": "text", "isProblem": True}, {"content": "", "mode": "math"}],
            }
        ),
        encoding="utf-8",
    )
    settings = BackendSettings(repo_root=tmp_path, notebook=NotebookConfig(templates_dir=Path("templates")))
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        yield settings
    finally:
        app.dependency_overrides.pop(get_settings, None)


@pytest.fixture()
def api_client(backend_settings: BackendSettings, reasoning_api: ReasoningAPIMock) -> Iterator[TestClient]:
    client = ReasoningServiceClient(
        ReasoningModelConfig(api_base=reasoning_api.base_url),
        api_key=reasoning_api.token,
        client=reasoning_api.build_httpx_client(),
    )
    app.dependency_overrides[get_reasoning_client] = lambda: client
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_reasoning_client, None)


def test_health_reports_model(backend_settings: BackendSettings) -> None:
    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "model": "gpt-5.2", "model_configured": False}


def test_check_reasoning_ok(api_client: TestClient, reasoning_api: ReasoningAPIMock) -> None:
    reasoning_api.queue({"status": "ok"})

    response = api_client.post("/api/check-reasoning", json=CHECK_BODY)

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    sent = reasoning_api.user_text()
    assert "Step 1: $x = 5 + 2$\n  [Hint given: $move the 2$]\n" in sent


def test_check_reasoning_issue(api_client: TestClient, reasoning_api: ReasoningAPIMock) -> None:
    reasoning_api.queue({"status": "issue", "issues": [{"stepIndex": 1, "latex": "\\text{Subtract instead}"}]})

    response = api_client.post("/api/check-reasoning", json=CHECK_BODY)

    assert response.status_code == 200
    assert response.json() == {"status": "issue", "issues": [{"stepIndex": 1, "latex": "\\text{Subtract instead}"}]}


def test_hint_endpoint(api_client: TestClient, reasoning_api: ReasoningAPIMock) -> None:
    reasoning_api.queue({"hint": "\\text{Isolate x}"})

    response = api_client.post("/api/hint", json={"problemLines": CHECK_BODY["problemLines"], "userLines": []})

    assert response.status_code == 200
    assert response.json() == {"hint": "\\text{Isolate x}"}


def test_empty_user_lines_is_bad_request(api_client: TestClient, reasoning_api: ReasoningAPIMock) -> None:
    response = api_client.post("/api/check-reasoning", json={"problemLines": [], "userLines": []})

    assert response.status_code == 400
    assert response.json() == {"error": "No user lines to evaluate"}
    assert reasoning_api.requests == []


def test_missing_field_is_bad_request(api_client: TestClient) -> None:
    response = api_client.post("/api/check-reasoning", json={"problemLines": []})

    assert response.status_code == 400
    assert response.json() == {"error": "Missing or invalid userLines"}


def test_invalid_json_is_bad_request(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/check-reasoning",
        content="{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON in request body"}


def test_upstream_failure_is_server_error(api_client: TestClient) -> None:
    response = api_client.post("/api/check-reasoning", json=CHECK_BODY)

    assert response.status_code == 500
    assert "error" in response.json()


def test_missing_api_key_is_server_error(backend_settings: BackendSettings) -> None:
    app.dependency_overrides[get_reasoning_client] = lambda: ReasoningServiceClient(ReasoningModelConfig())
    try:
        response = TestClient(app).post("/api/hint", json={"problemLines": [], "userLines": []})
    finally:
        app.dependency_overrides.pop(get_reasoning_client, None)

    assert response.status_code == 500
    assert response.json() == {"error": "OpenAI API key not configured"}


def test_templates_listing_and_fetch(backend_settings: BackendSettings) -> None:
    client = TestClient(app)

    listing = client.get("/api/templates")
    assert listing.status_code == 200
    assert listing.json() == {
        "templates": [
            {
                "slug": "algebra",
                "meta": {"title": "Algebra", "description": "", "category": "Algebra", "difficulty": "Beginner"},
            }
        ]
    }

    template = client.get("/api/templates/algebra")
    assert template.status_code == 200
    assert template.json()["lines"][0] == {"content": "Solve", "mode": "text", "isProblem": True}

    missing = client.get("/api/templates/nope")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Template not found"}
