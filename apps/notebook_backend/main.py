from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from mathnb import get_version
from mathnb.core.config import NotebookConfig, load_notebook_config
from mathnb.core.errors import (
    ConfigurationError,
    InvalidRequestError,
    NotebookError,
    TemplateNotFoundError,
    UpstreamError,
)
from mathnb.notebook.context import ProblemLine, WorkLine
from mathnb.notebook.lines import LineKind
from mathnb.notebook.templates import Template, TemplateListItem, list_templates, load_template
from mathnb.reasoning.client import ReasoningServiceClient

REPO_ROOT = Path(__file__).resolve().parents[2]
LOGGER = logging.getLogger("mathnb.backend")


class BackendSettings(BaseModel):
    """Runtime configuration for the notebook backend."""

    repo_root: Path = Field(default=REPO_ROOT)
    notebook: NotebookConfig = Field(default_factory=NotebookConfig)

    @property
    def templates_dir(self) -> Path:
        templates_dir = self.notebook.templates_dir
        if not templates_dir.is_absolute():
            templates_dir = self.repo_root / templates_dir
        return templates_dir.resolve()


@lru_cache
def get_settings() -> BackendSettings:
    load_dotenv(REPO_ROOT / ".env")
    config_path = os.getenv("MATHNB_CONFIG")
    notebook = load_notebook_config(Path(config_path)) if config_path else NotebookConfig()
    templates_override = os.getenv("MATHNB_TEMPLATES_DIR")
    if templates_override:
        notebook = notebook.model_copy(update={"templates_dir": Path(templates_override).expanduser()})
    return BackendSettings(notebook=notebook)


async def get_reasoning_client(
    settings: BackendSettings = Depends(get_settings),
) -> AsyncIterator[ReasoningServiceClient]:
    client = ReasoningServiceClient(settings.notebook.reasoning)
    try:
        yield client
    finally:
        await client.aclose()


class WireProblemLine(BaseModel):
    mode: LineKind
    content: str

    def to_problem_line(self) -> ProblemLine:
        return ProblemLine(kind=self.mode, content=self.content)


class WireUserLine(BaseModel):
    mode: LineKind
    content: str
    lineId: str

    def to_work_line(self) -> WorkLine:
        return WorkLine(kind=self.mode, content=self.content, line_id=self.lineId)


class CheckReasoningRequest(BaseModel):
    problemLines: List[WireProblemLine]
    userLines: List[WireUserLine]
    hints: Dict[str, str] | None = None


class HintRequest(BaseModel):
    problemLines: List[WireProblemLine]
    userLines: List[WireUserLine]


class IssueResponse(BaseModel):
    stepIndex: int
    latex: str | None = None


class CheckReasoningResponse(BaseModel):
    status: str
    issues: List[IssueResponse] | None = None


class HintResponse(BaseModel):
    hint: str


class TemplateListResponse(BaseModel):
    templates: List[TemplateListItem] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    model: str
    model_configured: bool


app = FastAPI(title="Math Notebook API", version=get_version())
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=HealthResponse)
def health(settings: BackendSettings = Depends(get_settings)) -> HealthResponse:
    reasoning = settings.notebook.reasoning
    return HealthResponse(
        status="ok",
        model=reasoning.model,
        model_configured=reasoning.resolve_api_key() is not None,
    )


@app.post("/api/check-reasoning", response_model=CheckReasoningResponse, response_model_exclude_none=True)
async def check_reasoning(
    body: CheckReasoningRequest,
    client: ReasoningServiceClient = Depends(get_reasoning_client),
) -> CheckReasoningResponse:
    result = await client.check_reasoning(
        [line.to_problem_line() for line in body.problemLines],
        [line.to_work_line() for line in body.userLines],
        body.hints,
    )
    return CheckReasoningResponse.model_validate(result.to_wire())


@app.post("/api/hint", response_model=HintResponse)
async def hint(
    body: HintRequest,
    client: ReasoningServiceClient = Depends(get_reasoning_client),
) -> HintResponse:
    result = await client.get_hint(
        [line.to_problem_line() for line in body.problemLines],
        [line.to_work_line() for line in body.userLines],
    )
    return HintResponse(hint=result.text)


@app.get("/api/templates", response_model=TemplateListResponse)
def get_templates(settings: BackendSettings = Depends(get_settings)) -> TemplateListResponse:
    return TemplateListResponse(templates=list_templates(settings.templates_dir))


@app.get("/api/templates/{slug}", response_model=Template)
def get_template(slug: str, settings: BackendSettings = Depends(get_settings)) -> Template:
    return load_template(settings.templates_dir, slug)


_ERROR_STATUS: Dict[type, int] = {
    ConfigurationError: 500,
    InvalidRequestError: 400,
    UpstreamError: 500,
    TemplateNotFoundError: 404,
}


@app.exception_handler(NotebookError)
async def notebook_error_handler(_: Request, exc: NotebookError) -> JSONResponse:
    status_code = next((code for kind, code in _ERROR_STATUS.items() if isinstance(exc, kind)), 500)
    if isinstance(exc, UpstreamError):
        LOGGER.error("OpenAI API error: %s", exc)
    message = "Template not found" if isinstance(exc, TemplateNotFoundError) else str(exc)
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    errors: Any = exc.errors()
    first = errors[0] if errors else {}
    if first.get("type") == "json_invalid":
        return JSONResponse(status_code=400, content={"error": "Invalid JSON in request body"})
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    detail = f"Missing or invalid {location}" if location else "Invalid JSON in request body"
    return JSONResponse(status_code=400, content={"error": detail})
