"""Starter notebooks shipped as JSON files in a templates directory."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mathnb.core.errors import TemplateNotFoundError
from mathnb.notebook.lines import Line, LineKind

LOGGER = logging.getLogger("mathnb.notebook.templates")
SLUG_PATTERN = re.compile(r"^[a-z0-9_-]+$")


class TemplateMeta(BaseModel):
    title: str
    description: str = ""
    category: str = "General"
    difficulty: Literal["Beginner", "Intermediate", "Advanced"] = "Beginner"


class TemplateLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    content: str = ""
    mode: LineKind = "text"
    is_problem: bool = Field(default=False, alias="isProblem")


class Template(BaseModel):
    meta: TemplateMeta
    lines: List[TemplateLine] = Field(..., min_length=1)

    def instantiate(self) -> List[Line]:
        """Fresh line records; template ids are never reused."""
        return [
            Line(content=line.content, kind=line.mode, is_problem_context=line.is_problem)
            for line in self.lines
        ]


class TemplateListItem(BaseModel):
    slug: str
    meta: TemplateMeta


def _template_path(templates_dir: Path, slug: str) -> Path:
    if not SLUG_PATTERN.match(slug):
        raise TemplateNotFoundError(f"Template '{slug}' not found")
    return templates_dir / f"{slug}.json"


def load_template(templates_dir: Path, slug: str) -> Template:
    path = _template_path(templates_dir, slug)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Template.model_validate(data)
    except FileNotFoundError as exc:
        raise TemplateNotFoundError(f"Template '{slug}' not found") from exc
    except (json.JSONDecodeError, ValidationError) as exc:
        raise TemplateNotFoundError(f"Template '{slug}' is invalid") from exc


def list_templates(templates_dir: Path) -> List[TemplateListItem]:
    if not templates_dir.exists():
        return []
    items: List[TemplateListItem] = []
    for path in sorted(templates_dir.glob("*.json")):
        try:
            template = load_template(templates_dir, path.stem)
        except TemplateNotFoundError:
            LOGGER.warning("Skipping unreadable template", extra={"path": str(path)})
            continue
        items.append(TemplateListItem(slug=path.stem, meta=template.meta))
    return items


__all__ = [
    "Template",
    "TemplateLine",
    "TemplateListItem",
    "TemplateMeta",
    "list_templates",
    "load_template",
]
