"""CLI for working with math notebook files: inspect, check reasoning, ask for hints."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import List, Optional

import anyio
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from mathnb.core.config import NotebookConfig, load_notebook_config
from mathnb.core.errors import ImportFormatError, NotebookError, TemplateNotFoundError
from mathnb.notebook.controller import NotebookController, starter_lines
from mathnb.notebook.sections import section_number
from mathnb.notebook.templates import list_templates, load_template
from mathnb.reasoning.client import ReasoningServiceClient

CONFIG_ENV_VAR = "MATHNB_CONFIG"

app = typer.Typer(help="Inspect math notebooks and check their reasoning against the configured model.")
console = Console()


def _load_config(path: Path | None) -> NotebookConfig:
    load_dotenv()
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        path = Path(env_path) if env_path else None
    if path is None:
        return NotebookConfig()
    try:
        return load_notebook_config(path)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"Cannot load config {path}: {exc}") from exc


def _open_notebook(path: Path, config: NotebookConfig | None = None) -> NotebookController:
    if not path.exists():
        raise typer.BadParameter(f"Notebook not found at {path}")
    client = ReasoningServiceClient(config.reasoning) if config is not None else None
    controller = NotebookController(client=client, demo_mode=True)
    try:
        controller.import_document(path.read_text(encoding="utf-8"))
    except ImportFormatError as exc:
        raise typer.BadParameter(f"Invalid notebook {path}: {exc}") from exc
    return controller


def _save_notebook(controller: NotebookController, path: Path) -> None:
    path.write_text(controller.export_json() + "\n", encoding="utf-8")


def _line_index(controller: NotebookController, line_number: int) -> int:
    if not 1 <= line_number <= len(controller.lines):
        raise typer.BadParameter(f"Line {line_number} out of range (1..{len(controller.lines)})")
    return line_number - 1


async def _call_model(controller: NotebookController, operation: str, index: int):
    try:
        return await getattr(controller, operation)(index)
    finally:
        if controller.client is not None:
            await controller.client.aclose()


def _preview(content: str, limit: int = 60) -> str:
    flattened = " ".join(content.split())
    if flattened.startswith("data:image"):
        return "[image]"
    return flattened if len(flattened) <= limit else flattened[: limit - 1] + "…"


def _describe_rows(controller: NotebookController) -> List[dict]:
    rows = []
    lines = controller.lines
    for index, line in enumerate(lines):
        feedback = controller.feedback.get(line.id)
        hint = controller.hints.get(line.id)
        rows.append(
            {
                "line": index + 1,
                "id": line.id,
                "section": section_number(lines, index),
                "mode": line.kind,
                "role": "P" if line.counts_as_problem else ("W" if line.is_work else ""),
                "content": line.content,
                "feedback": feedback.status if feedback else None,
                "hint": hint.text if hint else None,
            }
        )
    return rows


@app.command()
def show(
    notebook: Path = typer.Argument(..., help="Notebook JSON file."),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of a table."),
) -> None:
    """List the lines of a notebook with their section and problem/work role."""

    controller = _open_notebook(notebook)
    rows = _describe_rows(controller)
    if as_json:
        typer.echo(json.dumps(rows, indent=2, ensure_ascii=False))
        return
    table = Table("#", "Sec", "Mode", "P/W", "Content", "Feedback", "Hint")
    for row in rows:
        table.add_row(
            str(row["line"]),
            "" if row["section"] is None else str(row["section"]),
            row["mode"],
            row["role"],
            _preview(row["content"]),
            row["feedback"] or "",
            _preview(row["hint"] or "", limit=40),
        )
    console.print(table)


@app.command()
def check(
    notebook: Path = typer.Argument(..., help="Notebook JSON file."),
    line: int = typer.Argument(..., min=1, help="1-indexed line to check up to."),
    config: Optional[Path] = typer.Option(None, "--config", help=f"Notebook config YAML (defaults to ${CONFIG_ENV_VAR})."),
) -> None:
    """Check the reasoning in LINE's section up to LINE and save the verdicts."""

    settings = _load_config(config)
    controller = _open_notebook(notebook, settings)
    index = _line_index(controller, line)
    try:
        result = anyio.run(_call_model, controller, "check_reasoning", index)
    except NotebookError as exc:
        console.print(f"[red]check failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    _save_notebook(controller, notebook)
    if result.status == "ok":
        console.print("[green]All steps valid.[/green]")
        return
    context = controller.context_for(index)
    for issue in result.issues:
        line_id = context.line_id_for_step(issue.step_index)
        position = controller.store.find_index(line_id) if line_id else None
        where = f"line {position + 1}" if position is not None else f"step {issue.step_index}"
        console.print(f"[yellow]{where}:[/yellow] {issue.message or 'Error in reasoning.'}")


@app.command()
def hint(
    notebook: Path = typer.Argument(..., help="Notebook JSON file."),
    line: int = typer.Argument(..., min=1, help="1-indexed line to attach the hint to."),
    config: Optional[Path] = typer.Option(None, "--config", help=f"Notebook config YAML (defaults to ${CONFIG_ENV_VAR})."),
) -> None:
    """Ask for a next-step hint for LINE and save it on that line."""

    settings = _load_config(config)
    controller = _open_notebook(notebook, settings)
    index = _line_index(controller, line)
    try:
        result = anyio.run(_call_model, controller, "request_hint", index)
    except NotebookError as exc:
        console.print(f"[red]hint failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    _save_notebook(controller, notebook)
    console.print(result.text)


@app.command(name="export-latex")
def export_latex_command(
    notebook: Path = typer.Argument(..., help="Notebook JSON file."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to a file instead of stdout."),
) -> None:
    """Flatten a notebook into LaTeX."""

    controller = _open_notebook(notebook)
    latex = controller.export_latex()
    if output is None:
        typer.echo(latex)
        return
    output.write_text(latex + "\n", encoding="utf-8")
    console.print(f"[green]wrote {output}[/green]")


@app.command()
def templates(
    config: Optional[Path] = typer.Option(None, "--config", help=f"Notebook config YAML (defaults to ${CONFIG_ENV_VAR})."),
    as_json: bool = typer.Option(False, "--json"),
) -> None:
    """List available notebook templates."""

    settings = _load_config(config)
    items = list_templates(settings.templates_dir)
    if as_json:
        typer.echo(json.dumps([item.model_dump() for item in items], indent=2, ensure_ascii=False))
        return
    if not items:
        console.print(f"[yellow]No templates found in {settings.templates_dir}[/yellow]")
        return
    table = Table("Slug", "Title", "Category", "Difficulty")
    for item in items:
        table.add_row(item.slug, item.meta.title, item.meta.category, item.meta.difficulty)
    console.print(table)


@app.command()
def new(
    notebook: Path = typer.Argument(..., help="Where to write the new notebook JSON."),
    template: Optional[str] = typer.Option(None, "--template", help="Template slug to start from."),
    config: Optional[Path] = typer.Option(None, "--config", help=f"Notebook config YAML (defaults to ${CONFIG_ENV_VAR})."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file."),
) -> None:
    """Create a notebook file from the starter lines or a template."""

    if notebook.exists() and not force:
        raise typer.BadParameter(f"{notebook} already exists (use --force to overwrite)")
    controller = NotebookController(starter_lines(), demo_mode=True)
    if template:
        settings = _load_config(config)
        try:
            controller.load_template(load_template(settings.templates_dir, template))
        except TemplateNotFoundError as exc:
            raise typer.BadParameter(str(exc)) from exc
    notebook.parent.mkdir(parents=True, exist_ok=True)
    _save_notebook(controller, notebook)
    console.print(f"[green]created {notebook}[/green] ({len(controller.lines)} lines)")


if __name__ == "__main__":  # pragma: no cover
    app()
