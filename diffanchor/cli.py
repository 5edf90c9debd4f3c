import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path

import typer
import ulid
from pydantic import TypeAdapter, ValidationError

from diffanchor.config import HostProvider, ReviewConfig
from diffanchor.diff.parser import format_diff_with_line_numbers, map_diff_lines, split_multi_file_diff
from diffanchor.hosts.registry import get_connector
from diffanchor.logging import ROOT_LOGGER_NAME, setup_logging
from diffanchor.review.models import InlineCommentResult, Suggestion
from diffanchor.review.orchestrator import CommentOrchestrator, index_file_diffs, resolve_line_range
from diffanchor.util.events import event_logger_from_env

app = typer.Typer(no_args_is_help=True)

_SUGGESTIONS = TypeAdapter(list[Suggestion])


def _read_text(path: Path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise typer.BadParameter(f"Cannot read {path}: {exc}")


def load_suggestions(path: Path) -> list[Suggestion]:
    """Read suggestions from a JSON list or a `{"suggestions": [...]}` review object."""
    try:
        data = json.loads(_read_text(path))
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{path} is not valid JSON: {exc}")
    if isinstance(data, dict):
        data = data.get("suggestions", [])
    try:
        return _SUGGESTIONS.validate_python(data)
    except ValidationError as exc:
        raise typer.BadParameter(f"Invalid suggestions in {path}: {exc.errors()[:1]}")


@app.command("annotate")
def annotate_cmd(diff_file: Path):
    """Print the diff with new-file line numbers."""
    typer.echo(format_diff_with_line_numbers(_read_text(diff_file)))


@app.command("map")
def map_cmd(
    diff_file: Path,
    file: str | None = typer.Option(None, "--file", help="Only map this file of a multi-file diff"),
):
    """Print the old/new line mapping as JSON lines."""
    diff = _read_text(diff_file)
    if file is not None:
        sections = split_multi_file_diff(diff)
        if file not in sections:
            raise typer.BadParameter(f"{file} is not part of the diff")
        diff = sections[file]
    for entry in map_diff_lines(diff):
        typer.echo(json.dumps(asdict(entry)))


@app.command("validate")
def validate_cmd(diff_file: Path, suggestions_file: Path):
    """Show where each suggestion would be anchored, or that it is dropped."""
    files = index_file_diffs(_read_text(diff_file))
    for suggestion in load_suggestions(suggestions_file):
        label = f"{suggestion.file}:{suggestion.requested_start}"
        file_diff = files.get(suggestion.file or "")
        if file_diff is None:
            typer.echo(f"{label} dropped (file not in diff)")
            continue
        line_range, fallback_used = resolve_line_range(file_diff.lines, suggestion)
        if line_range is None:
            typer.echo(f"{label} dropped")
            continue
        note = " (fallback)" if fallback_used else ""
        typer.echo(f"{label} -> {line_range.start_line}-{line_range.end_line}{note}")


async def _post(
    config: ReviewConfig,
    repo: str,
    number: int,
    suggestions: list[Suggestion],
    diff_file: Path | None,
) -> InlineCommentResult:
    connector = get_connector(config.host, repo, number)
    diff = _read_text(diff_file) if diff_file is not None else await connector.get_diff()
    session_id = str(ulid.ULID())
    orchestrator = CommentOrchestrator(
        connector,
        posting=config.posting,
        event_logger=event_logger_from_env(session_id),
    )
    return await orchestrator.post_inline_comments(
        suggestions, index_file_diffs(diff), session_id=session_id
    )


@app.command("post")
def post_cmd(
    suggestions_file: Path,
    provider: HostProvider = typer.Option(..., "--provider", help="github or gitlab"),
    repo: str = typer.Option(..., "--repo", help="owner/name on GitHub, project id or path on GitLab"),
    number: int = typer.Option(..., "--number", help="Pull/merge request number"),
    diff_file: Path | None = typer.Option(None, "--diff", help="Use a local diff instead of fetching it"),
):
    """Post suggestions as inline comments on a pull/merge request."""
    suggestions = load_suggestions(suggestions_file)
    config = ReviewConfig.from_env(provider)
    result = asyncio.run(_post(config, repo, number, suggestions, diff_file))
    typer.echo(result.model_dump_json(indent=2))
    if result.failed:
        raise typer.Exit(code=1)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    """
    diffanchor CLI
    """
    if verbose:
        logging.getLogger(ROOT_LOGGER_NAME).setLevel(logging.DEBUG)


def run() -> None:
    setup_logging()
    app()
