import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass

import ulid

from diffanchor.config import PostingConfig
from diffanchor.diff.models import DiffLineMapping, FileDiff, LineRange
from diffanchor.diff.parser import parse_file_diffs
from diffanchor.diff.validator import suggest_best_comment_line, validate_line_range
from diffanchor.hosts.base import HostConnector
from diffanchor.hosts.errors import HostError
from diffanchor.hosts.models import CommentRequest
from diffanchor.review.formatting import format_comment_body
from diffanchor.review.models import InlineCommentResult, Suggestion
from diffanchor.review.positions import PositionResolver
from diffanchor.util.events import NULL_EVENT_LOGGER, EventLogger, NullEventLogger

logger = logging.getLogger(__name__)


@dataclass
class _PendingComment:
    file: str
    line: int
    request: CommentRequest


def _host_failure_hints(error: HostError) -> dict:
    return {
        "retryable": error.retryable,
        "retry_after_sec": error.details.get("retry_after_sec"),
    }


def index_file_diffs(diff: str) -> dict[str, FileDiff]:
    """Key each file of a multi-file diff by its new path, and old path for renames."""
    index: dict[str, FileDiff] = {}
    for file_diff in parse_file_diffs(diff):
        if file_diff.new_path:
            index.setdefault(file_diff.new_path, file_diff)
        if file_diff.old_path:
            index.setdefault(file_diff.old_path, file_diff)
    return index


def resolve_line_range(
    mapping: list[DiffLineMapping],
    suggestion: Suggestion,
    default_severity: str = "minor",
) -> tuple[LineRange | None, bool]:
    """Validated range for a suggestion and whether the severity fallback was used."""
    start = suggestion.requested_start
    if start is None:
        return None, False

    line_range = validate_line_range(mapping, start, suggestion.end_line)
    if line_range is not None:
        return line_range, False

    best_line = suggest_best_comment_line(
        mapping, start, suggestion.effective_severity(default_severity)
    )
    if best_line is None:
        return None, False
    return LineRange(best_line, best_line), True


class CommentOrchestrator:
    """Posts review suggestions as inline comments through one host connector.

    Suggestions are handled strictly in order. A suggestion that cannot be
    placed or posted is recorded in the result and never stops the batch;
    comments already posted stay posted.
    """

    def __init__(
        self,
        connector: HostConnector,
        posting: PostingConfig | None = None,
        event_logger: EventLogger | NullEventLogger | None = None,
    ):
        self.connector = connector
        self.posting = posting or PostingConfig()
        self.event_logger = event_logger or NULL_EVENT_LOGGER
        self.resolver = PositionResolver(connector)

    async def post_diff_comments(self, suggestions: list[Suggestion], diff: str) -> InlineCommentResult:
        return await self.post_inline_comments(suggestions, index_file_diffs(diff))

    async def post_inline_comments(
        self,
        suggestions: list[Suggestion],
        files: Mapping[str, FileDiff | list[DiffLineMapping]],
        session_id: str | None = None,
    ) -> InlineCommentResult:
        result = InlineCommentResult(session_id=session_id or str(ulid.ULID()))
        await self._emit(
            self.event_logger.log_session_started,
            str(self.connector.provider),
            self.connector.repo,
            self.connector.number,
            len(suggestions),
        )

        pending: list[_PendingComment] = []
        for suggestion in suggestions:
            prepared = await self._prepare(suggestion, files, result)
            if prepared is not None:
                pending.append(prepared)

        if pending:
            if self.connector.supports_bulk and self.posting.prefer_bulk:
                await self._submit_bulk(pending, result)
            else:
                await self._submit_sequential(pending, result)

        logger.info("Posted %d inline comments, %d failed", result.successful, result.failed)
        await self._emit(self.event_logger.log_session_finished, result.successful, result.failed)
        return result

    async def _prepare(
        self,
        suggestion: Suggestion,
        files: Mapping[str, FileDiff | list[DiffLineMapping]],
        result: InlineCommentResult,
    ) -> _PendingComment | None:
        requested = suggestion.requested_start
        if not suggestion.file or requested is None:
            logger.warning("Skipping suggestion without file or line number")
            await self._emit(
                self.event_logger.log_suggestion_skipped, suggestion.file, requested, "missing file or line"
            )
            return None

        file_diff = files.get(suggestion.file)
        if file_diff is None:
            logger.warning("File %s is not part of the diff; dropping suggestion", suggestion.file)
            await self._fail(result, suggestion.file, requested, "File not found in diff")
            return None
        if isinstance(file_diff, FileDiff):
            mapping, old_path = file_diff.lines, file_diff.old_path
        else:
            mapping, old_path = file_diff, None

        line_range, fallback_used = resolve_line_range(
            mapping, suggestion, self.posting.default_severity
        )
        if line_range is None:
            logger.error(
                "No valid line found for comment in %s at line %d. Skipping.",
                suggestion.file,
                requested,
            )
            await self._fail(result, suggestion.file, requested, "No valid line found in diff")
            return None

        if line_range.start_line != requested:
            logger.warning(
                "Adjusted line for %s: %d -> %d%s",
                suggestion.file,
                requested,
                line_range.start_line,
                " (fallback)" if fallback_used else "",
            )
            await self._emit(
                self.event_logger.log_line_adjusted,
                suggestion.file,
                requested,
                line_range.start_line,
                fallback_used,
            )

        try:
            position = await self.resolver.resolve(suggestion.file, line_range, mapping, old_path)
        except HostError as e:
            await self._fail(
                result, suggestion.file, line_range.start_line, str(e), **_host_failure_hints(e)
            )
            return None
        except Exception as e:
            logger.exception(
                "Unexpected error resolving position for %s:%d", suggestion.file, line_range.start_line
            )
            await self._fail(result, suggestion.file, line_range.start_line, str(e))
            return None
        if position is None:
            await self._emit(
                self.event_logger.log_position_unresolved, suggestion.file, line_range.start_line
            )
            await self._fail(
                result, suggestion.file, line_range.start_line, "Could not determine comment position"
            )
            return None

        return _PendingComment(
            file=suggestion.file,
            line=line_range.start_line,
            request=CommentRequest(
                body=format_comment_body(suggestion, line_range),
                path=suggestion.file,
                position=position,
            ),
        )

    async def _submit_bulk(self, pending: list[_PendingComment], result: InlineCommentResult) -> None:
        try:
            posted = await self.connector.create_bulk_comments([p.request for p in pending])
        except HostError as e:
            logger.error("Failed to post bulk comments: %s", e)
            for item in pending:
                await self._fail(result, item.file, item.line, str(e), **_host_failure_hints(e))
            return
        except Exception as e:
            logger.exception("Unexpected error posting bulk comments")
            for item in pending:
                await self._fail(result, item.file, item.line, str(e))
            return

        for index, item in enumerate(pending):
            if index < len(posted):
                result.successful += 1
                await self._emit(self.event_logger.log_comment_posted, item.file, item.line, posted[index].id)
            else:
                await self._fail(result, item.file, item.line, "Failed to post comment")

    async def _submit_sequential(self, pending: list[_PendingComment], result: InlineCommentResult) -> None:
        delay_sec = self.posting.sequential_delay_ms / 1000
        for index, item in enumerate(pending):
            if index > 0 and delay_sec > 0:
                # Stay under the host's secondary rate limits.
                await asyncio.sleep(delay_sec)
            try:
                posted = await self.connector.create_inline_comment(
                    item.request.body,
                    item.request.path,
                    item.request.position,
                )
            except HostError as e:
                logger.error("Failed to post comment for %s:%d: %s", item.file, item.line, e)
                await self._fail(result, item.file, item.line, str(e), **_host_failure_hints(e))
                continue
            except Exception as e:
                logger.exception("Unexpected error posting comment for %s:%d", item.file, item.line)
                await self._fail(result, item.file, item.line, str(e))
                continue
            result.successful += 1
            await self._emit(self.event_logger.log_comment_posted, item.file, item.line, posted.id)

    async def _emit(self, log: Callable[..., None], *args) -> None:
        if isinstance(self.event_logger, NullEventLogger):
            return
        # EventLogger writes under a file lock with fsync.
        await asyncio.to_thread(log, *args)

    async def _fail(
        self,
        result: InlineCommentResult,
        file: str,
        line: int | None,
        error: str,
        retryable: bool = False,
        retry_after_sec: int | None = None,
    ) -> None:
        result.record_failure(file, line, error, retryable, retry_after_sec)
        await self._emit(self.event_logger.log_comment_failed, file, line, error)
