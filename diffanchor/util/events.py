import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from diffanchor.schemas.events import Event, EventType
from diffanchor.util.jsonl import append_record

logger = logging.getLogger(__name__)

EVENTS_FILE_ENV = "DIFFANCHOR_EVENTS_FILE"


class EventLogger:
    """Appends review session events to a JSONL file."""

    def __init__(self, session_id: str, events_file: Path):
        self.session_id = session_id
        self.events_file = Path(events_file)
        self._step_counter = 0
        logger.debug("EventLogger initialized for session %s, writing to %s", session_id, events_file)

    def next_step_id(self) -> int:
        self._step_counter += 1
        return self._step_counter

    def log(self, event_type: EventType, payload: dict) -> None:
        event = Event(
            event_type=event_type,
            timestamp=datetime.now(timezone.utc),
            session_id=self.session_id,
            step_id=self.next_step_id(),
            payload=payload,
        )
        logger.debug("Logged event %s (step %d) for session %s", event_type, event.step_id, self.session_id)
        append_record(self.events_file, event)

    def log_session_started(self, provider: str, repo: str, number: int, suggestion_count: int) -> None:
        self.log(
            event_type=EventType.SESSION_STARTED,
            payload={
                "provider": provider,
                "repo": repo,
                "number": number,
                "suggestion_count": suggestion_count,
            },
        )

    def log_suggestion_skipped(self, file: str | None, line: int | None, reason: str) -> None:
        self.log(
            event_type=EventType.SUGGESTION_SKIPPED,
            payload={"file": file, "line": line, "reason": reason},
        )

    def log_line_adjusted(self, file: str, requested_line: int, adjusted_line: int, fallback_used: bool) -> None:
        self.log(
            event_type=EventType.LINE_ADJUSTED,
            payload={
                "file": file,
                "requested_line": requested_line,
                "adjusted_line": adjusted_line,
                "fallback_used": fallback_used,
            },
        )

    def log_position_unresolved(self, file: str, line: int) -> None:
        self.log(
            event_type=EventType.POSITION_UNRESOLVED,
            payload={"file": file, "line": line},
        )

    def log_comment_posted(self, file: str, line: int, comment_id: str) -> None:
        self.log(
            event_type=EventType.COMMENT_POSTED,
            payload={"file": file, "line": line, "comment_id": comment_id},
        )

    def log_comment_failed(self, file: str, line: int | None, error: str) -> None:
        self.log(
            event_type=EventType.COMMENT_FAILED,
            payload={"file": file, "line": line, "error": error},
        )

    def log_session_finished(self, successful: int, failed: int) -> None:
        self.log(
            event_type=EventType.SESSION_FINISHED,
            payload={"successful": successful, "failed": failed},
        )


class NullEventLogger:
    def log_session_started(self, provider: str, repo: str, number: int, suggestion_count: int) -> None: pass
    def log_suggestion_skipped(self, file: str | None, line: int | None, reason: str) -> None: pass
    def log_line_adjusted(self, file: str, requested_line: int, adjusted_line: int, fallback_used: bool) -> None: pass
    def log_position_unresolved(self, file: str, line: int) -> None: pass
    def log_comment_posted(self, file: str, line: int, comment_id: str) -> None: pass
    def log_comment_failed(self, file: str, line: int | None, error: str) -> None: pass
    def log_session_finished(self, successful: int, failed: int) -> None: pass


NULL_EVENT_LOGGER = NullEventLogger()


def event_logger_from_env(session_id: str) -> EventLogger | NullEventLogger:
    path = os.getenv(EVENTS_FILE_ENV)
    if not path:
        return NULL_EVENT_LOGGER
    return EventLogger(session_id=session_id, events_file=Path(path))
