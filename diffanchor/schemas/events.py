from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class EventType(StrEnum):
    SESSION_STARTED = "session_started"
    SUGGESTION_SKIPPED = "suggestion_skipped"
    LINE_ADJUSTED = "line_adjusted"
    POSITION_UNRESOLVED = "position_unresolved"
    COMMENT_POSTED = "comment_posted"
    COMMENT_FAILED = "comment_failed"
    SESSION_FINISHED = "session_finished"


class Event(BaseModel):
    event_type: EventType
    timestamp: datetime
    session_id: str
    step_id: int
    payload: dict[str, Any]
