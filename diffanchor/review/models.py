from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from diffanchor.diff.validator import Severity


class SuggestionType(StrEnum):
    ERROR = "ERROR"
    WARNING = "WARNING"
    IMPROVEMENT = "IMPROVEMENT"
    SECURITY = "SECURITY"
    PERFORMANCE = "PERFORMANCE"
    BEST_PRACTICE = "BEST_PRACTICE"


class CommentMode(StrEnum):
    SINGLE_LINE = "SINGLE_LINE"
    RANGE = "RANGE"


class Suggestion(BaseModel):
    """A review finding as produced by the reviewing model.

    Accepts both the camelCase keys the model emits (`startLine`,
    `suggestionType`, ...) and snake_case names.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    file: str | None = None
    start_line: int | None = None
    end_line: int | None = None
    severity: Severity | str | None = None
    action: str = ""
    reason: str = ""
    patch: str | None = None
    suggestion_type: SuggestionType | str | None = None
    comment_mode: CommentMode | None = None
    # Older model output used a single `lineNumber` field.
    line_number: int | None = None

    @field_validator("start_line", "end_line", "line_number", mode="before")
    @classmethod
    def _drop_non_positive_lines(cls, value: Any) -> Any:
        # Line numbers are 1-based; 0 and negatives mean "not given".
        if isinstance(value, int) and not isinstance(value, bool) and value <= 0:
            return None
        return value

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return value or None
        return value

    @field_validator("suggestion_type", mode="before")
    @classmethod
    def _normalize_suggestion_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().upper().replace(" ", "_")
            return value or None
        return value

    @property
    def requested_start(self) -> int | None:
        return next((n for n in (self.start_line, self.line_number) if n is not None and n > 0), None)

    def effective_severity(self, default: Severity = Severity.MINOR) -> Severity | str:
        return self.severity or default


class CommentError(BaseModel):
    file: str
    line: int | None
    error: str
    # Set when the host reported a transient failure (rate limit, 5xx, network).
    retryable: bool = False
    retry_after_sec: int | None = None


class InlineCommentResult(BaseModel):
    session_id: str | None = None
    successful: int = 0
    failed: int = 0
    errors: list[CommentError] = Field(default_factory=list)

    def record_failure(
        self,
        file: str,
        line: int | None,
        error: str,
        retryable: bool = False,
        retry_after_sec: int | None = None,
    ) -> None:
        self.failed += 1
        self.errors.append(
            CommentError(
                file=file,
                line=line,
                error=error,
                retryable=retryable,
                retry_after_sec=retry_after_sec,
            )
        )
