from diffanchor.diff.models import LineRange
from diffanchor.review.models import Suggestion, SuggestionType

SEVERITY_GLYPHS = {
    "critical": "🔴",
    "major": "🟠",
    "minor": "🟡",
    "info": "ℹ️",
}
DEFAULT_GLYPH = "💬"

TYPE_LABELS = {
    SuggestionType.ERROR: "Error",
    SuggestionType.WARNING: "Warning",
    SuggestionType.IMPROVEMENT: "Improvement",
    SuggestionType.SECURITY: "Security",
    SuggestionType.PERFORMANCE: "Performance",
    SuggestionType.BEST_PRACTICE: "Best Practice",
}
DEFAULT_LABEL = "Comment"


def severity_glyph(severity: str | None) -> str:
    return SEVERITY_GLYPHS.get((severity or "minor").lower(), DEFAULT_GLYPH)


def type_label(suggestion_type: str | None) -> str:
    return TYPE_LABELS.get(suggestion_type or SuggestionType.IMPROVEMENT, DEFAULT_LABEL)


def format_comment_body(suggestion: Suggestion, line_range: LineRange | None = None) -> str:
    """Render the markdown body of an inline review comment.

    `line_range` is the validated range the comment is anchored to; the
    `Lines X-Y` note is added when it spans more than one line.
    """
    body = (
        f"{severity_glyph(suggestion.severity)} "
        f"**[{type_label(suggestion.suggestion_type)}]** {suggestion.action}\n\n"
    )
    body += f"**Reason:** {suggestion.reason}\n"

    if suggestion.patch:
        body += "\n**Suggested change:**\n"
        body += "```diff\n"
        body += suggestion.patch
        body += "\n```\n"

    if line_range is None and suggestion.requested_start is not None:
        line_range = LineRange(
            suggestion.requested_start,
            suggestion.end_line or suggestion.requested_start,
        )
    if line_range is not None and line_range.is_multi_line:
        body += f"\n*Lines {line_range.start_line}-{line_range.end_line}*"

    return body
