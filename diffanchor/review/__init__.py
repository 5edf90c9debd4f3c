from diffanchor.review.formatting import format_comment_body
from diffanchor.review.models import (
    CommentError,
    CommentMode,
    InlineCommentResult,
    Suggestion,
    SuggestionType,
)
from diffanchor.review.orchestrator import CommentOrchestrator, index_file_diffs, resolve_line_range
from diffanchor.review.positions import ANCHOR_BUILDERS, PositionResolver, github_anchor, gitlab_anchor

__all__ = [
    "format_comment_body",
    "CommentError",
    "CommentMode",
    "InlineCommentResult",
    "Suggestion",
    "SuggestionType",
    "CommentOrchestrator",
    "index_file_diffs",
    "resolve_line_range",
    "ANCHOR_BUILDERS",
    "PositionResolver",
    "github_anchor",
    "gitlab_anchor",
]
