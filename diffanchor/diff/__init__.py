from diffanchor.diff.models import DiffLineMapping, FileDiff, LineRange, LineType
from diffanchor.diff.parser import (
    extract_file_path,
    find_old_line_for_new_line,
    format_diff_with_line_numbers,
    is_line_in_changed_section,
    map_diff_lines,
    parse_file_diffs,
    split_multi_file_diff,
)
from diffanchor.diff.validator import (
    Severity,
    find_nearest_valid_line,
    is_in_commentable_context,
    suggest_best_comment_line,
    validate_line_range,
)

__all__ = [
    "DiffLineMapping",
    "FileDiff",
    "LineRange",
    "LineType",
    "extract_file_path",
    "find_old_line_for_new_line",
    "format_diff_with_line_numbers",
    "is_line_in_changed_section",
    "map_diff_lines",
    "parse_file_diffs",
    "split_multi_file_diff",
    "Severity",
    "find_nearest_valid_line",
    "is_in_commentable_context",
    "suggest_best_comment_line",
    "validate_line_range",
]
