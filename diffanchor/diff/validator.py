import logging
from enum import StrEnum

from diffanchor.diff.models import DiffLineMapping, LineRange, LineType
from diffanchor.diff.parser import has_change_nearby

logger = logging.getLogger(__name__)

DEFAULT_MAX_DISTANCE = 5


class Severity(StrEnum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"
    INFO = "info"


# How far a finding may move from its requested line.
SEVERITY_SEARCH_RADIUS: dict[Severity, int] = {
    Severity.CRITICAL: 3,
    Severity.MAJOR: 5,
    Severity.MINOR: 7,
}
FALLBACK_SEARCH_RADIUS = 10


def search_radius(severity: Severity | str | None) -> int:
    try:
        return SEVERITY_SEARCH_RADIUS.get(Severity(severity), FALLBACK_SEARCH_RADIUS)
    except ValueError:
        return FALLBACK_SEARCH_RADIUS


def _entry_for(mapping: list[DiffLineMapping], new_line: int) -> DiffLineMapping | None:
    return next((m for m in mapping if m.new_line == new_line), None)


def find_nearest_valid_line(
    mapping: list[DiffLineMapping],
    requested_line: int,
    max_distance: int = DEFAULT_MAX_DISTANCE,
) -> int | None:
    """Return `requested_line` if it is in the diff, else the closest diff line.

    Candidates are added and context lines within `max_distance`. On equal
    distance the smaller line number wins.
    """
    exact = _entry_for(mapping, requested_line)
    if exact is not None and exact.type != LineType.DELETED:
        return requested_line

    candidates = sorted(
        m.new_line
        for m in mapping
        if m.new_line is not None and m.type in (LineType.ADDED, LineType.UNCHANGED)
    )
    if not candidates:
        logger.warning("No valid lines found in diff")
        return None

    best_line: int | None = None
    best_distance = max_distance + 1
    for candidate in candidates:
        distance = abs(candidate - requested_line)
        if distance <= max_distance and distance < best_distance:
            best_line = candidate
            best_distance = distance

    if best_line is None:
        logger.warning("No valid line found within %d lines of %d", max_distance, requested_line)
    else:
        logger.debug(
            "Found alternative line %d (distance: %d) for requested line %d",
            best_line,
            best_distance,
            requested_line,
        )
    return best_line


def validate_line_range(
    mapping: list[DiffLineMapping],
    start_line: int,
    end_line: int | None = None,
) -> LineRange | None:
    valid_start = find_nearest_valid_line(mapping, start_line)
    if valid_start is None:
        return None

    if end_line is None or end_line <= 0 or end_line == start_line:
        return LineRange(valid_start, valid_start)

    valid_end = find_nearest_valid_line(mapping, end_line)
    if valid_end is None:
        return LineRange(valid_start, valid_start)

    if valid_start > valid_end:
        return LineRange(valid_end, valid_start)
    return LineRange(valid_start, valid_end)


def is_in_commentable_context(mapping: list[DiffLineMapping], line: int) -> bool:
    """Added lines, and context lines within three lines of a change."""
    entry = _entry_for(mapping, line)
    if entry is None:
        return False
    if entry.type == LineType.ADDED:
        return True
    if entry.type == LineType.UNCHANGED:
        return has_change_nearby(mapping, line)
    return False


def suggest_best_comment_line(
    mapping: list[DiffLineMapping],
    requested_line: int,
    severity: Severity | str = Severity.MINOR,
) -> int | None:
    """Pick the line a finding of `severity` should be anchored to.

    Returns None when nothing suitable is close enough, except for critical
    findings, which fall back to the first added line of the file.
    """
    max_distance = search_radius(severity)

    if is_in_commentable_context(mapping, requested_line):
        return requested_line

    nearest = find_nearest_valid_line(mapping, requested_line, max_distance)
    if nearest is not None and is_in_commentable_context(mapping, nearest):
        logger.info("Using line %d instead of %d for %s issue", nearest, requested_line, severity)
        return nearest

    if severity == Severity.CRITICAL:
        first_added = next(
            (m.new_line for m in mapping if m.type == LineType.ADDED and m.new_line is not None),
            None,
        )
        if first_added is not None:
            logger.warning(
                "Critical issue: using first added line %d for line %d",
                first_added,
                requested_line,
            )
            return first_added

    return None
