import logging
import re
from collections.abc import Iterator
from typing import NamedTuple

from diffanchor.diff.models import DiffLineMapping, FileDiff, LineType

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
FILE_HEADER_RE = re.compile(r"^diff --git a/(.*?) b/")
FILE_PATHS_RE = re.compile(r"^diff --git a/(.*?) b/(.*)$")

DEV_NULL = "/dev/null"
CHANGE_CONTEXT_LINES = 3
_FILE_METADATA_PREFIXES = ("index ", "---", "+++")


def _diff_lines(diff: str) -> list[str]:
    # Only "\n" ends a diff line; form feeds and U+2028 are line content.
    lines = (diff or "").split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line.removesuffix("\r") for line in lines]


class _WalkedLine(NamedTuple):
    text: str
    type: LineType | None  # None: metadata or a line outside any known hunk
    old_line: int | None
    new_line: int | None


def _walk_diff(diff: str) -> Iterator[_WalkedLine]:
    old_next: int | None = None
    new_next: int | None = None
    old_left: int | None = None
    new_left: int | None = None
    in_hunk = False

    for text in _diff_lines(diff):
        if text.startswith("diff --git"):
            old_next = new_next = None
            old_left = new_left = None
            in_hunk = False
            yield _WalkedLine(text, None, None, None)
            continue

        if text.startswith("@@"):
            match = HUNK_HEADER_RE.match(text)
            if match:
                old_next = int(match.group(1))
                new_next = int(match.group(3))
                old_left = int(match.group(2)) if match.group(2) is not None else 1
                new_left = int(match.group(4)) if match.group(4) is not None else 1
            else:
                logger.warning("Malformed hunk header %r; keeping previous line counters", text)
                old_left = new_left = None
            in_hunk = True
            yield _WalkedLine(text, LineType.HEADER, None, None)
            continue

        if text.startswith("\\"):
            yield _WalkedLine(text, None, None, None)
            continue

        if not in_hunk and (text == "" or text.startswith(_FILE_METADATA_PREFIXES)):
            yield _WalkedLine(text, None, None, None)
            continue

        if old_next is None or new_next is None:
            yield _WalkedLine(text, None, None, None)
            continue

        if text.startswith("+"):
            yield _WalkedLine(text, LineType.ADDED, None, new_next)
            new_next += 1
            if new_left is not None:
                new_left -= 1
        elif text.startswith("-"):
            yield _WalkedLine(text, LineType.DELETED, old_next, None)
            old_next += 1
            if old_left is not None:
                old_left -= 1
        else:
            yield _WalkedLine(text, LineType.UNCHANGED, old_next, new_next)
            old_next += 1
            new_next += 1
            if old_left is not None and new_left is not None:
                old_left -= 1
                new_left -= 1

        if in_hunk and old_left is not None and new_left is not None:
            if old_left <= 0 and new_left <= 0:
                in_hunk = False


def map_diff_lines(diff: str) -> list[DiffLineMapping]:
    """Map every hunk line of a unified diff to its old and new line numbers.

    Never raises on malformed input: an unparseable hunk header still yields a
    `header` entry and the following lines keep the previous counters.
    """
    mapping = [
        DiffLineMapping(
            old_line=walked.old_line,
            new_line=walked.new_line,
            content=walked.text,
            type=walked.type,
        )
        for walked in _walk_diff(diff)
        if walked.type is not None
    ]
    logger.debug("Mapped %d diff lines", len(mapping))
    return mapping


def format_diff_with_line_numbers(diff: str) -> str:
    """Prefix each diff line with its new-file line number.

    Added and context lines get the number right-justified to four columns;
    metadata, hunk headers and deleted lines get four spaces.
    """
    formatted: list[str] = []
    for walked in _walk_diff(diff):
        if walked.type in (LineType.ADDED, LineType.UNCHANGED):
            formatted.append(f"{walked.new_line:>4}: {walked.text}")
        else:
            formatted.append(f"    : {walked.text}")
    return "\n".join(formatted)


def extract_file_path(diff_section: str) -> str | None:
    match = FILE_HEADER_RE.match(diff_section)
    return match.group(1) if match else None


def split_multi_file_diff(diff: str) -> dict[str, str]:
    """Split a multi-file diff into per-file sections keyed by old path.

    Sections of a path that occurs twice are concatenated.
    """
    sections: dict[str, list[str]] = {}
    current: list[str] | None = None

    for line in _diff_lines(diff):
        if line.startswith("diff --git"):
            path = extract_file_path(line) or line[len("diff --git"):].strip()
            current = sections.setdefault(path, [])
            current.append(line)
        elif current is not None:
            current.append(line)

    return {path: "\n".join(lines) for path, lines in sections.items()}


def _strip_header_path(raw: str, prefix: str) -> str | None:
    # "--- a/foo.py\t2024-01-01 ..." -> "foo.py"
    path = raw.split("\t", 1)[0].strip()
    if path == DEV_NULL:
        return None
    return path.removeprefix(prefix)


def parse_file_diffs(diff: str) -> list[FileDiff]:
    """Parse a multi-file diff into `FileDiff` objects in diff order."""
    file_diffs: list[FileDiff] = []
    for section in split_multi_file_diff(diff).values():
        lines = _diff_lines(section)
        old_path: str | None = None
        new_path: str | None = None
        saw_old = saw_new = False

        match = FILE_PATHS_RE.match(lines[0]) if lines else None
        if match:
            old_path, new_path = match.group(1), match.group(2)

        for line in lines[1:]:
            if line.startswith("@@"):
                break
            if line.startswith("--- ") and not saw_old:
                old_path = _strip_header_path(line[4:], "a/")
                saw_old = True
            elif line.startswith("+++ ") and not saw_new:
                new_path = _strip_header_path(line[4:], "b/")
                saw_new = True
            elif line.startswith("new file mode"):
                old_path = None
            elif line.startswith("deleted file mode"):
                new_path = None

        file_diffs.append(
            FileDiff(
                old_path=old_path,
                new_path=new_path,
                lines=map_diff_lines(section),
                raw=section,
            )
        )
    return file_diffs


def find_old_line_for_new_line(mapping: list[DiffLineMapping], new_line: int) -> int | None:
    for entry in mapping:
        if entry.new_line == new_line:
            return entry.old_line
    return None


def change_positions(mapping: list[DiffLineMapping]) -> list[int]:
    """New-file positions of every added and deleted line.

    A deleted line sits at the new-file line that follows it.
    """
    positions: list[int] = []
    next_new: int | None = None
    for entry in mapping:
        if entry.type == LineType.HEADER:
            match = HUNK_HEADER_RE.match(entry.content)
            if match:
                next_new = int(match.group(3))
        elif entry.new_line is not None:
            if entry.type == LineType.ADDED:
                positions.append(entry.new_line)
            next_new = entry.new_line + 1
        elif entry.type == LineType.DELETED and next_new is not None:
            positions.append(next_new)
    return positions


def has_change_nearby(
    mapping: list[DiffLineMapping],
    new_line: int,
    distance: int = CHANGE_CONTEXT_LINES,
) -> bool:
    return any(abs(position - new_line) <= distance for position in change_positions(mapping))


def is_line_in_changed_section(mapping: list[DiffLineMapping], new_line: int) -> bool:
    entry = next((m for m in mapping if m.new_line == new_line), None)
    if entry is None:
        return False
    return entry.type == LineType.ADDED or has_change_nearby(mapping, new_line)
