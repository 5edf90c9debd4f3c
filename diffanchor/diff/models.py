from dataclasses import dataclass, field
from enum import StrEnum


class LineType(StrEnum):
    ADDED = "added"
    DELETED = "deleted"
    UNCHANGED = "unchanged"
    HEADER = "header"


@dataclass(frozen=True)
class DiffLineMapping:
    """One diff line with its position in the old and new file.

    `added` lines have no old line, `deleted` lines have no new line,
    `unchanged` lines have both and `header` lines have neither.
    """

    old_line: int | None
    new_line: int | None
    content: str
    type: LineType


@dataclass(frozen=True)
class LineRange:
    start_line: int
    end_line: int

    @property
    def is_multi_line(self) -> bool:
        return self.end_line > self.start_line


@dataclass
class FileDiff:
    old_path: str | None
    new_path: str | None
    lines: list[DiffLineMapping] = field(default_factory=list)
    raw: str = ""

    @property
    def path(self) -> str | None:
        return self.new_path or self.old_path

    @property
    def is_new_file(self) -> bool:
        return self.old_path is None

    @property
    def is_deleted_file(self) -> bool:
        return self.new_path is None
