from datetime import datetime

from pydantic import BaseModel


class AnchorMetadata(BaseModel):
    """Commit SHAs a host needs to pin an inline comment to a diff version."""
    base_sha: str
    start_sha: str | None = None
    head_sha: str


class CommentPosition(BaseModel):
    base_sha: str
    start_sha: str | None = None
    head_sha: str
    old_path: str | None = None
    new_path: str
    old_line: int | None = None
    new_line: int  # end line for multi-line comments
    start_line: int | None = None

    @property
    def is_multi_line(self) -> bool:
        return self.start_line is not None and self.start_line != self.new_line


class CommentRequest(BaseModel):
    body: str
    path: str
    position: CommentPosition


class CommentResult(BaseModel):
    id: str
    url: str | None = None
    body: str
    created_at: datetime | None = None
