"""Response contracts for the GitHub and GitLab REST APIs.

Only the fields the comment engine reads are declared; anything else the
providers send is ignored. Payloads are validated here, at the connector
boundary, so nothing past a connector handles raw JSON.
"""

from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from diffanchor.hosts.errors import HostError, HostErrorType

T = TypeVar("T")


class GitHubRef(BaseModel):
    sha: str
    ref: str | None = None


class GitHubPullRequest(BaseModel):
    number: int
    html_url: str | None = None
    head: GitHubRef
    base: GitHubRef


class GitHubPullFile(BaseModel):
    filename: str
    status: str = "modified"
    patch: str | None = None
    previous_filename: str | None = None
    additions: int = 0
    deletions: int = 0


class GitHubReviewComment(BaseModel):
    id: int
    html_url: str | None = None
    body: str = ""
    created_at: datetime | None = None


class GitHubReview(BaseModel):
    id: int
    html_url: str | None = None
    submitted_at: datetime | None = None


class GitLabMergeRequestVersion(BaseModel):
    id: int
    base_commit_sha: str
    start_commit_sha: str
    head_commit_sha: str


class GitLabNote(BaseModel):
    id: int
    body: str = ""
    created_at: datetime | None = None


class GitLabDiscussion(BaseModel):
    id: str
    notes: list[GitLabNote] = []


class GitLabChange(BaseModel):
    old_path: str
    new_path: str
    diff: str = ""
    new_file: bool = False
    deleted_file: bool = False
    renamed_file: bool = False


class GitLabMergeRequestChanges(BaseModel):
    changes: list[GitLabChange] = []


def parse_contract(contract: type[T], payload: Any, what: str) -> T:
    """Validate `payload` against `contract` or raise an invalid-response HostError."""
    try:
        return TypeAdapter(contract).validate_python(payload)
    except ValidationError as e:
        raise HostError(
            HostErrorType.INVALID_RESPONSE,
            f"Invalid {what} response: {e.errors()[:1]}",
            retryable=False,
        ) from e
