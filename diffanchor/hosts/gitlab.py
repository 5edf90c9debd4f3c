import logging
from urllib.parse import quote

from diffanchor.config import HostProvider
from diffanchor.hosts.base import HostConnector
from diffanchor.hosts.contracts import (
    GitLabDiscussion,
    GitLabMergeRequestChanges,
    GitLabMergeRequestVersion,
    parse_contract,
)
from diffanchor.hosts.errors import HostError, HostErrorType
from diffanchor.hosts.models import AnchorMetadata, CommentPosition, CommentResult

logger = logging.getLogger(__name__)


class GitLabConnector(HostConnector):
    """Merge request discussions through the GitLab REST API (v4).

    GitLab anchors a diff note with both the old and the new line number and
    rejects positions that lack the base/start/head SHAs of a diff version.
    There is no bulk endpoint, so comments are posted one by one.
    """

    provider = HostProvider.GITLAB
    supports_bulk = False

    def _get_headers(self) -> dict[str, str]:
        headers = super()._get_headers()
        if self.config.token is not None:
            headers["PRIVATE-TOKEN"] = self.config.token.get_secret_value()
        return headers

    @property
    def _merge_request_url(self) -> str:
        # Project paths such as "group/project" must be URL-encoded.
        return f"/projects/{quote(str(self.repo), safe='')}/merge_requests/{self.number}"

    async def list_versions(self) -> list[GitLabMergeRequestVersion]:
        data = await self._request_json("GET", f"{self._merge_request_url}/versions")
        return parse_contract(list[GitLabMergeRequestVersion], data, "merge request versions")

    async def get_comment_position(self, path: str, line: int) -> AnchorMetadata | None:
        try:
            versions = await self.list_versions()
        except HostError as e:
            logger.error("Failed to get comment position for MR !%d: %s", self.number, e)
            return None

        if not versions:
            logger.warning("MR !%d has no diff versions yet", self.number)
            return None

        latest = versions[0]
        return AnchorMetadata(
            base_sha=latest.base_commit_sha,
            start_sha=latest.start_commit_sha,
            head_sha=latest.head_commit_sha,
        )

    async def create_inline_comment(
        self,
        body: str,
        path: str,
        position: CommentPosition,
    ) -> CommentResult:
        if not (position.base_sha and position.start_sha and position.head_sha):
            raise HostError(
                HostErrorType.INVALID_REQUEST,
                "GitLab positions require base_sha, start_sha and head_sha",
            )

        payload = {
            "body": body,
            "position": {
                "position_type": "text",
                "base_sha": position.base_sha,
                "start_sha": position.start_sha,
                "head_sha": position.head_sha,
                "old_path": position.old_path or path,
                "new_path": position.new_path,
                "old_line": position.old_line,
                "new_line": position.new_line,
            },
        }
        data = await self._request_json("POST", f"{self._merge_request_url}/discussions", json=payload)
        discussion = parse_contract(GitLabDiscussion, data, "discussion")

        note = discussion.notes[0] if discussion.notes else None
        return CommentResult(
            id=str(note.id) if note else discussion.id,
            body=note.body if note and note.body else body,
            created_at=note.created_at if note else None,
        )

    async def get_diff(self) -> str:
        data = await self._request_json("GET", f"{self._merge_request_url}/changes")
        changes = parse_contract(GitLabMergeRequestChanges, data, "merge request changes")

        sections: list[str] = []
        for change in changes.changes:
            old_header = "/dev/null" if change.new_file else f"a/{change.old_path}"
            new_header = "/dev/null" if change.deleted_file else f"b/{change.new_path}"
            hunks = change.diff.rstrip("\n")
            sections.append(
                f"diff --git a/{change.old_path} b/{change.new_path}\n"
                f"--- {old_header}\n"
                f"+++ {new_header}\n"
                f"{hunks}"
            )
        return "\n".join(sections)
