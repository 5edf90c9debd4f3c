import logging

from diffanchor.config import HostProvider
from diffanchor.diff.parser import map_diff_lines
from diffanchor.hosts.base import HostConnector
from diffanchor.hosts.contracts import (
    GitHubPullFile,
    GitHubPullRequest,
    GitHubReview,
    GitHubReviewComment,
    parse_contract,
)
from diffanchor.hosts.errors import HostError
from diffanchor.hosts.models import AnchorMetadata, CommentPosition, CommentRequest, CommentResult

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
DIFF_MEDIA_TYPE = "application/vnd.github.diff"


class GitHubConnector(HostConnector):
    """Pull request review comments through the GitHub REST API.

    GitHub addresses inline comments purely in new-file coordinates: `line`
    is the (last) commented line and `start_line` opens a multi-line range.
    """

    provider = HostProvider.GITHUB
    supports_bulk = True

    def _get_headers(self) -> dict[str, str]:
        headers = super()._get_headers()
        headers["Accept"] = "application/vnd.github+json"
        headers["X-GitHub-Api-Version"] = GITHUB_API_VERSION
        if self.config.token is not None:
            headers["Authorization"] = f"Bearer {self.config.token.get_secret_value()}"
        return headers

    @property
    def _pull_url(self) -> str:
        return f"/repos/{self.repo}/pulls/{self.number}"

    async def get_pull_request(self) -> GitHubPullRequest:
        data = await self._request_json("GET", self._pull_url)
        return parse_contract(GitHubPullRequest, data, "pull request")

    async def list_files(self) -> list[GitHubPullFile]:
        data = await self._request_json(
            "GET", f"{self._pull_url}/files", params={"per_page": 100}
        )
        return parse_contract(list[GitHubPullFile], data, "pull request files")

    async def get_comment_position(self, path: str, line: int) -> AnchorMetadata | None:
        try:
            pr = await self.get_pull_request()
            files = await self.list_files()
        except HostError as e:
            logger.error("Failed to get comment position for PR #%d: %s", self.number, e)
            return None

        pr_file = next((f for f in files if f.filename == path), None)
        if pr_file is None:
            logger.warning("File %s not found in PR #%d diff", path, self.number)
            return None

        if pr_file.patch and not any(m.new_line == line for m in map_diff_lines(pr_file.patch)):
            # GitHub may still accept it; keep going.
            logger.warning(
                "Line %d not found in changed sections of %s (%d additions, %d deletions)",
                line,
                path,
                pr_file.additions,
                pr_file.deletions,
            )

        return AnchorMetadata(base_sha=pr.base.sha, head_sha=pr.head.sha)

    def _comment_payload(self, body: str, path: str, position: CommentPosition) -> dict:
        payload: dict[str, object] = {
            "body": body,
            "path": path,
            "line": position.new_line,
            "side": "RIGHT",
        }
        if position.is_multi_line:
            payload["start_line"] = position.start_line
            payload["start_side"] = "RIGHT"
        return payload

    async def create_inline_comment(
        self,
        body: str,
        path: str,
        position: CommentPosition,
    ) -> CommentResult:
        payload = self._comment_payload(body, path, position)
        payload["commit_id"] = position.head_sha
        data = await self._request_json("POST", f"{self._pull_url}/comments", json=payload)
        comment = parse_contract(GitHubReviewComment, data, "review comment")
        return CommentResult(
            id=str(comment.id),
            url=comment.html_url,
            body=comment.body or body,
            created_at=comment.created_at,
        )

    async def create_bulk_comments(self, comments: list[CommentRequest]) -> list[CommentResult]:
        if not comments:
            return []
        review_comments = [
            self._comment_payload(c.body, c.path, c.position) for c in comments
        ]
        payload = {
            "commit_id": comments[0].position.head_sha,
            "event": "COMMENT",
            "comments": review_comments,
        }
        data = await self._request_json("POST", f"{self._pull_url}/reviews", json=payload)
        review = parse_contract(GitHubReview, data, "review")
        return [
            CommentResult(
                id=f"review-{review.id}-comment-{index}",
                url=review.html_url,
                body=comment["body"],
                created_at=review.submitted_at,
            )
            for index, comment in enumerate(review_comments)
        ]

    async def get_diff(self) -> str:
        response = await self._request("GET", self._pull_url, headers={"Accept": DIFF_MEDIA_TYPE})
        return response.text
