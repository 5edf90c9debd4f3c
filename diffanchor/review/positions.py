"""Provider-specific anchors for inline review comments.

GitHub and GitLab address diff lines differently:

- GitHub only looks at new-file coordinates. A single-line comment sets
  `new_line`; a range sets `start_line` to the first and `new_line` to the
  last line.
- GitLab wants the old and the new line of the anchored row, plus the three
  SHAs of the merge request diff version. Pure additions have no old line.
"""

import logging
from collections.abc import Callable

from diffanchor.config import HostProvider
from diffanchor.diff.models import DiffLineMapping, LineRange
from diffanchor.diff.parser import find_old_line_for_new_line
from diffanchor.hosts.base import HostConnector
from diffanchor.hosts.models import AnchorMetadata, CommentPosition

logger = logging.getLogger(__name__)

AnchorBuilder = Callable[
    [AnchorMetadata, str, str | None, LineRange, list[DiffLineMapping]],
    CommentPosition | None,
]


def github_anchor(
    anchor: AnchorMetadata,
    path: str,
    old_path: str | None,
    line_range: LineRange,
    mapping: list[DiffLineMapping],
) -> CommentPosition:
    position = CommentPosition(
        base_sha=anchor.base_sha,
        start_sha=anchor.start_sha,
        head_sha=anchor.head_sha,
        old_path=old_path,
        new_path=path,
        new_line=line_range.start_line,
    )
    if line_range.is_multi_line:
        position.start_line = line_range.start_line
        position.new_line = line_range.end_line
        logger.debug(
            "[GitHub] Multi-line comment for %s: start=%d, end=%d",
            path,
            line_range.start_line,
            line_range.end_line,
        )
    else:
        logger.debug("[GitHub] Single-line comment for %s: line=%d", path, line_range.start_line)
    return position


def gitlab_anchor(
    anchor: AnchorMetadata,
    path: str,
    old_path: str | None,
    line_range: LineRange,
    mapping: list[DiffLineMapping],
) -> CommentPosition | None:
    if not (anchor.base_sha and anchor.start_sha and anchor.head_sha):
        logger.warning("[GitLab] Missing diff version SHAs for %s; GitLab would reject it", path)
        return None

    old_line = find_old_line_for_new_line(mapping, line_range.start_line)
    logger.debug(
        "[GitLab] Comment positioning for %s: old=%s, new=%d",
        path,
        old_line,
        line_range.start_line,
    )
    return CommentPosition(
        base_sha=anchor.base_sha,
        start_sha=anchor.start_sha,
        head_sha=anchor.head_sha,
        old_path=old_path or path,
        new_path=path,
        old_line=old_line,
        new_line=line_range.start_line,
    )


ANCHOR_BUILDERS: dict[HostProvider, AnchorBuilder] = {
    HostProvider.GITHUB: github_anchor,
    HostProvider.GITLAB: gitlab_anchor,
}


class PositionResolver:
    """Turns a validated line range into the connector's anchor format."""

    def __init__(self, connector: HostConnector):
        self.connector = connector
        self._build = ANCHOR_BUILDERS[connector.provider]

    async def resolve(
        self,
        path: str,
        line_range: LineRange,
        mapping: list[DiffLineMapping],
        old_path: str | None = None,
    ) -> CommentPosition | None:
        """Return the anchor for `line_range` in `path`, or None if unresolvable.

        `mapping` must be the complete mapping of the file's diff; old-line
        lookups for GitLab run against it.
        """
        anchor = await self.connector.get_comment_position(path, line_range.start_line)
        if anchor is None:
            logger.warning("Could not determine position for %s:%d", path, line_range.start_line)
            return None
        return self._build(anchor, path, old_path, line_range, mapping)
