from diffanchor.hosts.base import HostConnector
from diffanchor.hosts.errors import (
    AuthenticationError,
    HostError,
    HostErrorType,
    NotFoundError,
    RateLimitedError,
    UnknownProviderError,
)
from diffanchor.hosts.github import GitHubConnector
from diffanchor.hosts.gitlab import GitLabConnector
from diffanchor.hosts.models import AnchorMetadata, CommentPosition, CommentRequest, CommentResult
from diffanchor.hosts.registry import CONNECTORS, get_connector

__all__ = [
    "HostConnector",
    "AuthenticationError",
    "HostError",
    "HostErrorType",
    "NotFoundError",
    "RateLimitedError",
    "UnknownProviderError",
    "GitHubConnector",
    "GitLabConnector",
    "AnchorMetadata",
    "CommentPosition",
    "CommentRequest",
    "CommentResult",
    "CONNECTORS",
    "get_connector",
]
