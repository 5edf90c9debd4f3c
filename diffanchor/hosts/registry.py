from diffanchor.config import HostConfig, HostProvider
from diffanchor.hosts.base import HostConnector
from diffanchor.hosts.errors import UnknownProviderError
from diffanchor.hosts.github import GitHubConnector
from diffanchor.hosts.gitlab import GitLabConnector

CONNECTORS: dict[HostProvider, type[HostConnector]] = {
    HostProvider.GITHUB: GitHubConnector,
    HostProvider.GITLAB: GitLabConnector,
}


def get_connector(config: HostConfig, repo: str, number: int) -> HostConnector:
    """Build the connector for `config.provider`, bound to one pull/merge request."""
    try:
        connector_cls = CONNECTORS[HostProvider(config.provider)]
    except (KeyError, ValueError):
        raise UnknownProviderError(f"Unsupported host provider: {config.provider!r}")
    return connector_cls(config, repo, number)
