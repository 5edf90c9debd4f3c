import logging
import os
from enum import StrEnum

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr

from diffanchor.diff.validator import Severity

logger = logging.getLogger(__name__)


class HostProvider(StrEnum):
    GITHUB = "github"
    GITLAB = "gitlab"


DEFAULT_API_URLS: dict[HostProvider, str] = {
    HostProvider.GITHUB: "https://api.github.com",
    HostProvider.GITLAB: "https://gitlab.com/api/v4",
}

_TOKEN_ENV = {
    HostProvider.GITHUB: "GITHUB_TOKEN",
    HostProvider.GITLAB: "GITLAB_TOKEN",
}
_API_URL_ENV = {
    HostProvider.GITHUB: "GITHUB_API_URL",
    HostProvider.GITLAB: "GITLAB_API_URL",
}


def _env_truthy(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, value)
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, value)
        return default


class HostConfig(BaseModel):
    provider: HostProvider
    api_url: str = ""
    token: SecretStr | None = None
    timeout_sec: float = 30.0

    def model_post_init(self, __context) -> None:
        if not self.api_url:
            self.api_url = DEFAULT_API_URLS[self.provider]
        self.api_url = self.api_url.rstrip("/")


class PostingConfig(BaseModel):
    sequential_delay_ms: int = Field(default=100, ge=0)
    prefer_bulk: bool = True
    default_severity: Severity = Severity.MINOR


class ReviewConfig(BaseModel):
    host: HostConfig
    posting: PostingConfig = Field(default_factory=PostingConfig)

    @classmethod
    def from_env(cls, provider: HostProvider | str) -> "ReviewConfig":
        load_dotenv()
        provider = HostProvider(provider)
        token = os.getenv(_TOKEN_ENV[provider])
        return cls(
            host=HostConfig(
                provider=provider,
                api_url=os.getenv(_API_URL_ENV[provider], ""),
                token=SecretStr(token) if token else None,
                timeout_sec=_env_float("DIFFANCHOR_TIMEOUT_SEC", 30.0),
            ),
            posting=PostingConfig(
                sequential_delay_ms=_env_int("DIFFANCHOR_SEQUENTIAL_DELAY_MS", 100),
                prefer_bulk=_env_truthy("DIFFANCHOR_PREFER_BULK", default=True),
            ),
        )
