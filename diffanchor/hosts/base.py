import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from diffanchor.config import HostConfig, HostProvider
from diffanchor.hosts.errors import (
    AuthenticationError,
    HostError,
    HostErrorType,
    NotFoundError,
    RateLimitedError,
)
from diffanchor.hosts.models import AnchorMetadata, CommentPosition, CommentRequest, CommentResult

logger = logging.getLogger(__name__)

USER_AGENT = "diffanchor"


def _retry_after_sec(response: httpx.Response) -> int | None:
    # Both hosts send delta-seconds; HTTP-date values are ignored.
    value = response.headers.get("Retry-After")
    if value is None or not value.strip().isdigit():
        return None
    return int(value.strip())


class HostConnector(ABC):
    """Uniform interface to a code host for one pull/merge request."""

    provider: HostProvider
    supports_bulk: bool = False

    def __init__(self, config: HostConfig, repo: str, number: int):
        self.config = config
        self.repo = repo
        self.number = number

    @abstractmethod
    async def get_comment_position(self, path: str, line: int) -> AnchorMetadata | None:
        """Return the diff-version SHAs needed to anchor a comment on `path`.

        Returns None when the host has no usable diff version for the request
        (for example a merge request without recorded versions). Never raises
        for host failures; those are logged and reported as None.
        """
        pass

    @abstractmethod
    async def create_inline_comment(
        self,
        body: str,
        path: str,
        position: CommentPosition,
    ) -> CommentResult:
        """Post one inline comment.

        Raises:
            HostError: On any failure reported by the host.
        """
        pass

    async def create_bulk_comments(self, comments: list[CommentRequest]) -> list[CommentResult]:
        """Post several inline comments in one request.

        Only available when `supports_bulk` is set.
        """
        raise NotImplementedError(f"{self.provider} connector has no bulk comment endpoint")

    @abstractmethod
    async def get_diff(self) -> str:
        """Fetch the full unified diff of the pull/merge request."""
        pass

    def _get_headers(self) -> dict[str, str]:
        return {"User-Agent": USER_AGENT}

    async def _get_client(self) -> httpx.AsyncClient:
        # A fresh client per request keeps connectors usable across asyncio.run() calls.
        return httpx.AsyncClient(
            base_url=self.config.api_url,
            timeout=self.config.timeout_sec,
            headers=self._get_headers(),
        )

    def _classify_error(
        self,
        status_code: int,
        response_body: Any,
        retry_after_sec: int | None = None,
    ) -> HostError:
        message = f"HTTP {status_code}"
        if isinstance(response_body, dict):
            detail = response_body.get("message") or response_body.get("error")
            if isinstance(detail, dict):
                detail = detail.get("message")
            if detail:
                message = f"HTTP {status_code}: {detail}"

        if status_code in (401, 403):
            return AuthenticationError(message, status_code=status_code)
        if status_code == 404:
            return NotFoundError(message)
        if status_code == 429:
            return RateLimitedError(message, retry_after_sec=retry_after_sec)

        error_map = {
            400: (HostErrorType.INVALID_REQUEST, False),
            422: (HostErrorType.INVALID_REQUEST, False),
            500: (HostErrorType.PROVIDER_ERROR, True),
            502: (HostErrorType.PROVIDER_ERROR, True),
            503: (HostErrorType.PROVIDER_ERROR, True),
            504: (HostErrorType.PROVIDER_ERROR, True),
        }
        error_type, retryable = error_map.get(status_code, (HostErrorType.UNKNOWN, False))
        return HostError(error_type, message, status_code=status_code, retryable=retryable)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(method, url, json=json, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise HostError(
                HostErrorType.NETWORK_ERROR,
                f"Request timed out after {self.config.timeout_sec} seconds",
                retryable=True,
            ) from e
        except httpx.RequestError as e:
            raise HostError(HostErrorType.NETWORK_ERROR, str(e), retryable=True) from e
        finally:
            await client.aclose()

        if response.status_code >= 400:
            try:
                response_body = response.json()
            except ValueError:
                response_body = None
            error = self._classify_error(
                response.status_code,
                response_body,
                retry_after_sec=_retry_after_sec(response),
            )
            logger.error("%s %s failed: %s", method, url, error)
            raise error
        return response

    async def _request_json(self, method: str, url: str, **kwargs) -> Any:
        response = await self._request(method, url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise HostError(
                HostErrorType.INVALID_RESPONSE,
                f"Non-JSON response from {self.provider}",
                status_code=response.status_code,
            ) from e
