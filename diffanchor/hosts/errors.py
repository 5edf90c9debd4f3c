from enum import StrEnum


class HostErrorType(StrEnum):
    AUTH_FAILED = "auth_failed"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    INVALID_REQUEST = "invalid_request"
    INVALID_RESPONSE = "invalid_response"
    PROVIDER_ERROR = "provider_error"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


class HostError(Exception):
    def __init__(
        self,
        error_type: HostErrorType,
        message: str,
        status_code: int | None = None,
        retryable: bool = False,
        details: dict | None = None
    ):
        super().__init__(message)
        self.error_type = error_type
        self.status_code = status_code
        self.retryable = retryable
        self.details = details or {}


class AuthenticationError(HostError):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
    ):
        super().__init__(
            HostErrorType.AUTH_FAILED,
            message,
            status_code=status_code,
            retryable=False,
        )


class NotFoundError(HostError):
    """The repository, merge request or file does not exist (HTTP 404)."""
    def __init__(
        self,
        message: str,
    ):
        super().__init__(
            HostErrorType.NOT_FOUND,
            message,
            status_code=404,
            retryable=False,
        )


class RateLimitedError(HostError):
    def __init__(
        self,
        message: str,
        retry_after_sec: int | None = None
    ):
        super().__init__(
            HostErrorType.RATE_LIMITED,
            message,
            status_code=429,
            retryable=True,
            details={
                "retry_after_sec": retry_after_sec
            }
        )


class UnknownProviderError(ValueError):
    pass
