from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    # Network
    NETWORK_ERROR = "NETWORK_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    TIMEOUT = "TIMEOUT"

    # Resource
    NOT_FOUND = "NOT_FOUND"
    PARSE_ERROR = "PARSE_ERROR"
    INVALID_DATA = "INVALID_DATA"

    # Cache
    CACHE_INIT_ERROR = "CACHE_INIT_ERROR"
    CACHE_SET_ERROR = "CACHE_SET_ERROR"
    CACHE_GET_ERROR = "CACHE_GET_ERROR"
    CACHE_DELETE_ERROR = "CACHE_DELETE_ERROR"
    CACHE_CLEAR_ERROR = "CACHE_CLEAR_ERROR"
    CACHE_CLEANUP_ERROR = "CACHE_CLEANUP_ERROR"
    CACHE_STATS_ERROR = "CACHE_STATS_ERROR"
    CACHE_INFO_ERROR = "CACHE_INFO_ERROR"
    CACHE_SIZE_ERROR = "CACHE_SIZE_ERROR"

    # Package info
    PACKAGE_INFO_ERROR = "PACKAGE_INFO_ERROR"
    PACKAGE_NOT_FOUND = "PACKAGE_NOT_FOUND"
    PACKAGE_VERSION_ERROR = "PACKAGE_VERSION_ERROR"

    # Documentation
    DOCUMENTATION_NOT_FOUND = "DOCUMENTATION_NOT_FOUND"
    DOCUMENTATION_FETCH_ERROR = "DOCUMENTATION_FETCH_ERROR"
    DOCUMENTATION_PARSE_ERROR = "DOCUMENTATION_PARSE_ERROR"
    DOCUMENTATION_SCORING_ERROR = "DOCUMENTATION_SCORING_ERROR"
    PROCESSING_ERROR = "PROCESSING_ERROR"

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_URL = "INVALID_URL"
    INVALID_CONTENT_TYPE = "INVALID_CONTENT_TYPE"
    INVALID_INPUT = "INVALID_INPUT"

    # Configuration / filesystem
    CONFIG_LOAD_ERROR = "CONFIG_LOAD_ERROR"
    DIRECTORY_ERROR = "DIRECTORY_ERROR"
    INIT_ERROR = "INIT_ERROR"
    FILE_WRITE_ERROR = "FILE_WRITE_ERROR"
    FILE_READ_ERROR = "FILE_READ_ERROR"

    UNKNOWN = "UNKNOWN"


RETRYABLE_CODES: frozenset[ErrorCode] = frozenset(
    {
        ErrorCode.NETWORK_ERROR,
        ErrorCode.TIMEOUT,
        ErrorCode.RATE_LIMIT,
        ErrorCode.UNKNOWN,
    }
)


class DocsFetcherError(Exception):
    """Raised for every expected failure in the fetch pipeline.

    Low-level failures (OSError, httpx errors, Playwright errors) are wrapped
    into this type at the component boundary, carrying the cause's message.
    The CLI is the only layer that catches it.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str = "",
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion

    @property
    def recoverable(self) -> bool:
        return self.code in RETRYABLE_CODES

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }


def is_retryable_error(error: BaseException) -> bool:
    """Return True for errors worth another attempt.

    Untyped exceptions count as ``UNKNOWN`` and are retried.
    """
    if isinstance(error, DocsFetcherError):
        return error.recoverable
    return True
