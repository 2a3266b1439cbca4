import logging
from typing import Any, Callable, Union

from .exceptions import ClientError, InterceptorError, RequestCancelledError, RequestTimeoutError, NetworkError

logger = logging.getLogger(__name__)

TIMEOUT_CODES = ("ECONNABORTED", "ETIMEDOUT", "TIMEOUT")
NETWORK_CODES = (
    "ENOTFOUND",
    "ECONNRESET",
    "ECONNREFUSED",
    "ENETUNREACH",
    "ERR_NETWORK",
    "ERR_INTERNET_DISCONNECTED",
)
# Codes for requests that are wrong no matter how often they are sent
MALFORMED_CODES = ("ERR_BAD_REQUEST",)

RetryDelay = Union[int, float, Callable[[int], Union[int, float]]]


def _response(error: Any):
    return getattr(error, "response", None)


def _status(error: Any):
    return getattr(_response(error), "status", None)


def _message(error: Any) -> str:
    message = getattr(error, "message", None)
    if not isinstance(message, str):
        message = str(error) if error is not None else ""
    return message.lower()


def _is_unanswerable(error: Any) -> bool:
    """Errors that never reached the wire, so the missing response says nothing."""
    if isinstance(error, InterceptorError) and _response(error) is None:
        return True
    return getattr(error, "code", None) in MALFORMED_CODES


def is_timeout_error(error: Any) -> bool:
    if isinstance(error, RequestTimeoutError):
        return True
    code = getattr(error, "code", None)
    if code in TIMEOUT_CODES or _status(error) == 504:
        return True
    message = _message(error)
    if "timeout" in message or "timed out" in message or "gateway" in message:
        return True
    # Sent but never answered
    return (
        getattr(error, "request", None) is not None
        and _response(error) is None
        and code not in ("ENOTFOUND", "ECONNREFUSED")
        and not _is_unanswerable(error)
    )


def is_network_error(error: Any) -> bool:
    if isinstance(error, NetworkError):
        return True
    if _is_unanswerable(error):
        return False
    if _response(error) is None:
        return True
    if getattr(error, "code", None) in NETWORK_CODES:
        return True
    message = _message(error)
    return "network" in message or "connection" in message


def is_server_error(error: Any) -> bool:
    status = _status(error)
    return status is not None and status >= 500


def is_client_error(error: Any) -> bool:
    if isinstance(error, ClientError):
        return True
    status = _status(error)
    return status is not None and 400 <= status < 500


def is_cancellation_error(error: Any) -> bool:
    return isinstance(error, RequestCancelledError)


def should_retry(error: Any, enabled: bool, current_attempt: int, max_attempts: int, is_cancellation: bool) -> bool:
    """
    Decide whether a failed attempt earns another one.

    Cancellations, disabled policies and exhausted budgets never retry, and
    neither do client (4xx) or malformed-request errors. Anything else retries
    when it classifies as a timeout, a network failure or a server failure.
    """
    if is_cancellation or not enabled or current_attempt >= max_attempts:
        return False
    if is_client_error(error) or getattr(error, "code", None) in MALFORMED_CODES:
        return False
    return is_timeout_error(error) or is_network_error(error) or is_server_error(error)


def get_retry_delay(delay: RetryDelay, attempt: int) -> float:
    """
    Resolve the delay before retry number ``attempt`` (1-based), in
    milliseconds. ``delay`` is a fixed duration or a function of the attempt.
    """
    if callable(delay):
        delay = delay(attempt)
    return delay or 0


class RetryConfig:
    """Configuration for request retry behavior."""

    def __init__(self, enabled: bool = False, count: int = 3, delay: RetryDelay = 0):
        """
        Args:
            enabled: Whether failed attempts are retried at all
            count: Maximum number of retries after the first attempt
            delay: Milliseconds before each retry, or a function of the 1-based retry number
        """
        self.enabled = bool(enabled)
        self.count = count if count is not None else 3
        self.delay = delay if delay is not None else 0

    def should_retry(self, error: Any, current_attempt: int, is_cancellation: bool = False) -> bool:
        decision = should_retry(error, self.enabled, current_attempt, self.count, is_cancellation)
        logger.debug(
            "Retry decision for %s after attempt %d/%d: %s",
            type(error).__name__, current_attempt, self.count, decision,
        )
        return decision

    def get_delay(self, attempt: int) -> float:
        return get_retry_delay(self.delay, attempt)

    def __repr__(self):
        return f"RetryConfig(enabled={self.enabled}, count={self.count}, delay={self.delay!r})"
