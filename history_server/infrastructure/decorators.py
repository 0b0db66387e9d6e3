"""
Infrastructure-specific decorators, providing cross-cutting concerns like
retry logic for network operations.
"""

import logging

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

# --- Constants for Retry Logic ---
_RETRY_ATTEMPTS = 3
_RETRY_MIN_WAIT_SECONDS = 1
_RETRY_MAX_WAIT_SECONDS = 10


def _is_transient(exception: BaseException) -> bool:
    """Transport failures and server errors are retried; 4xx are final."""
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code >= 500
    return isinstance(exception, httpx.TransportError)


def _log_before_retry(retry_state):
    """Logs which request is retried, why, and after how long."""
    exception = retry_state.outcome.exception()
    next_attempt_in = retry_state.next_action.sleep
    # Decorated methods take the request URL as their last positional argument.
    target = retry_state.args[-1] if retry_state.args else retry_state.fn.__name__
    logger.warning(
        f"Request to {target} failed with {type(exception).__name__}: "
        f"{exception}. Retrying in {next_attempt_in:.2f}s "
        f"(attempt {retry_state.attempt_number} of {_RETRY_ATTEMPTS})."
    )


# A pre-configured decorator for async requests against refresh locations.
# The last exception is re-raised so callers can map it to a domain error.
retry_on_network_error = retry(
    stop=stop_after_attempt(_RETRY_ATTEMPTS),
    wait=wait_exponential(
        multiplier=1,
        min=_RETRY_MIN_WAIT_SECONDS,
        max=_RETRY_MAX_WAIT_SECONDS,
    ),
    retry=retry_if_exception(_is_transient),
    before_sleep=_log_before_retry,
    reraise=True,
)
