"""
Shared OpenAI client construction and call policy.

Every outbound OpenAI call goes through call_with_retry(), which:
- bounds each attempt with asyncio.wait_for (cancellation from a dropped
  client propagates into the in-flight request)
- retries transient failures with exponential backoff

Errors that trigger a retry:
- asyncio.TimeoutError: attempt exceeded its timeout
- openai.APIConnectionError / APITimeoutError: network trouble
- openai.RateLimitError: 429
- openai.InternalServerError: 5xx

Anything else (bad request, auth, malformed response) is raised at once.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx
import openai
from openai import AsyncOpenAI
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

RETRY_MIN_WAIT = 1  # seconds
RETRY_MAX_WAIT = 8  # seconds

TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def get_openai_client(timeout_seconds: Optional[float] = None) -> AsyncOpenAI:
    """Get an AsyncOpenAI client using the configured API key.

    Returns:
        AsyncOpenAI client instance.

    Raises:
        ValueError: If OPENAI_API_KEY is not set.
    """
    from docent import config

    if not config.OPENAI_API_KEY:
        raise ValueError("OPENAI_API_KEY not found in environment or docent.config")

    # Retries are handled by call_with_retry, not inside the SDK
    timeout = httpx.Timeout(timeout_seconds) if timeout_seconds else None
    if timeout is None:
        return AsyncOpenAI(api_key=config.OPENAI_API_KEY, max_retries=0)
    return AsyncOpenAI(api_key=config.OPENAI_API_KEY, max_retries=0, timeout=timeout)


def is_transient(error: BaseException) -> bool:
    return isinstance(error, TRANSIENT_ERRORS)


async def call_with_retry(
    call: Callable[[], Awaitable[Any]],
    operation_name: str,
    timeout_seconds: float,
    max_attempts: Optional[int] = None,
) -> Any:
    """Run an OpenAI call with a per-attempt timeout and transient-error retries.

    Args:
        call: Zero-argument async callable issuing the request.
        operation_name: Name for logging purposes.
        timeout_seconds: Upper bound for each attempt.
        max_attempts: Attempts before giving up. Defaults to config.OPENAI_MAX_ATTEMPTS.

    Raises:
        Whatever the last attempt raised.
    """
    if max_attempts is None:
        from docent import config
        max_attempts = config.OPENAI_MAX_ATTEMPTS

    @retry(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=1, min=RETRY_MIN_WAIT, max=RETRY_MAX_WAIT),
        retry=retry_if_exception(is_transient),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _attempt():
        return await asyncio.wait_for(call(), timeout=timeout_seconds)

    try:
        return await _attempt()
    except asyncio.TimeoutError:
        logger.error(f"[OPENAI] {operation_name} timed out after {timeout_seconds}s")
        raise
