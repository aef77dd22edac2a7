"""Retries of the requests sent to Digi Storage.

Two policies are used. Reads and other idempotent requests are retried on throttling,
on server errors and on every connection failure. Requests that change the storage
(copy, move, delete, rename, create folder) are only retried when they never reached
the server: retrying a move whose answer was lost would report the already moved
item as missing.

Retries happen at the HTTP layer only. A batch of copy, move or delete requests
never retries an item on its own; see `digistorage.operations.batch_operations`.
"""

import asyncio
import datetime
import logging
import random
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Coroutine, Optional, Sequence, Type

import httpx
from opentelemetry import trace

from digistorage.core.exceptions import _get_message
from digistorage.core.logging_setup import DEBUG_LOGGER_NAME, DEFAULT_LOGGER_NAME

# All of these constants are in seconds
DEFAULT_BASE_WAIT_ASYNC = 0.001

DEFAULT_WAIT_RANDOM_LOWER_ASYNC = 0.01
DEFAULT_WAIT_RANDOM_UPPER_ASYNC = 0.1

DEFAULT_BACK_OFF_FACTOR_ASYNC = 2
DEFAULT_MAX_BACK_OFF_ASYNC = 10
DEFAULT_MAX_WAIT_BEFORE_FAIL_ASYNC = 5 * 60

DEFAULT_RETRY_STATUS_CODES = [429, 500, 502, 503, 504]

# Failures raised before the request was handed to the server
UNSENT_REQUEST_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.PoolTimeout,
)

# Failures after which the server may or may not have processed the request
RETRYABLE_CONNECTION_EXCEPTIONS = UNSENT_REQUEST_EXCEPTIONS + (
    httpx.ReadError,
    httpx.ReadTimeout,
    httpx.WriteError,
    httpx.WriteTimeout,
    httpx.RemoteProtocolError,
    ConnectionResetError,
)

IDEMPOTENT_RETRY_POLICY = {
    "retry_status_codes": DEFAULT_RETRY_STATUS_CODES,
    "retry_exceptions": RETRYABLE_CONNECTION_EXCEPTIONS,
}

NON_IDEMPOTENT_RETRY_POLICY = {
    "retry_status_codes": [],
    "retry_exceptions": UNSENT_REQUEST_EXCEPTIONS,
}

DEBUG_EXCEPTION = "calling %s resulted in an Exception"


def calculate_exponential_backoff(
    retries: int,
    base_wait: float,
    wait_random_lower: float,
    wait_random_upper: float,
    back_off_factor: float,
    max_back_off: float,
) -> float:
    """
    Handle calculating the exponential backoff.

    Arguments:
        retries: The number of retries that have been attempted
        base_wait: The base wait time
        wait_random_lower: The lower bound of the random wait time
        wait_random_upper: The upper bound of the random wait time
        back_off_factor: The factor to increase the wait time by for each retry
        max_back_off: The maximum wait time

    Returns:
        The total wait time
    """
    random_jitter = random.uniform(wait_random_lower, wait_random_upper)
    time_to_wait = min(
        (base_wait * (back_off_factor**retries)) + random_jitter,
        max_back_off,
    )
    return time_to_wait


def retry_after_seconds(response: Optional[httpx.Response]) -> Optional[float]:
    """
    Read the `Retry-After` header of a throttled or unavailable response.

    Arguments:
        response: The response to inspect.

    Returns:
        The number of seconds the server asked to wait, None if it did not ask.
    """
    if response is None:
        return None
    value = response.headers.get("retry-after")
    if not value:
        return None
    if value.strip().isdigit():
        return float(value.strip())
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=datetime.timezone.utc)
    now = datetime.datetime.now(tz=datetime.timezone.utc)
    return max((retry_at - now).total_seconds(), 0.0)


async def with_retry_time_based_async(
    function: Callable[[], Coroutine[Any, Any, httpx.Response]],
    verbose: bool = False,
    retry_status_codes: Optional[Sequence[int]] = None,
    retry_exceptions: Optional[Sequence[Type[BaseException]]] = None,
    retry_base_wait: float = DEFAULT_BASE_WAIT_ASYNC,
    retry_wait_random_lower: float = DEFAULT_WAIT_RANDOM_LOWER_ASYNC,
    retry_wait_random_upper: float = DEFAULT_WAIT_RANDOM_UPPER_ASYNC,
    retry_back_off_factor: float = DEFAULT_BACK_OFF_FACTOR_ASYNC,
    retry_max_back_off: float = DEFAULT_MAX_BACK_OFF_ASYNC,
    retry_max_wait_before_failure: float = DEFAULT_MAX_WAIT_BEFORE_FAIL_ASYNC,
    read_response_content: bool = True,
) -> httpx.Response:
    """
    Retries the given function under certain conditions. This is created such that it
    will retry an unbounded number of times until the maximum wait time is reached. The
    backoff is calculated using an exponential backoff algorithm with a random jitter,
    or follows the `Retry-After` header of the response when the server sends one.
    The wait inbetween retries is capped at `retry_max_back_off`.

    Arguments:
        function: A function with no arguments returning the request coroutine.
            If arguments are needed, use a lambda (see example).
        verbose: Whether to log debug messages
        retry_status_codes: What status codes to retry upon. None retries the
            `DEFAULT_RETRY_STATUS_CODES`, an empty sequence disables status code
            retries.
        retry_exceptions: What exception classes to retry upon. None retries the
            `RETRYABLE_CONNECTION_EXCEPTIONS`, an empty sequence disables exception
            retries.
        retry_base_wait: The base wait time inbetween retries.
        retry_wait_random_lower: The lower bound of the random wait time.
        retry_wait_random_upper: The upper bound of the random wait time.
        retry_back_off_factor: The factor to increase the wait time by for each retry.
        retry_max_back_off: The maximum wait time.
        retry_max_wait_before_failure: The maximum wait time before failure.
        read_response_content: Whether to read the response content for HTTP requests.

    Returns:
        The last response received. Status codes are not turned into exceptions here.

    Example: Using with_retry_time_based_async
        Retrying a read until the service answers.

            from digistorage.core.retry import (
                IDEMPOTENT_RETRY_POLICY,
                with_retry_time_based_async,
            )

            response = await with_retry_time_based_async(
                lambda: session.get(url), **IDEMPOTENT_RETRY_POLICY
            )
    """
    if retry_status_codes is None:
        retry_status_codes = DEFAULT_RETRY_STATUS_CODES
    if retry_exceptions is None:
        retry_exceptions = RETRYABLE_CONNECTION_EXCEPTIONS
    retry_exceptions = tuple(retry_exceptions)
    logger = logging.getLogger(DEBUG_LOGGER_NAME if verbose else DEFAULT_LOGGER_NAME)

    # Retry until we succeed or run past the maximum wait time
    total_wait = 0
    retries = 0
    while True:
        trace.get_current_span().set_attribute("digistorage.retries", str(retries))

        caught_exception = None
        response = None
        try:
            response = await function()
        except Exception as ex:
            logger.debug(DEBUG_EXCEPTION, function, exc_info=True)
            if not isinstance(ex, retry_exceptions):
                raise
            caught_exception = ex
        else:
            if response.status_code not in retry_status_codes:
                return response

        if total_wait >= retry_max_wait_before_failure:
            if caught_exception is not None:
                logger.debug(
                    "Retries have run out. re-raising the exception: %s",
                    caught_exception,
                )
                raise caught_exception
            return response

        _log_for_retry(
            logger=logger,
            response=response,
            caught_exception=caught_exception,
            read_response_content=read_response_content,
        )
        backoff_wait = calculate_exponential_backoff(
            retries=retries,
            base_wait=retry_base_wait,
            wait_random_lower=retry_wait_random_lower,
            wait_random_upper=retry_wait_random_upper,
            back_off_factor=retry_back_off_factor,
            max_back_off=retry_max_back_off,
        )
        server_wait = retry_after_seconds(response)
        if server_wait is not None:
            backoff_wait = min(max(backoff_wait, server_wait), retry_max_back_off)

        retries += 1
        total_wait += backoff_wait
        await asyncio.sleep(backoff_wait)


def _log_for_retry(
    logger: logging.Logger,
    response: Optional[httpx.Response] = None,
    caught_exception: Optional[BaseException] = None,
    read_response_content: bool = True,
) -> None:
    """Logs the retry message to debug.

    Arguments:
        logger: The logger to use for logging the retry message.
        response: The response object from the request.
        caught_exception: The exception caught from the request.
        read_response_content: Whether to read the response content for HTTP requests.
    """
    if response is not None:
        response_message = _get_message(response) if read_response_content else ""
        try:
            url_message_part = f"{response.request.url.host}{response.request.url.path}"
        except RuntimeError:
            # the response was built without a request
            url_message_part = ""
        logger.debug(
            "retrying on status code: %s - %s - %s",
            str(response.status_code),
            url_message_part,
            response_message,
        )

    elif caught_exception is not None:
        logger.debug("retrying exception: %s", str(caught_exception))
