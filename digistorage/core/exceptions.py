"""Contains all of the exceptions that can be thrown within this Python client as well
as handling error cases for HTTP requests."""

import logging
from typing import TYPE_CHECKING, List, Union

import httpx

from digistorage.core import utils

if TYPE_CHECKING:
    from digistorage.models import ItemOutcome


class DigiStorageError(Exception):
    """Generic exception thrown by the client."""


class DigiStorageTimeoutError(DigiStorageError):
    """Timed out waiting for response from Digi Storage."""


class DigiStorageAuthenticationError(DigiStorageError):
    """Authentication errors."""


class DigiStorageNoCredentialsError(DigiStorageAuthenticationError):
    """No credentials for authentication"""


class DigiStorageMalformedResponseError(DigiStorageError):
    """Unexpected structure of a response body."""


class DigiStorageHTTPError(DigiStorageError):
    """Wraps recognized HTTP errors. The offending `httpx.Response` is available as
    `response`."""

    def __init__(self, *args, response: httpx.Response = None) -> None:
        super().__init__(*args)
        self.response = response


class DigiStorageNotFoundError(DigiStorageHTTPError):
    """Error thrown when a requested file or folder is not found in Digi Storage."""


class DigiStorageBatchCancelledError(DigiStorageError):
    """Raised when a batch of copy, move or delete requests was cancelled before
    every item reported. The outcomes received before the cancellation are kept in
    `outcomes` for diagnostics only; they are never a complete batch result."""

    def __init__(self, message: str, outcomes: List["ItemOutcome"] = None) -> None:
        super().__init__(message)
        self.outcomes = list(outcomes or [])


def _get_message(response: httpx.Response) -> Union[str, None]:
    """Extracts the message body or a response object by checking for a json response
    and returning the error otherwise getting body.
    """
    if utils.is_json(response.headers.get("content-type", None)):
        try:
            json = response.json()
        except ValueError:
            return response.text
        if isinstance(json, dict):
            return json.get("error", None) or json.get("message", None)
        return None
    else:
        # if the response is not JSON, return the text content
        return response.text


CLIENT_ERROR = "Client Error:"
SERVER_ERROR = "Server Error:"
RESPONSE_PREFIX = ">>>>>> Response <<<<<<"
REQUEST_PREFIX = ">>>>>> Request <<<<<<"
HEADERS_PREFIX = ">>> Headers: "
BODY_PREFIX = ">>> Body: "
UNABLE_TO_APPEND_REQUEST = "Could not append all request info"
UNABLE_TO_APPEND_RESPONSE = "Could not append all response info"


def _raise_for_status_httpx(
    response: httpx.Response,
    logger: logging.Logger,
    verbose: bool = False,
    read_response_content: bool = True,
) -> None:
    """
    Replacement for `httpx.Response.raise_for_status()`.
    Catches and wraps any Digi Storage HTTP errors with appropriate text.

    Arguments:
        response: The response object from the HTTPX request.
        logger: The logger object to log any exceptions.
        verbose: If True, the request and response information will be appended to the
            error message.
        read_response_content: If True, the response content will be read and appended
            to the error message.

    Raises:
        DigiStorageHTTPError: For any 4xx or 5xx status code.
    """

    message = None
    message_body = ""

    if 400 <= response.status_code < 500:
        message_body = _get_message(response) if read_response_content else ""
        message = f"{response.status_code} {CLIENT_ERROR} {message_body}"

    elif 500 <= response.status_code < 600:
        message_body = _get_message(response) if read_response_content else ""
        message = f"{response.status_code} {SERVER_ERROR} {message_body}"

    if message is not None:
        if verbose:
            try:
                # Append the request sent
                message += f"\n\n{REQUEST_PREFIX}\n{response.request.url} {response.request.method}"
                message += f"\n{HEADERS_PREFIX}{_redact_headers(response.request.headers)}"
                message += f"\n{BODY_PREFIX}{response.request.content}"
            except Exception:  # noqa
                logger.exception(UNABLE_TO_APPEND_REQUEST)
                message += f"\n{UNABLE_TO_APPEND_REQUEST}"

            try:
                # Append the response received
                message += f"\n\n{RESPONSE_PREFIX}\n{str(response)}"
                message += f"\n{HEADERS_PREFIX}{response.headers}"
                if read_response_content:
                    message += f"\n{BODY_PREFIX}{message_body}\n\n"
            except Exception:  # noqa
                logger.exception(UNABLE_TO_APPEND_RESPONSE)
                message += f"\n{UNABLE_TO_APPEND_RESPONSE}"

        if response.status_code == 404:
            raise DigiStorageNotFoundError(message, response=response)
        raise DigiStorageHTTPError(message, response=response)


def _redact_headers(headers: httpx.Headers) -> dict:
    """The token must never end up in an error message."""
    return {
        key: ("<redacted>" if key.lower() == "authorization" else value)
        for key, value in headers.items()
    }
