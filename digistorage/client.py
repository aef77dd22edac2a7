"""
The `DigiStorage` object encapsulates a connection to the Digi Storage service and is
used for browsing mounts and folders and for copying, moving and deleting files.
"""

import asyncio
import logging
import os
import typing
import urllib.parse as urllib_urlparse
from typing import Any, Dict, Tuple, Union

import asyncio_atexit
import httpx
from opentelemetry import trace
from opentelemetry.trace import SpanKind

import digistorage
from digistorage.api import (
    get_batch_config,
    get_config_authentication,
    get_config_debug,
    get_config_endpoint,
)
from digistorage.core import exceptions
from digistorage.core.async_utils import async_to_sync, otel_trace_method
from digistorage.core.constants import api_paths
from digistorage.core.credentials import DigiStorageTokenCredentials, UserLoginArgs
from digistorage.core.exceptions import (
    DigiStorageAuthenticationError,
    DigiStorageError,
    DigiStorageMalformedResponseError,
    DigiStorageNoCredentialsError,
    DigiStorageTimeoutError,
)
from digistorage.core.logging_setup import (
    DEBUG_LOGGER_NAME,
    DEFAULT_LOGGER_NAME,
    SILENT_LOGGER_NAME,
)
from digistorage.core.retry import IDEMPOTENT_RETRY_POLICY, with_retry_time_based_async
from digistorage.core.utils import is_json

tracer = trace.get_tracer("digistorage")

CONFIG_FILE = os.path.join(os.path.expanduser("~"), ".digiStorageConfig")
DEFAULT_SERVER = "https://storage.rcs-rds.ro"

DEBUG_DEFAULT = False

# Defines the standard retry policy applied to the rest methods. Services changing the
# storage pass `NON_IDEMPOTENT_RETRY_POLICY` on top of it.
STANDARD_RETRY_ASYNC_PARAMS = {
    **IDEMPOTENT_RETRY_POLICY,
    "retry_max_back_off": 20,
    "retry_max_wait_before_failure": 60,
}


def login(*args, **kwargs) -> "DigiStorage":
    """
    Convenience method to create a DigiStorage object and login.

    See `digistorage.DigiStorage.login` for arguments and usage.

    Example: Getting started
        Logging in to Digi Storage using an email and password

            import digistorage
            digi = digistorage.login(email="me@example.com", password="secret")

        Using environment variable or `.digiStorageConfig`

            import digistorage
            digi = digistorage.login()
    """

    digi = DigiStorage()
    digi.login(*args, **kwargs)
    return digi


@async_to_sync
class DigiStorage(object):
    """
    Constructs a Python client object for the Digi Storage service

    Attributes:
        endpoint:                Location of the Digi Storage server
        debug:                   Print debugging messages if True
        configPath:              Path to config File with setting for Digi Storage.
                                 Defaults to ~/.digiStorageConfig
        silent:                  Defaults to False.
        max_concurrent_requests: How many requests of one batch may be in flight at
                                 the same time.

    Example: Getting started
        Logging in to Digi Storage using a token

            import digistorage
            digi = digistorage.login(authToken="token")

        Using environment variable or `.digiStorageConfig`

            import digistorage
            digi = digistorage.login()
    """

    _digi_client = None

    def __init__(
        self,
        endpoint: str = None,
        debug: bool = None,
        configPath: str = CONFIG_FILE,
        silent: bool = None,
        requests_session_async: httpx.AsyncClient = None,
        asyncio_event_loop: asyncio.AbstractEventLoop = None,
        cache_client: bool = True,
        max_concurrent_requests: int = None,
    ) -> "DigiStorage":
        """
        Initialize DigiStorage object

        Arguments:
            endpoint:           Location of the Digi Storage server.
            debug:              Print debugging messages if True.
            configPath:         Path to config File with setting for Digi Storage.
            silent:             Suppresses message.
            requests_session_async: The HTTPX Async client for interacting with
                Digi Storage.
            asyncio_event_loop: The event loop that is going to be used while executing
                this code. This is optional and only used when you are manually
                specifying an async HTTPX client.
            cache_client: Whether to cache the DigiStorage client object in the
                DigiStorage class. Defaults to True. When set to True anywhere a
                `DigiStorage` object is optional you do not need to pass an instance of
                `DigiStorage` to that function, method, or class.
            max_concurrent_requests: How many requests of one batch may be in flight
                at the same time. Defaults to the `[batch]` section of the
                configuration file.

        Raises:
            ValueError: Warn for non-boolean debug value.
        """
        # `requests_session_async` is being stored in a dict based on the current
        # running event loop. This is to ensure that the connection pooling is
        # maintained within the same event loop.
        if requests_session_async and asyncio_event_loop:
            self._requests_session_async = {
                asyncio_event_loop: requests_session_async
            }
        else:
            self._requests_session_async = {}

        self.configPath = configPath
        config_debug = None
        config_endpoint = None
        if os.path.isfile(configPath):
            config_debug = get_config_debug(configPath)
            config_endpoint = get_config_endpoint(configPath)

        if debug is None:
            debug = config_debug if config_debug is not None else DEBUG_DEFAULT

        if not isinstance(debug, bool):
            raise ValueError("debug must be set to a bool (either True or False)")
        self.debug = debug

        self.endpoint = (endpoint or config_endpoint or DEFAULT_SERVER).rstrip("/")

        self.default_headers = {
            "content-type": "application/json; charset=UTF-8",
            "Accept": "application/json; charset=UTF-8",
        }
        self.credentials = None

        self.silent = silent
        self._init_logger()  # initializes self.logger

        if max_concurrent_requests is None:
            max_concurrent_requests = get_batch_config(config_path=self.configPath)[
                "max_concurrent_requests"
            ]
        self.max_concurrent_requests = max_concurrent_requests

        if cache_client:
            DigiStorage.set_client(digi_client=self)

    def _get_requests_session_async(
        self, asyncio_event_loop: asyncio.AbstractEventLoop
    ) -> httpx.AsyncClient:
        """
        httpx.AsyncClient can only use connection pooling within the same event loop.
        As a result an `atexit` handler is used to close the connection when the event
        loop is closed. It will also delete the attribute from the object to prevent
        it from being reused in the future.

        Further documentation can be found here:
        <https://github.com/encode/httpx/discussions/2959>

        This is expected to be called from within an AsyncIO loop.
        """
        if (
            hasattr(self, "_requests_session_async")
            and asyncio_event_loop in self._requests_session_async
            and self._requests_session_async[asyncio_event_loop] is not None
        ):
            return self._requests_session_async[asyncio_event_loop]

        async def close_connection() -> None:
            """Close connection when event loop exits"""
            await self._requests_session_async[asyncio_event_loop].aclose()
            del self._requests_session_async[asyncio_event_loop]

        httpx_timeout = httpx.Timeout(70, pool=None)
        span_dict: Dict[httpx.Request, trace.Span] = {}

        async def log_request(request: httpx.Request) -> None:
            """
            Log the HTTPX request to an otel span.

            Arguments:
                request: The HTTPX request object.
            """
            current_span = trace.get_current_span()
            if current_span.is_recording():
                span = tracer.start_span(
                    f"{request.method} {request.url.path}", kind=SpanKind.CLIENT
                )
                span.set_attributes(
                    {"url": str(request.url), "http.method": request.method}
                )
                span_dict.update({request: span})

        async def log_response(response: httpx.Response) -> None:
            """
            Log the HTTPX response to an otel span.

            Arguments:
                response: The HTTPX response object.
            """
            span = span_dict.pop(response.request, None)
            if span and span.is_recording():
                span.set_attribute("http.response.status_code", response.status_code)
                span.end()

        event_hooks = {"request": [log_request], "response": [log_response]}
        self._requests_session_async.update(
            {
                asyncio_event_loop: httpx.AsyncClient(
                    limits=httpx.Limits(max_connections=25),
                    timeout=httpx_timeout,
                    event_hooks=event_hooks,
                )
            }
        )

        asyncio_atexit.register(close_connection)
        return self._requests_session_async[asyncio_event_loop]

    # initialize logging
    def _init_logger(self):
        """
        Initialize logging
        """
        logger_name = (
            SILENT_LOGGER_NAME
            if self.silent
            else DEBUG_LOGGER_NAME
            if self.debug
            else DEFAULT_LOGGER_NAME
        )
        self.logger = logging.getLogger(logger_name)
        logging.getLogger("py.warnings").handlers = self.logger.handlers

    @classmethod
    def get_client(
        cls, digi_client: typing.Union[None, "DigiStorage"]
    ) -> "DigiStorage":
        """
        Convience function to get an instance of 'DigiStorage'. The latest instance
        created by 'login()' or set via `set_client` will be returned.

        Arguments:
            digi_client: An instance of 'DigiStorage' or None. This is used to simplify
                logical checks in cases where a client is passed into them.

        Returns:
            An instance of 'DigiStorage'.

        Raises:
            DigiStorageError: No instance has been created - Please use login() first
        """
        if digi_client:
            return digi_client

        if not cls._digi_client:
            raise DigiStorageError(
                "No instance has been created - Please use login() first"
            )
        return cls._digi_client

    @classmethod
    def set_client(cls, digi_client) -> None:
        cls._digi_client = digi_client

    @property
    def max_concurrent_requests(self) -> int:
        return self._max_concurrent_requests

    @max_concurrent_requests.setter
    def max_concurrent_requests(self, value: int):
        if not isinstance(value, int) or value < 1:
            raise ValueError("max_concurrent_requests must be a positive integer")
        self._max_concurrent_requests = value

    @otel_trace_method(method_to_trace_name=lambda self, *args, **kwargs: "Login")
    async def login_async(
        self,
        email: str = None,
        password: str = None,
        authToken: str = None,
        silent: bool = False,
    ) -> None:
        """
        Valid combinations of login() arguments:

        - email and password
        - authToken

        If no login arguments are provided, login() will attempt to log in using
        information from these sources (in order of preference):

        1. The `DIGI_STORAGE_AUTH_TOKEN` environment variable
        2. The `[authentication]` section of the .digiStorageConfig file

        Arguments:
            email:     The email address of the Digi Storage account
            password:  The password of the account, exchanged for a session token
            authToken: A session token obtained earlier
            silent:    Defaults to False.  Suppresses the "Welcome ...!" message.

        Raises:
            DigiStorageNoCredentialsError: No credentials were found.
            DigiStorageAuthenticationError: The credentials were refused.

        Example: Logging in
            Using an email and password:

                digi.login(email="me@example.com", password="secret")
                > Welcome, Me!
        """
        self.logout()

        login_args = UserLoginArgs(email=email, password=password, auth_token=authToken)
        if not login_args.auth_token and not login_args.password:
            config_authentication = get_config_authentication(
                config_path=self.configPath
            )
            login_args.email = login_args.email or config_authentication.get("email")
            login_args.auth_token = config_authentication.get("token")

        if login_args.auth_token:
            credentials = DigiStorageTokenCredentials(
                token=login_args.auth_token, email=login_args.email
            )
        elif login_args.email and login_args.password:
            token = await self._request_token_async(
                email=login_args.email, password=login_args.password
            )
            credentials = DigiStorageTokenCredentials(
                token=token, email=login_args.email
            )
        else:
            raise DigiStorageNoCredentialsError("No credentials provided.")

        self.credentials = credentials
        try:
            user = await self.user_info_async()
        except exceptions.DigiStorageHTTPError as ex:
            self.credentials = None
            raise DigiStorageAuthenticationError(
                "The Digi Storage service refused the provided credentials."
            ) from ex

        self.credentials.email = user.get("email", None) or self.credentials.email
        self.credentials.displayname = " ".join(
            part for part in (user.get("firstName"), user.get("lastName")) if part
        )

        if not silent:
            display_name = self.credentials.displayname or self.credentials.email
            self.logger.info(f"Welcome, {display_name}!\n")

    async def _request_token_async(self, email: str, password: str) -> str:
        """Exchange an email and password for a session token."""
        try:
            response = await self.rest_post_async(
                uri=api_paths.TOKEN,
                body={"email": email, "password": password},
                auth=None,
            )
        except exceptions.DigiStorageHTTPError as ex:
            if ex.response is not None and ex.response.status_code in (400, 401, 403):
                raise DigiStorageAuthenticationError(
                    "Invalid email or password."
                ) from ex
            raise
        if not isinstance(response, dict) or not response.get("token"):
            raise DigiStorageMalformedResponseError(
                "The token endpoint did not return a token"
            )
        return response["token"]

    def logout(self) -> None:
        """Forget the credentials of this client."""
        self.credentials = None

    async def user_info_async(self) -> Dict[str, Any]:
        """
        Retrieve the account of the logged in user.

        Returns:
            The user as returned by the REST API, for example
            `{"firstName": ..., "lastName": ..., "email": ...}`.
        """
        return await self.rest_get_async(uri=api_paths.USER)

    def _handle_httpx_http_error(self, response: httpx.Response) -> None:
        """Raise errors as appropriate for the HTTPX library returned Digi Storage http
        status codes

        Arguments:
            response: The HTTPX response object
        """

        try:
            exceptions._raise_for_status_httpx(
                response=response, verbose=self.debug, logger=self.logger
            )
        except exceptions.DigiStorageHTTPError as ex:
            # an unauthenticated request by a client that never logged in is most
            # likely missing its credentials
            if response.status_code in (401, 403) and not self.credentials:
                raise DigiStorageAuthenticationError(
                    "You are not logged in and do not have access to a requested resource."
                ) from ex

            raise

    def _build_uri_and_headers(
        self, uri: str, endpoint: str = None, headers: Dict[str, str] = None
    ) -> Tuple[str, Dict[str, str]]:
        """Returns a tuple of the URI and headers to request with."""

        if endpoint is None:
            endpoint = self.endpoint

        trace.get_current_span().set_attributes({"server.address": endpoint})

        # Prepend the endpoint to relative URIs
        parsedURL = urllib_urlparse.urlparse(uri)
        if parsedURL.netloc == "":
            uri = endpoint + uri

        if headers is None:
            headers = {**self.default_headers, **digistorage.USER_AGENT}
        return uri, headers

    def _build_retry_policy_async(
        self, retry_policy: Dict[str, Any] = {}
    ) -> Dict[str, Any]:
        """Returns a retry policy to be passed onto with_retry_time_based_async."""

        defaults = dict(STANDARD_RETRY_ASYNC_PARAMS)
        defaults.update(retry_policy)
        return defaults

    def _return_rest_body(self, response) -> Union[Dict[str, Any], str]:
        """Returns either a dictionary or a string depending on the 'content-type' of the response."""
        trace.get_current_span().set_attributes(
            {"http.response.status_code": response.status_code}
        )
        if is_json(response.headers.get("content-type", None)):
            return response.json()
        return response.text

    async def _rest_call_async(
        self,
        method: str,
        uri: str,
        data: Any,
        endpoint: str,
        headers: Dict[str, str],
        retry_policy: Dict[str, Any],
        requests_session_async: httpx.AsyncClient,
        **kwargs,
    ) -> Union[httpx.Response, None]:
        """
        Sends an HTTP request to the Digi Storage server.

        Arguments:
            method: The method to implement Create, Read, Update, Delete operations.
                Should be post, get, put, delete.
            uri: URI on which the method is performed.
            data: The payload to be delivered, serialized as JSON.
            endpoint: Server endpoint, defaults to self.endpoint
            headers: Dictionary of headers to use.
            retry_policy: A retry policy that matches the arguments of
                [digistorage.core.retry.with_retry_time_based_async][].
            requests_session_async: The async client to use when making this
                specific call.
            kwargs: Any other arguments taken by a
                [request](https://www.python-httpx.org/api/) method

        Returns:
            The response

        Raises:
            DigiStorageTimeoutError: If the server did not answer in time once the
                retries ran out.
        """
        uri, headers = self._build_uri_and_headers(
            uri, endpoint=endpoint, headers=headers
        )

        retry_policy = self._build_retry_policy_async(retry_policy)
        requests_session = requests_session_async or self._get_requests_session_async(
            asyncio_event_loop=asyncio.get_running_loop()
        )

        auth = kwargs.pop("auth", self.credentials)
        if data is not None:
            kwargs["json"] = data
        try:
            response = await with_retry_time_based_async(
                lambda: requests_session.request(
                    method.upper(),
                    uri,
                    headers=headers,
                    auth=auth,
                    **kwargs,
                ),
                verbose=self.debug,
                **retry_policy,
            )
        except httpx.TimeoutException as ex:
            raise DigiStorageTimeoutError(
                f"Timed out waiting for Digi Storage to answer {method.upper()} {uri}"
            ) from ex

        self._handle_httpx_http_error(response)

        return response

    async def rest_get_async(
        self,
        uri: str,
        endpoint: str = None,
        headers: httpx.Headers = None,
        retry_policy: Dict[str, Any] = {},
        requests_session_async: httpx.AsyncClient = None,
        **kwargs,
    ) -> Union[Dict[str, Any], str, None]:
        """
        Sends an HTTP GET request to the Digi Storage server.

        Arguments:
            uri: URI on which get is performed
            endpoint: Server endpoint, defaults to self.endpoint
            headers: Dictionary of headers to use.
            retry_policy: A retry policy that matches the arguments of
                [digistorage.core.retry.with_retry_time_based_async][].
            requests_session_async: The async client to use when making this
                specific call.
            kwargs: Any other arguments taken by a
                [request](https://www.python-httpx.org/api/) method

        Returns:
            JSON encoding of response
        """
        response = await self._rest_call_async(
            "get",
            uri,
            None,
            endpoint,
            headers,
            retry_policy,
            requests_session_async,
            **kwargs,
        )
        return self._return_rest_body(response)

    async def rest_post_async(
        self,
        uri: str,
        body: Any = None,
        endpoint: str = None,
        headers: httpx.Headers = None,
        retry_policy: Dict[str, Any] = {},
        requests_session_async: httpx.AsyncClient = None,
        **kwargs,
    ) -> Union[Dict[str, Any], str]:
        """
        Sends an HTTP POST request to the Digi Storage server.

        Arguments:
            uri: URI on which get is performed
            body: The payload to be delivered
            endpoint: Server endpoint, defaults to self.endpoint
            headers: Dictionary of headers to use.
            retry_policy: A retry policy that matches the arguments of
                [digistorage.core.retry.with_retry_time_based_async][].
            requests_session_async: The async client to use when making this
                specific call.
            kwargs: Any other arguments taken by a
                [request](https://www.python-httpx.org/api/) method

        Returns:
            JSON encoding of response
        """
        response = await self._rest_call_async(
            "post",
            uri,
            body,
            endpoint,
            headers,
            retry_policy,
            requests_session_async,
            **kwargs,
        )
        return self._return_rest_body(response)

    async def rest_put_async(
        self,
        uri: str,
        body: Any = None,
        endpoint: str = None,
        headers: httpx.Headers = None,
        retry_policy: Dict[str, Any] = {},
        requests_session_async: httpx.AsyncClient = None,
        **kwargs,
    ) -> Union[Dict[str, Any], str]:
        """
        Sends an HTTP PUT request to the Digi Storage server.

        Arguments:
            uri: URI on which get is performed
            body: The payload to be delivered.
            endpoint: Server endpoint, defaults to self.endpoint
            headers: Dictionary of headers to use.
            retry_policy: A retry policy that matches the arguments of
                [digistorage.core.retry.with_retry_time_based_async][].
            requests_session_async: The async client to use when making this
                specific call.
            kwargs: Any other arguments taken by a
                [request](https://www.python-httpx.org/api/) method

        Returns
            JSON encoding of response
        """
        response = await self._rest_call_async(
            "put",
            uri,
            body,
            endpoint,
            headers,
            retry_policy,
            requests_session_async,
            **kwargs,
        )
        return self._return_rest_body(response)

    async def rest_delete_async(
        self,
        uri: str,
        endpoint: str = None,
        headers: httpx.Headers = None,
        retry_policy: Dict[str, Any] = {},
        requests_session_async: httpx.AsyncClient = None,
        **kwargs,
    ) -> None:
        """
        Sends an HTTP DELETE request to the Digi Storage server.

        Arguments:
            uri: URI of resource to be deleted
            endpoint: Server endpoint, defaults to self.endpoint
            headers: Dictionary of headers to use.
            retry_policy: A retry policy that matches the arguments of
                [digistorage.core.retry.with_retry_time_based_async][].
            requests_session_async: The async client to use when making this
                specific call.
            kwargs: Any other arguments taken by a
                [request](https://www.python-httpx.org/api/) method
        """
        await self._rest_call_async(
            "delete",
            uri,
            None,
            endpoint,
            headers,
            retry_policy,
            requests_session_async,
            **kwargs,
        )
