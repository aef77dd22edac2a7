import datetime
from email.utils import format_datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from digistorage.core.exceptions import DigiStorageError
from digistorage.core.retry import (
    IDEMPOTENT_RETRY_POLICY,
    NON_IDEMPOTENT_RETRY_POLICY,
    calculate_exponential_backoff,
    retry_after_seconds,
    with_retry_time_based_async,
)

FAST_RETRY = {
    "retry_base_wait": 0,
    "retry_wait_random_lower": 0,
    "retry_wait_random_upper": 0.001,
    "retry_max_wait_before_failure": 1,
}


def _response(status_code: int, json=None, headers=None) -> httpx.Response:
    return httpx.Response(
        status_code,
        json=json,
        headers=headers,
        request=httpx.Request("PUT", "https://storage.example.com/api/v2/x"),
    )


class TestAsyncRetry:
    """Unit tests for the with_retry_time_based_async function."""

    async def test_no_failure(self) -> None:
        mocked_function = AsyncMock(return_value=_response(200))

        response = await with_retry_time_based_async(mocked_function, **FAST_RETRY)

        assert response.status_code == 200
        assert mocked_function.await_count == 1

    async def test_fail_then_succeed(self) -> None:
        # GIVEN a service that is unavailable twice
        mocked_function = AsyncMock(
            side_effect=[_response(503), _response(503), _response(200)]
        )

        # WHEN the call is retried
        response = await with_retry_time_based_async(
            mocked_function, verbose=True, **FAST_RETRY
        )

        # THEN the successful response is returned
        assert response.status_code == 200
        assert mocked_function.await_count == 3

    async def test_client_errors_are_not_retried(self) -> None:
        # GIVEN a conflict which retrying cannot fix
        mocked_function = AsyncMock(return_value=_response(409))

        response = await with_retry_time_based_async(mocked_function, **FAST_RETRY)

        # THEN the response is handed back after one attempt
        assert response.status_code == 409
        assert mocked_function.await_count == 1

    async def test_connection_failures_are_retried_by_default(self) -> None:
        mocked_function = AsyncMock(
            side_effect=[httpx.ReadError("reset"), _response(200)]
        )

        response = await with_retry_time_based_async(mocked_function, **FAST_RETRY)

        assert response.status_code == 200
        assert mocked_function.await_count == 2

    async def test_other_exceptions_propagate(self) -> None:
        mocked_function = AsyncMock(side_effect=DigiStorageError("Bar"))

        with pytest.raises(DigiStorageError) as ex_cm:
            await with_retry_time_based_async(mocked_function, **FAST_RETRY)

        assert "Bar" in str(ex_cm.value)
        assert mocked_function.await_count == 1

    async def test_gives_up_after_the_maximum_wait(self) -> None:
        # GIVEN a service that is never available
        mocked_function = AsyncMock(return_value=_response(503))

        # WHEN the maximum wait is exceeded
        response = await with_retry_time_based_async(
            mocked_function,
            retry_base_wait=0.01,
            retry_wait_random_lower=0,
            retry_wait_random_upper=0,
            retry_back_off_factor=1,
            retry_max_wait_before_failure=0.05,
        )

        # THEN the last response is returned
        assert response.status_code == 503
        assert mocked_function.await_count > 1

    async def test_exception_is_raised_once_retries_run_out(self) -> None:
        mocked_function = AsyncMock(side_effect=httpx.ConnectError("unreachable"))

        with pytest.raises(httpx.ConnectError):
            await with_retry_time_based_async(
                mocked_function,
                retry_base_wait=0.01,
                retry_wait_random_lower=0,
                retry_wait_random_upper=0,
                retry_back_off_factor=1,
                retry_max_wait_before_failure=0.05,
            )
        assert mocked_function.await_count > 1

    async def test_empty_sequences_disable_retries(self) -> None:
        mocked_function = AsyncMock(
            side_effect=[_response(503), httpx.ConnectError("unreachable")]
        )

        response = await with_retry_time_based_async(
            mocked_function, retry_status_codes=[], retry_exceptions=(), **FAST_RETRY
        )

        assert response.status_code == 503
        assert mocked_function.await_count == 1

    async def test_retry_after_is_honored(self) -> None:
        # GIVEN a throttled answer asking to wait two seconds
        mocked_function = AsyncMock(
            side_effect=[_response(429, headers={"Retry-After": "2"}), _response(200)]
        )

        # WHEN the call is retried
        with patch(
            "digistorage.core.retry.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            response = await with_retry_time_based_async(
                mocked_function, retry_max_back_off=10, **FAST_RETRY
            )

        # THEN the wait asked for by the server is used
        assert response.status_code == 200
        mock_sleep.assert_awaited_once_with(2.0)


class TestRetryPolicies:
    async def test_idempotent_requests_are_retried_after_a_lost_answer(self) -> None:
        mocked_function = AsyncMock(
            side_effect=[httpx.ReadTimeout("lost"), _response(200)]
        )

        response = await with_retry_time_based_async(
            mocked_function, **IDEMPOTENT_RETRY_POLICY, **FAST_RETRY
        )

        assert response.status_code == 200
        assert mocked_function.await_count == 2

    @pytest.mark.parametrize(
        "exception",
        [
            httpx.ReadTimeout("lost"),
            httpx.ReadError("reset"),
            httpx.RemoteProtocolError("closed"),
            httpx.WriteTimeout("stalled"),
        ],
    )
    async def test_changes_are_not_sent_again_once_they_may_have_arrived(
        self, exception
    ) -> None:
        mocked_function = AsyncMock(side_effect=[exception, _response(200)])

        with pytest.raises(type(exception)):
            await with_retry_time_based_async(
                mocked_function, **NON_IDEMPOTENT_RETRY_POLICY, **FAST_RETRY
            )
        assert mocked_function.await_count == 1

    @pytest.mark.parametrize(
        "exception",
        [
            httpx.ConnectError("unreachable"),
            httpx.ConnectTimeout("slow handshake"),
            httpx.PoolTimeout("no connection"),
        ],
    )
    async def test_changes_that_never_left_are_retried(self, exception) -> None:
        mocked_function = AsyncMock(side_effect=[exception, _response(200)])

        response = await with_retry_time_based_async(
            mocked_function, **NON_IDEMPOTENT_RETRY_POLICY, **FAST_RETRY
        )

        assert response.status_code == 200
        assert mocked_function.await_count == 2

    async def test_server_errors_of_changes_are_not_retried(self) -> None:
        mocked_function = AsyncMock(side_effect=[_response(500), _response(200)])

        response = await with_retry_time_based_async(
            mocked_function, **NON_IDEMPOTENT_RETRY_POLICY, **FAST_RETRY
        )

        assert response.status_code == 500
        assert mocked_function.await_count == 1


class TestRetryAfterSeconds:
    def test_seconds(self) -> None:
        assert retry_after_seconds(_response(503, headers={"Retry-After": "7"})) == 7

    def test_http_date(self) -> None:
        retry_at = datetime.datetime.now(
            tz=datetime.timezone.utc
        ) + datetime.timedelta(seconds=30)
        response = _response(
            503, headers={"Retry-After": format_datetime(retry_at, usegmt=True)}
        )

        assert 20 < retry_after_seconds(response) <= 30

    def test_date_in_the_past(self) -> None:
        response = _response(
            503, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}
        )

        assert retry_after_seconds(response) == 0

    @pytest.mark.parametrize("headers", [None, {"Retry-After": "soon"}])
    def test_missing_or_unreadable(self, headers) -> None:
        assert retry_after_seconds(_response(503, headers=headers)) is None

    def test_no_response(self) -> None:
        assert retry_after_seconds(None) is None


def test_calculate_exponential_backoff_is_capped() -> None:
    assert (
        calculate_exponential_backoff(
            retries=10,
            base_wait=1,
            wait_random_lower=0,
            wait_random_upper=0,
            back_off_factor=2,
            max_back_off=5,
        )
        == 5
    )
    assert (
        calculate_exponential_backoff(
            retries=2,
            base_wait=1,
            wait_random_lower=0,
            wait_random_upper=0,
            back_off_factor=2,
            max_back_off=10,
        )
        == 4
    )
