import logging

import httpx
import pytest

from digistorage.core.exceptions import (
    DigiStorageBatchCancelledError,
    DigiStorageError,
    DigiStorageHTTPError,
    DigiStorageNotFoundError,
    _raise_for_status_httpx,
)
from digistorage.models import ItemOutcome, Location, OutcomeClass

LOGGER = logging.getLogger(__name__)


def _response(status_code: int, **kwargs) -> httpx.Response:
    return httpx.Response(
        status_code,
        request=httpx.Request(
            "PUT",
            "https://storage.example.com/api/v2/mounts/m1/files/copy",
            headers={"Authorization": "Token secret-token"},
        ),
        **kwargs,
    )


class TestRaiseForStatus:
    def test_success_does_not_raise(self) -> None:
        _raise_for_status_httpx(_response(200), logger=LOGGER)

    def test_client_error_with_json_message(self) -> None:
        response = _response(409, json={"error": "File already exists"})

        with pytest.raises(DigiStorageHTTPError) as ex:
            _raise_for_status_httpx(response, logger=LOGGER)

        assert str(ex.value) == "409 Client Error: File already exists"
        assert ex.value.response is response

    def test_server_error_with_text(self) -> None:
        with pytest.raises(DigiStorageHTTPError) as ex:
            _raise_for_status_httpx(_response(502, text="Bad gateway"), logger=LOGGER)

        assert str(ex.value) == "502 Server Error: Bad gateway"

    def test_not_found(self) -> None:
        with pytest.raises(DigiStorageNotFoundError) as ex:
            _raise_for_status_httpx(_response(404, json={"message": "gone"}), LOGGER)

        assert isinstance(ex.value, DigiStorageHTTPError)
        assert ex.value.response.status_code == 404

    def test_verbose_message_never_contains_the_token(self) -> None:
        # GIVEN a failed request carrying a session token
        response = _response(500, json={"error": "boom"})

        # WHEN the error is raised with the request details
        with pytest.raises(DigiStorageHTTPError) as ex:
            _raise_for_status_httpx(response, logger=LOGGER, verbose=True)

        # THEN the request is described and the token is redacted
        message = str(ex.value)
        assert "/api/v2/mounts/m1/files/copy" in message
        assert "secret-token" not in message
        assert "<redacted>" in message

    def test_response_content_can_be_skipped(self) -> None:
        with pytest.raises(DigiStorageHTTPError) as ex:
            _raise_for_status_httpx(
                _response(400, json={"error": "details"}),
                logger=LOGGER,
                read_response_content=False,
            )

        assert "details" not in str(ex.value)


def test_batch_cancelled_error_keeps_the_outcomes() -> None:
    outcome = ItemOutcome(
        source=Location("m1", "/a.txt"),
        destination=None,
        outcome=OutcomeClass.SUCCEEDED,
    )

    error = DigiStorageBatchCancelledError("cancelled", outcomes=(outcome,))

    assert isinstance(error, DigiStorageError)
    assert error.outcomes == [outcome]
    assert DigiStorageBatchCancelledError("cancelled").outcomes == []
