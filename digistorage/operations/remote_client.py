"""The remote collaborator of a batch: one request per item, answered with a coarse
classification of its result."""

from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, runtime_checkable

from digistorage.api.file_services import copy_or_move_node, delete_node
from digistorage.core.exceptions import DigiStorageHTTPError
from digistorage.core.retry import NON_IDEMPOTENT_RETRY_POLICY
from digistorage.models.batch import OperationKind, OutcomeClass
from digistorage.models.location import Location

if TYPE_CHECKING:
    from digistorage import DigiStorage


@runtime_checkable
class RemoteStorageClient(Protocol):
    """
    Issues one remote copy, move or delete and classifies the answer. An
    implementation returns `OutcomeClass.TRANSIENT_ERROR` when no response was
    received; it may also raise, in which case the batch classifies the exception.
    """

    async def copy_or_move(
        self, source: Location, destination: Location, kind: OperationKind
    ) -> OutcomeClass:
        """
        Copy or move `source` to the full location `destination`.

        Arguments:
            source: The item to copy or move.
            destination: The location of the item once copied or moved, including its
                final name.
            kind: `OperationKind.COPY` or `OperationKind.MOVE`.

        Returns:
            The classification of the answer.
        """

    async def delete(self, location: Location) -> OutcomeClass:
        """
        Delete `location`.

        Arguments:
            location: The item to delete.

        Returns:
            The classification of the answer.
        """


def classify_http_error(error: DigiStorageHTTPError) -> OutcomeClass:
    """Map an HTTP error raised by the client to an outcome class."""
    status_code = error.response.status_code if error.response is not None else None
    if status_code is None:
        return OutcomeClass.SERVER_ERROR
    return OutcomeClass.from_status_code(status_code)


class DigiStorageRemoteClient:
    """
    `RemoteStorageClient` backed by the Digi Storage REST API.

    Attributes:
        digi_client: The client used to send the requests. If None the last client
            from the `.login()` method is used.
        retry_policy: The retry policy of the batch requests. A request is only
            retried when it never reached the server, so an answer lost on the way
            back is reported instead of being sent again. Keys given here override
            that policy.

    Example: Running a batch against Digi Storage
        &nbsp;

            from digistorage.operations import DigiStorageRemoteClient, run_batch_async

            result = await run_batch_async(
                request, remote_client=DigiStorageRemoteClient(digi_client=digi)
            )
    """

    def __init__(
        self,
        digi_client: Optional["DigiStorage"] = None,
        retry_policy: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.digi_client = digi_client
        self.retry_policy = {**NON_IDEMPOTENT_RETRY_POLICY, **(retry_policy or {})}

    async def copy_or_move(
        self, source: Location, destination: Location, kind: OperationKind
    ) -> OutcomeClass:
        try:
            await copy_or_move_node(
                source=source,
                destination=destination,
                kind=kind,
                digi_client=self.digi_client,
                retry_policy=self.retry_policy,
            )
        except DigiStorageHTTPError as ex:
            return classify_http_error(ex)
        return OutcomeClass.SUCCEEDED

    async def delete(self, location: Location) -> OutcomeClass:
        try:
            await delete_node(
                location=location,
                digi_client=self.digi_client,
                retry_policy=self.retry_policy,
            )
        except DigiStorageHTTPError as ex:
            return classify_http_error(ex)
        return OutcomeClass.SUCCEEDED
