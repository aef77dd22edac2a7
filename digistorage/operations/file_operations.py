"""Copy, move and delete files and folders on Digi Storage as one batch."""

from typing import TYPE_CHECKING, Iterable, Optional

from digistorage.api.file_services import get_content
from digistorage.core.async_utils import wrap_async_to_sync
from digistorage.models.batch import BatchRequest, BatchResult, OperationKind
from digistorage.models.location import Location
from digistorage.operations.batch_operations import (
    CancellationToken,
    run_batch_async,
)
from digistorage.operations.remote_client import DigiStorageRemoteClient

if TYPE_CHECKING:
    from digistorage import DigiStorage


async def _run_async(
    request: BatchRequest,
    show_progress: bool,
    cancellation_token: Optional[CancellationToken],
    digi_client: Optional["DigiStorage"],
) -> BatchResult:
    from digistorage import DigiStorage

    client = DigiStorage.get_client(digi_client=digi_client)
    return await run_batch_async(
        request,
        remote_client=DigiStorageRemoteClient(digi_client=client),
        max_concurrent_requests=client.max_concurrent_requests,
        show_progress=show_progress,
        logger=client.logger,
        cancellation_token=cancellation_token,
    )


def copy(
    sources: Iterable[Location],
    destination: Location,
    *,
    show_progress: bool = False,
    cancellation_token: Optional[CancellationToken] = None,
    digi_client: Optional["DigiStorage"] = None,
) -> BatchResult:
    """
    Copy files and folders into a folder. Copies whose name is already taken in the
    destination are renamed `name (1).ext`, `name (2).ext` and so on.

    Arguments:
        sources: The files and folders to copy.
        destination: The folder receiving the copies.
        show_progress: Whether to display a progress bar.
        cancellation_token: Cancels the batch when its `cancel` method is called.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.

    Returns:
        The result of the batch.

    Example: Copying two files
        &nbsp;

            from digistorage import DigiStorage
            from digistorage.models import Location
            from digistorage.operations import copy

            digi = DigiStorage()
            digi.login()

            result = copy(
                [Location("m1", "/a.txt"), Location("m1", "/b.txt")],
                Location("m1", "/backup/"),
            )
            print(result.summary())
    """
    return wrap_async_to_sync(
        coroutine=copy_async(
            sources=sources,
            destination=destination,
            show_progress=show_progress,
            cancellation_token=cancellation_token,
            digi_client=digi_client,
        )
    )


async def copy_async(
    sources: Iterable[Location],
    destination: Location,
    *,
    show_progress: bool = False,
    cancellation_token: Optional[CancellationToken] = None,
    digi_client: Optional["DigiStorage"] = None,
) -> BatchResult:
    """
    Copy files and folders into a folder. The content of the destination is listed
    first so that copies never overwrite existing items: a taken name is renamed
    `name (1).ext`, `name (2).ext` and so on.

    Arguments:
        sources: The files and folders to copy.
        destination: The folder receiving the copies.
        show_progress: Whether to display a progress bar.
        cancellation_token: Cancels the batch when its `cancel` method is called.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.

    Returns:
        The result of the batch.
    """
    nodes = await get_content(destination, digi_client=digi_client)
    request = BatchRequest(
        sources=list(sources),
        kind=OperationKind.COPY,
        destination=destination,
        destination_names=frozenset(node.name for node in nodes if node.name),
    )
    return await _run_async(request, show_progress, cancellation_token, digi_client)


def move(
    sources: Iterable[Location],
    destination: Location,
    *,
    show_progress: bool = False,
    cancellation_token: Optional[CancellationToken] = None,
    digi_client: Optional["DigiStorage"] = None,
) -> BatchResult:
    """
    Move files and folders into a folder. Names are kept; an item whose name is taken
    in the destination is reported as a conflict.

    Arguments:
        sources: The files and folders to move.
        destination: The folder receiving the items.
        show_progress: Whether to display a progress bar.
        cancellation_token: Cancels the batch when its `cancel` method is called.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.

    Returns:
        The result of the batch.
    """
    return wrap_async_to_sync(
        coroutine=move_async(
            sources=sources,
            destination=destination,
            show_progress=show_progress,
            cancellation_token=cancellation_token,
            digi_client=digi_client,
        )
    )


async def move_async(
    sources: Iterable[Location],
    destination: Location,
    *,
    show_progress: bool = False,
    cancellation_token: Optional[CancellationToken] = None,
    digi_client: Optional["DigiStorage"] = None,
) -> BatchResult:
    """
    Move files and folders into a folder. Names are kept; an item whose name is taken
    in the destination is reported as a conflict.

    Arguments:
        sources: The files and folders to move.
        destination: The folder receiving the items.
        show_progress: Whether to display a progress bar.
        cancellation_token: Cancels the batch when its `cancel` method is called.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.

    Returns:
        The result of the batch.
    """
    request = BatchRequest(
        sources=list(sources),
        kind=OperationKind.MOVE,
        destination=destination,
    )
    return await _run_async(request, show_progress, cancellation_token, digi_client)


def delete(
    sources: Iterable[Location],
    *,
    show_progress: bool = False,
    cancellation_token: Optional[CancellationToken] = None,
    digi_client: Optional["DigiStorage"] = None,
) -> BatchResult:
    """
    Delete files and folders.

    Arguments:
        sources: The files and folders to delete.
        show_progress: Whether to display a progress bar.
        cancellation_token: Cancels the batch when its `cancel` method is called.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.

    Returns:
        The result of the batch.
    """
    return wrap_async_to_sync(
        coroutine=delete_async(
            sources=sources,
            show_progress=show_progress,
            cancellation_token=cancellation_token,
            digi_client=digi_client,
        )
    )


async def delete_async(
    sources: Iterable[Location],
    *,
    show_progress: bool = False,
    cancellation_token: Optional[CancellationToken] = None,
    digi_client: Optional["DigiStorage"] = None,
) -> BatchResult:
    """
    Delete files and folders.

    Arguments:
        sources: The files and folders to delete.
        show_progress: Whether to display a progress bar.
        cancellation_token: Cancels the batch when its `cancel` method is called.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.

    Returns:
        The result of the batch.
    """
    request = BatchRequest(sources=list(sources), kind=OperationKind.DELETE)
    return await _run_async(request, show_progress, cancellation_token, digi_client)
