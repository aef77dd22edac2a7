"""Fan-out of one copy, move or delete request per item and aggregation of the
classified answers into a single `BatchResult`.

Every item of a batch is sent concurrently, bounded by `max_concurrent_requests`. A
failing item never cancels its siblings and nothing is retried at this layer; the
HTTP layer retries on its own. The result is handed over exactly once, after every
item reported. A cancelled batch never hands over a result.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import httpx
from tqdm import tqdm
from tqdm.contrib.logging import logging_redirect_tqdm

from digistorage.api.configuration_services import DEFAULT_MAX_CONCURRENT_REQUESTS
from digistorage.core.async_utils import (
    otel_trace_method,
    wrap_async_to_sync,
)
from digistorage.core.exceptions import (
    DigiStorageBatchCancelledError,
    DigiStorageError,
    DigiStorageTimeoutError,
)
from digistorage.core.logging_setup import DEFAULT_LOGGER_NAME
from digistorage.models.batch import (
    BatchRequest,
    BatchResult,
    ItemOutcome,
    OperationKind,
    OutcomeClass,
)
from digistorage.models.location import Location
from digistorage.operations.conflict_names import ConflictNameResolver
from digistorage.operations.remote_client import RemoteStorageClient

# Exceptions escaping a remote client that mean no answer was received
TRANSIENT_EXCEPTIONS = (
    httpx.TransportError,
    OSError,
    asyncio.TimeoutError,
    DigiStorageTimeoutError,
)


class BatchState(str, Enum):
    """Lifecycle of a coordinator. A coordinator runs a single batch."""

    IDLE = "idle"
    DISPATCHING = "dispatching"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CancellationToken:
    """Explicit cancellation flag shared by a batch and its owner. Checked before an
    item is dispatched and before an answer is reported.

    A running batch registers a callback on the token, so `cancel` also interrupts the
    requests in flight. `cancel` may be called from any thread.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        for callback in list(self._callbacks):
            callback()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Call `callback` once the token is cancelled, right away if it already is."""
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)


def plan_destinations(
    request: BatchRequest,
) -> List[Tuple[Location, Optional[Location]]]:
    """
    Pair every source of a request with the location it is sent to.

    Copies are renamed against the destination snapshot of the request, and names
    handed out to earlier items are taken into account for the later ones. Moves keep
    their name. Deletes have no destination.

    Arguments:
        request: The batch to plan.

    Returns:
        `(source, destination)` tuples in the order of `request.sources`.
    """
    if request.kind is OperationKind.DELETE:
        return [(source, None) for source in request.sources]

    plan = []
    resolver = ConflictNameResolver(request.destination_names or ())
    for source in request.sources:
        name = source.name
        if request.kind is OperationKind.COPY:
            name = resolver.claim(name, is_folder=source.is_directory)
        plan.append(
            (source, request.destination.child(name, is_folder=source.is_directory))
        )
    return plan


class BatchOperationCoordinator:
    """
    Runs one batch of copy, move or delete requests.

    Every source receives exactly one request through the remote client. Answers are
    merged into a `BatchResult` as they arrive, in any order, and the frozen result is
    delivered once the last item reported. Exceptions escaping the remote client are
    classified: transport failures as `TRANSIENT_ERROR`, anything else as
    `SERVER_ERROR`.

    A coordinator is not reusable. Construct one per batch.

    Attributes:
        request: The batch to run.
        remote_client: Sends the requests and classifies the answers.
        max_concurrent_requests: How many requests may be in flight at once.
        show_progress: Whether to display a progress bar counting completed items.
        logger: The logger used for diagnostics.

    Example: Deleting three files
        &nbsp;

            coordinator = BatchOperationCoordinator(
                request=BatchRequest(sources=files, kind=OperationKind.DELETE),
                remote_client=DigiStorageRemoteClient(digi_client=digi),
            )
            result = await coordinator.run_async()
            print(result.summary())
    """

    def __init__(
        self,
        request: BatchRequest,
        remote_client: RemoteStorageClient,
        *,
        max_concurrent_requests: Optional[int] = None,
        show_progress: bool = False,
        logger: Optional[logging.Logger] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> None:
        if max_concurrent_requests is None:
            max_concurrent_requests = DEFAULT_MAX_CONCURRENT_REQUESTS
        if max_concurrent_requests < 1:
            raise ValueError("max_concurrent_requests must be a positive integer")

        self.request = request
        self.remote_client = remote_client
        self.max_concurrent_requests = max_concurrent_requests
        self.show_progress = show_progress
        self.logger = logger or logging.getLogger(DEFAULT_LOGGER_NAME)
        self._token = cancellation_token or CancellationToken()
        self._state = BatchState.IDLE
        self._result = BatchResult(kind=request.kind)
        self._tasks: Dict[asyncio.Task, Location] = {}
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> BatchState:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    @property
    def task(self) -> Optional[asyncio.Task]:
        """The task scheduled by `run` when an event loop is running."""
        return self._task

    @property
    def reported(self) -> int:
        """The number of items whose answer has been merged so far."""
        return self._result.total

    def cancel(self) -> None:
        """
        Cancel the batch. Items not dispatched yet are never sent, answers arriving
        from now on are ignored and outstanding requests are cancelled. The batch
        raises `DigiStorageBatchCancelledError` instead of delivering a result.

        May be called from any thread.
        """
        self._token.cancel()

    def _interrupt_requests(self) -> None:
        for task in self._tasks:
            if not task.done():
                task.cancel()

    async def _run_item(
        self,
        source: Location,
        destination: Optional[Location],
        semaphore: asyncio.Semaphore,
    ) -> Optional[ItemOutcome]:
        """Send the request of one item. Returns None when the batch was cancelled
        before the request was sent."""
        async with semaphore:
            if self._token.cancelled:
                return None

            message = None
            try:
                if self.request.kind is OperationKind.DELETE:
                    outcome = await self.remote_client.delete(source)
                else:
                    outcome = await self.remote_client.copy_or_move(
                        source, destination, self.request.kind
                    )
                outcome = OutcomeClass(outcome)
            except TRANSIENT_EXCEPTIONS as ex:
                self.logger.debug(
                    "%s of %s failed without a response",
                    self.request.kind.value,
                    source,
                    exc_info=True,
                )
                outcome = OutcomeClass.TRANSIENT_ERROR
                message = str(ex)
            except Exception as ex:
                self.logger.exception(
                    f"Unexpected error during {self.request.kind.value} of {source}"
                )
                outcome = OutcomeClass.SERVER_ERROR
                message = str(ex)

        return ItemOutcome(
            source=source,
            destination=destination,
            outcome=outcome,
            message=message,
        )

    async def _cancel_outstanding(self) -> None:
        outstanding = [task for task in self._tasks if not task.done()]
        for task in outstanding:
            task.cancel()
        if outstanding:
            await asyncio.gather(*outstanding, return_exceptions=True)

    def _raise_cancelled(self) -> None:
        self._state = BatchState.CANCELLED
        raise DigiStorageBatchCancelledError(
            f"The {self.request.kind.value} batch was cancelled after "
            f"{self._result.total} of {len(self.request.sources)} items reported",
            outcomes=self._result.outcomes,
        )

    @otel_trace_method(
        method_to_trace_name=lambda self, *args, **kwargs: f"Batch_{self.request.kind.value}: {len(self.request.sources)} items"
    )
    async def run_async(self) -> BatchResult:
        """
        Run the batch and wait for every item to report.

        Returns:
            The frozen result of the batch. An empty batch returns an empty result
            right away.

        Raises:
            DigiStorageError: If this coordinator already ran.
            DigiStorageBatchCancelledError: If the batch was cancelled. The outcomes
                received until then are attached to the exception.
        """
        if self._state is not BatchState.IDLE:
            raise DigiStorageError(
                f"A batch can only run once, this one is {self._state.value}"
            )
        self._state = BatchState.DISPATCHING

        if self._token.cancelled:
            self._raise_cancelled()

        plan = plan_destinations(self.request)
        if not plan:
            self._state = BatchState.COMPLETED
            return self._result.freeze()

        semaphore = asyncio.Semaphore(self.max_concurrent_requests)
        self._tasks = {
            asyncio.create_task(self._run_item(source, destination, semaphore)): source
            for source, destination in plan
        }

        progress_bar = (
            tqdm(
                total=len(plan),
                desc=f"{self.request.kind.value.capitalize()} items",
                unit="item",
                smoothing=0,
            )
            if self.show_progress
            else None
        )
        loop = asyncio.get_running_loop()

        def interrupt() -> None:
            loop.call_soon_threadsafe(self._interrupt_requests)

        self._token.add_callback(interrupt)
        try:
            with logging_redirect_tqdm(loggers=[self.logger]):
                for completed_task in asyncio.as_completed(list(self._tasks)):
                    try:
                        item_outcome = await completed_task
                    except asyncio.CancelledError:
                        # an item cancelled through `cancel()`, not this coroutine
                        if not self._token.cancelled:
                            raise
                        item_outcome = None

                    if self._token.cancelled:
                        break
                    if item_outcome is None:
                        continue

                    self._result.merge(item_outcome)
                    if progress_bar:
                        progress_bar.update(1)
        finally:
            self._token.remove_callback(interrupt)
            if progress_bar:
                progress_bar.close()
            await self._cancel_outstanding()

        if self._token.cancelled:
            self._raise_cancelled()

        self._state = BatchState.COMPLETED
        self.logger.debug(self._result.summary())
        return self._result.freeze()

    def run(
        self,
        on_complete: Callable[[BatchResult], None],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> Optional[asyncio.Task]:
        """
        Fire-and-forget variant of `run_async`.

        When an event loop is running the batch is scheduled as a task and
        `on_complete(result)` is called on `loop` (defaults to the running loop) once
        the batch completed. Without a running loop the batch runs to completion and
        `on_complete` is called before this method returns.

        `on_complete` is called exactly once for a batch that completes and never for
        a cancelled one.

        Arguments:
            on_complete: Receives the frozen result of the batch.
            loop: The event loop on which `on_complete` is called.

        Returns:
            The scheduled task when an event loop is running, None otherwise.
        """
        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None

        if running_loop is None:
            try:
                result = wrap_async_to_sync(self.run_async())
            except DigiStorageBatchCancelledError as ex:
                self.logger.debug(str(ex))
                return None
            on_complete(result)
            return None

        callback_loop = loop or running_loop

        async def run_and_deliver() -> None:
            try:
                result = await self.run_async()
            except DigiStorageBatchCancelledError as ex:
                self.logger.debug(str(ex))
                return
            if callback_loop is running_loop:
                callback_loop.call_soon(on_complete, result)
            else:
                callback_loop.call_soon_threadsafe(on_complete, result)

        self._task = running_loop.create_task(run_and_deliver())
        self._task.add_done_callback(self._log_failure)
        return self._task

    def _log_failure(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(
                "The %s batch failed",
                self.request.kind.value,
                exc_info=task.exception(),
            )


async def run_batch_async(
    request: BatchRequest,
    *,
    remote_client: RemoteStorageClient,
    max_concurrent_requests: Optional[int] = None,
    show_progress: bool = False,
    logger: Optional[logging.Logger] = None,
    cancellation_token: Optional[CancellationToken] = None,
) -> BatchResult:
    """
    Run one batch and return its result.

    Arguments:
        request: The batch to run.
        remote_client: Sends the requests and classifies the answers.
        max_concurrent_requests: How many requests may be in flight at once.
        show_progress: Whether to display a progress bar.
        logger: The logger used for diagnostics.
        cancellation_token: Cancels the batch when its `cancel` method is called.

    Returns:
        The frozen result of the batch.

    Raises:
        DigiStorageBatchCancelledError: If the batch was cancelled.
    """
    return await BatchOperationCoordinator(
        request=request,
        remote_client=remote_client,
        max_concurrent_requests=max_concurrent_requests,
        show_progress=show_progress,
        logger=logger,
        cancellation_token=cancellation_token,
    ).run_async()


def run_batch(
    request: BatchRequest,
    on_complete: Callable[[BatchResult], None],
    *,
    remote_client: RemoteStorageClient,
    loop: Optional[asyncio.AbstractEventLoop] = None,
    max_concurrent_requests: Optional[int] = None,
    show_progress: bool = False,
    logger: Optional[logging.Logger] = None,
) -> BatchOperationCoordinator:
    """
    Fire-and-forget a batch. `on_complete` receives the result exactly once, see
    `BatchOperationCoordinator.run`.

    Arguments:
        request: The batch to run.
        on_complete: Receives the frozen result of the batch.
        remote_client: Sends the requests and classifies the answers.
        loop: The event loop on which `on_complete` is called.
        max_concurrent_requests: How many requests may be in flight at once.
        show_progress: Whether to display a progress bar.
        logger: The logger used for diagnostics.

    Returns:
        The coordinator running the batch, to cancel it. It keeps a reference to the
        scheduled task while the batch runs.
    """
    coordinator = BatchOperationCoordinator(
        request=request,
        remote_client=remote_client,
        max_concurrent_requests=max_concurrent_requests,
        show_progress=show_progress,
        logger=logger,
    )
    coordinator.run(on_complete, loop=loop)
    return coordinator
