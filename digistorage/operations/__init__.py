from digistorage.operations.batch_operations import (
    BatchOperationCoordinator,
    BatchState,
    CancellationToken,
    plan_destinations,
    run_batch,
    run_batch_async,
)
from digistorage.operations.conflict_names import (
    ConflictNameResolver,
    resolve_conflict_name,
)
from digistorage.operations.file_operations import (
    copy,
    copy_async,
    delete,
    delete_async,
    move,
    move_async,
)
from digistorage.operations.remote_client import (
    DigiStorageRemoteClient,
    RemoteStorageClient,
)

__all__ = [
    "BatchOperationCoordinator",
    "BatchState",
    "CancellationToken",
    "ConflictNameResolver",
    "DigiStorageRemoteClient",
    "RemoteStorageClient",
    "copy",
    "copy_async",
    "delete",
    "delete_async",
    "move",
    "move_async",
    "plan_destinations",
    "resolve_conflict_name",
    "run_batch",
    "run_batch_async",
]
