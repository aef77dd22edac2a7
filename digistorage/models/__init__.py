# These are all of the models that are used by the Digi Storage client.
from digistorage.models.batch import (
    BatchRequest,
    BatchResult,
    ItemOutcome,
    OperationKind,
    OutcomeClass,
)
from digistorage.models.location import Location, Mount
from digistorage.models.node import FolderInfo, Node

__all__ = [
    "BatchRequest",
    "BatchResult",
    "FolderInfo",
    "ItemOutcome",
    "Location",
    "Mount",
    "Node",
    "OperationKind",
    "OutcomeClass",
]
