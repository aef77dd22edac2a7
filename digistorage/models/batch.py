"""Types describing a batch of copy, move or delete requests and its aggregated
result."""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Set, Union

from digistorage.core.exceptions import DigiStorageError
from digistorage.models.location import Location


class OperationKind(str, Enum):
    """The remote operation run for every item of a batch."""

    COPY = "copy"
    """Copy every source into the destination folder. Names that already exist in
    the destination are renamed client-side before the request is sent."""

    MOVE = "move"
    """Move every source into the destination folder. Names are never changed, a
    collision is reported by the service as a conflict."""

    DELETE = "delete"
    """Delete every source. No destination is used."""

    @property
    def needs_destination(self) -> bool:
        return self in (OperationKind.COPY, OperationKind.MOVE)


class OutcomeClass(str, Enum):
    """Coarse classification of the result of one remote request."""

    SUCCEEDED = "succeeded"
    """The service completed the request."""

    CONFLICT = "conflict"
    """The destination name is already taken (HTTP 400 or 409)."""

    NOT_FOUND = "not_found"
    """The source no longer exists (HTTP 404)."""

    TRANSIENT_ERROR = "transient_error"
    """No response was received, the network or the transport failed."""

    SERVER_ERROR = "server_error"
    """Any other unsuccessful status code."""

    @classmethod
    def from_status_code(cls, status_code: Union[int, None]) -> "OutcomeClass":
        """
        Classify an HTTP status code.

        Arguments:
            status_code: The status code of the response or None when no response
                was received.

        Returns:
            The outcome class of the request.
        """
        if status_code is None:
            return cls.TRANSIENT_ERROR
        if 200 <= status_code < 300:
            return cls.SUCCEEDED
        if status_code in (400, 409):
            return cls.CONFLICT
        if status_code == 404:
            return cls.NOT_FOUND
        return cls.SERVER_ERROR


@dataclass()
class BatchRequest:
    """A set of same-kind operations submitted together.

    Attributes:
        sources: The files and folders to copy, move or delete.
        kind: The operation to run for every source.
        destination: The folder receiving the copies or moved items. Required for
            copy and move, ignored for delete.
        destination_names: The names present in the destination folder when the batch
            was prepared. Copies are renamed against this snapshot. When omitted for a
            copy no name is considered taken.
    """

    sources: List[Location] = field(default_factory=list)
    """The files and folders to copy, move or delete."""

    kind: OperationKind = OperationKind.COPY
    """The operation to run for every source."""

    destination: Optional[Location] = None
    """The folder receiving the copies or moved items."""

    destination_names: Optional[FrozenSet[str]] = None
    """The names present in the destination folder when the batch was prepared."""

    def __post_init__(self) -> None:
        self.kind = OperationKind(self.kind)
        self.sources = list(self.sources)
        if self.destination_names is not None:
            self.destination_names = frozenset(self.destination_names)

        if self.kind.needs_destination:
            if self.destination is None:
                raise ValueError(f"A destination is required to {self.kind.value}")
            if not self.destination.is_directory:
                raise ValueError(
                    f"The destination of a {self.kind.value} must be a folder, "
                    f"got {self.destination}"
                )


@dataclass(frozen=True)
class ItemOutcome:
    """The classified result of one item of a batch.

    Attributes:
        source: The item the request was sent for.
        destination: The final location requested for a copy or move, None for a
            delete.
        outcome: The classification of the result.
        status_code: The HTTP status code when a response was received.
        message: An error message for diagnostics.
    """

    source: Location
    destination: Optional[Location]
    outcome: OutcomeClass
    status_code: Optional[int] = None
    message: Optional[str] = None


@dataclass(eq=False)
class BatchResult:
    """Aggregate over every item of a batch.

    The result is created empty when the batch starts, updated with `merge` as each
    item completes, and frozen before being handed over. Merging is commutative, so
    the final result does not depend on the order in which items completed.

    Attributes:
        kind: The operation the batch ran.
        succeeded: The number of items that succeeded.
        transient_error: Whether any item failed without a response.
        conflict: Whether any item hit a name collision.
        not_found: Whether any source no longer existed.
        server_error: Whether any item failed with another status code.
        outcomes: Every item outcome, for diagnostics.
        refresh_locations: The folders whose cached listing is out of date.
    """

    kind: OperationKind = OperationKind.COPY
    succeeded: int = 0
    transient_error: bool = False
    conflict: bool = False
    not_found: bool = False
    server_error: bool = False
    outcomes: List[ItemOutcome] = field(default_factory=list)
    refresh_locations: Set[Location] = field(default_factory=set)
    _frozen: bool = field(default=False, repr=False)

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def total(self) -> int:
        """The number of items merged into this result."""
        return len(self.outcomes)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def refresh_needed(self) -> bool:
        return bool(self.refresh_locations)

    @property
    def all_succeeded(self) -> bool:
        return self.succeeded == self.total

    def merge(self, item: ItemOutcome) -> "BatchResult":
        """
        Fold the outcome of one item into this result.

        A source that vanished makes the listing of its folder stale. A copy or move
        that succeeded makes the destination folder stale, and a move or delete that
        succeeded makes the source folder stale.

        Arguments:
            item: The classified outcome of one request.

        Returns:
            This result.

        Raises:
            DigiStorageError: If the result was already frozen.
        """
        if self._frozen:
            raise DigiStorageError("Cannot merge into a frozen BatchResult")

        self.outcomes.append(item)
        if item.outcome is OutcomeClass.SUCCEEDED:
            self.succeeded += 1
            if self.kind.needs_destination and item.destination is not None:
                self.refresh_locations.add(item.destination.parent)
            if self.kind in (OperationKind.MOVE, OperationKind.DELETE):
                self.refresh_locations.add(item.source.parent)
        elif item.outcome is OutcomeClass.CONFLICT:
            self.conflict = True
        elif item.outcome is OutcomeClass.NOT_FOUND:
            self.not_found = True
            self.refresh_locations.add(item.source.parent)
        elif item.outcome is OutcomeClass.TRANSIENT_ERROR:
            self.transient_error = True
        else:
            self.server_error = True
        return self

    def merge_all(self, items: Iterable[ItemOutcome]) -> "BatchResult":
        for item in items:
            self.merge(item)
        return self

    def freeze(self) -> "BatchResult":
        """Stop accepting outcomes. Called once every item has reported."""
        if not self._frozen:
            self.outcomes = tuple(self.outcomes)
            self.refresh_locations = frozenset(self.refresh_locations)
            self._frozen = True
        return self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BatchResult):
            return NotImplemented
        return (
            self.kind == other.kind
            and self.succeeded == other.succeeded
            and self.transient_error == other.transient_error
            and self.conflict == other.conflict
            and self.not_found == other.not_found
            and self.server_error == other.server_error
            and set(self.refresh_locations) == set(other.refresh_locations)
            and Counter(self.outcomes) == Counter(other.outcomes)
        )

    __hash__ = None

    def summary(self) -> str:
        """A one line description of the result, suitable for logging."""
        counts = Counter(item.outcome for item in self.outcomes)
        parts = [f"{self.succeeded}/{self.total} {self.kind.value} succeeded"]
        for outcome in OutcomeClass:
            if outcome is not OutcomeClass.SUCCEEDED and counts[outcome]:
                parts.append(f"{counts[outcome]} {outcome.value}")
        return ", ".join(parts)
