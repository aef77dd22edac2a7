import itertools

import pytest

from digistorage.core.exceptions import DigiStorageError
from digistorage.models import (
    BatchRequest,
    BatchResult,
    ItemOutcome,
    Location,
    OperationKind,
    OutcomeClass,
)

SOURCE_FOLDER = Location("m1", "/src/")
DESTINATION = Location("m1", "/dst/")


def _outcome(name: str, outcome: OutcomeClass, kind=OperationKind.COPY):
    source = SOURCE_FOLDER.child(name)
    destination = None if kind is OperationKind.DELETE else DESTINATION.child(name)
    return ItemOutcome(source=source, destination=destination, outcome=outcome)


class TestOutcomeClass:
    @pytest.mark.parametrize(
        "status_code,expected",
        [
            (200, OutcomeClass.SUCCEEDED),
            (204, OutcomeClass.SUCCEEDED),
            (400, OutcomeClass.CONFLICT),
            (409, OutcomeClass.CONFLICT),
            (404, OutcomeClass.NOT_FOUND),
            (403, OutcomeClass.SERVER_ERROR),
            (500, OutcomeClass.SERVER_ERROR),
            (None, OutcomeClass.TRANSIENT_ERROR),
        ],
    )
    def test_from_status_code(self, status_code, expected) -> None:
        assert OutcomeClass.from_status_code(status_code) is expected


class TestBatchRequest:
    def test_copy_requires_a_destination(self) -> None:
        with pytest.raises(ValueError):
            BatchRequest(sources=[SOURCE_FOLDER.child("a")], kind=OperationKind.COPY)

    def test_move_requires_a_folder_destination(self) -> None:
        with pytest.raises(ValueError):
            BatchRequest(
                sources=[SOURCE_FOLDER.child("a")],
                kind=OperationKind.MOVE,
                destination=Location("m1", "/dst"),
            )

    def test_delete_needs_no_destination(self) -> None:
        request = BatchRequest(
            sources=(SOURCE_FOLDER.child("a"),), kind=OperationKind.DELETE
        )
        assert request.sources == [SOURCE_FOLDER.child("a")]
        assert request.destination is None

    def test_kind_and_destination_names_are_coerced(self) -> None:
        request = BatchRequest(
            sources=[],
            kind="copy",
            destination=DESTINATION,
            destination_names=["a.txt"],
        )
        assert request.kind is OperationKind.COPY
        assert request.destination_names == frozenset({"a.txt"})


class TestBatchResult:
    def test_empty_result(self) -> None:
        result = BatchResult(kind=OperationKind.DELETE).freeze()
        assert result.succeeded == 0
        assert result.total == 0
        assert result.all_succeeded
        assert not result.refresh_needed
        assert not (
            result.conflict
            or result.not_found
            or result.transient_error
            or result.server_error
        )

    def test_merge_sets_flags(self) -> None:
        # GIVEN one outcome of every class
        result = BatchResult(kind=OperationKind.COPY)

        # WHEN they are merged
        result.merge_all(
            [
                _outcome("a", OutcomeClass.SUCCEEDED),
                _outcome("b", OutcomeClass.CONFLICT),
                _outcome("c", OutcomeClass.NOT_FOUND),
                _outcome("d", OutcomeClass.TRANSIENT_ERROR),
                _outcome("e", OutcomeClass.SERVER_ERROR),
            ]
        )

        # THEN every flag is raised and only one item counts as a success
        assert result.succeeded == 1
        assert result.failed == 4
        assert result.conflict
        assert result.not_found
        assert result.transient_error
        assert result.server_error
        assert not result.all_succeeded

    def test_copy_success_refreshes_the_destination(self) -> None:
        result = BatchResult(kind=OperationKind.COPY)
        result.merge(_outcome("a", OutcomeClass.SUCCEEDED))
        assert result.refresh_locations == {DESTINATION}

    def test_move_success_refreshes_both_folders(self) -> None:
        result = BatchResult(kind=OperationKind.MOVE)
        result.merge(_outcome("a", OutcomeClass.SUCCEEDED, OperationKind.MOVE))
        assert result.refresh_locations == {DESTINATION, SOURCE_FOLDER}

    def test_delete_success_refreshes_the_source_folder(self) -> None:
        result = BatchResult(kind=OperationKind.DELETE)
        result.merge(_outcome("a", OutcomeClass.SUCCEEDED, OperationKind.DELETE))
        assert result.refresh_locations == {SOURCE_FOLDER}

    def test_not_found_refreshes_the_source_folder(self) -> None:
        result = BatchResult(kind=OperationKind.COPY)
        result.merge(_outcome("a", OutcomeClass.NOT_FOUND))
        assert result.refresh_locations == {SOURCE_FOLDER}

    def test_failures_alone_do_not_refresh_the_destination(self) -> None:
        result = BatchResult(kind=OperationKind.COPY)
        result.merge(_outcome("a", OutcomeClass.CONFLICT))
        result.merge(_outcome("b", OutcomeClass.SERVER_ERROR))
        assert not result.refresh_needed

    def test_merge_into_frozen_result_fails(self) -> None:
        result = BatchResult(kind=OperationKind.COPY).freeze()
        with pytest.raises(DigiStorageError):
            result.merge(_outcome("a", OutcomeClass.SUCCEEDED))

    def test_freeze_is_idempotent(self) -> None:
        result = BatchResult(kind=OperationKind.COPY)
        result.merge(_outcome("a", OutcomeClass.SUCCEEDED))
        assert result.freeze() is result.freeze()
        assert result.frozen
        assert isinstance(result.refresh_locations, frozenset)

    def test_merge_order_does_not_matter(self) -> None:
        # GIVEN the outcomes of a batch
        outcomes = [
            _outcome("a", OutcomeClass.SUCCEEDED),
            _outcome("b", OutcomeClass.NOT_FOUND),
            _outcome("c", OutcomeClass.CONFLICT),
            _outcome("d", OutcomeClass.SUCCEEDED),
        ]

        # WHEN they are merged in every possible order
        results = [
            BatchResult(kind=OperationKind.COPY).merge_all(order).freeze()
            for order in itertools.permutations(outcomes)
        ]

        # THEN the results are all equal
        assert all(result == results[0] for result in results)
        assert results[0].succeeded == 2

    def test_results_with_different_outcomes_differ(self) -> None:
        first = BatchResult(kind=OperationKind.COPY).merge(
            _outcome("a", OutcomeClass.SUCCEEDED)
        )
        second = BatchResult(kind=OperationKind.COPY).merge(
            _outcome("b", OutcomeClass.SUCCEEDED)
        )
        assert first != second

    def test_summary(self) -> None:
        result = BatchResult(kind=OperationKind.DELETE)
        result.merge(_outcome("a", OutcomeClass.SUCCEEDED, OperationKind.DELETE))
        result.merge(_outcome("b", OutcomeClass.NOT_FOUND, OperationKind.DELETE))
        assert result.summary() == "1/2 delete succeeded, 1 not_found"
