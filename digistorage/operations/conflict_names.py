"""Collision free names for copies.

A copy whose name is already taken in the destination folder receives a numbered
suffix placed before the extension: `report.pdf` becomes `report (1).pdf`, then
`report (2).pdf` and so on. Moves never rename.
"""

from typing import AbstractSet, Iterable, Set

from digistorage.core.utils import PATH_SEPARATOR, index_before_extension

COUNTER_FORMAT = " ({})"


def _with_counter(name: str, counter: int) -> str:
    suffix = COUNTER_FORMAT.format(counter)
    index = index_before_extension(name)
    if index is not None:
        return name[:index] + suffix + name[index:]
    if name.endswith(PATH_SEPARATOR):
        return name.rstrip(PATH_SEPARATOR) + suffix + PATH_SEPARATOR
    return name + suffix


def resolve_conflict_name(name: str, existing_names: AbstractSet[str]) -> str:
    """
    Produce a name that is not present in `existing_names`.

    The name is returned unchanged when it is free. Otherwise ` (k)` is inserted
    before the extension for k = 1, 2, 3, ... and the first candidate absent from the
    whole set is returned. A name without extension, or a directory name ending with
    a separator, receives the suffix at its end, before the separator.

    Arguments:
        name: The desired name.
        existing_names: The names already taken.

    Returns:
        A name absent from `existing_names`.

    Example: Resolving a copy of an existing file

            resolve_conflict_name("report.pdf", {"report.pdf"})
            # 'report (1).pdf'
            resolve_conflict_name("notes", {"notes", "notes (1)"})
            # 'notes (2)'
    """
    if not name:
        raise ValueError("A name is required")
    if name not in existing_names:
        return name

    counter = 1
    while True:
        candidate = _with_counter(name, counter)
        if candidate not in existing_names:
            return candidate
        counter += 1


class ConflictNameResolver:
    """Resolves the names of every copy of one batch against a snapshot of the
    destination folder. A name handed out is added to the working set, so two sources
    sharing a name never collide with each other."""

    def __init__(self, existing_names: Iterable[str] = ()) -> None:
        # listings report folders without the trailing separator
        self._taken: Set[str] = {
            existing.rstrip(PATH_SEPARATOR) for existing in existing_names
        }

    def claim(self, name: str, is_folder: bool = False) -> str:
        """
        Resolve `name` and reserve the result for the rest of the batch.

        Arguments:
            name: The name of the source, without trailing separator.
            is_folder: Whether the source is a folder. Dots in folder names never
                start an extension.

        Returns:
            The name to give to the copy, without trailing separator.
        """
        if is_folder:
            taken = {existing + PATH_SEPARATOR for existing in self._taken}
            resolved = resolve_conflict_name(name + PATH_SEPARATOR, taken).rstrip(
                PATH_SEPARATOR
            )
        else:
            resolved = resolve_conflict_name(name, self._taken)
        self._taken.add(resolved)
        return resolved

    @property
    def taken(self) -> Set[str]:
        return set(self._taken)
