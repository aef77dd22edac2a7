from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from digistorage.core.utils import from_unix_epoch_time
from digistorage.models.location import Location

FILE_TYPE = "file"
FOLDER_TYPE = "dir"


@dataclass()
class Node:
    """One entry of a folder listing.

    Attributes:
        name: The name of the file or folder.
        type: `file` or `dir`.
        modified: When the item was last modified.
        size: The size in bytes. Folders report the size given by the service.
        content_type: The MIME type of a file.
        hash: The content hash of a file.
        location: Where the item lives. Set when the listing was requested for a
            known parent location.
    """

    name: Optional[str] = None
    """The name of the file or folder."""

    type: Optional[str] = None
    """`file` or `dir`."""

    modified: Optional[datetime] = None
    """When the item was last modified."""

    size: Optional[int] = None
    """The size in bytes."""

    content_type: Optional[str] = None
    """The MIME type of a file."""

    hash: Optional[str] = None
    """The content hash of a file."""

    location: Optional[Location] = None
    """Where the item lives."""

    @property
    def is_folder(self) -> bool:
        return self.type == FOLDER_TYPE

    def fill_from_dict(
        self, node_dict: Dict[str, Any], parent: Optional[Location] = None
    ) -> "Node":
        """
        Converts a response from the REST API into this dataclass.

        Arguments:
            node_dict: One element of the `files` array of a folder listing.
            parent: The location the listing was requested for.

        Returns:
            The Node object.
        """
        self.name = node_dict.get("name", None)
        self.type = node_dict.get("type", None)
        self.modified = from_unix_epoch_time(node_dict.get("modified", None))
        self.size = node_dict.get("size", None)
        self.content_type = node_dict.get("contentType", None)
        self.hash = node_dict.get("hash", None)
        if parent is not None and self.name:
            self.location = parent.child(self.name, is_folder=self.is_folder)
        return self


@dataclass()
class FolderInfo:
    """Size and content counts of a folder, computed from its full tree.

    Attributes:
        size: The total size in bytes of every file below the folder.
        files: The number of files below the folder.
        folders: The number of folders below the folder, not counting the folder
            itself.
    """

    size: int = 0
    files: int = 0
    folders: int = 0

    @classmethod
    def from_tree(cls, tree: Dict[str, Any]) -> "FolderInfo":
        """
        Sum a folder tree as returned by the tree endpoint.

        Arguments:
            tree: The tree rooted at the folder of interest.

        Returns:
            The FolderInfo of the root folder.
        """
        size, files, folders = _sum_tree(tree)
        # the root folder itself is counted by the walk
        return cls(size=size, files=files, folders=max(folders - 1, 0))


def _sum_tree(node: Dict[str, Any]) -> Tuple[int, int, int]:
    """Returns (size, files, folders) for the subtree rooted at `node`."""
    size = 0
    files = 0
    folders = 0
    if node.get("type", None) == FILE_TYPE:
        files += 1
        if isinstance(node.get("size", None), int):
            return node["size"], files, folders
    children = node.get("children", None)
    if isinstance(children, list):
        folders += 1
        for child in children:
            child_size, child_files, child_folders = _sum_tree(child)
            size += child_size
            files += child_files
            folders += child_folders
    return size, files, folders
