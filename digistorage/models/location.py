from dataclasses import dataclass
from typing import Any, Dict, Optional

from digistorage.core.utils import (
    PATH_SEPARATOR,
    last_path_component,
    normalize_remote_path,
)


@dataclass()
class Mount:
    """A storage volume exposed by Digi Storage, analogous to a drive.

    Attributes:
        id: The identifier of the mount, used to address every file operation.
        name: The display name of the mount.
        type: The kind of mount, for example `device`, `import` or `export`.
        origin: Where the mount comes from, for example `hubic` or `dropbox`.
        online: Whether the mount is currently reachable.
        is_primary: Whether this is the primary mount of the user.
        can_write: Whether the user may change content on this mount.
        can_upload: Whether the user may upload new files to this mount.
    """

    id: Optional[str] = None
    """The identifier of the mount, used to address every file operation."""

    name: Optional[str] = None
    """The display name of the mount."""

    type: Optional[str] = None
    """The kind of mount, for example `device`, `import` or `export`."""

    origin: Optional[str] = None
    """Where the mount comes from, for example `hubic` or `dropbox`."""

    online: Optional[bool] = None
    """Whether the mount is currently reachable."""

    is_primary: Optional[bool] = None
    """Whether this is the primary mount of the user."""

    can_write: Optional[bool] = None
    """Whether the user may change content on this mount."""

    can_upload: Optional[bool] = None
    """Whether the user may upload new files to this mount."""

    def fill_from_dict(self, mount_dict: Dict[str, Any]) -> "Mount":
        """
        Converts a response from the REST API into this dataclass.

        Arguments:
            mount_dict: The response from the REST API.

        Returns:
            The Mount object.
        """
        permissions = mount_dict.get("permissions", None) or {}
        self.id = mount_dict.get("id", None)
        self.name = mount_dict.get("name", None)
        self.type = mount_dict.get("type", None)
        self.origin = mount_dict.get("origin", None)
        self.online = mount_dict.get("online", None)
        self.is_primary = mount_dict.get("isPrimary", None)
        self.can_write = permissions.get("write", None)
        self.can_upload = permissions.get("upload", None)
        return self

    @property
    def root(self) -> "Location":
        """The location of the top level folder of this mount."""
        return Location(mount_id=self.id, path=PATH_SEPARATOR)


@dataclass(frozen=True)
class Location:
    """Identifies a file or folder: a mount identifier and a slash-delimited path
    within that mount. A trailing slash denotes a directory.

    Locations are immutable and hashable so they can be collected into sets, such as
    the set of folders whose listing needs a refresh after a batch.

    Attributes:
        mount_id: The identifier of the mount the item lives on.
        path: The absolute path of the item within the mount.
    """

    mount_id: str
    """The identifier of the mount the item lives on."""

    path: str = PATH_SEPARATOR
    """The absolute path of the item within the mount."""

    def __post_init__(self) -> None:
        if not self.mount_id:
            raise ValueError("mount_id is required for a Location")
        object.__setattr__(self, "path", normalize_remote_path(self.path))

    @property
    def is_directory(self) -> bool:
        """True if this location denotes a directory."""
        return self.path.endswith(PATH_SEPARATOR)

    @property
    def name(self) -> str:
        """The last path component, without the trailing separator of a directory."""
        return last_path_component(self.path)

    @property
    def parent(self) -> "Location":
        """The directory containing this location. The root is its own parent."""
        parts = [part for part in self.path.split(PATH_SEPARATOR) if part]
        if len(parts) <= 1:
            return Location(mount_id=self.mount_id, path=PATH_SEPARATOR)
        return Location(
            mount_id=self.mount_id,
            path=PATH_SEPARATOR + PATH_SEPARATOR.join(parts[:-1]) + PATH_SEPARATOR,
        )

    def child(self, name: str, is_folder: bool = False) -> "Location":
        """
        Build the location of an item named `name` inside this location.

        Arguments:
            name: The name of the child item. A trailing separator is ignored, use
                `is_folder` to denote a directory.
            is_folder: Whether the child is a directory.

        Returns:
            The location of the child.
        """
        name = name.strip(PATH_SEPARATOR)
        if not name:
            raise ValueError("A child location requires a non empty name")
        base = self.path if self.is_directory else self.path + PATH_SEPARATOR
        return Location(
            mount_id=self.mount_id,
            path=base + name + (PATH_SEPARATOR if is_folder else ""),
        )

    def is_same_or_descendant_of(self, other: "Location") -> bool:
        """True when this location is `other` or lives somewhere below it."""
        if self.mount_id != other.mount_id:
            return False
        own_path = self.path.rstrip(PATH_SEPARATOR) + PATH_SEPARATOR
        other_path = other.path.rstrip(PATH_SEPARATOR) + PATH_SEPARATOR
        return own_path.startswith(other_path)

    def __str__(self) -> str:
        return f"{self.mount_id}:{self.path}"
