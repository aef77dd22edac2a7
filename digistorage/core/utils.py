"""
Utility functions useful in the implementation and testing of the Digi Storage client.
"""

import datetime
import typing

PATH_SEPARATOR = "/"


def is_json(content_type):
    """detect if a content-type is JSON"""
    # The value of Content-Type defined here:
    # http://www.w3.org/Protocols/rfc2616/rfc2616-sec3.html#sec3.7
    return (
        content_type.lower().strip().startswith("application/json")
        if content_type
        else False
    )


def humanizeBytes(num_bytes):
    if num_bytes is None:
        raise ValueError("bytes must be a number")

    num_bytes = float(num_bytes)
    units = ["bytes", "kB", "MB", "GB", "TB", "PB", "EB"]
    for i, unit in enumerate(units):
        if num_bytes < 1024:
            return "%3.1f%s" % (num_bytes, units[i])
        else:
            num_bytes /= 1024
    return "Oops larger than Exabytes"


def from_unix_epoch_time(ms) -> typing.Union[datetime.datetime, None]:
    """Returns a Datetime object given milliseconds since midnight Jan 1, 1970."""
    if ms is None:
        return None

    if isinstance(ms, str):
        ms = float(ms)
    return datetime.datetime.fromtimestamp(ms / 1000.0, tz=datetime.timezone.utc)


def normalize_remote_path(path: str) -> str:
    """Make sure a remote path is absolute and free of duplicated separators. A
    trailing separator is kept as it marks a directory."""
    if not path:
        return PATH_SEPARATOR
    is_directory = path.endswith(PATH_SEPARATOR)
    parts = [part for part in path.split(PATH_SEPARATOR) if part]
    normalized = PATH_SEPARATOR + PATH_SEPARATOR.join(parts)
    if is_directory and parts:
        normalized += PATH_SEPARATOR
    return normalized


def last_path_component(path: str) -> str:
    """The last component of a remote path, without any trailing separator.

    `/a/b.txt` -> `b.txt`, `/a/photos/` -> `photos`, `/` -> ``
    """
    parts = [part for part in path.split(PATH_SEPARATOR) if part]
    return parts[-1] if parts else ""


def index_before_extension(name: str) -> typing.Union[int, None]:
    """
    Returns the index of the dot starting the extension of a file name or None if the
    name has no extension. A leading dot (hidden files such as `.profile`) does not
    start an extension and neither does any dot in a directory name.

    Arguments:
        name: A file or directory name. Directory names end with a separator.

    Returns:
        The index where a suffix should be inserted to keep the extension intact.
    """
    if name.endswith(PATH_SEPARATOR):
        return None
    index = name.rfind(".")
    if index <= 0:
        return None
    return index
