"""This module is responsible for exposing the file services of the Digi Storage REST
API: mounts, folder listings, folder management, file downloads and the copy, move
and delete operations.

Every service addresses a node through a mount identifier placed in the URL and the
node path sent in the `path` query parameter.
"""

import asyncio
import os
import shutil
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import httpx
from tqdm import tqdm
from tqdm.contrib.logging import logging_redirect_tqdm

from digistorage.core.constants import api_paths
from digistorage.core.exceptions import (
    DigiStorageMalformedResponseError,
    DigiStorageTimeoutError,
)
from digistorage.core.retry import (
    NON_IDEMPOTENT_RETRY_POLICY,
    with_retry_time_based_async,
)
from digistorage.models.batch import OperationKind
from digistorage.models.location import Location, Mount
from digistorage.models.node import FolderInfo, Node

if TYPE_CHECKING:
    from digistorage import DigiStorage

DOWNLOAD_CHUNK_SIZE = 1024 * 1024
# Appended to the local file name while a download is in progress
PARTIAL_DOWNLOAD_SUFFIX = ".digistorage.part"


def _path_params(location: Location) -> Dict[str, str]:
    return {"path": location.path}


def _changing_retry_policy(retry_policy: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Requests changing the storage are never repeated once they may have reached
    the server."""
    return {**NON_IDEMPOTENT_RETRY_POLICY, **(retry_policy or {})}


async def list_mounts(
    *,
    digi_client: Optional["DigiStorage"] = None,
) -> List[Mount]:
    """
    Retrieve every mount the user has access to.

    Arguments:
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.

    Returns:
        The mounts of the user.
    """
    from digistorage import DigiStorage

    client = DigiStorage.get_client(digi_client=digi_client)
    response = await client.rest_get_async(uri=api_paths.MOUNTS)
    if not isinstance(response, dict) or not isinstance(response.get("mounts"), list):
        raise DigiStorageMalformedResponseError(
            f"Unexpected response when listing mounts: {response}"
        )
    return [Mount().fill_from_dict(mount) for mount in response["mounts"]]


async def get_content(
    location: Location,
    *,
    digi_client: Optional["DigiStorage"] = None,
) -> List[Node]:
    """
    List the content of a folder.

    Arguments:
        location: The folder to list.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.

    Returns:
        The files and folders directly inside `location`.
    """
    from digistorage import DigiStorage

    client = DigiStorage.get_client(digi_client=digi_client)
    response = await client.rest_get_async(
        uri=api_paths.LIST_FILES.format(mount_id=location.mount_id),
        params=_path_params(location),
    )
    if not isinstance(response, dict) or not isinstance(response.get("files"), list):
        raise DigiStorageMalformedResponseError(
            f"Unexpected response when listing {location}: {response}"
        )
    folder = (
        location
        if location.is_directory
        else Location(mount_id=location.mount_id, path=location.path + "/")
    )
    return [Node().fill_from_dict(node, parent=folder) for node in response["files"]]


async def create_folder(
    parent: Location,
    name: str,
    *,
    digi_client: Optional["DigiStorage"] = None,
) -> Location:
    """
    Create a folder.

    Arguments:
        parent: The folder receiving the new folder.
        name: The name of the new folder.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.

    Returns:
        The location of the new folder.
    """
    from digistorage import DigiStorage

    client = DigiStorage.get_client(digi_client=digi_client)
    await client.rest_post_async(
        uri=api_paths.CREATE_FOLDER.format(mount_id=parent.mount_id),
        body={"name": name},
        params=_path_params(parent),
        retry_policy=NON_IDEMPOTENT_RETRY_POLICY,
    )
    return parent.child(name, is_folder=True)


async def rename_node(
    location: Location,
    name: str,
    *,
    digi_client: Optional["DigiStorage"] = None,
) -> Location:
    """
    Rename a file or folder in place.

    Arguments:
        location: The item to rename.
        name: The new name.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.

    Returns:
        The location of the renamed item.
    """
    from digistorage import DigiStorage

    client = DigiStorage.get_client(digi_client=digi_client)
    await client.rest_put_async(
        uri=api_paths.RENAME.format(mount_id=location.mount_id),
        body={"name": name},
        params=_path_params(location),
        retry_policy=NON_IDEMPOTENT_RETRY_POLICY,
    )
    return location.parent.child(name, is_folder=location.is_directory)


async def delete_node(
    location: Location,
    *,
    digi_client: Optional["DigiStorage"] = None,
    retry_policy: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Delete a file or folder.

    Arguments:
        location: The item to delete.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.
        retry_policy: Overrides of the retry policy. Only requests that never
            reached the server are retried unless overridden.
    """
    from digistorage import DigiStorage

    client = DigiStorage.get_client(digi_client=digi_client)
    await client.rest_delete_async(
        uri=api_paths.REMOVE.format(mount_id=location.mount_id),
        params=_path_params(location),
        retry_policy=_changing_retry_policy(retry_policy),
    )


async def copy_or_move_node(
    source: Location,
    destination: Location,
    kind: OperationKind,
    *,
    digi_client: Optional["DigiStorage"] = None,
    retry_policy: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Copy or move one item. The request is sent to the mount of the source, the
    destination may live on another mount.

    Arguments:
        source: The item to copy or move.
        destination: The full location of the item once copied or moved, including
            its final name.
        kind: `OperationKind.COPY` or `OperationKind.MOVE`.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.
        retry_policy: Overrides of the retry policy. Only requests that never
            reached the server are retried unless overridden.

    Raises:
        ValueError: If `kind` is neither copy nor move.
    """
    from digistorage import DigiStorage

    if kind is OperationKind.COPY:
        uri = api_paths.COPY
    elif kind is OperationKind.MOVE:
        uri = api_paths.MOVE
    else:
        raise ValueError(f"Cannot copy or move with operation kind {kind}")

    client = DigiStorage.get_client(digi_client=digi_client)
    await client.rest_put_async(
        uri=uri.format(mount_id=source.mount_id),
        body={"toMountId": destination.mount_id, "toPath": destination.path},
        params=_path_params(source),
        retry_policy=_changing_retry_policy(retry_policy),
    )


async def get_tree(
    location: Location,
    *,
    digi_client: Optional["DigiStorage"] = None,
) -> Dict[str, Any]:
    """
    Retrieve the complete tree below a folder.

    Arguments:
        location: The root of the tree.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.

    Returns:
        The tree as nested nodes, folders listing their content under `children`.
    """
    from digistorage import DigiStorage

    client = DigiStorage.get_client(digi_client=digi_client)
    response = await client.rest_get_async(
        uri=api_paths.TREE.format(mount_id=location.mount_id),
        params=_path_params(location),
    )
    if not isinstance(response, dict):
        raise DigiStorageMalformedResponseError(
            f"Unexpected response when retrieving the tree of {location}: {response}"
        )
    return response


async def get_folder_info(
    location: Location,
    *,
    digi_client: Optional["DigiStorage"] = None,
) -> FolderInfo:
    """
    Compute the size and the number of files and folders below a folder.

    Arguments:
        location: The folder of interest.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.

    Returns:
        The FolderInfo of the folder.
    """
    tree = await get_tree(location, digi_client=digi_client)
    return FolderInfo.from_tree(tree)


async def search_nodes(
    query: str,
    location: Optional[Location] = None,
    *,
    digi_client: Optional["DigiStorage"] = None,
) -> Dict[str, Any]:
    """
    Search files and folders by name.

    Arguments:
        query: The text to search for.
        location: Restrict the search to this mount and path. Every mount is searched
            when omitted.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.

    Returns:
        The search hits as returned by the REST API.
    """
    from digistorage import DigiStorage

    params = {"query": query}
    if location is not None:
        params["mountId"] = location.mount_id
        params["path"] = location.path

    client = DigiStorage.get_client(digi_client=digi_client)
    return await client.rest_get_async(uri=api_paths.SEARCH, params=params)


async def download_file(
    location: Location,
    path: str,
    *,
    show_progress: bool = True,
    digi_client: Optional["DigiStorage"] = None,
) -> str:
    """
    Download a file to the local disk.

    The content is streamed into a partial file next to the destination, which is
    renamed once every byte announced by the server was received. A download that
    fails on the way is started again from the first byte, following the retry
    policy of the client for reads.

    Arguments:
        location: The remote file.
        path: The local file to write. When `path` is an existing folder the file is
            written inside it under its remote name.
        show_progress: Whether to display a progress bar counting the bytes received.
        digi_client: If not passed in or None this will use the last client from
            the `.login()` method.

    Returns:
        The path of the downloaded file.

    Raises:
        ValueError: If `location` is a folder.
        DigiStorageHTTPError: If the server refused the download.
        DigiStorageTimeoutError: If the server did not answer in time once the retries
            ran out.

    Example: Downloading a file into the current folder
        &nbsp;

            from digistorage.api import download_file

            local_path = await download_file(Location("m1", "/docs/a.txt"), ".")
    """
    from digistorage import DigiStorage

    if location.is_directory:
        raise ValueError(f"Only files can be downloaded, {location} is a folder")

    client = DigiStorage.get_client(digi_client=digi_client)
    destination = os.path.expanduser(path)
    if os.path.isdir(destination):
        destination = os.path.join(destination, location.name)
    partial_destination = destination + PARTIAL_DOWNLOAD_SUFFIX

    uri, headers = client._build_uri_and_headers(
        api_paths.GET_FILE.format(mount_id=location.mount_id)
    )
    headers = {**headers, "Accept": "*/*"}
    session = client._get_requests_session_async(
        asyncio_event_loop=asyncio.get_running_loop()
    )
    progress_bar = tqdm(
        desc=f"Downloading {location.name}",
        unit="B",
        unit_scale=True,
        unit_divisor=1024,
        smoothing=0,
        disable=not show_progress,
    )

    async def stream_to_file() -> httpx.Response:
        async with session.stream(
            "GET",
            uri,
            params=_path_params(location),
            headers=headers,
            auth=client.credentials,
        ) as response:
            if response.status_code >= 400:
                await response.aread()
                return response

            expected_size = response.headers.get("content-length")
            expected_size = int(expected_size) if expected_size else None
            progress_bar.reset(total=expected_size)
            with open(partial_destination, "wb") as fd:
                async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                    fd.write(chunk)
                    progress_bar.update(len(chunk))

            # `num_bytes_downloaded` counts the bytes on the wire, before decoding
            if (
                expected_size is not None
                and response.num_bytes_downloaded < expected_size
            ):
                raise httpx.RemoteProtocolError(
                    f"The connection ended after {response.num_bytes_downloaded} of "
                    f"{expected_size} bytes",
                    request=response.request,
                )
            return response

    try:
        with logging_redirect_tqdm(loggers=[client.logger]):
            response = await with_retry_time_based_async(
                stream_to_file,
                verbose=client.debug,
                **client._build_retry_policy_async(),
            )
        client._handle_httpx_http_error(response)
        shutil.move(partial_destination, destination)
    except httpx.TimeoutException as ex:
        raise DigiStorageTimeoutError(
            f"Timed out waiting for Digi Storage while downloading {location}"
        ) from ex
    finally:
        progress_bar.close()
        if os.path.exists(partial_destination):
            os.remove(partial_destination)

    client.logger.debug("Downloaded %s to %s", location, destination)
    return destination
