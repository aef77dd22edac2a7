"""Paths of the Digi Storage REST API. Mount scoped paths carry a `{mount_id}`
placeholder; the node itself is always addressed through the `path` query
parameter."""

TOKEN = "/token"
USER = "/api/v2/user"
MOUNTS = "/api/v2/mounts"
SEARCH = "/api/v2/search"

LIST_FILES = "/api/v2/mounts/{mount_id}/files/list"
TREE = "/api/v2/mounts/{mount_id}/files/tree"
CREATE_FOLDER = "/api/v2/mounts/{mount_id}/files/folder"
RENAME = "/api/v2/mounts/{mount_id}/files/rename"
REMOVE = "/api/v2/mounts/{mount_id}/files/remove"
COPY = "/api/v2/mounts/{mount_id}/files/copy"
MOVE = "/api/v2/mounts/{mount_id}/files/move"
GET_FILE = "/api/v2/mounts/{mount_id}/files/get"
