# These are all of the services that are used by the Digi Storage client.
from .configuration_services import (
    get_batch_config,
    get_config_authentication,
    get_config_debug,
    get_config_endpoint,
    get_config_file,
    get_config_section_dict,
)
from .file_services import (
    copy_or_move_node,
    create_folder,
    delete_node,
    download_file,
    get_content,
    get_folder_info,
    get_tree,
    list_mounts,
    rename_node,
    search_nodes,
)

__all__ = [
    # configuration_services
    "get_batch_config",
    "get_config_authentication",
    "get_config_debug",
    "get_config_endpoint",
    "get_config_file",
    "get_config_section_dict",
    # file_services
    "copy_or_move_node",
    "create_folder",
    "delete_node",
    "download_file",
    "get_content",
    "get_folder_info",
    "get_tree",
    "list_mounts",
    "rename_node",
    "search_nodes",
]
