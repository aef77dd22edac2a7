"""This module is responsible for exposing access to any configuration either through
file, environment variables, or other means.
"""

import configparser
import functools
import os
from typing import Dict, Union

from digistorage.core.constants import config_file_constants

DEFAULT_MAX_CONCURRENT_REQUESTS = 8
MAX_CONCURRENT_REQUESTS_CAP = 64


@functools.lru_cache()
def get_config_file(config_path: str) -> configparser.RawConfigParser:
    """
    Retrieves the client configuration information.

    Arguments:
        config_path:  Path to configuration file on local file system

    Returns:
        A RawConfigParser populated with properties from the user's configuration file.
    """

    try:
        config = configparser.RawConfigParser()
        config.read(config_path)  # Does not fail if the file does not exist
        return config
    except configparser.Error as ex:
        raise ValueError(f"Error parsing Digi Storage config file: {config_path}") from ex


def get_config_section_dict(
    section_name: str,
    config_path: str,
) -> Dict[str, str]:
    """
    Get a profile section in the configuration file with the section name.

    Arguments:
        section_name: The name of the profile section in the configuration file
        config_path:  Path to configuration file on local file system

    Returns:
        A dictionary containing the configuration profile section content. If the
        section does not exist, an empty dictionary is returned.
    """
    config = get_config_file(config_path)
    try:
        return dict(config.items(section_name))
    except configparser.NoSectionError:
        # section not present
        return {}


def get_config_authentication(
    config_path: str,
) -> Dict[str, str]:
    """
    Get the authentication section of the configuration file. A token found in the
    `DIGI_STORAGE_AUTH_TOKEN` environment variable takes precedence over the token in
    the file.

    Arguments:
        config_path:  Path to configuration file on local file system

    Returns:
        The authentication section of the configuration file
    """
    authentication = get_config_section_dict(
        section_name=config_file_constants.AUTHENTICATION_SECTION_NAME,
        config_path=config_path,
    )
    environment_token = os.environ.get(
        config_file_constants.AUTH_TOKEN_ENVIRONMENT_VARIABLE
    )
    if environment_token:
        authentication["token"] = environment_token
    return authentication


def get_config_endpoint(config_path: str) -> Union[str, None]:
    """
    Get the server endpoint from the configuration file.

    Arguments:
        config_path:  Path to configuration file on local file system

    Returns:
        The configured server or None when the file does not override it.
    """
    return (
        get_config_section_dict(
            section_name=config_file_constants.ENDPOINTS_SECTION_NAME,
            config_path=config_path,
        ).get("server")
        or None
    )


def get_config_debug(config_path: str) -> Union[bool, None]:
    """True when the configuration file carries a `[debug]` section, None otherwise."""
    if get_config_file(config_path).has_section(
        config_file_constants.DEBUG_SECTION_NAME
    ):
        return True
    return None


def get_batch_config(
    config_path: str,
) -> Dict[str, int]:
    """
    Get the batch profile from the configuration file.

    Arguments:
        config_path:  Path to configuration file on local file system

    Raises:
        ValueError: Invalid max_concurrent_requests value. Should be between 1 and 64.

    Returns:
        The batch profile
    """
    # defaults
    batch_config = {"max_concurrent_requests": DEFAULT_MAX_CONCURRENT_REQUESTS}

    for k, v in get_config_section_dict(
        section_name=config_file_constants.BATCH_SECTION_NAME,
        config_path=config_path,
    ).items():
        if v and k == "max_concurrent_requests":
            try:
                batch_config[k] = int(v)
            except ValueError as cause:
                raise ValueError(
                    f"Invalid {k} value ({v}) in [batch] of {config_path}"
                ) from cause
            if not 1 <= batch_config[k] <= MAX_CONCURRENT_REQUESTS_CAP:
                raise ValueError(
                    f"Invalid {k} value ({v}) in [batch] of {config_path}. "
                    f"Should be between 1 and {MAX_CONCURRENT_REQUESTS_CAP}."
                )

    return batch_config
