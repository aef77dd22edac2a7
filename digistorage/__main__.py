"""
The Digi Storage command line client.

Locations are written `MOUNT_ID:/path`, a trailing `/` denotes a folder.
"""

import argparse
import getpass
import sys

import digistorage
from digistorage.api import (
    create_folder,
    download_file,
    get_content,
    get_folder_info,
    list_mounts,
    rename_node,
)
from digistorage.core import utils
from digistorage.core.async_utils import wrap_async_to_sync
from digistorage.core.exceptions import (
    DigiStorageAuthenticationError,
    DigiStorageNoCredentialsError,
)
from digistorage.models import BatchResult, Location, OutcomeClass
from digistorage.operations import copy as copy_nodes
from digistorage.operations import delete as delete_nodes
from digistorage.operations import move as move_nodes


def location(value: str) -> Location:
    """Parse a `MOUNT_ID:/path` command line argument."""
    mount_id, separator, path = value.partition(":")
    if not separator or not mount_id:
        raise argparse.ArgumentTypeError(
            f"'{value}' is not a location, expected MOUNT_ID:/path"
        )
    return Location(mount_id=mount_id, path=path or "/")


def folder_location(value: str) -> Location:
    """Parse a location that always denotes a folder."""
    parsed = location(value)
    if parsed.is_directory:
        return parsed
    return Location(mount_id=parsed.mount_id, path=parsed.path + "/")


def mounts(args, digi):
    """List the mounts of the user"""
    for mount in wrap_async_to_sync(list_mounts(digi_client=digi)):
        digi.logger.info(
            "%s\t%s\t%s%s",
            mount.id,
            mount.type,
            mount.name,
            " (primary)" if mount.is_primary else "",
        )


def ls(args, digi):
    """List the content of a folder"""
    nodes = sorted(
        wrap_async_to_sync(get_content(args.location, digi_client=digi)),
        key=lambda node: (not node.is_folder, (node.name or "").lower()),
    )
    for node in nodes:
        name = f"{node.name}/" if node.is_folder else node.name
        if args.long:
            size = "" if node.is_folder else utils.humanizeBytes(node.size or 0)
            modified = node.modified.isoformat() if node.modified else ""
            digi.logger.info("%10s\t%s\t%s", size, modified, name)
        else:
            digi.logger.info(name)


def mkdir(args, digi):
    created = wrap_async_to_sync(
        create_folder(args.parent, args.name, digi_client=digi)
    )
    digi.logger.info("Created folder: %s", created)


def rename(args, digi):
    renamed = wrap_async_to_sync(
        rename_node(args.location, args.name, digi_client=digi)
    )
    digi.logger.info("Renamed %s to %s", args.location, renamed)


def info(args, digi):
    """Show the size and content counts of a folder"""
    folder_info = wrap_async_to_sync(get_folder_info(args.location, digi_client=digi))
    digi.logger.info("Size:    %s", utils.humanizeBytes(folder_info.size))
    digi.logger.info("Files:   %d", folder_info.files)
    digi.logger.info("Folders: %d", folder_info.folders)


def get(args, digi):
    """Download a file"""
    local_path = wrap_async_to_sync(
        download_file(
            args.location,
            args.path,
            show_progress=not args.silent,
            digi_client=digi,
        )
    )
    digi.logger.info("Downloaded %s to %s", args.location, local_path)


def _reject_copy_into_itself(sources, destination, verb: str) -> None:
    for source in sources:
        if destination.is_same_or_descendant_of(source):
            raise ValueError(f"Cannot {verb} {source} into itself: {destination}")


def _report(result: BatchResult, digi) -> None:
    for item in result.outcomes:
        if item.outcome is not OutcomeClass.SUCCEEDED:
            digi.logger.warning("%s: %s", item.source, item.outcome.value)
    digi.logger.info(result.summary())
    if not result.all_succeeded:
        sys.exit(1)


def copy(args, digi):
    _reject_copy_into_itself(args.sources, args.destination, "copy")
    result = copy_nodes(
        args.sources,
        args.destination,
        show_progress=args.progress,
        digi_client=digi,
    )
    _report(result, digi)


def move(args, digi):
    _reject_copy_into_itself(args.sources, args.destination, "move")
    result = move_nodes(
        args.sources,
        args.destination,
        show_progress=args.progress,
        digi_client=digi,
    )
    _report(result, digi)


def delete(args, digi):
    result = delete_nodes(args.sources, show_progress=args.progress, digi_client=digi)
    _report(result, digi)


def build_parser():
    """Builds the argument parser and returns the result."""

    parser = argparse.ArgumentParser(description="Interfaces with Digi Storage.")
    parser.add_argument(
        "--version",
        action="version",
        version="Digi Storage Client %s" % digistorage.__version__,
    )
    parser.add_argument(
        "-u",
        "--email",
        dest="email",
        help="Email address of the Digi Storage account",
    )
    parser.add_argument(
        "-t",
        "--token",
        dest="token",
        help="Session token used to connect to Digi Storage",
    )
    parser.add_argument(
        "-c",
        "--configPath",
        dest="configPath",
        default=digistorage.client.CONFIG_FILE,
        help="Path to configuration file used to connect to Digi Storage [default: %(default)s]",
    )
    parser.add_argument(
        "--debug",
        dest="debug",
        action="store_true",
        help="Set to debug mode, additional output and error messages are printed to the console",
    )
    parser.add_argument(
        "--silent",
        dest="silent",
        action="store_true",
        help="Set to silent mode, console output is suppressed",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="subparser",
        description="The following commands are available:",
        help='For additional help: "digistorage <COMMAND> -h"',
    )

    parser_mounts = subparsers.add_parser("mounts", help="lists the mounts")
    parser_mounts.set_defaults(func=mounts)

    parser_ls = subparsers.add_parser("ls", help="lists the content of a folder")
    parser_ls.add_argument(
        "location", type=folder_location, help="Folder to list, MOUNT_ID:/path/"
    )
    parser_ls.add_argument(
        "-l",
        "--long",
        action="store_true",
        default=False,
        help="Show the size and modification date of every item",
    )
    parser_ls.set_defaults(func=ls)

    parser_mkdir = subparsers.add_parser("mkdir", help="creates a folder")
    parser_mkdir.add_argument(
        "parent", type=folder_location, help="Folder receiving the new folder"
    )
    parser_mkdir.add_argument("name", type=str, help="Name of the new folder")
    parser_mkdir.set_defaults(func=mkdir)

    parser_rename = subparsers.add_parser("rename", help="renames a file or folder")
    parser_rename.add_argument("location", type=location, help="Item to rename")
    parser_rename.add_argument("name", type=str, help="The new name")
    parser_rename.set_defaults(func=rename)

    parser_info = subparsers.add_parser(
        "info", help="shows the size and content counts of a folder"
    )
    parser_info.add_argument("location", type=folder_location, help="Folder")
    parser_info.set_defaults(func=info)

    parser_get = subparsers.add_parser("get", help="downloads a file")
    parser_get.add_argument("location", type=location, help="File to download")
    parser_get.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Local file or folder to write to [default: %(default)s]",
    )
    parser_get.set_defaults(func=get)

    for name, func, help_text in (
        ("cp", copy, "copies files and folders into a folder"),
        ("mv", move, "moves files and folders into a folder"),
    ):
        parser_transfer = subparsers.add_parser(name, help=help_text)
        parser_transfer.add_argument(
            "sources", type=location, nargs="+", help="Items to %s" % name
        )
        parser_transfer.add_argument(
            "destination", type=folder_location, help="Destination folder"
        )
        parser_transfer.add_argument(
            "--progress",
            action="store_true",
            default=False,
            help="Display a progress bar",
        )
        parser_transfer.set_defaults(func=func)

    parser_rm = subparsers.add_parser("rm", help="deletes files and folders")
    parser_rm.add_argument("sources", type=location, nargs="+", help="Items to delete")
    parser_rm.add_argument(
        "--progress",
        action="store_true",
        default=False,
        help="Display a progress bar",
    )
    parser_rm.set_defaults(func=delete)

    return parser


def login_with_prompt(digi, email, token, silent=False):
    try:
        digi.login(email=email, authToken=token, silent=silent)
    except DigiStorageNoCredentialsError:
        # there were no credentials in the configuration nor provided
        if not sys.stdin.isatty():
            raise DigiStorageAuthenticationError(
                "No token or password was provided and unable to read from standard input"
            )
        if not email:
            email = input("Digi Storage email: ")
        password = None
        while not password:
            password = getpass.getpass(f"Password for {email}: ")
        digi.login(email=email, password=password, silent=silent)


def perform_main(args, digi):
    if "func" in args:
        try:
            login_with_prompt(digi, args.email, args.token, silent=True)
            args.func(args, digi)
        except Exception as ex:
            if args.debug:
                raise
            else:
                sys.stderr.write(f"{type(ex).__name__}: {ex}\n")
                sys.exit(1)
    else:
        # if no command provided print out help and quit
        build_parser().print_help()


def main():
    args = build_parser().parse_args()
    digistorage.USER_AGENT["User-Agent"] = (
        "digistoragecommandlineclient " + digistorage.USER_AGENT["User-Agent"]
    )
    digi = digistorage.DigiStorage(
        debug=args.debug,
        configPath=args.configPath,
        silent=args.silent,
    )
    perform_main(args, digi)


if __name__ == "__main__":
    main()
