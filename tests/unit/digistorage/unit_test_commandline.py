"""Unit tests for the command line client."""

import argparse
from unittest.mock import AsyncMock, MagicMock, call, patch

import pytest
from pytest_mock import MockerFixture

from digistorage import __main__ as cmdline
from digistorage.core.exceptions import (
    DigiStorageAuthenticationError,
    DigiStorageNoCredentialsError,
)
from digistorage.models import (
    BatchResult,
    ItemOutcome,
    Location,
    Node,
    OperationKind,
    OutcomeClass,
)
from digistorage.models.node import FOLDER_TYPE


class TestLocationArguments:
    def test_location(self) -> None:
        assert cmdline.location("m1:/docs/a.txt") == Location("m1", "/docs/a.txt")
        assert cmdline.location("m1:") == Location("m1", "/")

    @pytest.mark.parametrize("value", ["/docs/a.txt", ":/docs/a.txt"])
    def test_invalid_location(self, value) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            cmdline.location(value)

    def test_folder_location(self) -> None:
        assert cmdline.folder_location("m1:/docs") == Location("m1", "/docs/")
        assert cmdline.folder_location("m1:/docs/") == Location("m1", "/docs/")


class TestBuildParser:
    def test_copy(self) -> None:
        # WHEN the copy command is parsed
        args = cmdline.build_parser().parse_args(
            ["cp", "m1:/a.txt", "m1:/b.txt", "m2:/backup", "--progress"]
        )

        # THEN sources and destination are locations
        assert args.func is cmdline.copy
        assert args.sources == [Location("m1", "/a.txt"), Location("m1", "/b.txt")]
        assert args.destination == Location("m2", "/backup/")
        assert args.progress is True

    def test_remove(self) -> None:
        args = cmdline.build_parser().parse_args(["-t", "abc", "rm", "m1:/a.txt"])

        assert args.func is cmdline.delete
        assert args.token == "abc"
        assert args.sources == [Location("m1", "/a.txt")]
        assert args.progress is False

    def test_ls(self) -> None:
        args = cmdline.build_parser().parse_args(["ls", "-l", "m1:/docs"])

        assert args.func is cmdline.ls
        assert args.long is True
        assert args.location == Location("m1", "/docs/")

    def test_get(self) -> None:
        args = cmdline.build_parser().parse_args(["get", "m1:/docs/a.txt"])

        assert args.func is cmdline.get
        assert args.location == Location("m1", "/docs/a.txt")
        assert args.path == "."

    def test_invalid_location_exits(self) -> None:
        with pytest.raises(SystemExit):
            cmdline.build_parser().parse_args(["rm", "not-a-location"])


class TestReport:
    def _result(self, *outcomes: OutcomeClass) -> BatchResult:
        result = BatchResult(kind=OperationKind.DELETE)
        for index, outcome in enumerate(outcomes):
            result.merge(
                ItemOutcome(
                    source=Location("m1", f"/{index}.txt"),
                    destination=None,
                    outcome=outcome,
                )
            )
        return result.freeze()

    def test_success(self) -> None:
        digi = MagicMock()

        cmdline._report(self._result(OutcomeClass.SUCCEEDED), digi)

        digi.logger.info.assert_called_once_with("1/1 delete succeeded")
        digi.logger.warning.assert_not_called()

    def test_failure_exits(self) -> None:
        digi = MagicMock()

        with pytest.raises(SystemExit) as ex:
            cmdline._report(
                self._result(OutcomeClass.SUCCEEDED, OutcomeClass.NOT_FOUND), digi
            )

        assert ex.value.code == 1
        digi.logger.warning.assert_called_once_with(
            "%s: %s", Location("m1", "/1.txt"), "not_found"
        )


class TestCommands:
    @patch.object(cmdline, "delete_nodes")
    def test_delete_command(self, mock_delete_nodes) -> None:
        # GIVEN a delete that succeeds
        digi = MagicMock()
        mock_delete_nodes.return_value = BatchResult(kind=OperationKind.DELETE).freeze()
        args = cmdline.build_parser().parse_args(["rm", "m1:/a.txt"])

        # WHEN the command runs
        args.func(args, digi)

        # THEN the batch was run with the client
        mock_delete_nodes.assert_called_once_with(
            [Location("m1", "/a.txt")], show_progress=False, digi_client=digi
        )

    @patch.object(cmdline, "copy_nodes")
    def test_copy_command(self, mock_copy_nodes) -> None:
        digi = MagicMock()
        mock_copy_nodes.return_value = BatchResult(kind=OperationKind.COPY).freeze()
        args = cmdline.build_parser().parse_args(["cp", "m1:/a.txt", "m1:/b/"])

        args.func(args, digi)

        mock_copy_nodes.assert_called_once_with(
            [Location("m1", "/a.txt")],
            Location("m1", "/b/"),
            show_progress=False,
            digi_client=digi,
        )

    @patch.object(cmdline, "get_content", new_callable=AsyncMock)
    def test_ls_lists_folders_first_ignoring_case(self, mock_get_content) -> None:
        # GIVEN a folder whose names differ in case
        mock_get_content.return_value = [
            Node(name="beta.txt", type="file"),
            Node(name="Alpha.txt", type="file"),
            Node(name="photos", type=FOLDER_TYPE),
            Node(name="Archive", type=FOLDER_TYPE),
        ]
        digi = MagicMock()
        args = cmdline.build_parser().parse_args(["ls", "m1:/docs"])

        # WHEN the folder is listed
        args.func(args, digi)

        # THEN folders come first and names are compared without case
        assert digi.logger.info.call_args_list == [
            call("Archive/"),
            call("photos/"),
            call("Alpha.txt"),
            call("beta.txt"),
        ]

    @patch.object(cmdline, "download_file", new_callable=AsyncMock)
    def test_get_command(self, mock_download_file) -> None:
        digi = MagicMock()
        mock_download_file.return_value = "/tmp/a.txt"
        args = cmdline.build_parser().parse_args(
            ["--silent", "get", "m1:/docs/a.txt", "/tmp"]
        )

        args.func(args, digi)

        mock_download_file.assert_awaited_once_with(
            Location("m1", "/docs/a.txt"),
            "/tmp",
            show_progress=False,
            digi_client=digi,
        )

    @pytest.mark.parametrize("command", ["cp", "mv"])
    @patch.object(cmdline, "move_nodes")
    @patch.object(cmdline, "copy_nodes")
    def test_folder_into_itself_is_rejected(
        self, mock_copy_nodes, mock_move_nodes, command
    ) -> None:
        args = cmdline.build_parser().parse_args(
            [command, "m1:/docs", "m1:/docs/2024/"]
        )

        with pytest.raises(ValueError):
            args.func(args, MagicMock())

        mock_copy_nodes.assert_not_called()
        mock_move_nodes.assert_not_called()


class TestLogin:
    def test_login_with_token(self) -> None:
        digi = MagicMock()

        cmdline.login_with_prompt(digi, None, "abc", silent=True)

        digi.login.assert_called_once_with(email=None, authToken="abc", silent=True)

    @patch("digistorage.__main__.sys.stdin")
    def test_no_credentials_without_a_terminal(self, mock_stdin) -> None:
        digi = MagicMock()
        digi.login.side_effect = DigiStorageNoCredentialsError("none")
        mock_stdin.isatty.return_value = False

        with pytest.raises(DigiStorageAuthenticationError):
            cmdline.login_with_prompt(digi, None, None)

    @patch("digistorage.__main__.getpass.getpass", return_value="secret")
    @patch("builtins.input", return_value="me@example.com")
    @patch("digistorage.__main__.sys.stdin")
    def test_prompt_for_credentials(self, mock_stdin, mock_input, mock_getpass) -> None:
        # GIVEN no stored credentials and an interactive terminal
        digi = MagicMock()
        digi.login.side_effect = [DigiStorageNoCredentialsError("none"), None]
        mock_stdin.isatty.return_value = True

        # WHEN logging in
        cmdline.login_with_prompt(digi, None, None, silent=True)

        # THEN the email and password are asked for
        assert digi.login.call_args_list == [
            call(email=None, authToken=None, silent=True),
            call(email="me@example.com", password="secret", silent=True),
        ]


class TestPerformMain:
    def test_errors_are_reported(self, mocker: MockerFixture, capsys) -> None:
        mocker.patch.object(cmdline, "login_with_prompt")
        args = argparse.Namespace(
            func=MagicMock(side_effect=ValueError("bad")),
            email=None,
            token=None,
            debug=False,
        )

        with pytest.raises(SystemExit):
            cmdline.perform_main(args, MagicMock())

        assert "ValueError: bad" in capsys.readouterr().err

    def test_errors_are_raised_in_debug_mode(self, mocker: MockerFixture) -> None:
        mocker.patch.object(cmdline, "login_with_prompt")
        args = argparse.Namespace(
            func=MagicMock(side_effect=ValueError("bad")),
            email=None,
            token=None,
            debug=True,
        )

        with pytest.raises(ValueError):
            cmdline.perform_main(args, MagicMock())

    def test_no_command_prints_help(self, capsys) -> None:
        cmdline.perform_main(argparse.Namespace(debug=False), MagicMock())

        assert "commands" in capsys.readouterr().out
