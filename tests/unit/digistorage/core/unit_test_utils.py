import datetime

import pytest

from digistorage.core import utils


@pytest.mark.parametrize(
    "content_type,expected",
    [
        ("application/json", True),
        ("application/json; charset=UTF-8", True),
        ("  Application/JSON", True),
        ("text/plain", False),
        (None, False),
    ],
)
def test_is_json(content_type, expected) -> None:
    assert utils.is_json(content_type) is expected


def test_humanize_bytes() -> None:
    assert utils.humanizeBytes(0) == "0.0bytes"
    assert utils.humanizeBytes(1024) == "1.0kB"
    assert utils.humanizeBytes(1536 * 1024) == "1.5MB"
    with pytest.raises(ValueError):
        utils.humanizeBytes(None)


def test_from_unix_epoch_time() -> None:
    assert utils.from_unix_epoch_time(None) is None
    assert utils.from_unix_epoch_time(0) == datetime.datetime(
        1970, 1, 1, tzinfo=datetime.timezone.utc
    )
    assert utils.from_unix_epoch_time("1000") == datetime.datetime(
        1970, 1, 1, 0, 0, 1, tzinfo=datetime.timezone.utc
    )


@pytest.mark.parametrize(
    "path,expected",
    [
        ("", "/"),
        ("/", "/"),
        ("//", "/"),
        ("a/b.txt", "/a/b.txt"),
        ("/a//b/", "/a/b/"),
    ],
)
def test_normalize_remote_path(path, expected) -> None:
    assert utils.normalize_remote_path(path) == expected


@pytest.mark.parametrize(
    "path,expected",
    [("/a/b.txt", "b.txt"), ("/a/photos/", "photos"), ("/", "")],
)
def test_last_path_component(path, expected) -> None:
    assert utils.last_path_component(path) == expected


@pytest.mark.parametrize(
    "name,expected",
    [
        ("report.pdf", 6),
        ("archive.tar.gz", 11),
        ("notes", None),
        (".profile", None),
        ("backup.2020/", None),
    ],
)
def test_index_before_extension(name, expected) -> None:
    assert utils.index_before_extension(name) == expected
