"""
The `digistorage` package provides an interface to
[Digi Storage](https://storage.rcs-rds.ro), a cloud storage service.

Example: Getting started
    Copying two files into a folder

        import digistorage
        from digistorage.models import Location
        from digistorage.operations import copy

        digi = digistorage.login(email="me@example.com", password="secret")
        result = copy(
            [Location("m1", "/a.txt"), Location("m1", "/b.txt")],
            Location("m1", "/backup/"),
        )
        print(result.summary())
"""

import importlib.resources
import json

import httpx

# public APIs
from .client import DigiStorage, login

ref = importlib.resources.files(__name__).joinpath("digiStorageClient")
with ref.open("r") as fp:
    __version__ = json.load(fp)["latestVersion"]

__all__ = [
    # objects
    "DigiStorage",
    # functions
    "login",
]

USER_AGENT = {
    "User-Agent": f"digistorageclient/{__version__} python-httpx/{httpx.__version__}"
}

# patch logging
from .core import logging_setup  # noqa
