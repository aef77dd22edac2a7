# Installation script for the Digi Storage Client for Python
############################################################
import json
import os

from setuptools import setup

# make sure not to overwrite existing .digiStorageConfig with our example one
data_files = (
    [(os.path.expanduser("~"), ["digistorage/.digiStorageConfig"])]
    if not os.path.exists(os.path.expanduser("~/.digiStorageConfig"))
    else []
)
# figure out the version
with open("digistorage/digiStorageClient") as config:
    __version__ = json.load(config)["latestVersion"]

setup(data_files=data_files, version=__version__)
