"""Vault backends: external process, HTTP control-plane, filesystem."""

from vaultgate.backends.base import Backend, CommandTableBackend
from vaultgate.backends.filesystem import FilesystemBackend
from vaultgate.backends.http import HttpBackend
from vaultgate.backends.process import ProcessBackend

__all__ = [
    "Backend",
    "CommandTableBackend",
    "FilesystemBackend",
    "HttpBackend",
    "ProcessBackend",
]
