"""vaultgate core library - transport resolution and command dispatch."""

from typing import TYPE_CHECKING

from vaultgate.core.errors import (
    BackendUnavailable,
    CommandFailure,
    ConfigError,
    InvalidInput,
    ProbeTimeout,
    VaultGateError,
)
from vaultgate.core.types import Command, Transport, TransportMode

if TYPE_CHECKING:
    from vaultgate.core.router import Router
    from vaultgate.core.settings import RouterConfig, load_config

__all__ = [
    # Router
    "Router",
    # Config
    "RouterConfig",
    "load_config",
    # Types
    "Command",
    "Transport",
    "TransportMode",
    # Errors
    "BackendUnavailable",
    "CommandFailure",
    "ConfigError",
    "InvalidInput",
    "ProbeTimeout",
    "VaultGateError",
]


def __getattr__(name: str):
    if name == "Router":
        from vaultgate.core.router import Router

        return Router
    if name == "RouterConfig":
        from vaultgate.core.settings import RouterConfig

        return RouterConfig
    if name == "load_config":
        from vaultgate.core.settings import load_config

        return load_config
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
