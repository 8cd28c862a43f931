"""Compound tools built on the router."""

from vaultgate.core.tools.vault_tools import GRAPH_SECTIONS, VaultTools, WriteAction

__all__ = [
    "GRAPH_SECTIONS",
    "VaultTools",
    "WriteAction",
]
