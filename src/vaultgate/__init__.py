"""vaultgate - reach a markdown notes vault through whichever transport answers."""

__version__ = "0.1.0"
