"""Allow ``python -m vaultgate``."""

from vaultgate.interfaces.cli.app import run_cli

run_cli()
