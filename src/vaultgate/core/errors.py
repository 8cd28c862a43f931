"""Error taxonomy shared by the router and every backend."""


class VaultGateError(RuntimeError):
    """Base error for vault access failures.

    The message is prefixed with the command context (``read file=Foo``)
    when one is known.
    """

    def __init__(self, message: str, context: str | None = None):
        self.context = context
        self.detail = message
        super().__init__(f"{context}: {message}" if context else message)


class BackendUnavailable(VaultGateError):
    """The selected backend cannot be reached."""

    DEFAULT_MESSAGE = (
        "No vault access available. Options: "
        "(1) start the host application with CLI support, "
        "(2) enable its local REST API, or "
        "(3) set VAULTGATE_VAULT_PATH for direct filesystem access."
    )

    def __init__(self, message: str | None = None, context: str | None = None):
        super().__init__(message or self.DEFAULT_MESSAGE, context)


class ProbeTimeout(BackendUnavailable):
    """A reachability probe exceeded its budget."""


class CommandFailure(VaultGateError):
    """The backend was reached but the command itself failed."""


class InvalidInput(VaultGateError):
    """A required argument is missing or malformed. Raised before any I/O."""


class ConfigError(VaultGateError):
    """Raised when vaultgate configuration is invalid."""
