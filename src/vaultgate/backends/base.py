"""Backend interface shared by the three transports."""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from vaultgate.core.args import CommandArgs, encode_args
from vaultgate.core.errors import CommandFailure, VaultGateError
from vaultgate.core.types import ArgBag, Command, Transport

logger = logging.getLogger(__name__)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class Backend(ABC):
    """One way of reaching the vault.

    Subclasses implement ``probe`` and ``_execute``; ``execute`` validates
    arguments before any I/O.
    """

    transport: ClassVar[Transport]

    @abstractmethod
    async def probe(self) -> bool:
        """Cheap reachability check. Never raises."""

    async def execute(
        self,
        command: Command | str,
        args: ArgBag | None = None,
        vault: str | None = None,
    ) -> str:
        """
        Run a logical command.

        Args:
            command: Logical command
            args: Argument bag
            vault: Vault name override (external process only)

        Returns:
            The command's textual result

        Raises:
            InvalidInput: Missing or malformed arguments (before any I/O)
            BackendUnavailable: The backend cannot be reached
            CommandFailure: The command failed on a reachable backend
        """
        parsed = encode_args(command, args)
        return await self._execute(parsed, vault)

    @abstractmethod
    async def _execute(self, args: CommandArgs, vault: str | None) -> str:
        pass

    async def aclose(self) -> None:
        """Release held resources."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class CommandTableBackend(Backend):
    """Backend implementing each logical command as its own method.

    Every concrete subclass must define one method per ``Command``, named
    by ``Command.handler_name`` (``property:set`` -> ``property_set``).
    Methods take CommandArgs and return the result string; they may be
    coroutines.
    """

    def __init_subclass__(cls, abstract: bool = False, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if abstract:
            return
        missing = [
            c.value
            for c in Command
            if not callable(getattr(cls, c.handler_name, None))
        ]
        if missing:
            raise TypeError(
                f"{cls.__name__} does not implement: {', '.join(missing)}"
            )

    def handler(self, command: Command):
        return getattr(self, command.handler_name)

    async def _execute(self, args: CommandArgs, vault: str | None) -> str:
        logger.debug(f"{self.transport.value}: {args.describe()}")
        try:
            return await self._call(self.handler(args.command), args)
        except VaultGateError:
            raise
        except (OSError, UnicodeDecodeError) as e:
            raise CommandFailure(str(e), context=args.describe()) from e

    async def _call(self, handler, args: CommandArgs) -> str:
        return await _maybe_await(handler(args))

    def unsupported(self, args: CommandArgs) -> CommandFailure:
        return CommandFailure(
            f"not available via the {self.transport.value} backend",
            context=args.describe(),
        )
