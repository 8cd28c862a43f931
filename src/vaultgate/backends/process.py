"""External-process transport: one executable invocation per command.

Arguments are passed as an argv list, never through a shell.
"""

import asyncio
import contextlib
import logging
from collections.abc import Mapping

from vaultgate.backends.base import Backend
from vaultgate.core.args import CommandArgs
from vaultgate.core.config import (
    DEFAULT_EXECUTABLE,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_PROCESS_TIMEOUT,
)
from vaultgate.core.errors import (
    BackendUnavailable,
    CommandFailure,
    ProbeTimeout,
)
from vaultgate.core.types import Transport

logger = logging.getLogger(__name__)

NOT_RUNNING_PATTERNS = (
    "is not running",
    "could not connect",
    "no running instance",
    "not running",
)

# Printed by the host while it is still starting; not a usable answer.
STARTUP_BANNER = "Loading updated app package"


async def _kill(proc: asyncio.subprocess.Process) -> None:
    with contextlib.suppress(ProcessLookupError):
        proc.kill()
    await proc.wait()


class ProcessBackend(Backend):
    """Runs the host application's command-line tool."""

    transport = Transport.PROCESS

    def __init__(
        self,
        executable: str = DEFAULT_EXECUTABLE,
        vault_name: str | None = None,
        timeout: float = DEFAULT_PROCESS_TIMEOUT,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        timeouts: Mapping[str, float] | None = None,
    ):
        """
        Initialize the process backend.

        Args:
            executable: Command-line tool to run
            vault_name: Default ``vault=`` argument
            timeout: Hard timeout per command, in seconds
            probe_timeout: Timeout for the ``version`` probe
            timeouts: Per-command timeout overrides keyed by command name
        """
        self.executable = executable
        self.vault_name = vault_name
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self.timeouts = dict(timeouts or {})

    def build_argv(self, args: CommandArgs, vault: str | None = None) -> list[str]:
        argv = [self.executable, args.command.value]
        vault = vault or self.vault_name
        if vault:
            argv.append(f"vault={vault}")
        argv.extend(args.argv())
        return argv

    async def probe(self) -> bool:
        try:
            output = await self._run(
                [self.executable, "version"], self.probe_timeout, "version", probe=True
            )
        except (BackendUnavailable, CommandFailure) as e:
            logger.debug(f"Process probe failed: {e}")
            return False
        return bool(output) and STARTUP_BANNER not in output

    async def _execute(self, args: CommandArgs, vault: str | None) -> str:
        timeout = self.timeouts.get(args.command.value, self.timeout)
        return await self._run(self.build_argv(args, vault), timeout, args.describe())

    async def _run(
        self, argv: list[str], timeout: float, context: str, probe: bool = False
    ) -> str:
        logger.debug(f"Running: {argv[:2]} ({len(argv) - 2} args)")
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise BackendUnavailable(
                f"cannot start {self.executable}: {e}", context=context
            ) from e

        try:
            stdout_b, stderr_b = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError:
            await _kill(proc)
            message = f"{self.executable} timed out after {timeout:g}s"
            if probe:
                raise ProbeTimeout(message, context=context) from None
            raise CommandFailure(message, context=context) from None
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        stdout = stdout_b.decode("utf-8", errors="replace")
        stderr = stderr_b.decode("utf-8", errors="replace")

        if proc.returncode != 0:
            combined = (stderr + stdout).lower()
            if any(pattern in combined for pattern in NOT_RUNNING_PATTERNS):
                raise BackendUnavailable(context=context)
            raise CommandFailure(
                (stderr or stdout).strip() or f"exit code {proc.returncode}",
                context=context,
            )

        return stdout.strip()

    def __repr__(self) -> str:
        return f"ProcessBackend({self.executable!r})"
