"""Transport resolution and command dispatch.

The router owns the current transport selection. In automatic mode it probes
the backends in priority order on first use, remembers the first reachable
one, and moves down the list when a command reports the backend as
unavailable. An explicit mode pins one backend and never cascades.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from vaultgate.backends import Backend, FilesystemBackend, HttpBackend, ProcessBackend
from vaultgate.core.args import encode_args
from vaultgate.core.config import DEFAULT_PROBE_TIMEOUT
from vaultgate.core.errors import BackendUnavailable, ConfigError, ProbeTimeout
from vaultgate.core.settings import RouterConfig
from vaultgate.core.types import TRANSPORT_PRIORITY, ArgBag, Command, Transport, TransportMode

logger = logging.getLogger(__name__)


def _rank(transport: Transport) -> int:
    return TRANSPORT_PRIORITY.index(transport)


class Router:
    """Dispatches logical commands to whichever backend is reachable."""

    def __init__(
        self,
        backends: Mapping[Transport, Backend],
        mode: TransportMode | str = TransportMode.AUTO,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    ):
        """
        Initialize the router.

        Args:
            backends: Backend per transport; missing transports are skipped
            mode: ``auto`` or a fixed transport
            probe_timeout: Upper bound for each reachability probe, in seconds
        """
        self._backends = dict(backends)
        self._mode = TransportMode.parse(mode)
        self.probe_timeout = probe_timeout
        self._selection: Transport | None = None
        self._lock = asyncio.Lock()

        pinned = self._mode.transport
        if pinned is not None and pinned not in self._backends:
            raise ConfigError(f"transport {pinned.value} requested but not configured")

    @classmethod
    def from_config(cls, config: RouterConfig) -> Router:
        """Build a router with all three backends from configuration."""
        backends: dict[Transport, Backend] = {
            Transport.PROCESS: ProcessBackend(
                executable=config.executable,
                vault_name=config.vault_name,
                timeout=config.process_timeout,
                probe_timeout=config.probe_timeout,
                timeouts=config.timeouts,
            ),
            Transport.HTTP: HttpBackend(
                base_url=config.rest_url,
                api_key=config.rest_key,
                timeout=config.http_timeout,
                probe_timeout=config.probe_timeout,
                sample_size=config.sample_size,
                tag_sample_size=config.tag_sample_size,
                case_sensitive_links=config.case_sensitive_links,
                timeouts=config.timeouts,
            ),
            Transport.FILESYSTEM: FilesystemBackend(
                root=config.vault_path,
                case_sensitive_links=config.case_sensitive_links,
            ),
        }
        return cls(backends, mode=config.transport, probe_timeout=config.probe_timeout)

    @property
    def mode(self) -> TransportMode:
        return self._mode

    @property
    def selection(self) -> Transport | None:
        """The active transport, or None before the first resolution."""
        return self._selection

    def backend(self, transport: Transport) -> Backend:
        return self._backends[transport]

    def _candidates(self) -> list[Transport]:
        pinned = self._mode.transport
        if pinned is not None:
            return [pinned]
        return [t for t in TRANSPORT_PRIORITY if t in self._backends]

    async def _probe(self, transport: Transport) -> bool:
        """
        Probe one backend within the probe timeout.

        Raises:
            ProbeTimeout: If the probe does not answer in time
        """
        try:
            return await asyncio.wait_for(
                self._backends[transport].probe(), self.probe_timeout
            )
        except asyncio.TimeoutError:
            raise ProbeTimeout(
                f"no answer within {self.probe_timeout:g}s",
                context=f"probe {transport.value}",
            ) from None

    async def _first_reachable(self, candidates: list[Transport]) -> Transport | None:
        for transport in candidates:
            try:
                reachable = await self._probe(transport)
            except ProbeTimeout as e:
                logger.debug(str(e))
                reachable = False
            if reachable:
                return transport
            logger.debug(f"Transport {transport.value} not reachable")
        return None

    async def resolve(self) -> Backend:
        """
        Return the active backend, probing on first use.

        Concurrent first callers share a single probe sequence.

        Raises:
            BackendUnavailable: If no candidate answers its probe
        """
        if self._selection is not None:
            return self._backends[self._selection]

        async with self._lock:
            if self._selection is None:
                pinned = self._mode.transport
                if pinned is not None:
                    if await self._first_reachable([pinned]) is None:
                        raise BackendUnavailable(
                            f"{pinned.value} transport requested but not reachable"
                        )
                    chosen = pinned
                else:
                    chosen = await self._first_reachable(self._candidates())
                    if chosen is None:
                        raise BackendUnavailable()
                self._selection = chosen
                logger.info(f"Using {chosen.value} transport")
        return self._backends[self._selection]

    async def _failover(self, failed: Transport, error: BackendUnavailable) -> Backend | None:
        async with self._lock:
            current = self._selection
            if current is not None and _rank(current) > _rank(failed):
                return self._backends[current]

            logger.warning(f"{failed.value} transport became unavailable: {error}")
            lower = [t for t in self._candidates() if _rank(t) > _rank(failed)]
            chosen = await self._first_reachable(lower)
            if chosen is None:
                return None
            self._selection = chosen
            logger.warning(f"Failing over from {failed.value} to {chosen.value} transport")
            return self._backends[chosen]

    async def dispatch(
        self,
        command: Command | str,
        args: ArgBag | None = None,
        vault: str | None = None,
    ) -> str:
        """
        Run a logical command on the active backend.

        In automatic mode a BackendUnavailable from the command triggers one
        failover to the next reachable lower-priority backend, where the
        command is retried exactly once.

        Args:
            command: Logical command
            args: Argument bag
            vault: Vault name override (external process only)

        Returns:
            The command's textual result

        Raises:
            BackendUnavailable: No backend could run the command
            CommandFailure: The command failed on a reachable backend
            InvalidInput: Missing or malformed arguments
        """
        parsed = encode_args(command, args)
        try:
            return await self._dispatch(command, args, vault)
        except BackendUnavailable as e:
            if e.context:
                raise
            raise type(e)(e.detail, context=parsed.describe()) from e

    async def _dispatch(
        self, command: Command | str, args: ArgBag | None, vault: str | None
    ) -> str:
        backend = await self.resolve()
        try:
            return await backend.execute(command, args, vault)
        except BackendUnavailable as e:
            if self._mode is not TransportMode.AUTO:
                raise
            fallback = await self._failover(backend.transport, e)
            if fallback is None:
                raise
            return await fallback.execute(command, args, vault)

    async def aclose(self) -> None:
        """Close every backend's resources."""
        await asyncio.gather(*(b.aclose() for b in self._backends.values()))

    async def __aenter__(self) -> Router:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
