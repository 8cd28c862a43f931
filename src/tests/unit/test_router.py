"""Tests for transport resolution and failover."""

import asyncio
import logging
import shutil

import pytest

from vaultgate.backends import FilesystemBackend, HttpBackend, ProcessBackend
from vaultgate.core.errors import (
    BackendUnavailable,
    CommandFailure,
    ConfigError,
    InvalidInput,
)
from vaultgate.core.router import Router
from vaultgate.core.settings import RouterConfig
from vaultgate.core.types import Transport, TransportMode

P, H, F = Transport.PROCESS, Transport.HTTP, Transport.FILESYSTEM


@pytest.fixture
def trio(make_backend):
    """Factory for a process/http/filesystem trio of fake backends."""

    def _trio(**per_transport):
        return {t: make_backend(t, **per_transport.get(t.value, {})) for t in (P, H, F)}

    return _trio


class TestResolution:
    """Automatic and explicit backend selection."""

    @pytest.mark.asyncio
    async def test_first_reachable_is_memoized(self, trio):
        """Probing happens once; later dispatches reuse the selection."""
        backends = trio()
        router = Router(backends)

        assert await router.dispatch("files") == "ok"
        assert await router.dispatch("files") == "ok"

        assert router.selection is P
        assert backends[P].probe_calls == 1
        assert backends[H].probe_calls == 0
        assert backends[F].probe_calls == 0
        assert len(backends[P].calls) == 2

    @pytest.mark.asyncio
    async def test_priority_order(self, trio):
        """Unreachable backends are skipped in priority order."""
        backends = trio(process={"reachable": False}, http={"reachable": False})
        router = Router(backends)

        await router.dispatch("files")

        assert router.selection is F
        assert [backends[t].probe_calls for t in (P, H, F)] == [1, 1, 1]

    @pytest.mark.asyncio
    async def test_nothing_reachable(self, trio):
        backends = trio(
            process={"reachable": False},
            http={"reachable": False},
            filesystem={"reachable": False},
        )
        router = Router(backends)

        with pytest.raises(BackendUnavailable, match="No vault access available"):
            await router.dispatch("files")
        assert router.selection is None

    @pytest.mark.asyncio
    async def test_unavailable_names_the_command(self, trio):
        """The resolution error says which command could not run."""
        backends = trio(
            process={"reachable": False},
            http={"reachable": False},
            filesystem={"reachable": False},
        )
        router = Router(backends)

        with pytest.raises(BackendUnavailable) as exc_info:
            await router.dispatch("read", {"file": "Secret"})
        message = str(exc_info.value)
        assert message.startswith("read file=Secret: ")
        assert "No vault access available" in message

    @pytest.mark.asyncio
    async def test_pinned_unreachable_names_the_command(self, trio):
        router = Router(trio(http={"reachable": False}), mode="http")

        with pytest.raises(
            BackendUnavailable, match="^read file=A: http transport requested but not reachable"
        ):
            await router.dispatch("read", {"file": "A"})

    @pytest.mark.asyncio
    async def test_slow_probe_counts_as_failure(self, trio):
        """A probe exceeding the probe timeout is skipped."""
        backends = trio(process={"probe_delay": 2})
        router = Router(backends, probe_timeout=0.05)

        await router.dispatch("files")
        assert router.selection is H

    @pytest.mark.asyncio
    async def test_concurrent_first_callers_share_one_probe(self, trio):
        backends = trio(process={"probe_delay": 0.05})
        router = Router(backends)

        results = await asyncio.gather(*(router.dispatch("files") for _ in range(5)))

        assert results == ["ok"] * 5
        assert backends[P].probe_calls == 1

    @pytest.mark.asyncio
    async def test_selection_logged_once(self, trio, caplog):
        caplog.set_level(logging.INFO, logger="vaultgate.core.router")
        router = Router(trio())

        await router.dispatch("files")
        await router.dispatch("files")

        assert caplog.text.count("Using process transport") == 1


class TestExplicitOverride:
    """A pinned transport never cascades."""

    @pytest.mark.asyncio
    async def test_override_skips_priority(self, trio):
        backends = trio()
        router = Router(backends, mode="fs")

        await router.dispatch("files")

        assert router.selection is F
        assert backends[P].probe_calls == 0

    @pytest.mark.asyncio
    async def test_override_unreachable_fails_without_other_probes(self, trio):
        backends = trio(http={"reachable": False})
        router = Router(backends, mode=TransportMode.HTTP)

        with pytest.raises(BackendUnavailable, match="http transport requested"):
            await router.dispatch("files")
        assert backends[P].probe_calls == 0
        assert backends[F].probe_calls == 0

    @pytest.mark.asyncio
    async def test_override_does_not_fail_over(self, trio):
        backends = trio(filesystem={"default": BackendUnavailable("gone")})
        router = Router(backends, mode="filesystem")

        with pytest.raises(BackendUnavailable, match="gone"):
            await router.dispatch("files")
        assert backends[P].probe_calls == 0
        assert backends[H].probe_calls == 0

    def test_override_must_be_configured(self, make_backend):
        with pytest.raises(ConfigError, match="not configured"):
            Router({P: make_backend(P)}, mode="http")


class TestFailover:
    """Mid-session failover in automatic mode."""

    @pytest.mark.asyncio
    async def test_unavailable_cascades_once(self, trio):
        """process down, http answers the probe but fails; filesystem takes over."""
        backends = trio(
            process={"reachable": False},
            http={"default": BackendUnavailable("HTTP 503")},
            filesystem={"default": "from fs"},
        )
        router = Router(backends)

        assert await router.dispatch("read", {"file": "A"}) == "from fs"
        assert router.selection is F
        assert [backends[t].probe_calls for t in (P, H, F)] == [1, 1, 1]
        assert len(backends[H].calls) == 1
        assert len(backends[F].calls) == 1

        # Subsequent calls go straight to the new selection.
        assert await router.dispatch("read", {"file": "B"}) == "from fs"
        assert [backends[t].probe_calls for t in (P, H, F)] == [1, 1, 1]
        assert len(backends[H].calls) == 1

    @pytest.mark.asyncio
    async def test_failover_is_logged(self, trio, caplog):
        caplog.set_level(logging.WARNING, logger="vaultgate.core.router")
        backends = trio(process={"default": BackendUnavailable("not running")})
        router = Router(backends)

        await router.dispatch("files")

        assert "Failing over from process to http transport" in caplog.text

    @pytest.mark.asyncio
    async def test_failover_skips_unreachable_fallbacks(self, trio):
        backends = trio(
            process={"default": BackendUnavailable("not running")},
            http={"reachable": False},
            filesystem={"default": "fs"},
        )
        router = Router(backends)

        assert await router.dispatch("files") == "fs"
        assert router.selection is F

    @pytest.mark.asyncio
    async def test_second_unavailable_propagates(self, trio):
        """The retry happens exactly once."""
        backends = trio(
            process={"reachable": False},
            http={"default": BackendUnavailable("http down")},
            filesystem={"default": BackendUnavailable("disk gone")},
        )
        router = Router(backends, mode="auto")

        with pytest.raises(BackendUnavailable, match="disk gone"):
            await router.dispatch("files")
        assert len(backends[F].calls) == 1

    @pytest.mark.asyncio
    async def test_no_lower_candidate(self, trio):
        backends = trio(
            process={"reachable": False},
            http={"reachable": False},
            filesystem={"default": BackendUnavailable("disk gone")},
        )
        router = Router(backends)

        with pytest.raises(BackendUnavailable, match="^files: disk gone"):
            await router.dispatch("files")
        assert router.selection is F

    @pytest.mark.asyncio
    async def test_vault_removed_after_selection(self, trio, fs_backend, vault_dir):
        """A filesystem root that vanishes surfaces as unavailable, not as empty output."""
        backends = trio(process={"reachable": False}, http={"reachable": False})
        backends[F] = fs_backend
        router = Router(backends)
        assert await router.dispatch("orphans") == "folder/D"

        shutil.rmtree(vault_dir)

        with pytest.raises(BackendUnavailable, match="^orphans: vault directory not readable"):
            await router.dispatch("orphans")

    @pytest.mark.asyncio
    async def test_command_failure_does_not_cascade(self, trio):
        backends = trio(process={"default": CommandFailure("File not found")})
        router = Router(backends)

        with pytest.raises(CommandFailure, match="File not found"):
            await router.dispatch("read", {"file": "A"})
        assert backends[H].probe_calls == 0
        assert router.selection is P

    @pytest.mark.asyncio
    async def test_invalid_input_never_reaches_backend(self, trio):
        backends = trio()
        router = Router(backends)

        with pytest.raises(InvalidInput, match="query is required"):
            await router.dispatch("search", {})
        assert backends[P].calls == []
        assert backends[H].probe_calls == 0

    @pytest.mark.asyncio
    async def test_concurrent_failures_fail_over_once(self, trio):
        """Callers that hit the same outage share one failover."""
        backends = trio(process={"default": BackendUnavailable("not running")})
        router = Router(backends)

        results = await asyncio.gather(*(router.dispatch("files") for _ in range(4)))

        assert results == ["ok"] * 4
        assert router.selection is H
        assert backends[H].probe_calls == 1
        assert backends[F].probe_calls == 0


class TestConstruction:
    """Router.from_config and lifecycle."""

    def test_from_config(self, tmp_path):
        config = RouterConfig(
            transport="rest",
            vault_path=tmp_path,
            vault_name="Main",
            rest_key="k",
            timeouts={"search": 30},
        )
        router = Router.from_config(config)

        assert router.mode is TransportMode.HTTP
        assert isinstance(router.backend(P), ProcessBackend)
        assert isinstance(router.backend(H), HttpBackend)
        assert isinstance(router.backend(F), FilesystemBackend)
        assert router.backend(P).vault_name == "Main"
        assert router.backend(H).timeouts == {"search": 30.0}
        assert router.backend(F).root == tmp_path

    @pytest.mark.asyncio
    async def test_aclose_closes_every_backend(self, trio):
        backends = trio()
        async with Router(backends):
            pass
        assert all(b.closed for b in backends.values())
