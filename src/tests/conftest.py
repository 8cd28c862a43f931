"""Shared test fixtures and configuration."""

from __future__ import annotations

import asyncio
import os

import pytest

from vaultgate.backends.base import Backend
from vaultgate.backends.filesystem import FilesystemBackend
from vaultgate.core.args import CommandArgs
from vaultgate.core.types import Transport

NOTE_A = """---
tags:
  - project
status: draft
aliases:
  - Alpha
---
# A

Links to [[B]] and [[NoSuchNote]].

## Tasks
- [ ] write tests
- [x] done already
"""

NOTE_B = """# B

See [[C|the C note]] and [[c]] again. #idea
"""

NOTE_C = """# C

No links here. #idea #later
"""

NOTE_D = """Mentions [[A]] and ![[image.png]].
- [ ] review D
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's VAULTGATE_* settings out of the tests."""
    for key in list(os.environ):
        if key.startswith("VAULTGATE_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def vault_dir(tmp_path):
    """
    A small vault on disk.

    Links: A -> B, NoSuchNote; B -> C (twice); C -> nothing;
    folder/D -> A, image.png. Hidden .obsidian/ must never show up.
    """
    root = tmp_path / "vault"
    (root / "folder").mkdir(parents=True)
    (root / ".obsidian").mkdir()
    (root / "A.md").write_text(NOTE_A, encoding="utf-8")
    (root / "B.md").write_text(NOTE_B, encoding="utf-8")
    (root / "C.md").write_text(NOTE_C, encoding="utf-8")
    (root / "folder" / "D.md").write_text(NOTE_D, encoding="utf-8")
    (root / "folder" / "image.png").write_bytes(b"\x89PNG\r\n")
    (root / ".obsidian" / "app.json").write_text("{}", encoding="utf-8")
    return root


@pytest.fixture
def fs_backend(vault_dir):
    """Filesystem backend over the sample vault."""
    return FilesystemBackend(vault_dir)


class FakeBackend(Backend):
    """Scriptable backend recording probes and executions.

    ``results`` maps a command name to its output, or to an exception to raise.
    """

    def __init__(
        self,
        transport: Transport,
        reachable: bool = True,
        results: dict[str, str | Exception] | None = None,
        default: str | Exception = "ok",
        probe_delay: float = 0,
    ):
        self.transport = transport
        self.reachable = reachable
        self.results = results or {}
        self.default = default
        self.probe_delay = probe_delay
        self.probe_calls = 0
        self.calls: list[CommandArgs] = []
        self.closed = False

    async def probe(self) -> bool:
        self.probe_calls += 1
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        return self.reachable

    async def _execute(self, args: CommandArgs, vault: str | None) -> str:
        self.calls.append(args)
        outcome = self.results.get(args.command.value, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def make_backend():
    """Factory for FakeBackend instances."""

    def _make_backend(transport: Transport, **kwargs) -> FakeBackend:
        return FakeBackend(transport, **kwargs)

    return _make_backend
