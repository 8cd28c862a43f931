"""Compound vault tools built on the router.

Each tool issues one or more logical commands and renders the results as a
markdown report. Multi-command tools run their commands concurrently and
report the parts that failed instead of failing as a whole.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from enum import StrEnum

from vaultgate.core.errors import InvalidInput, VaultGateError
from vaultgate.core.parallel import (
    ParallelCall,
    ParallelResult,
    get_result,
    rejected,
    run_parallel,
)
from vaultgate.core.router import Router
from vaultgate.core.types import ArgBag, Command
from vaultgate.vault.graph import graph_position

logger = logging.getLogger(__name__)

GRAPH_SECTIONS = ("orphans", "deadends", "unresolved", "tags", "recents", "tasks")


class WriteAction(StrEnum):
    """Mutations accepted by ``VaultTools.write``."""

    CREATE = "create"
    APPEND = "append"
    PREPEND = "prepend"
    PROPERTY_SET = "property_set"
    PROPERTY_REMOVE = "property_remove"
    MOVE = "move"
    DELETE = "delete"
    BOOKMARK = "bookmark"
    DAILY_APPEND = "daily_append"


def _count_lines(output: str) -> int:
    """Total of a counted list (``name<TAB>count``); plain lines count once."""
    total = 0
    for line in output.splitlines():
        if not line.strip():
            continue
        _, sep, count = line.rpartition("\t")
        total += int(count) if sep and count.strip().isdigit() else 1
    return total


def _unavailable(results: dict[str, ParallelResult]) -> list[str]:
    return [f"\n*{r.key}: unavailable -- {r.reason}*" for r in rejected(results)]


class VaultTools:
    """Tools for vault operations."""

    def __init__(self, router: Router):
        """
        Initialize vault tools.

        Args:
            router: Router every command is dispatched through
        """
        self.router = router

    async def _run(self, command: Command, args: ArgBag | None = None) -> str:
        return await self.router.dispatch(command, args)

    async def search(self, query: str, limit: int = 10) -> str:
        """
        Keyword search rendered as a markdown list.

        Backend errors are reported inline rather than raised.

        Raises:
            InvalidInput: If query is empty
        """
        if not query:
            raise InvalidInput("query is required", context="search")

        parts = ["## Vault (keyword index)"]
        try:
            raw = await self._run(
                Command.SEARCH, {"query": query, "limit": limit, "format": "json"}
            )
        except InvalidInput:
            raise
        except VaultGateError as e:
            parts.append(f"Unavailable: {e}")
            return "\n".join(parts)

        try:
            results = json.loads(raw) if raw else []
        except json.JSONDecodeError:
            for line in raw.split("\n")[: limit * 2]:
                if line.strip():
                    parts.append(f"- {line.strip()}")
            return "\n".join(parts)

        if not results:
            parts.append("No matches.")
        for r in results[:limit]:
            matches = r.get("matches") or [{}]
            preview = (matches[0].get("content") or "")[:200]
            parts.append(f"- **{r.get('file', '')}**" + (f": {preview}" if preview else ""))
        return "\n".join(parts)

    async def read(self, file: str) -> str:
        """Read a note's full content."""
        if not file:
            raise InvalidInput("file is required", context="read")
        return await self._run(Command.READ, {"file": file})

    async def info(self, file: str) -> str:
        """
        Everything known about one note, gathered in parallel.

        Args:
            file: Note path or name

        Returns:
            Markdown report with metadata, graph position, structure,
            properties, tags and aliases
        """
        if not file:
            raise InvalidInput("file is required", context="info")

        def call(key: str, command: Command, **extra) -> ParallelCall:
            return ParallelCall(key, lambda: self._run(command, {"file": file, **extra}))

        results = await run_parallel(
            [
                call("metadata", Command.FILE),
                call("backlinks", Command.BACKLINKS, counts=True),
                call("links", Command.LINKS),
                call("outline", Command.OUTLINE, format="tree"),
                call("properties", Command.PROPERTIES, format="yaml"),
                call("tags", Command.TAGS),
                call("aliases", Command.ALIASES),
            ]
        )

        parts = [f"## {file}"]
        meta = get_result(results, "metadata", "")
        if meta:
            parts += ["### Metadata", meta]

        backlinks = get_result(results, "backlinks", "")
        links = get_result(results, "links", "")
        if results["backlinks"].fulfilled and results["links"].fulfilled:
            position = graph_position(_count_lines(backlinks), _count_lines(links))
            parts += ["### Graph Position", f"**Position:** {position}"]
        elif backlinks or links:
            parts.append("### Graph Position")
        if backlinks:
            parts += ["**Backlinks:**", backlinks]
        if links:
            parts += ["**Outgoing Links:**", links]

        for key, title in (
            ("outline", "Structure"),
            ("properties", "Properties"),
            ("tags", "Tags"),
            ("aliases", "Aliases"),
        ):
            value = get_result(results, key, "")
            if value:
                parts += [f"### {title}", value]

        parts += _unavailable(results)
        return "\n".join(parts)

    async def list(
        self, folder: str | None = None, ext: str | None = None, total: bool = False
    ) -> str:
        """List vault files, optionally filtered by folder and extension."""
        raw = await self._run(Command.FILES, {"folder": folder, "ext": ext, "total": total})
        return raw or "No files found."

    async def graph(self, include: Sequence[str] | None = None) -> str:
        """
        Vault graph health report.

        Args:
            include: Sections to compute, any of GRAPH_SECTIONS (default all)
        """
        include = list(include) if include is not None else list(GRAPH_SECTIONS)
        unknown = [s for s in include if s not in GRAPH_SECTIONS]
        if unknown:
            raise InvalidInput(f"unknown graph sections: {', '.join(unknown)}", context="graph")

        commands = {
            "orphans": (Command.ORPHANS, None),
            "deadends": (Command.DEADENDS, None),
            "unresolved": (Command.UNRESOLVED, {"counts": True}),
            "tags": (Command.TAGS, {"counts": True}),
            "recents": (Command.RECENTS, None),
            "tasks": (Command.TASKS, None),
        }

        def call(key: str, command: Command, args: ArgBag | None) -> ParallelCall:
            return ParallelCall(key, lambda: self._run(command, args))

        calls = [call(key, *commands[key]) for key in GRAPH_SECTIONS if key in include]
        calls.append(call("files", Command.VAULT, None))
        results = await run_parallel(calls)

        parts = ["## Vault Graph Health"]
        summary = get_result(results, "files", "")
        if summary:
            parts += ["### Vault", summary]

        sections = [
            ("orphans", "Orphans (no incoming links)", "*None*"),
            ("deadends", "Dead Ends (no outgoing links)", "*None*"),
            ("unresolved", "Unresolved Links", "*None*"),
            ("tags", "Tag Distribution", "*No tags*"),
            ("recents", "Recent Files", "*None*"),
            ("tasks", "Pending Tasks", "*None*"),
        ]
        for key, title, empty in sections:
            if key in include:
                parts += [f"### {title}", get_result(results, key, "") or empty]

        parts += _unavailable(results)
        return "\n".join(parts)

    async def write(
        self,
        action: WriteAction | str,
        file: str | None = None,
        content: str | None = None,
        name: str | None = None,
        value: str | None = None,
        to: str | None = None,
        inline: bool = False,
        overwrite: bool = False,
        permanent: bool = False,
    ) -> str:
        """
        Apply one mutation and return a confirmation line.

        Raises:
            InvalidInput: Unknown action or a field the action needs is missing
        """
        try:
            action = WriteAction(action)
        except ValueError as e:
            raise InvalidInput(f"Unknown write action: {action}", context="write") from e

        def need(field: str, present: object) -> None:
            if present is None or present == "":
                raise InvalidInput(f"{field} is required for {action.value}", context="write")

        if action is WriteAction.DAILY_APPEND:
            need("content", content)
            await self._run(Command.DAILY_APPEND, {"content": content})
            return "Appended to daily note"

        need("file", file)

        if action is WriteAction.CREATE:
            await self._run(
                Command.CREATE, {"name": file, "content": content, "overwrite": overwrite}
            )
            return f"Created: {file}"

        if action in (WriteAction.APPEND, WriteAction.PREPEND):
            need("content", content)
            command = Command.APPEND if action is WriteAction.APPEND else Command.PREPEND
            await self._run(command, {"file": file, "content": content, "inline": inline})
            verb = "Appended to" if action is WriteAction.APPEND else "Prepended to"
            return f"{verb}: {file}"

        if action is WriteAction.PROPERTY_SET:
            need("name", name)
            need("value", value)
            await self._run(Command.PROPERTY_SET, {"file": file, "name": name, "value": value})
            return f"Set property {name}={value} on {file}"

        if action is WriteAction.PROPERTY_REMOVE:
            need("name", name)
            await self._run(Command.PROPERTY_REMOVE, {"file": file, "name": name})
            return f"Removed property {name} from {file}"

        if action is WriteAction.MOVE:
            need("to", to)
            await self._run(Command.MOVE, {"file": file, "to": to})
            return f"Moved {file} to {to}"

        if action is WriteAction.DELETE:
            await self._run(Command.DELETE, {"file": file, "permanent": permanent})
            return f"Deleted: {file}" + (" (permanent)" if permanent else "")

        await self._run(Command.BOOKMARK, {"file": file})
        return f"Bookmarked: {file}"
