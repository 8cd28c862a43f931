"""HTTP transport: the host application's local REST control-plane.

Commands without a native endpoint (orphans, dead ends, unresolved links,
vault-wide tags, recents) are computed client-side over a bounded sample of
the vault's markdown files.
"""

import asyncio
import json
import logging
import re
from collections import Counter
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
from pathlib import PurePosixPath
from urllib.parse import quote

import httpx

from vaultgate.backends.base import CommandTableBackend
from vaultgate.core.args import CommandArgs
from vaultgate.core.config import (
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_REST_URL,
    DEFAULT_SAMPLE_SIZE,
    DEFAULT_TAG_SAMPLE_SIZE,
)
from vaultgate.core.errors import BackendUnavailable, CommandFailure, VaultGateError
from vaultgate.core.types import DEFAULT_SEARCH_LIMIT, RECENTS_LIMIT, Transport
from vaultgate.vault.frontmatter import render_properties, update_frontmatter
from vaultgate.vault.graph import LinkGraph, render_counts, strip_md
from vaultgate.vault.markdown import extract_wikilinks, iter_wikilinks

logger = logging.getLogger(__name__)

NOTE_JSON = "application/vnd.olrapi.note+json"
DOCUMENT_MAP = "application/vnd.olrapi.document-map+json"
MARKDOWN = "text/markdown"

_TASK_IN_CONTEXT_RE = re.compile(r"[-*] \[ \] [^\n]+")


def _iso(ms: float) -> str:
    stamp = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def note_path(file: str) -> str:
    """URL path for a note: ``.md`` ensured, each segment percent-encoded."""
    path = file if file.lower().endswith(".md") else f"{file}.md"
    return "/".join(quote(segment, safe="") for segment in path.split("/"))


class HttpBackend(CommandTableBackend):
    """Maps logical commands onto the REST surface."""

    transport = Transport.HTTP

    def __init__(
        self,
        base_url: str = DEFAULT_REST_URL,
        api_key: str | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        tag_sample_size: int = DEFAULT_TAG_SAMPLE_SIZE,
        case_sensitive_links: bool = False,
        timeouts: Mapping[str, float] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the HTTP backend.

        Args:
            base_url: Control-plane root URL
            api_key: Bearer credential, if the control-plane requires one
            timeout: Per-request timeout in seconds
            probe_timeout: Timeout for the health check
            sample_size: Files read for orphan/dead-end/unresolved analysis
            tag_sample_size: Files read for vault-wide tags and recents
            case_sensitive_links: Compare link targets case-sensitively
            timeouts: Per-command timeout overrides keyed by command name
            transport: httpx transport override (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self.sample_size = sample_size
        self.tag_sample_size = tag_sample_size
        self.case_sensitive_links = case_sensitive_links
        self.timeouts = dict(timeouts or {})
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # --- HTTP layer ---

    async def request(
        self,
        method: str,
        path: str,
        context: str,
        *,
        accept: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send one request and classify the outcome.

        Raises:
            BackendUnavailable: 5xx, connection failure or timeout
            CommandFailure: Any other non-2xx status
        """
        all_headers = dict(headers or {})
        if accept:
            all_headers["Accept"] = accept
        try:
            resp = await self.client.request(
                method,
                path,
                headers=all_headers,
                timeout=timeout or self.timeout,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise BackendUnavailable(f"request timed out: {e}", context=context) from e
        except httpx.TransportError as e:
            raise BackendUnavailable(f"cannot reach {self.base_url}: {e}", context=context) from e

        if resp.status_code >= 500:
            raise BackendUnavailable(
                f"HTTP {resp.status_code} from {method} {path}", context=context
            )
        if not resp.is_success:
            raise CommandFailure(f"HTTP {resp.status_code}: {resp.text}", context=context)
        return resp

    def _timeout(self, args: CommandArgs) -> float:
        return self.timeouts.get(args.command.value, self.timeout)

    async def _get(self, args: CommandArgs, path: str, accept: str | None = None) -> httpx.Response:
        return await self.request(
            "GET", path, args.describe(), accept=accept, timeout=self._timeout(args)
        )

    async def _note_json(self, args: CommandArgs, file: str) -> dict[str, Any]:
        resp = await self._get(args, f"/vault/{note_path(file)}", NOTE_JSON)
        return resp.json()

    async def _markdown(self, args: CommandArgs, file: str) -> str:
        resp = await self._get(args, f"/vault/{note_path(file)}", MARKDOWN)
        return resp.text

    async def _list_dir(self, args: CommandArgs, folder: str) -> list[str]:
        prefix = f"{folder}/" if folder else ""
        url = "/vault/" + "".join(quote(seg, safe="") + "/" for seg in folder.split("/") if seg)
        resp = await self._get(args, url)
        files: list[str] = []
        for entry in resp.json().get("files", []):
            name = entry.rstrip("/")
            if not name or name.split("/")[-1].startswith("."):
                continue
            if entry.endswith("/"):
                files.extend(await self._list_dir(args, f"{prefix}{name}"))
            else:
                files.append(f"{prefix}{entry}")
        return files

    async def _all_files(self, args: CommandArgs) -> list[str]:
        return await self._list_dir(args, "")

    async def _markdown_files(self, args: CommandArgs) -> list[str]:
        return [f for f in await self._all_files(args) if f.lower().endswith(".md")]

    async def _sample(self, args: CommandArgs, files: list[str], loader) -> dict[str, Any]:
        """Load each sampled file concurrently; files that fail are left out."""

        async def load(file: str) -> tuple[str, Any]:
            try:
                return file, await loader(args, file)
            except CommandFailure as e:
                logger.warning(f"Skipping {file} in sample: {e}")
                return file, None

        loaded = await asyncio.gather(*(load(f) for f in files))
        return {file: value for file, value in loaded if value is not None}

    async def _search(self, args: CommandArgs, query: str, context_length: int = 200) -> list[dict[str, Any]]:
        resp = await self.request(
            "POST",
            "/search/simple/",
            args.describe(),
            params={"query": query, "contextLength": context_length},
            timeout=self._timeout(args),
        )
        return resp.json()

    async def _put(self, args: CommandArgs, file: str, content: str) -> None:
        await self.request(
            "PUT",
            f"/vault/{note_path(file)}",
            args.describe(),
            headers={"Content-Type": MARKDOWN},
            content=content.encode("utf-8"),
            timeout=self._timeout(args),
        )

    async def _graph(self, args: CommandArgs) -> LinkGraph:
        files = await self._all_files(args)
        markdown = [f for f in files if f.lower().endswith(".md")]
        sample = markdown[: self.sample_size]
        if len(markdown) > len(sample):
            logger.debug(f"Graph analysis sampling {len(sample)} of {len(markdown)} notes")
        contents = await self._sample(args, sample, self._markdown)
        return LinkGraph.from_contents(
            contents, visible_files=files, case_sensitive=self.case_sensitive_links
        )

    # --- Probe ---

    async def probe(self) -> bool:
        try:
            await self.request("GET", "/", "probe", timeout=self.probe_timeout)
        except VaultGateError as e:
            logger.debug(f"HTTP probe failed: {e}")
            return False
        return True

    # --- Read ---

    async def read(self, args: CommandArgs) -> str:
        return (await self._markdown(args, args.require("file"))).strip()

    async def file(self, args: CommandArgs) -> str:
        note = await self._note_json(args, args.require("file"))
        path = note.get("path", "")
        folder = path.rsplit("/", 1)[0] if "/" in path else "/"
        stat = note.get("stat", {})
        return "\n".join(
            [
                f"path: {path}",
                f"name: {strip_md(path.rsplit('/', 1)[-1])}",
                f"folder: {folder}",
                f"size: {stat.get('size', 0)}",
                f"created: {_iso(stat.get('ctime', 0))}",
                f"modified: {_iso(stat.get('mtime', 0))}",
            ]
        )

    async def files(self, args: CommandArgs) -> str:
        files = await self._all_files(args)
        folder = args.get("folder")
        if folder:
            folder = folder.strip("/")
            files = [f for f in files if f.startswith(folder + "/")]
        ext = args.get("ext")
        if ext:
            files = [f for f in files if f.endswith(f".{ext.lstrip('.')}")]
        if args.flag("total"):
            return str(len(files))
        return "\n".join(files)

    async def search(self, args: CommandArgs) -> str:
        limit = args.int_value("limit", DEFAULT_SEARCH_LIMIT)
        results = (await self._search(args, args.require("query")))[:limit]
        if args.get("format") == "json":
            return json.dumps(
                [
                    {
                        "file": r.get("filename", ""),
                        "matches": [
                            {"content": m.get("context", "")} for m in r.get("matches", [])
                        ],
                    }
                    for r in results
                ]
            )
        return "\n".join(strip_md(r.get("filename", "")) for r in results)

    async def vault(self, args: CommandArgs) -> str:
        resp = await self._get(args, "/")
        version = resp.json().get("versions", {}).get("obsidian", "unknown")
        files = await self._all_files(args)
        return f"version: {version}\nfiles: {len(files)}"

    async def version(self, args: CommandArgs) -> str:
        resp = await self._get(args, "/")
        return str(resp.json().get("versions", {}).get("obsidian", "unknown"))

    # --- Graph / link ---

    async def backlinks(self, args: CommandArgs) -> str:
        file = strip_md(args.require("file"))
        name = PurePosixPath(file).name
        # Search hits are candidates; only links that resolve to file count.
        wanted = LinkGraph({file: []}, case_sensitive=self.case_sensitive_links)

        def links_here(context: str) -> bool:
            return any(wanted.targets(link) for link in iter_wikilinks(context))

        results = await self._search(args, f"[[{name}", context_length=len(name) + 100)
        counted = []
        for r in results:
            source = strip_md(r.get("filename", ""))
            if not source or wanted.key(source) == wanted.key(file):
                continue
            count = sum(1 for m in r.get("matches", []) if links_here(m.get("context", "")))
            if count:
                counted.append((source, count))
        return render_counts(counted, args.flag("counts"))

    async def links(self, args: CommandArgs) -> str:
        content = await self._markdown(args, args.require("file"))
        return "\n".join(extract_wikilinks(content))

    async def tags(self, args: CommandArgs) -> str:
        file = args.get("file")
        if file:
            note = await self._note_json(args, file)
            return "\n".join(
                t if t.startswith("#") else f"#{t}" for t in note.get("tags") or []
            )

        sample = (await self._markdown_files(args))[: self.tag_sample_size]
        notes = await self._sample(args, sample, self._note_json)
        counts: Counter[str] = Counter()
        for note in notes.values():
            for tag in note.get("tags") or []:
                counts[tag if tag.startswith("#") else f"#{tag}"] += 1
        return render_counts(counts, args.flag("counts"))

    async def outline(self, args: CommandArgs) -> str:
        resp = await self._get(args, f"/vault/{note_path(args.require('file'))}", DOCUMENT_MAP)
        lines = []
        for heading in resp.json().get("headings") or []:
            parts = heading.split("::")
            level, text = len(parts), parts[-1].strip()
            if args.get("format") == "tree":
                lines.append("  " * (level - 1) + text)
            else:
                lines.append(f"{'#' * level} {text}")
        return "\n".join(lines)

    async def properties(self, args: CommandArgs) -> str:
        note = await self._note_json(args, args.require("file"))
        return render_properties(note.get("frontmatter") or {}, args.get("format"))

    async def aliases(self, args: CommandArgs) -> str:
        note = await self._note_json(args, args.require("file"))
        aliases = (note.get("frontmatter") or {}).get("aliases")
        if isinstance(aliases, list):
            return "\n".join(str(a) for a in aliases)
        if isinstance(aliases, str):
            return aliases
        return ""

    # --- Graph health (sampled) ---

    async def orphans(self, args: CommandArgs) -> str:
        return "\n".join((await self._graph(args)).orphans())

    async def deadends(self, args: CommandArgs) -> str:
        return "\n".join((await self._graph(args)).deadends())

    async def unresolved(self, args: CommandArgs) -> str:
        return render_counts((await self._graph(args)).unresolved(), args.flag("counts"))

    async def recents(self, args: CommandArgs) -> str:
        sample = (await self._markdown_files(args))[: self.tag_sample_size]
        notes = await self._sample(args, sample, self._note_json)
        ordered = sorted(
            notes.items(),
            key=lambda item: item[1].get("stat", {}).get("mtime", 0),
            reverse=True,
        )
        return "\n".join(strip_md(file) for file, _ in ordered[:RECENTS_LIMIT])

    async def tasks(self, args: CommandArgs) -> str:
        lines = []
        for r in await self._search(args, "- [ ]"):
            source = strip_md(r.get("filename", ""))
            for m in r.get("matches", []):
                for task in _TASK_IN_CONTEXT_RE.findall(m.get("context", "")):
                    lines.append(f"{source}: {task.strip()}")
        return "\n".join(dict.fromkeys(lines))

    # --- Write ---

    async def create(self, args: CommandArgs) -> str:
        await self._put(args, args.require("name"), args.get("content", ""))
        return ""

    async def append(self, args: CommandArgs) -> str:
        await self.request(
            "POST",
            f"/vault/{note_path(args.require('file'))}",
            args.describe(),
            headers={"Content-Type": MARKDOWN},
            content=args.get("content", "").encode("utf-8"),
            timeout=self._timeout(args),
        )
        return ""

    async def prepend(self, args: CommandArgs) -> str:
        await self.request(
            "PATCH",
            f"/vault/{note_path(args.require('file'))}",
            args.describe(),
            headers={"Content-Type": MARKDOWN, "Operation": "prepend"},
            content=args.get("content", "").encode("utf-8"),
            timeout=self._timeout(args),
        )
        return ""

    async def property_set(self, args: CommandArgs) -> str:
        await self.request(
            "PATCH",
            f"/vault/{note_path(args.require('file'))}",
            args.describe(),
            headers={
                "Content-Type": "application/json",
                "Operation": "replace",
                "Target-Type": "frontmatter",
                "Target": args.require("name"),
                "Create-Target-If-Missing": "true",
            },
            content=json.dumps(args.get("value", "")).encode("utf-8"),
            timeout=self._timeout(args),
        )
        return ""

    async def property_remove(self, args: CommandArgs) -> str:
        file = args.require("file")
        content = await self._markdown(args, file)
        await self._put(args, file, update_frontmatter(content, remove=(args.require("name"),)))
        return ""

    async def move(self, args: CommandArgs) -> str:
        file, to = args.require("file"), args.require("to")
        content = await self._markdown(args, file)
        await self._put(args, to, content)
        await self.request(
            "DELETE", f"/vault/{note_path(file)}", args.describe(), timeout=self._timeout(args)
        )
        return ""

    async def delete(self, args: CommandArgs) -> str:
        await self.request(
            "DELETE",
            f"/vault/{note_path(args.require('file'))}",
            args.describe(),
            timeout=self._timeout(args),
        )
        return ""

    async def daily_append(self, args: CommandArgs) -> str:
        await self.request(
            "POST",
            "/periodic/daily/",
            args.describe(),
            headers={"Content-Type": MARKDOWN},
            content=args.require("content").encode("utf-8"),
            timeout=self._timeout(args),
        )
        return ""

    async def bookmark(self, args: CommandArgs) -> str:
        raise self.unsupported(args)

    def __repr__(self) -> str:
        return f"HttpBackend({self.base_url!r})"
