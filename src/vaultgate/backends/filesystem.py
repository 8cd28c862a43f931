"""Filesystem transport: reads and writes the vault directory directly.

Handlers are plain functions run in a worker thread. Graph analyses scan
every markdown file; there is no sampling and no timeout.
"""

import asyncio
import contextlib
import json
import logging
import os
import tempfile
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from vaultgate.backends.base import CommandTableBackend
from vaultgate.core.args import CommandArgs
from vaultgate.core.errors import BackendUnavailable, CommandFailure, InvalidInput
from vaultgate.core.types import DEFAULT_SEARCH_LIMIT, RECENTS_LIMIT, Transport
from vaultgate.vault.frontmatter import (
    parse_frontmatter,
    render_properties,
    split_frontmatter,
    update_frontmatter,
)
from vaultgate.vault.graph import LinkGraph, render_counts, strip_md
from vaultgate.vault.markdown import (
    extract_headings,
    extract_tags,
    extract_tasks,
    extract_wikilinks,
    preview,
    render_outline,
)

logger = logging.getLogger(__name__)

TRASH_DIR = ".trash"


def _iso(timestamp: float) -> str:
    stamp = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def atomic_write(path: Path, content: str) -> None:
    """Replace path with content via a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp)
        raise


class FilesystemBackend(CommandTableBackend):
    """Direct access to a vault directory."""

    transport = Transport.FILESYSTEM

    def __init__(self, root: Path | str | None = None, case_sensitive_links: bool = False):
        """
        Initialize the filesystem backend.

        Args:
            root: Vault directory; without one the backend is never available
            case_sensitive_links: Compare link targets case-sensitively
        """
        self.root = Path(root).expanduser() if root else None
        self.case_sensitive_links = case_sensitive_links

    async def probe(self) -> bool:
        if self.root is None:
            return False
        return await asyncio.to_thread(self._readable)

    def _readable(self) -> bool:
        return self.root.is_dir() and os.access(self.root, os.R_OK | os.X_OK)

    async def _call(self, handler, args: CommandArgs) -> str:
        if self.root is None:
            raise BackendUnavailable(
                "no vault directory configured (VAULTGATE_VAULT_PATH)",
                context=args.describe(),
            )
        return await asyncio.to_thread(self._run_checked, handler, args)

    def _run_checked(self, handler, args: CommandArgs) -> str:
        if not self._readable():
            raise BackendUnavailable(
                f"vault directory not readable: {self.root}", context=args.describe()
            )
        return handler(args)

    # --- Paths ---

    def _base(self) -> Path:
        return self.root.resolve()

    def _inside(self, relative: str, args: CommandArgs) -> Path:
        """Absolute path for a vault-relative one, refusing escapes."""
        base = self._base()
        path = (base / relative.lstrip("/")).resolve()
        if not path.is_relative_to(base):
            raise InvalidInput(f"path escapes the vault: {relative}", context=args.describe())
        return path

    def _relative(self, path: Path) -> str:
        return path.relative_to(self._base()).as_posix()

    def _walk(self) -> list[str]:
        """Every visible file, vault-relative, hidden entries skipped."""
        base = self._base()
        found = []
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            rel_dir = Path(dirpath).relative_to(base)
            for name in sorted(filenames):
                if not name.startswith("."):
                    found.append((rel_dir / name).as_posix())
        return found

    def _markdown_files(self) -> list[str]:
        return [f for f in self._walk() if f.lower().endswith(".md")]

    def _note(self, file: str, args: CommandArgs) -> Path:
        """
        Locate an existing note.

        Tries the path as given, then with ``.md``, then a bare filename match
        anywhere in the vault under the link case policy.

        Raises:
            CommandFailure: If no note matches
        """
        candidates = [file] if file.lower().endswith(".md") else [file, f"{file}.md"]
        for candidate in candidates:
            path = self._inside(candidate, args)
            if path.is_file():
                return path

        if "/" not in file:
            fold = (lambda s: s) if self.case_sensitive_links else str.casefold
            wanted = fold(strip_md(file))
            for rel in self._markdown_files():
                if fold(strip_md(PurePosixPath(rel).name)) == wanted:
                    return self._inside(rel, args)

        raise CommandFailure(f"file not found: {file}", context=args.describe())

    def _new_note(self, file: str, args: CommandArgs) -> Path:
        return self._inside(file if file.lower().endswith(".md") else f"{file}.md", args)

    def _text(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")

    def _contents(self) -> dict[str, str]:
        contents = {}
        for rel in self._markdown_files():
            try:
                contents[rel] = self._text(self._base() / rel)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable note {rel}: {e}")
        return contents

    def _graph(self) -> LinkGraph:
        return LinkGraph.from_contents(
            self._contents(),
            visible_files=self._walk(),
            case_sensitive=self.case_sensitive_links,
        )

    # --- Read ---

    def read(self, args: CommandArgs) -> str:
        return self._text(self._note(args.require("file"), args)).strip()

    def file(self, args: CommandArgs) -> str:
        path = self._note(args.require("file"), args)
        rel = self._relative(path)
        stat = path.stat()
        folder = rel.rsplit("/", 1)[0] if "/" in rel else "/"
        return "\n".join(
            [
                f"path: {rel}",
                f"name: {strip_md(path.name)}",
                f"folder: {folder}",
                f"size: {stat.st_size}",
                f"created: {_iso(getattr(stat, 'st_birthtime', stat.st_ctime))}",
                f"modified: {_iso(stat.st_mtime)}",
            ]
        )

    def files(self, args: CommandArgs) -> str:
        files = self._walk()
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

    def search(self, args: CommandArgs) -> str:
        query = args.require("query")
        needle = query.lower()
        limit = args.int_value("limit", DEFAULT_SEARCH_LIMIT)

        hits: list[tuple[str, str]] = []
        for rel, content in self._contents().items():
            if len(hits) >= limit:
                break
            index = content.lower().find(needle)
            if index >= 0:
                hits.append((rel, preview(content, index, len(query))))

        if args.get("format") == "json":
            return json.dumps(
                [{"file": rel, "matches": [{"content": text}]} for rel, text in hits]
            )
        return "\n".join(strip_md(rel) for rel, _ in hits)

    def vault(self, args: CommandArgs) -> str:
        return f"version: filesystem\nfiles: {len(self._walk())}"

    def version(self, args: CommandArgs) -> str:
        return "filesystem"

    # --- Graph / link ---

    def backlinks(self, args: CommandArgs) -> str:
        graph = self._graph()
        return render_counts(graph.backlinks(args.require("file")), args.flag("counts"))

    def links(self, args: CommandArgs) -> str:
        return "\n".join(extract_wikilinks(self._text(self._note(args.require("file"), args))))

    def tags(self, args: CommandArgs) -> str:
        file = args.get("file")
        if file:
            content = self._text(self._note(file, args))
            return "\n".join(extract_tags(content, parse_frontmatter(content)))

        counts: Counter[str] = Counter()
        for content in self._contents().values():
            counts.update(extract_tags(content, parse_frontmatter(content)))
        return render_counts(counts, args.flag("counts"))

    def outline(self, args: CommandArgs) -> str:
        content = self._text(self._note(args.require("file"), args))
        return render_outline(extract_headings(content), args.get("format"))

    def properties(self, args: CommandArgs) -> str:
        content = self._text(self._note(args.require("file"), args))
        return render_properties(parse_frontmatter(content), args.get("format"))

    def aliases(self, args: CommandArgs) -> str:
        content = self._text(self._note(args.require("file"), args))
        aliases = parse_frontmatter(content).get("aliases")
        if isinstance(aliases, list):
            return "\n".join(str(a) for a in aliases)
        return str(aliases) if aliases else ""

    def orphans(self, args: CommandArgs) -> str:
        return "\n".join(self._graph().orphans())

    def deadends(self, args: CommandArgs) -> str:
        return "\n".join(self._graph().deadends())

    def unresolved(self, args: CommandArgs) -> str:
        return render_counts(self._graph().unresolved(), args.flag("counts"))

    def recents(self, args: CommandArgs) -> str:
        base = self._base()
        files = sorted(
            self._markdown_files(),
            key=lambda rel: (base / rel).stat().st_mtime,
            reverse=True,
        )
        return "\n".join(strip_md(rel) for rel in files[:RECENTS_LIMIT])

    def tasks(self, args: CommandArgs) -> str:
        lines = []
        for rel, content in self._contents().items():
            for task in extract_tasks(content):
                lines.append(f"{strip_md(rel)}: {task}")
        return "\n".join(lines)

    # --- Write ---

    def create(self, args: CommandArgs) -> str:
        path = self._new_note(args.require("name"), args)
        if path.exists() and not args.flag("overwrite"):
            raise CommandFailure(
                f"{self._relative(path)} already exists", context=args.describe()
            )
        atomic_write(path, args.get("content", ""))
        return ""

    def append(self, args: CommandArgs) -> str:
        path = self._note(args.require("file"), args)
        content = self._text(path)
        addition = args.get("content", "")
        if args.flag("inline") or not content or content.endswith("\n"):
            atomic_write(path, content + addition)
        else:
            atomic_write(path, f"{content}\n{addition}")
        return ""

    def prepend(self, args: CommandArgs) -> str:
        path = self._note(args.require("file"), args)
        content = self._text(path)
        addition = args.get("content", "")
        separator = "" if args.flag("inline") else "\n"
        block, body = split_frontmatter(content)
        if block is None:
            atomic_write(path, f"{addition}{separator}{body}")
        else:
            head = f"---\n{block}\n---" if block else "---\n---"
            atomic_write(path, f"{head}\n{addition}{separator}{body}")
        return ""

    def property_set(self, args: CommandArgs) -> str:
        path = self._note(args.require("file"), args)
        name, value = args.require("name"), args.get("value", "")
        atomic_write(path, update_frontmatter(self._text(path), updates={name: value}))
        return ""

    def property_remove(self, args: CommandArgs) -> str:
        path = self._note(args.require("file"), args)
        atomic_write(path, update_frontmatter(self._text(path), remove=(args.require("name"),)))
        return ""

    def move(self, args: CommandArgs) -> str:
        source = self._note(args.require("file"), args)
        to = args.require("to")
        if to.endswith("/") or self._inside(to, args).is_dir():
            target = self._inside(f"{to.rstrip('/')}/{source.name}", args)
        else:
            target = self._new_note(to, args)
        if target.exists():
            raise CommandFailure(
                f"{self._relative(target)} already exists", context=args.describe()
            )
        target.parent.mkdir(parents=True, exist_ok=True)
        os.replace(source, target)
        return ""

    def delete(self, args: CommandArgs) -> str:
        path = self._note(args.require("file"), args)
        if args.flag("permanent"):
            path.unlink()
            return ""

        trash = self._base() / TRASH_DIR
        target = trash / path.name
        counter = 1
        while target.exists():
            target = trash / f"{path.stem} {counter}{path.suffix}"
            counter += 1
        trash.mkdir(exist_ok=True)
        os.replace(path, target)
        logger.debug(f"Moved {self._relative(path)} to {self._relative(target)}")
        return ""

    def daily_append(self, args: CommandArgs) -> str:
        raise self.unsupported(args)

    def bookmark(self, args: CommandArgs) -> str:
        raise self.unsupported(args)

    def __repr__(self) -> str:
        return f"FilesystemBackend({str(self.root)!r})"
