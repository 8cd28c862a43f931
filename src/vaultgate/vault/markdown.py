"""Extraction of wikilinks, tags, headings and tasks from note text."""

import re
from collections.abc import Iterator
from typing import Any

from vaultgate.vault.frontmatter import strip_frontmatter

WIKILINK_RE = re.compile(r"!?\[\[([^\]|#]*)(?:#[^\]|]*)?(?:\|[^\]]*)?\]\]")
TAG_RE = re.compile(r"(?:^|\s)#([A-Za-z][A-Za-z0-9_/-]*)")
HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
TASK_RE = re.compile(r"^\s*[-*] \[ \] ")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


def iter_wikilinks(content: str) -> Iterator[str]:
    """Yield every wikilink target, one per occurrence.

    Links to a heading of the same note (``[[#Heading]]``) have no target
    and are skipped.
    """
    for match in WIKILINK_RE.finditer(content):
        target = match.group(1).strip()
        if target:
            yield target


def extract_wikilinks(content: str) -> list[str]:
    """Unique wikilink targets in order of first appearance."""
    return list(dict.fromkeys(iter_wikilinks(content)))


def _prose_lines(content: str) -> Iterator[str]:
    """Body lines outside fenced code blocks."""
    in_fence = False
    for line in strip_frontmatter(content).split("\n"):
        if _FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if not in_fence:
            yield line


def _as_tag(value: Any) -> str:
    tag = str(value).strip()
    return tag if tag.startswith("#") else f"#{tag}"


def extract_tags(content: str, frontmatter: dict[str, Any] | None = None) -> list[str]:
    """
    Collect tags from frontmatter and inline ``#tag`` occurrences.

    Args:
        content: Full note content
        frontmatter: Parsed frontmatter, if already available

    Returns:
        Unique tags, each with a leading ``#``
    """
    tags: dict[str, None] = {}
    fm_tags = (frontmatter or {}).get("tags")
    if isinstance(fm_tags, (list, tuple)):
        for tag in fm_tags:
            tags[_as_tag(tag)] = None
    elif isinstance(fm_tags, str) and fm_tags:
        for tag in fm_tags.split(","):
            if tag.strip():
                tags[_as_tag(tag)] = None

    for line in _prose_lines(content):
        for match in TAG_RE.finditer(line):
            tags[f"#{match.group(1)}"] = None
    return list(tags)


def extract_headings(content: str) -> list[tuple[int, str]]:
    """Headings as (level, text) pairs, skipping fenced code."""
    headings = []
    for line in _prose_lines(content):
        match = HEADING_RE.match(line)
        if match:
            headings.append((len(match.group(1)), match.group(2)))
    return headings


def render_outline(headings: list[tuple[int, str]], fmt: str | None = None) -> str:
    """Flat ``## Heading`` lines, or two-space indented text for ``tree``."""
    if fmt == "tree":
        return "\n".join("  " * (level - 1) + text for level, text in headings)
    return "\n".join(f"{'#' * level} {text}" for level, text in headings)


def extract_tasks(content: str) -> list[str]:
    """Open checklist items, trimmed."""
    return [line.strip() for line in content.split("\n") if TASK_RE.match(line)]


def preview(content: str, index: int, length: int) -> str:
    """A one-line excerpt around a match position."""
    start = max(0, index - 50)
    end = min(len(content), index + length + 150)
    return content[start:end].replace("\n", " ").strip()
