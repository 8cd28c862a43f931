"""Minimal frontmatter parsing and writing for vault notes.

Only ``key: value`` lines and ``- item`` sequences are understood. This is
not a YAML parser; anything else inside the block is dropped on rewrite.
"""

import re
from typing import Any

_BLOCK_RE = re.compile(r"\A---\n(?:(.*?)\n)?---[ \t]*(?:\n|\Z)", re.DOTALL)
_KEY_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_-]*):\s*(.*)$")
_ITEM_RE = re.compile(r"^\s*-\s+(.*)$")
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")


def _coerce(value: str) -> Any:
    if value == "true":
        return True
    if value == "false":
        return False
    if _NUMBER_RE.match(value):
        return float(value) if "." in value else int(value)
    return value


def split_frontmatter(content: str) -> tuple[str | None, str]:
    """
    Split note content into its frontmatter block and body.

    Args:
        content: Full note content

    Returns:
        (block, body) - block is the text between the ``---`` fences, or None
    """
    normalized = content.replace("\r\n", "\n")
    match = _BLOCK_RE.match(normalized)
    if not match:
        return None, normalized
    return match.group(1) or "", normalized[match.end() :]


def strip_frontmatter(content: str) -> str:
    return split_frontmatter(content)[1]


def parse_frontmatter(content: str) -> dict[str, Any]:
    """
    Parse frontmatter properties from note content.

    A key with an empty value followed by ``- item`` lines becomes a list.
    A key with an empty value and no items becomes an empty list.

    Args:
        content: Full note content including frontmatter

    Returns:
        Ordered mapping of property name to value
    """
    block, _ = split_frontmatter(content)
    if block is None:
        return {}

    props: dict[str, Any] = {}
    list_key: str | None = None
    for line in block.split("\n"):
        item = _ITEM_RE.match(line)
        if item and list_key is not None:
            props[list_key].append(item.group(1).strip())
            continue

        list_key = None
        kv = _KEY_RE.match(line)
        if not kv:
            continue
        key, value = kv.group(1), kv.group(2).strip()
        if value == "":
            props[key] = []
            list_key = key
        else:
            props[key] = _coerce(value)
    return props


def format_value(value: Any) -> str:
    """Render a scalar or list value on one line."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ", ".join(format_value(v) for v in value)
    if value is None:
        return ""
    return str(value)


def write_frontmatter(props: dict[str, Any]) -> str:
    """
    Write properties as a frontmatter block.

    Args:
        props: Properties to serialize

    Returns:
        Block text with ``---`` delimiters, no trailing newline
    """
    lines = ["---"]
    for key, value in props.items():
        if isinstance(value, (list, tuple)):
            lines.append(f"{key}:")
            lines.extend(f"  - {format_value(v)}" for v in value)
        else:
            lines.append(f"{key}: {format_value(value)}")
    lines.append("---")
    return "\n".join(lines)


def render_properties(props: dict[str, Any], fmt: str | None = None) -> str:
    """Properties as ``key: value`` lines, or a frontmatter block for ``yaml``."""
    if fmt == "yaml":
        return write_frontmatter(props)
    return "\n".join(f"{k}: {format_value(v)}" for k, v in props.items())


def update_frontmatter(
    content: str,
    updates: dict[str, Any] | None = None,
    remove: tuple[str, ...] = (),
) -> str:
    """
    Update frontmatter fields in note content.

    The block stays at the top of the note; the body is kept verbatim.

    Args:
        content: Full note content including frontmatter
        updates: Fields to set
        remove: Fields to delete

    Returns:
        Updated note content
    """
    props = parse_frontmatter(content)
    body = strip_frontmatter(content)
    props.update(updates or {})
    for key in remove:
        props.pop(key, None)
    if not props:
        return body
    return write_frontmatter(props) + "\n" + body
