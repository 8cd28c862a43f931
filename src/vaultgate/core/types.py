"""Shared types and data structures for vaultgate."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum, StrEnum

ArgValue = str | int | float | bool | None
"""A single argument value. ``True`` is a bare flag; ``False``/``None`` are dropped."""

ArgBag = Mapping[str, ArgValue]


class Command(StrEnum):
    """Logical commands understood by every backend.

    Values are the native command names of the external tool.
    """

    READ = "read"
    FILE = "file"
    FILES = "files"
    SEARCH = "search"
    BACKLINKS = "backlinks"
    LINKS = "links"
    TAGS = "tags"
    OUTLINE = "outline"
    PROPERTIES = "properties"
    ALIASES = "aliases"
    ORPHANS = "orphans"
    DEADENDS = "deadends"
    UNRESOLVED = "unresolved"
    RECENTS = "recents"
    TASKS = "tasks"
    CREATE = "create"
    APPEND = "append"
    PREPEND = "prepend"
    PROPERTY_SET = "property:set"
    PROPERTY_REMOVE = "property:remove"
    MOVE = "move"
    DELETE = "delete"
    DAILY_APPEND = "daily:append"
    BOOKMARK = "bookmark"
    VAULT = "vault"
    VERSION = "version"

    @property
    def handler_name(self) -> str:
        """Method name a command-table backend implements for this command."""
        return self.name.lower()

    @classmethod
    def parse(cls, name: str | Command) -> Command:
        """Look up a command by native name or underscore spelling.

        Raises:
            ValueError: If the name is not a known command.
        """
        if isinstance(name, Command):
            return name
        key = name.strip().lower()
        for command in cls:
            if key in (command.value, command.handler_name):
                return command
        raise ValueError(f"Unknown command: {name}")


class Transport(StrEnum):
    """Concrete access mechanisms, in resolution priority order."""

    PROCESS = "process"
    HTTP = "http"
    FILESYSTEM = "filesystem"


TRANSPORT_PRIORITY: tuple[Transport, ...] = (
    Transport.PROCESS,
    Transport.HTTP,
    Transport.FILESYSTEM,
)


class TransportMode(Enum):
    """How the router picks a backend."""

    AUTO = "auto"
    PROCESS = "process"
    HTTP = "http"
    FILESYSTEM = "filesystem"

    @property
    def transport(self) -> Transport | None:
        """The fixed transport for an explicit override, None for auto."""
        if self is TransportMode.AUTO:
            return None
        return Transport(self.value)

    @classmethod
    def parse(cls, value: str | TransportMode) -> TransportMode:
        """Parse a mode name, accepting the short aliases cli/external/rest/fs."""
        if isinstance(value, TransportMode):
            return value
        key = value.strip().lower()
        aliases = {
            "": cls.AUTO,
            "cli": cls.PROCESS,
            "external": cls.PROCESS,
            "external-process": cls.PROCESS,
            "rest": cls.HTTP,
            "fs": cls.FILESYSTEM,
        }
        if key in aliases:
            return aliases[key]
        return cls(key)


# Arguments each command needs before any I/O happens.
REQUIRED_ARGS: dict[Command, tuple[str, ...]] = {
    Command.READ: ("file",),
    Command.FILE: ("file",),
    Command.SEARCH: ("query",),
    Command.BACKLINKS: ("file",),
    Command.LINKS: ("file",),
    Command.OUTLINE: ("file",),
    Command.PROPERTIES: ("file",),
    Command.ALIASES: ("file",),
    Command.CREATE: ("name",),
    Command.APPEND: ("file",),
    Command.PREPEND: ("file",),
    Command.PROPERTY_SET: ("file", "name"),
    Command.PROPERTY_REMOVE: ("file", "name"),
    Command.MOVE: ("file", "to"),
    Command.DELETE: ("file",),
    Command.DAILY_APPEND: ("content",),
    Command.BOOKMARK: ("file",),
}

# Alternate spellings folded onto the canonical key, per command.
ARG_ALIASES: dict[Command, dict[str, str]] = {
    Command.READ: {"path": "file"},
    Command.FILE: {"path": "file"},
    Command.CREATE: {"file": "name"},
}

# Values written into a frontmatter line; a line break would inject new keys.
SINGLE_LINE_ARGS: dict[Command, tuple[str, ...]] = {
    Command.PROPERTY_SET: ("name", "value"),
    Command.PROPERTY_REMOVE: ("name",),
}

RECENTS_LIMIT = 10
DEFAULT_SEARCH_LIMIT = 10

__all__ = [
    "ARG_ALIASES",
    "ArgBag",
    "ArgValue",
    "Command",
    "DEFAULT_SEARCH_LIMIT",
    "RECENTS_LIMIT",
    "REQUIRED_ARGS",
    "SINGLE_LINE_ARGS",
    "TRANSPORT_PRIORITY",
    "Transport",
    "TransportMode",
]
