"""Argument codec: turns a command's argument bag into each backend's form.

The same bag becomes argv tokens for the external process, typed lookups for
the HTTP and filesystem backends, and a short description used to prefix
error messages.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from vaultgate.core.errors import InvalidInput
from vaultgate.core.types import ARG_ALIASES, REQUIRED_ARGS, SINGLE_LINE_ARGS, ArgBag, Command


def _stringify(value: str | int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class CommandArgs:
    """Parsed, validated arguments for one logical command.

    ``pairs`` keeps insertion order; a value of None marks a bare flag.
    """

    command: Command
    pairs: tuple[tuple[str, str | None], ...] = ()

    def __contains__(self, key: object) -> bool:
        return any(k == key for k, _ in self.pairs)

    def __iter__(self) -> Iterator[tuple[str, str | None]]:
        return iter(self.pairs)

    def get(self, key: str, default: str | None = None) -> str | None:
        """Value for key; flags read as "true"."""
        for k, v in self.pairs:
            if k == key:
                return "true" if v is None else v
        return default

    def require(self, key: str) -> str:
        value = self.get(key)
        if not value:
            raise InvalidInput(f"{key} is required", context=self.describe())
        return value

    def flag(self, key: str) -> bool:
        """True when key was passed as a flag or with the value "true"."""
        return self.get(key, "").lower() == "true"

    def int_value(self, key: str, default: int) -> int:
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError as e:
            raise InvalidInput(
                f"{key} must be an integer, got {value!r}", context=self.describe()
            ) from e

    def argv(self) -> list[str]:
        """Positional tokens for the external process (``key=value`` or ``key``)."""
        return [k if v is None else f"{k}={v}" for k, v in self.pairs]

    def as_dict(self) -> dict[str, str]:
        return {k: "true" if v is None else v for k, v in self.pairs}

    def describe(self) -> str:
        """Short human-readable form used as error context.

        Long values (note content) are shortened.
        """
        tokens = []
        for token in self.argv():
            tokens.append(token if len(token) <= 60 else token[:57] + "...")
        return " ".join([self.command.value, *tokens])


def encode_args(command: Command | str, args: ArgBag | None = None) -> CommandArgs:
    """Normalize and validate an argument bag.

    Args:
        command: Logical command (enum or name)
        args: Mapping of keys to str/int/float/bool/None

    Returns:
        CommandArgs with aliases folded and empty values dropped

    Raises:
        InvalidInput: If the command is unknown, a required argument is missing,
            or a frontmatter value spans several lines
    """
    try:
        cmd = Command.parse(command)
    except ValueError as e:
        raise InvalidInput(str(e)) from e

    aliases = ARG_ALIASES.get(cmd, {})
    pairs: list[tuple[str, str | None]] = []
    seen: set[str] = set()
    for raw_key, value in (args or {}).items():
        if value is None or value is False:
            continue
        key = aliases.get(raw_key, raw_key)
        if key in seen:
            continue
        seen.add(key)
        if value is True:
            pairs.append((key, None))
        else:
            pairs.append((key, _stringify(value)))

    parsed = CommandArgs(cmd, tuple(pairs))
    for key in REQUIRED_ARGS.get(cmd, ()):
        if not parsed.get(key):
            raise InvalidInput(f"{key} is required", context=parsed.describe())
    for key in SINGLE_LINE_ARGS.get(cmd, ()):
        value = parsed.get(key)
        if value and ("\n" in value or "\r" in value):
            raise InvalidInput(f"{key} must be a single line", context=parsed.describe())
    return parsed


def decode_tokens(tokens: Iterable[str]) -> dict[str, str | bool]:
    """Parse ``key=value`` / bare ``key`` tokens back into an argument bag."""
    bag: dict[str, str | bool] = {}
    for token in tokens:
        key, sep, value = token.partition("=")
        if not key:
            raise InvalidInput(f"Malformed argument: {token!r}")
        bag[key] = value if sep else True
    return bag
