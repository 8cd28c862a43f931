"""Link graph over a set of notes.

Backends that compute graph analyses client-side (HTTP over a sample,
filesystem over the whole vault) share these definitions:

- a link target matches a note when it equals the note's vault-relative path
  or its bare filename, both without the ``.md`` extension
- an orphan is targeted by no link from any other note
- a dead end has no outgoing links
- an unresolved link matches no visible file
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from vaultgate.vault.markdown import iter_wikilinks

HUB_THRESHOLD = 10


def strip_md(path: str) -> str:
    return path[:-3] if path.lower().endswith(".md") else path


def graph_position(inbound: int, outbound: int, threshold: int = HUB_THRESHOLD) -> str:
    """
    Label a note's place in the graph.

    Returns:
        "isolated", "hub", "orphan", "dead-end" or "connected"
    """
    if inbound == 0 and outbound == 0:
        return "isolated"
    if inbound > threshold:
        return "hub"
    if inbound == 0:
        return "orphan"
    if outbound == 0:
        return "dead-end"
    return "connected"


@dataclass
class LinkGraph:
    """Outgoing links per note plus the set of files links may resolve to.

    Note keys are vault-relative paths without ``.md``.
    """

    links: dict[str, list[str]]
    visible_files: list[str] = field(default_factory=list)
    case_sensitive: bool = False

    def __post_init__(self) -> None:
        self._by_path: dict[str, list[str]] = {}
        self._by_name: dict[str, list[str]] = {}
        for note in self.links:
            self._by_path.setdefault(self.key(note), []).append(note)
            name = PurePosixPath(note).name
            self._by_name.setdefault(self.key(name), []).append(note)

        self._resolvable: set[str] = set()
        for path in [*self.visible_files, *self.links]:
            for candidate in (path, strip_md(path)):
                self._resolvable.add(self.key(candidate))
                self._resolvable.add(self.key(PurePosixPath(candidate).name))

    @classmethod
    def from_contents(
        cls,
        contents: Mapping[str, str],
        visible_files: Iterable[str] = (),
        case_sensitive: bool = False,
    ) -> LinkGraph:
        """
        Build a graph from note bodies.

        Args:
            contents: Note path (with or without ``.md``) to full note text
            visible_files: Every file path the backend can see, any extension
            case_sensitive: Compare link targets case-sensitively
        """
        links = {
            strip_md(path): list(iter_wikilinks(text)) for path, text in contents.items()
        }
        return cls(links, list(visible_files), case_sensitive)

    def key(self, value: str) -> str:
        value = value.strip()
        return value if self.case_sensitive else value.casefold()

    def targets(self, link: str) -> list[str]:
        """Notes in the graph a link target points at."""
        target = strip_md(link)
        by_path = self._by_path.get(self.key(target))
        if by_path:
            return by_path
        return self._by_name.get(self.key(target), [])

    def inbound(self) -> Counter[str]:
        """Link count into each note, self-links excluded."""
        counts: Counter[str] = Counter({note: 0 for note in self.links})
        for source, targets in self.links.items():
            for link in targets:
                for note in self.targets(link):
                    if note != source:
                        counts[note] += 1
        return counts

    def backlinks(self, file: str) -> list[tuple[str, int]]:
        """
        Notes linking to file, with the number of links each holds.

        Args:
            file: Target note path or bare name, ``.md`` optional
        """
        wanted = set(self.targets(file)) or {strip_md(file)}
        result = []
        for source, targets in self.links.items():
            if source in wanted:
                continue
            count = sum(1 for link in targets if wanted & set(self.targets(link)))
            if count:
                result.append((source, count))
        return result

    def orphans(self) -> list[str]:
        inbound = self.inbound()
        return [note for note in self.links if inbound[note] == 0]

    def deadends(self) -> list[str]:
        return [note for note, targets in self.links.items() if not targets]

    def is_resolved(self, link: str) -> bool:
        return self.key(strip_md(link)) in self._resolvable or (
            self.key(link) in self._resolvable
        )

    def unresolved(self) -> Counter[str]:
        """Unresolved targets with occurrence counts, in first-seen order."""
        counts: Counter[str] = Counter()
        for targets in self.links.values():
            for link in targets:
                if not self.is_resolved(link):
                    counts[link] += 1
        return counts

    def position(self, note: str) -> str:
        note = strip_md(note)
        return graph_position(self.inbound()[note], len(self.links.get(note, [])))


def render_counts(counts: Counter[str] | list[tuple[str, int]], with_counts: bool) -> str:
    """Names one per line, optionally ``name<TAB>count``, busiest first."""
    items = list(counts.items()) if isinstance(counts, Counter) else list(counts)
    items.sort(key=lambda item: item[1], reverse=True)
    if with_counts:
        return "\n".join(f"{name}\t{count}" for name, count in items)
    return "\n".join(name for name, _ in items)
