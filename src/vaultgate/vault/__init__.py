"""Note text handling shared by the client-side backends.

Wikilink, tag, heading and task extraction, the frontmatter codec, and the
link graph used for orphan, dead-end and unresolved-link analysis.
"""

from vaultgate.vault.frontmatter import parse_frontmatter, update_frontmatter
from vaultgate.vault.graph import HUB_THRESHOLD, LinkGraph, graph_position
from vaultgate.vault.markdown import extract_tags, extract_wikilinks

__all__ = [
    "HUB_THRESHOLD",
    "LinkGraph",
    "extract_tags",
    "extract_wikilinks",
    "graph_position",
    "parse_frontmatter",
    "update_frontmatter",
]
