from __future__ import annotations

from dataclasses import dataclass

from ingest.parsers.atom import FeedEntry, collect_entries
from ingest.parsers.xml import XmlNode, parse_xml


@dataclass(frozen=True)
class ParsedDocument:
    root: XmlNode
    kind: str
    entries: tuple[FeedEntry, ...]
    recovered: bool = False

    @property
    def link_entries(self) -> tuple[FeedEntry, ...]:
        return tuple(e for e in self.entries if e.link is not None)


def parse_document(data: bytes | str) -> ParsedDocument:
    root, recovered = parse_xml(data)
    if root.local_name in ("alert", "feed"):
        kind = root.local_name
    else:
        kind = "unknown"
    return ParsedDocument(
        root=root,
        kind=kind,
        entries=collect_entries(root),
        recovered=recovered,
    )
