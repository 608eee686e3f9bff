from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from ingest.parsers.xml import XmlNode


# direct children that mark an Atom entry as carrying CAP content itself
INLINE_CAP_FIELDS = frozenset(
    {"event", "headline", "area", "areaDesc", "geocode", "severity", "info"}
)
_CAP_LINK_SUFFIXES = (".xml", ".cap")


@dataclass(frozen=True)
class FeedEntry:
    position: int
    entry_id: str | None
    alert: XmlNode | None = None
    link: str | None = None


def _first_descendant(node: XmlNode, local_name: str) -> XmlNode | None:
    for child in node.iter():
        if child is not node and child.local_name == local_name:
            return child
    return None


def _entry_link(entry: XmlNode) -> str | None:
    fallback = None
    for link in entry.find_local("link"):
        href = link.attrs.get("href") or link.text
        if not href:
            continue
        link_type = (link.attrs.get("type") or "").lower()
        if "cap" in link_type or href.lower().endswith(_CAP_LINK_SUFFIXES):
            return href
        if fallback is None and link.attrs.get("rel") in (None, "", "alternate"):
            fallback = href
    return fallback


def _entry_text(entry: XmlNode, local_name: str) -> str | None:
    for child in entry.find_local(local_name):
        if child.text:
            return child.text
    return None


def collect_entries(root: XmlNode) -> tuple[FeedEntry, ...]:
    if root.local_name == "alert":
        return (FeedEntry(position=0, entry_id=_entry_text(root, "identifier"), alert=root),)

    if root.local_name != "feed":
        alerts = [n for n in root.iter() if n.local_name == "alert"]
        return tuple(
            FeedEntry(position=i, entry_id=_entry_text(a, "identifier"), alert=a)
            for i, a in enumerate(alerts)
        )

    entries: list[FeedEntry] = []
    for position, entry in enumerate(root.find_local("entry")):
        entry_id = _entry_text(entry, "id")
        alert = _first_descendant(entry, "alert")
        if alert is not None:
            entries.append(FeedEntry(position=position, entry_id=entry_id, alert=alert))
            continue
        if any(child.local_name in INLINE_CAP_FIELDS for child in entry.children):
            entries.append(FeedEntry(position=position, entry_id=entry_id, alert=entry))
            continue
        link = _entry_link(entry)
        if link is not None:
            entries.append(FeedEntry(position=position, entry_id=entry_id, link=link))
            continue
        logger.debug("feed entry {} carries neither CAP content nor a link", entry_id)
    return tuple(entries)
