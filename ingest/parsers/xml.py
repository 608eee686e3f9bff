from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from xml.parsers import expat

from loguru import logger

from ingest.errors import ParseError


_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_FEED_OPEN_RE = re.compile(r"<((?:[\w.-]+:)?feed)\b[^>]*>")
_ENTRY_CLOSE_RE = re.compile(r"</(?:[\w.-]+:)?entry\s*>")


@dataclass(frozen=True)
class XmlNode:
    """Element tree with namespace prefixes kept as written.

    ``name`` is ``"cap:event"`` for a prefixed element and ``"event"`` for an
    element in the default namespace, so callers can tell both spellings apart.
    """

    name: str
    attrs: dict[str, str] = field(default_factory=dict)
    text: str = ""
    children: tuple[XmlNode, ...] = ()

    @property
    def local_name(self) -> str:
        return self.name.rpartition(":")[2]

    def find(self, *names: str) -> XmlNode | None:
        for name in names:
            for child in self.children:
                if child.name == name:
                    return child
        return None

    def find_all(self, *names: str) -> list[XmlNode]:
        return [child for child in self.children if child.name in names]

    def find_local(self, local_name: str) -> list[XmlNode]:
        return [child for child in self.children if child.local_name == local_name]

    def iter(self) -> Iterator[XmlNode]:
        yield self
        for child in self.children:
            yield from child.iter()


def _is_ns_declaration(name: str) -> bool:
    return name == "xmlns" or name.startswith("xmlns:")


def parse_xml_tree(data: bytes | str) -> XmlNode:
    # namespace processing stays off so names arrive exactly as written
    parser = expat.ParserCreate()
    parser.buffer_text = True
    stack: list[tuple[str, dict[str, str], list[str], list[XmlNode]]] = []
    root: XmlNode | None = None

    def start(name: str, attrs: dict[str, str]) -> None:
        kept = {k: v for k, v in attrs.items() if not _is_ns_declaration(k)}
        stack.append((name, kept, [], []))

    def end(name: str) -> None:
        nonlocal root
        tag, attrs, text, children = stack.pop()
        node = XmlNode(
            name=tag,
            attrs=attrs,
            text="".join(text).strip(),
            children=tuple(children),
        )
        if stack:
            stack[-1][3].append(node)
        else:
            root = node

    def chars(chunk: str) -> None:
        # only text ahead of the first child element counts
        if stack and not stack[-1][3]:
            stack[-1][2].append(chunk)

    parser.StartElementHandler = start
    parser.EndElementHandler = end
    parser.CharacterDataHandler = chars
    try:
        parser.Parse(data, True)
    except expat.ExpatError as e:
        raise ParseError(str(e)) from e

    if root is None:
        raise ParseError("document has no root element")
    return root


def sanitize_xml(text: str) -> str:
    text = _CONTROL_CHARS_RE.sub("", text)

    last_open = text.rfind("<")
    if last_open > text.rfind(">"):
        text = text[:last_open]

    feed = _FEED_OPEN_RE.search(text)
    if feed is not None:
        close_tag = f"</{feed.group(1)}>"
        if close_tag not in text:
            closes = list(_ENTRY_CLOSE_RE.finditer(text, feed.end()))
            cut = closes[-1].end() if closes else feed.end()
            text = text[:cut] + close_tag
    return text


def _as_text(data: bytes | str) -> str:
    if isinstance(data, str):
        return data
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def parse_xml(data: bytes | str) -> tuple[XmlNode, bool]:
    """Strict parse, then one parse of the sanitized text.

    Returns the root node and whether sanitizing was needed.
    """
    try:
        return parse_xml_tree(data), False
    except ParseError as first:
        first_error = first

    sanitized = sanitize_xml(_as_text(data))
    try:
        root = parse_xml_tree(sanitized)
    except ParseError as second:
        raise ParseError(
            f"raw parse failed ({first_error}); sanitized parse failed ({second})"
        ) from second

    logger.warning("recovered malformed XML after sanitizing: {}", first_error)
    return root, True
