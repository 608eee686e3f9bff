from __future__ import annotations

import re
from datetime import UTC, datetime

from ingest.errors import NormalizationError
from ingest.parsers.atom import INLINE_CAP_FIELDS
from ingest.parsers.xml import XmlNode
from normalize.models import Area, InfoBlock, MsgType, WeatherWarning


SEVERITY_LEVELS: dict[str, int] = {
    "unknown": 1,
    "minor": 2,
    "moderate": 3,
    "severe": 4,
    "extreme": 5,
}

WARNCELL_VALUE_NAME = "warncellid"

_CELL_SPLIT_RE = re.compile(r"[\s,]+")
_TRUE_VALUES = {"true", "1", "yes"}


def first_text(node: XmlNode, *candidates: str) -> str | None:
    """Return the first present, non-empty value among ``candidates``.

    Child element text is checked before an attribute of the same name, and
    candidates are tried in the order given.
    """
    for name in candidates:
        for child in node.children:
            if child.name == name and child.text:
                return child.text
        value = node.attrs.get(name)
        if value:
            return value.strip()
    return None


def _field(node: XmlNode, name: str) -> str | None:
    value = first_text(node, name, f"cap:{name}")
    if value is not None:
        return value
    for child in node.children:
        if child.local_name == name and child.text:
            return child.text
    return None


def _many(node: XmlNode, name: str) -> list[XmlNode]:
    return node.find_local(name)


def severity_level(severity: str | None) -> int:
    if not severity:
        return 0
    return SEVERITY_LEVELS.get(severity.strip().casefold(), 0)


def _parse_ts(value: str | None, field_name: str) -> datetime | None:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.strip())
    except ValueError as e:
        raise NormalizationError(f"invalid {field_name} timestamp {value!r}") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(tz=UTC)


def _pairs(node: XmlNode, name: str) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for item in _many(node, name):
        value_name = _field(item, "valueName") or ""
        value = _field(item, "value") or ""
        if value_name or value:
            pairs.append((value_name, value))
    return pairs


def _split_cells(value: str) -> list[str]:
    return [part for part in _CELL_SPLIT_RE.split(value.strip()) if part]


def _normalize_area(area: XmlNode) -> Area:
    geocodes = _pairs(area, "geocode")
    cell_ids: list[str] = []
    for value_name, value in geocodes:
        if value_name.strip().casefold() != WARNCELL_VALUE_NAME:
            continue
        for cell in _split_cells(value):
            if cell not in cell_ids:
                cell_ids.append(cell)
    return Area(
        area_desc=_field(area, "areaDesc") or "",
        cell_ids=tuple(cell_ids),
        geocodes=tuple(geocodes),
    )


def _is_past(info: XmlNode) -> bool:
    flag = _field(info, "past")
    if flag is not None and flag.strip().casefold() in _TRUE_VALUES:
        return True
    for value_name, value in _pairs(info, "parameter"):
        if value_name.strip().casefold() == "past":
            return value.strip().casefold() in _TRUE_VALUES
    return False


def _normalize_info(info: XmlNode, alert: XmlNode) -> InfoBlock:
    area_nodes = _many(info, "area")
    if area_nodes:
        areas = tuple(_normalize_area(a) for a in area_nodes)
    elif _field(info, "areaDesc") or _many(info, "geocode"):
        areas = (_normalize_area(info),)
    else:
        areas = ()

    parameters: list[tuple[str, str, str]] = []
    for param in _many(info, "parameter"):
        value_name = _field(param, "valueName") or ""
        value = _field(param, "value") or ""
        if value_name or value:
            parameters.append((value_name, value, _field(param, "unit") or ""))

    severity = _field(info, "severity") or ""
    return InfoBlock(
        language=_field(info, "language") or "",
        category=_field(info, "category") or "",
        event=_field(info, "event") or "",
        urgency=_field(info, "urgency") or "",
        severity=severity,
        severity_level=severity_level(severity),
        certainty=_field(info, "certainty") or "",
        headline=_field(info, "headline") or _field(alert, "title") or "",
        description=_field(info, "description") or "",
        instruction=_field(info, "instruction") or "",
        effective=_parse_ts(_field(info, "effective"), "effective"),
        onset=_parse_ts(_field(info, "onset"), "onset"),
        expires=_parse_ts(_field(info, "expires"), "expires"),
        sender_name=_field(info, "senderName") or "",
        web=_field(info, "web") or "",
        areas=areas,
        event_codes=tuple(_pairs(info, "eventCode")),
        parameters=tuple(parameters),
        past=_is_past(info),
    )


def _locate_alert(node: XmlNode) -> XmlNode | None:
    if node.local_name == "alert":
        return node
    for child in node.iter():
        if child.local_name == "alert":
            return child
    if any(child.local_name in INLINE_CAP_FIELDS for child in node.children):
        return node
    return None


def normalize_alert(node: XmlNode, source: str) -> WeatherWarning | None:
    alert = _locate_alert(node)
    if alert is None:
        return None

    info_nodes = _many(alert, "info") or [alert]
    return WeatherWarning(
        identifier=_field(alert, "identifier") or _field(alert, "id"),
        sender=_field(alert, "sender") or "",
        sent_at=_parse_ts(
            _field(alert, "sent") or _field(alert, "updated") or _field(alert, "published"),
            "sent",
        ),
        status=_field(alert, "status") or "",
        msg_type=MsgType.parse(_field(alert, "msgType")),
        scope=_field(alert, "scope") or "",
        source=source,
        references=_field(alert, "references") or "",
        infos=tuple(_normalize_info(info, alert) for info in info_nodes),
    )
