from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class MsgType(str, Enum):
    ALERT = "Alert"
    UPDATE = "Update"
    CANCEL = "Cancel"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: str | None) -> MsgType:
        if not value:
            return cls.UNKNOWN
        for member in cls:
            if member.value.casefold() == value.strip().casefold():
                return member
        return cls.UNKNOWN


class MatchTier(str, Enum):
    EXACT = "exact"
    PARENT = "parent"
    NAME = "name"


TIER_ORDER: tuple[MatchTier, ...] = (MatchTier.EXACT, MatchTier.PARENT, MatchTier.NAME)


@dataclass(frozen=True)
class Area:
    area_desc: str
    cell_ids: tuple[str, ...] = ()
    geocodes: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class InfoBlock:
    language: str = ""
    category: str = ""
    event: str = ""
    urgency: str = ""
    severity: str = ""
    severity_level: int = 0
    certainty: str = ""
    headline: str = ""
    description: str = ""
    instruction: str = ""
    effective: datetime | None = None
    onset: datetime | None = None
    expires: datetime | None = None
    sender_name: str = ""
    web: str = ""
    areas: tuple[Area, ...] = ()
    event_codes: tuple[tuple[str, str], ...] = ()
    parameters: tuple[tuple[str, str, str], ...] = ()
    past: bool = False


@dataclass(frozen=True)
class WeatherWarning:
    identifier: str | None
    sender: str
    sent_at: datetime | None
    status: str
    msg_type: MsgType
    scope: str
    source: str
    infos: tuple[InfoBlock, ...]
    references: str = ""


@dataclass(frozen=True)
class PipelineResult:
    warnings: tuple[WeatherWarning, ...]
    count: int
    events: str
    computed_at: datetime
    sources: tuple[str, ...] = ()
    max_severity_level: int = 0
    tier: MatchTier | None = None
    tier_counts: dict[str, int] = field(default_factory=dict)
    stale: bool = False
    error: str | None = None
    filter_config: dict = field(default_factory=dict)
    delivered_at: datetime | None = None
    from_timer: bool = False
    index_fallback: bool = False


def _iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat().replace("+00:00", "Z")


def _from_iso(ts: str | None) -> datetime | None:
    if not ts:
        return None
    return datetime.fromisoformat(ts)


def area_to_dict(area: Area) -> dict:
    return {
        "area_desc": area.area_desc,
        "cell_ids": list(area.cell_ids),
        "geocodes": [list(g) for g in area.geocodes],
    }


def info_to_dict(info: InfoBlock) -> dict:
    return {
        "language": info.language,
        "category": info.category,
        "event": info.event,
        "urgency": info.urgency,
        "severity": info.severity,
        "severity_level": info.severity_level,
        "certainty": info.certainty,
        "headline": info.headline,
        "description": info.description,
        "instruction": info.instruction,
        "effective": _iso(info.effective),
        "onset": _iso(info.onset),
        "expires": _iso(info.expires),
        "sender_name": info.sender_name,
        "web": info.web,
        "areas": [area_to_dict(a) for a in info.areas],
        "event_codes": [list(c) for c in info.event_codes],
        "parameters": [list(p) for p in info.parameters],
        "past": info.past,
    }


def warning_to_dict(warning: WeatherWarning) -> dict:
    return {
        "identifier": warning.identifier,
        "sender": warning.sender,
        "sent_at": _iso(warning.sent_at),
        "status": warning.status,
        "msg_type": warning.msg_type.value,
        "scope": warning.scope,
        "source": warning.source,
        "references": warning.references,
        "infos": [info_to_dict(i) for i in warning.infos],
    }


def warning_from_dict(data: dict) -> WeatherWarning:
    infos: list[InfoBlock] = []
    for raw in data.get("infos") or []:
        infos.append(
            InfoBlock(
                language=str(raw.get("language") or ""),
                category=str(raw.get("category") or ""),
                event=str(raw.get("event") or ""),
                urgency=str(raw.get("urgency") or ""),
                severity=str(raw.get("severity") or ""),
                severity_level=int(raw.get("severity_level") or 0),
                certainty=str(raw.get("certainty") or ""),
                headline=str(raw.get("headline") or ""),
                description=str(raw.get("description") or ""),
                instruction=str(raw.get("instruction") or ""),
                effective=_from_iso(raw.get("effective")),
                onset=_from_iso(raw.get("onset")),
                expires=_from_iso(raw.get("expires")),
                sender_name=str(raw.get("sender_name") or ""),
                web=str(raw.get("web") or ""),
                areas=tuple(
                    Area(
                        area_desc=str(a.get("area_desc") or ""),
                        cell_ids=tuple(str(c) for c in a.get("cell_ids") or []),
                        geocodes=tuple(
                            (str(g[0]), str(g[1])) for g in a.get("geocodes") or []
                        ),
                    )
                    for a in raw.get("areas") or []
                ),
                event_codes=tuple(
                    (str(c[0]), str(c[1])) for c in raw.get("event_codes") or []
                ),
                parameters=tuple(
                    (str(p[0]), str(p[1]), str(p[2])) for p in raw.get("parameters") or []
                ),
                past=bool(raw.get("past", False)),
            )
        )
    return WeatherWarning(
        identifier=data.get("identifier"),
        sender=str(data.get("sender") or ""),
        sent_at=_from_iso(data.get("sent_at")),
        status=str(data.get("status") or ""),
        msg_type=MsgType.parse(data.get("msg_type")),
        scope=str(data.get("scope") or ""),
        source=str(data.get("source") or ""),
        references=str(data.get("references") or ""),
        infos=tuple(infos),
    )


def result_to_dict(result: PipelineResult) -> dict:
    meta = {
        "sources": list(result.sources),
        "computed_at": _iso(result.computed_at),
        "stale": result.stale,
        "error": result.error,
        "tier": result.tier.value if result.tier is not None else None,
        "tier_counts": dict(result.tier_counts),
        "max_severity_level": result.max_severity_level,
        "filter": dict(result.filter_config),
        "from_timer": result.from_timer,
        "index_fallback": result.index_fallback,
    }
    if result.delivered_at is not None:
        meta["delivered_at"] = _iso(result.delivered_at)
    return {
        "payload": result.count,
        "count": result.count,
        "events": result.events,
        "warnings": [warning_to_dict(w) for w in result.warnings],
        "_meta": meta,
    }


def result_from_dict(data: dict) -> PipelineResult:
    meta = data.get("_meta") or {}
    computed_at = _from_iso(meta.get("computed_at"))
    if computed_at is None:
        raise ValueError("result without computed_at")
    tier = meta.get("tier")
    return PipelineResult(
        warnings=tuple(warning_from_dict(w) for w in data.get("warnings") or []),
        count=int(data.get("count") or 0),
        events=str(data.get("events") or ""),
        computed_at=computed_at,
        sources=tuple(str(s) for s in meta.get("sources") or []),
        max_severity_level=int(meta.get("max_severity_level") or 0),
        tier=MatchTier(tier) if tier else None,
        tier_counts={str(k): int(v) for k, v in (meta.get("tier_counts") or {}).items()},
        stale=bool(meta.get("stale", False)),
        error=meta.get("error"),
        filter_config=dict(meta.get("filter") or {}),
        delivered_at=_from_iso(meta.get("delivered_at")),
        from_timer=bool(meta.get("from_timer", False)),
        index_fallback=bool(meta.get("index_fallback", False)),
    )
