from __future__ import annotations

import re
from dataclasses import dataclass

from ingest.errors import ConfigurationError
from normalize.models import TIER_ORDER, MatchTier, WeatherWarning


_CELL_ID_RE = re.compile(r"^\d{9}$")
_MUNICIPALITY_PREFIX = "8"
_DISTRICT_PREFIX = "1"


@dataclass(frozen=True)
class RegionFilter:
    cell_id: str | None
    parent_cell_id: str | None = None
    name_fallback: bool = False
    name_tokens: tuple[str, ...] = ()

    def describe(self) -> dict:
        return {
            "region_id": self.cell_id,
            "parent_region_id": self.parent_cell_id,
            "allow_name_fallback": self.name_fallback,
            "extra_area_names": list(self.name_tokens),
        }


def derive_parent_cell_id(cell_id: str) -> str | None:
    """Map a municipality cell (8xxxxxxxx) onto its district cell (1xxxxx000)."""
    if not _CELL_ID_RE.match(cell_id) or not cell_id.startswith(_MUNICIPALITY_PREFIX):
        return None
    return f"{_DISTRICT_PREFIX}{cell_id[1:6]}000"


def build_region_filter(
    cell_id: str | None,
    *,
    derive_parent: bool = False,
    name_fallback: bool = False,
    area_names: list[str] | tuple[str, ...] = (),
) -> RegionFilter:
    cell_id = (cell_id or "").strip() or None
    tokens: list[str] = []
    for name in area_names:
        token = name.strip().casefold()
        if token and token not in tokens:
            tokens.append(token)

    if cell_id is not None and not _CELL_ID_RE.match(cell_id):
        raise ConfigurationError(f"region id must be a 9-digit warn cell id, got {cell_id!r}")
    if cell_id is None and not (name_fallback and tokens):
        raise ConfigurationError("a region id or name fallback tokens are required")

    parent = derive_parent_cell_id(cell_id) if (cell_id and derive_parent) else None
    return RegionFilter(
        cell_id=cell_id,
        parent_cell_id=parent,
        name_fallback=name_fallback,
        name_tokens=tuple(tokens),
    )


def match_tier(warning: WeatherWarning, region: RegionFilter) -> MatchTier | None:
    hits: set[MatchTier] = set()
    for info in warning.infos:
        for area in info.areas:
            if region.cell_id and region.cell_id in area.cell_ids:
                return MatchTier.EXACT
            if region.parent_cell_id and region.parent_cell_id in area.cell_ids:
                hits.add(MatchTier.PARENT)
            if region.name_fallback and region.name_tokens:
                desc = area.area_desc.casefold()
                if any(token in desc for token in region.name_tokens):
                    hits.add(MatchTier.NAME)
    for tier in TIER_ORDER:
        if tier in hits:
            return tier
    return None


def matches(warning: WeatherWarning, region: RegionFilter) -> bool:
    return match_tier(warning, region) is not None
