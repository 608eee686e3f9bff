from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from app.settings import DWD_COMMUNEUNION_DIR, DWD_LATEST_URL, Settings
from geo.region import RegionFilter, build_region_filter
from ingest.fetch import DEFAULT_INDEX_PATTERN


@dataclass(frozen=True)
class InstanceConfig:
    instance_id: str
    name: str
    region_id: str | None
    derive_parent: bool = False
    allow_name_fallback: bool = False
    extra_area_names: tuple[str, ...] = ()
    only_active_future: bool = True
    allow_stale: bool = True
    immediate_fetch: bool = False
    auto_refresh_seconds: int = 0
    timeout_ms: int = 15000
    feed_url: str = DWD_LATEST_URL
    index_url: str | None = DWD_COMMUNEUNION_DIR
    index_pattern: str = DEFAULT_INDEX_PATTERN
    language: str = "de"
    link_concurrency: int = 4
    parse_retry_delay_seconds: float = 2.0
    region: RegionFilter = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "region",
            build_region_filter(
                self.region_id,
                derive_parent=self.derive_parent,
                name_fallback=self.allow_name_fallback,
                area_names=self.extra_area_names,
            ),
        )

    def describe(self) -> dict:
        return {
            **self.region.describe(),
            "derive_parent": self.derive_parent,
            "only_active_future": self.only_active_future,
            "allow_stale": self.allow_stale,
            "language": self.language,
        }


def split_names(value: str | list | None) -> tuple[str, ...]:
    if not value:
        return ()
    parts = value.split(",") if isinstance(value, str) else [str(v) for v in value]
    return tuple(p.strip() for p in parts if p.strip())


def _from_mapping(instance_id: str, raw: dict) -> InstanceConfig:
    index_url = raw.get("index_url", DWD_COMMUNEUNION_DIR)
    return InstanceConfig(
        instance_id=instance_id,
        name=str(raw.get("name") or instance_id),
        region_id=str(raw["region_id"]) if raw.get("region_id") else None,
        derive_parent=bool(raw.get("derive_parent", False)),
        allow_name_fallback=bool(raw.get("allow_name_fallback", False)),
        extra_area_names=split_names(raw.get("extra_area_names")),
        only_active_future=bool(raw.get("only_active_future", True)),
        allow_stale=bool(raw.get("allow_stale", True)),
        immediate_fetch=bool(raw.get("immediate_fetch", False)),
        auto_refresh_seconds=int(raw.get("auto_refresh_seconds") or 0),
        timeout_ms=int(raw.get("timeout_ms") or 15000),
        feed_url=str(raw.get("feed_url") or DWD_LATEST_URL),
        index_url=str(index_url) if index_url else None,
        index_pattern=str(raw.get("index_pattern") or DEFAULT_INDEX_PATTERN),
        language=str(raw.get("language") or "de"),
        link_concurrency=int(raw.get("link_concurrency") or 4),
        parse_retry_delay_seconds=float(raw.get("parse_retry_delay_seconds", 2.0)),
    )


def load_instance_configs(instances_dir: Path) -> list[InstanceConfig]:
    configs: list[InstanceConfig] = []
    if not instances_dir.exists():
        return configs

    seen: set[str] = set()
    for path in sorted(instances_dir.glob("*.yaml")):
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        if raw is None:
            continue
        if not isinstance(raw, list):
            raise ValueError(f"invalid instance file: {path}")

        for entry in raw:
            if not isinstance(entry, dict) or "id" not in entry:
                raise ValueError(f"invalid instance entry in: {path}")
            instance_id = str(entry["id"])
            if instance_id in seen:
                raise ValueError(f"duplicate instance id {instance_id!r} in: {path}")
            seen.add(instance_id)
            configs.append(_from_mapping(instance_id, entry))

    return configs


def default_instance_config(settings: Settings) -> InstanceConfig:
    return InstanceConfig(
        instance_id="default",
        name="Default region",
        region_id=settings.region_id or None,
        derive_parent=settings.derive_parent,
        allow_name_fallback=settings.allow_name_fallback,
        extra_area_names=split_names(settings.extra_area_names),
        only_active_future=settings.only_active_future,
        allow_stale=settings.allow_stale,
        immediate_fetch=settings.immediate_fetch,
        auto_refresh_seconds=settings.auto_refresh_seconds,
        timeout_ms=settings.timeout_ms,
        feed_url=settings.feed_url,
        index_url=settings.index_url or None,
        language=settings.language,
    )


def resolve_instance_configs(settings: Settings) -> list[InstanceConfig]:
    configs = load_instance_configs(settings.instances_dir)
    if configs:
        return configs
    if not settings.region_id and not settings.extra_area_names:
        return []
    return [default_instance_config(settings)]
