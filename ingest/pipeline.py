from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urljoin

import httpx
from loguru import logger

from cluster.dedupe import dedupe
from geo.region import match_tier
from ingest.archive import extract, is_zip
from ingest.errors import FetchError, NormalizationError, ParseError
from ingest.fetch import Fetcher
from ingest.instances import InstanceConfig
from ingest.parsers.atom import FeedEntry
from ingest.parsers.document import ParsedDocument, parse_document
from normalize.models import (
    TIER_ORDER,
    InfoBlock,
    MatchTier,
    MsgType,
    PipelineResult,
    WeatherWarning,
)
from normalize.normalize import normalize_alert
from normalize.temporal import is_active_or_future, warning_is_current


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def primary_info(warning: WeatherWarning, language: str) -> InfoBlock:
    prefix = language.casefold()
    if prefix:
        for info in warning.infos:
            if info.language.casefold().startswith(prefix):
                return info
    return warning.infos[0]


def _normalize_entries(entries: tuple[FeedEntry, ...], source: str) -> list[WeatherWarning]:
    warnings: list[WeatherWarning] = []
    for entry in entries:
        if entry.alert is None:
            continue
        try:
            warning = normalize_alert(entry.alert, source)
        except NormalizationError as e:
            logger.warning("skipping malformed alert {} from {}: {}", entry.entry_id, source, e)
            continue
        if warning is not None:
            warnings.append(warning)
    return warnings


async def _follow_link(
    fetcher: Fetcher,
    source: str,
    link: str,
    semaphore: asyncio.Semaphore,
    timeout_ms: int,
) -> list[WeatherWarning]:
    async with semaphore:
        try:
            url = urljoin(source, link)
            body = await fetcher.fetch(url, timeout_ms)
            document = parse_document(body)
        except (FetchError, ParseError, ValueError, httpx.HTTPError) as e:
            logger.warning("skipping linked entry {}: {}", link, e)
            return []
    # links inside a linked document are not followed again
    return _normalize_entries(document.entries, url)


async def collect_warnings(
    documents: list[tuple[str, ParsedDocument]],
    fetcher: Fetcher,
    *,
    timeout_ms: int,
    link_concurrency: int = 4,
) -> list[WeatherWarning]:
    semaphore = asyncio.Semaphore(max(1, link_concurrency))
    slots: list[list[WeatherWarning]] = []
    pending: dict[int, Coroutine[Any, Any, list[WeatherWarning]]] = {}

    for source, document in documents:
        for entry in document.entries:
            if entry.link is not None:
                pending[len(slots)] = _follow_link(
                    fetcher, source, entry.link, semaphore, timeout_ms
                )
                slots.append([])
            else:
                slots.append(_normalize_entries((entry,), source))

    if pending:
        resolved = await asyncio.gather(*pending.values())
        for index, warnings in zip(pending, resolved):
            slots[index] = warnings

    return [warning for slot in slots for warning in slot]


def _severity_level(
    warnings: tuple[WeatherWarning, ...], now: datetime, only_active_future: bool
) -> int:
    levels = [
        info.severity_level
        for warning in warnings
        for info in warning.infos
        if not only_active_future or is_active_or_future(info, now)
    ]
    return max(levels, default=0)


def assemble_result(
    warnings: list[WeatherWarning],
    config: InstanceConfig,
    *,
    now: datetime,
    sources: tuple[str, ...],
    from_timer: bool = False,
    index_fallback: bool = False,
) -> PipelineResult:
    tiered: list[tuple[WeatherWarning, MatchTier]] = []
    for warning in warnings:
        tier = match_tier(warning, config.region)
        if tier is not None:
            tiered.append((warning, tier))

    tiered = [(w, t) for w, t in tiered if w.msg_type is not MsgType.CANCEL]
    if config.only_active_future:
        tiered = [(w, t) for w, t in tiered if warning_is_current(w, now)]

    unique = dedupe(w for w, _ in tiered)
    tier_of = {id(w): t for w, t in tiered}
    tier_counts = {tier.value: 0 for tier in TIER_ORDER}
    for warning in unique:
        tier_counts[tier_of[id(warning)].value] += 1

    best = next((tier for tier in TIER_ORDER if tier_counts[tier.value]), None)
    selected = tuple(w for w in unique if tier_of[id(w)] is best)
    events = ", ".join(
        e for e in (primary_info(w, config.language).event for w in selected) if e
    )

    return PipelineResult(
        warnings=selected,
        count=len(selected),
        events=events,
        computed_at=now,
        sources=sources,
        max_severity_level=_severity_level(selected, now, config.only_active_future),
        tier=best,
        tier_counts=tier_counts,
        filter_config=config.describe(),
        from_timer=from_timer,
        index_fallback=index_fallback,
    )


def empty_result(
    config: InstanceConfig,
    *,
    now: datetime,
    error: str | None,
    sources: tuple[str, ...],
    from_timer: bool = False,
) -> PipelineResult:
    return PipelineResult(
        warnings=(),
        count=0,
        events="",
        computed_at=now,
        sources=sources,
        tier_counts={tier.value: 0 for tier in TIER_ORDER},
        error=error,
        filter_config=config.describe(),
        from_timer=from_timer,
    )


async def run_pipeline(
    config: InstanceConfig,
    fetcher: Fetcher,
    *,
    now: datetime,
    url: str | None = None,
    from_timer: bool = False,
) -> PipelineResult:
    if url is None:
        payload = await fetcher.fetch_with_fallback(
            config.feed_url, config.index_url, config.index_pattern, config.timeout_ms
        )
    else:
        payload = await fetcher.fetch_with_fallback(url, None, timeout_ms=config.timeout_ms)

    documents: list[tuple[str, ParsedDocument]] = []
    if is_zip(payload.content):
        for name, text in extract(payload.content):
            try:
                documents.append((f"{payload.url}#{name}", parse_document(text)))
            except ParseError as e:
                logger.warning("skipping unparseable archive member {}: {}", name, e)
    else:
        documents.append((payload.url, parse_document(payload.content)))

    warnings = await collect_warnings(
        documents,
        fetcher,
        timeout_ms=config.timeout_ms,
        link_concurrency=config.link_concurrency,
    )
    result = assemble_result(
        warnings,
        config,
        now=now,
        sources=(payload.url,),
        from_timer=from_timer,
        index_fallback=payload.stale,
    )
    logger.info(
        "{}: {} of {} warnings matched ({})",
        config.instance_id,
        result.count,
        len(warnings),
        result.tier.value if result.tier is not None else "no match",
    )
    return result
