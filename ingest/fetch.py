from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urljoin

import httpx
from loguru import logger

from ingest.errors import FetchError


DEFAULT_INDEX_PATTERN = (
    r"Z_CAP_C_EDZW_(\d{14})_PVW_STATUS_PREMIUMDWD_COMMUNEUNION_DE\.zip"
)

_ACCEPT = "application/atom+xml, application/xml, text/xml, application/zip, */*"


@dataclass(frozen=True)
class FetchedPayload:
    url: str
    content: bytes
    stale: bool = False


def newest_indexed_name(listing: str, pattern: str) -> str | None:
    regex = re.compile(pattern)
    if regex.groups < 1:
        raise ValueError("index pattern needs a group capturing the timestamp")

    best_name: str | None = None
    best_ts = ""
    for match in regex.finditer(listing):
        ts = match.group(1)
        if len(ts) != 14 or not ts.isdigit():
            continue
        # >= so the later listing occurrence wins ties
        if ts >= best_ts:
            best_ts = ts
            best_name = match.group(0)
    return best_name


class Fetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        user_agent: str,
        timeout_ms: int = 15000,
    ) -> None:
        self._client = client
        self._user_agent = user_agent
        self._timeout_ms = timeout_ms

    async def fetch(self, url: str, timeout_ms: int | None = None) -> bytes:
        timeout = httpx.Timeout((timeout_ms or self._timeout_ms) / 1000.0)
        headers = {"User-Agent": self._user_agent, "Accept": _ACCEPT}
        try:
            response = await self._client.get(url, headers=headers, timeout=timeout)
        except httpx.InvalidURL as e:
            raise FetchError(None, "invalid_url", url) from e
        except httpx.TimeoutException:
            raise FetchError(None, "timeout", url) from None
        except httpx.RequestError as e:
            raise FetchError(None, f"request_error:{e.__class__.__name__}", url) from e

        if not 200 <= response.status_code < 300:
            raise FetchError(
                response.status_code, f"HTTP {response.status_code}", url
            )
        logger.debug("fetched {} ({} bytes)", url, len(response.content))
        return response.content

    async def fetch_newest_indexed(
        self,
        base_dir: str,
        pattern: str = DEFAULT_INDEX_PATTERN,
        timeout_ms: int | None = None,
    ) -> str:
        if not base_dir.endswith("/"):
            base_dir = base_dir + "/"
        listing = await self.fetch(base_dir, timeout_ms)
        name = newest_indexed_name(listing.decode("utf-8", errors="replace"), pattern)
        if name is None:
            raise FetchError(404, f"no indexed file matches {pattern!r}", base_dir)
        return urljoin(base_dir, name)

    async def fetch_with_fallback(
        self,
        primary_url: str,
        base_dir: str | None,
        pattern: str = DEFAULT_INDEX_PATTERN,
        timeout_ms: int | None = None,
    ) -> FetchedPayload:
        try:
            content = await self.fetch(primary_url, timeout_ms)
        except FetchError as e:
            if e.status != 404 or not base_dir:
                raise
            logger.warning(
                "{} returned 404, falling back to directory index {}",
                primary_url,
                base_dir,
            )
        else:
            return FetchedPayload(url=primary_url, content=content)

        newest_url = await self.fetch_newest_indexed(base_dir, pattern, timeout_ms)
        content = await self.fetch(newest_url, timeout_ms)
        return FetchedPayload(url=newest_url, content=content, stale=True)
