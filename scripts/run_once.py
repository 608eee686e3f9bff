from __future__ import annotations

import argparse
import asyncio
import json

import httpx

from app.logging_setup import setup_logging
from app.settings import DWD_COMMUNEUNION_DIR, DWD_LATEST_URL, Settings
from ingest.errors import ConfigurationError, WarningPipelineError
from ingest.fetch import Fetcher
from ingest.instances import InstanceConfig, split_names
from ingest.pipeline import empty_result, run_pipeline, utc_now
from normalize.models import result_to_dict


async def _run(config: InstanceConfig, user_agent: str) -> dict:
    async with httpx.AsyncClient(follow_redirects=True) as client:
        fetcher = Fetcher(client, user_agent=user_agent, timeout_ms=config.timeout_ms)
        try:
            result = await run_pipeline(config, fetcher, now=utc_now())
        except WarningPipelineError as e:
            result = empty_result(
                config,
                now=utc_now(),
                error=f"{e.__class__.__name__}: {e}",
                sources=(config.feed_url,),
            )
    return result_to_dict(result)


def main() -> None:
    parser = argparse.ArgumentParser(description="Fetch CAP warnings for one region once.")
    parser.add_argument("--region", default=None, help="9-digit warn cell id")
    parser.add_argument("--names", default="", help="comma-separated area names")
    parser.add_argument("--url", default=DWD_LATEST_URL)
    parser.add_argument("--index-url", default=DWD_COMMUNEUNION_DIR)
    parser.add_argument("--derive-parent", action="store_true")
    parser.add_argument("--no-active-filter", action="store_true")
    parser.add_argument("--timeout-ms", type=int, default=15000)
    parser.add_argument("--language", default="de")
    args = parser.parse_args()

    settings = Settings()
    setup_logging(settings.log_level)
    names = split_names(args.names)
    try:
        config = InstanceConfig(
            instance_id="cli",
            name="cli",
            region_id=args.region,
            derive_parent=args.derive_parent,
            allow_name_fallback=bool(names),
            extra_area_names=names,
            only_active_future=not args.no_active_filter,
            timeout_ms=args.timeout_ms,
            feed_url=args.url,
            index_url=args.index_url or None,
            language=args.language,
        )
    except ConfigurationError as e:
        parser.error(str(e))

    out = asyncio.run(_run(config, settings.user_agent))
    print(json.dumps(out, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
