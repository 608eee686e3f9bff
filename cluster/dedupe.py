from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable

from normalize.models import WeatherWarning, warning_to_dict


def content_fingerprint(warning: WeatherWarning) -> str:
    payload = json.dumps(
        warning_to_dict(warning), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def dedupe_key(warning: WeatherWarning) -> str:
    if warning.identifier:
        return f"id:{warning.identifier}"
    return f"sha256:{content_fingerprint(warning)}"


def dedupe(warnings: Iterable[WeatherWarning]) -> list[WeatherWarning]:
    seen: set[str] = set()
    unique: list[WeatherWarning] = []
    for warning in warnings:
        key = dedupe_key(warning)
        if key in seen:
            continue
        seen.add(key)
        unique.append(warning)
    return unique
