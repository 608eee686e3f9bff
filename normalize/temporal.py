from __future__ import annotations

from datetime import datetime

from normalize.models import InfoBlock, WeatherWarning


def is_active_or_future(info: InfoBlock, now: datetime) -> bool:
    if info.past:
        return False
    if info.onset is not None and info.onset > now:
        return True
    if info.expires is not None and info.expires > now:
        return True
    # nothing proves the block is over
    return info.onset is None and info.expires is None


def warning_is_current(warning: WeatherWarning, now: datetime) -> bool:
    return any(is_active_or_future(info, now) for info in warning.infos)
