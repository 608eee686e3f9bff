from __future__ import annotations

import io
import zipfile
from datetime import UTC, datetime
from pathlib import Path


FIXTURES = Path(__file__).resolve().parent / "fixtures"

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


def cap_alert(
    identifier: str | None,
    *,
    cell_id: str = "805362004",
    area_desc: str = "Stadt Musterhausen",
    event: str = "STURMBÖEN",
    severity: str = "Moderate",
    msg_type: str = "Alert",
    onset: str | None = "2026-10-19T10:00:00Z",
    expires: str | None = "2026-10-19T18:00:00Z",
) -> str:
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<alert xmlns="urn:oasis:names:tc:emergency:cap:1.2">',
    ]
    if identifier is not None:
        parts.append(f"<identifier>{identifier}</identifier>")
    parts += [
        "<sender>opendata@dwd.de</sender>",
        "<status>Actual</status>",
        f"<msgType>{msg_type}</msgType>",
        "<scope>Public</scope>",
        "<info>",
        "<language>de-DE</language>",
        f"<event>{event}</event>",
        f"<severity>{severity}</severity>",
    ]
    if onset is not None:
        parts.append(f"<onset>{onset}</onset>")
    if expires is not None:
        parts.append(f"<expires>{expires}</expires>")
    parts += [
        "<area>",
        f"<areaDesc>{area_desc}</areaDesc>",
        f"<geocode><valueName>WARNCELLID</valueName><value>{cell_id}</value></geocode>",
        "</area>",
        "</info>",
        "</alert>",
    ]
    return "\n".join(parts)


def make_zip(files: dict[str, str | bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()
