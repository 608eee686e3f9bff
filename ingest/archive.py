from __future__ import annotations

import io
import re
import zipfile
import zlib

from loguru import logger

from ingest.errors import ArchiveError


_ZIP_MAGIC = b"PK\x03\x04"
_XML_SUFFIXES = (".xml", ".cap")
_ENCODING_RE = re.compile(rb"""<\?xml[^>]*encoding=["']([A-Za-z0-9._-]+)["']""")


def is_zip(data: bytes) -> bool:
    return data[:4] == _ZIP_MAGIC


def _decode(payload: bytes) -> str:
    encoding = "utf-8"
    match = _ENCODING_RE.search(payload[:200])
    if match is not None:
        encoding = match.group(1).decode("ascii")
    if payload.startswith(b"\xef\xbb\xbf"):
        payload = payload[3:]
    return payload.decode(encoding)


def extract(zip_bytes: bytes) -> list[tuple[str, str]]:
    try:
        archive = zipfile.ZipFile(io.BytesIO(zip_bytes))
    except zipfile.BadZipFile as e:
        raise ArchiveError(f"corrupt archive: {e}") from e

    documents: list[tuple[str, str]] = []
    with archive:
        for info in archive.infolist():
            if info.is_dir() or not info.filename.lower().endswith(_XML_SUFFIXES):
                continue
            try:
                payload = archive.read(info)
            except (zipfile.BadZipFile, zlib.error, OSError) as e:
                logger.warning("skipping unreadable archive entry {}: {}", info.filename, e)
                continue
            try:
                text = _decode(payload)
            except (LookupError, UnicodeDecodeError) as e:
                logger.warning("skipping undecodable archive entry {}: {}", info.filename, e)
                continue
            documents.append((info.filename, text))

    logger.debug("extracted {} documents from archive", len(documents))
    return documents
