"""
Scryfall bulk data service.

Resolves a dataset from the upstream bulk-data manifest and downloads it
into an operator-controlled cache directory.

Cached files never expire on their own: a cached file is reused until the
caller asks for a refresh.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx

from cardcatalog.config import settings
from cardcatalog.models.failure import BulkDownloadError, ManifestLookupError
from cardcatalog.models.sync import BulkDataInfo

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024


def default_headers() -> dict[str, str]:
    """Headers Scryfall asks API clients to send."""
    return {"User-Agent": settings.user_agent, "Accept": "application/json"}


def _parse_manifest_entry(item: dict[str, Any]) -> BulkDataInfo:
    return BulkDataInfo(
        type=str(item["type"]),
        name=str(item.get("name", "")),
        description=str(item.get("description", "")),
        download_uri=str(item["download_uri"]),
        size=int(item.get("size", 0)),
        updated_at=datetime.fromisoformat(str(item["updated_at"]).replace("Z", "+00:00")),
    )


async def fetch_bulk_manifest(client: httpx.AsyncClient) -> list[BulkDataInfo]:
    """
    Fetch the list of available bulk datasets.

    Raises:
        BulkDownloadError: If the manifest request fails or is malformed
    """
    url = settings.scryfall_bulk_api
    try:
        response = await client.get(url, timeout=settings.request_timeout)
        response.raise_for_status()
        data = response.json()
        return [_parse_manifest_entry(item) for item in data["data"]]
    except httpx.HTTPError as e:
        raise BulkDownloadError(url, detail=str(e)) from e
    except (KeyError, TypeError, ValueError) as e:
        raise BulkDownloadError(url, detail=f"Malformed manifest: {e}") from e


def find_bulk_data(manifest: list[BulkDataInfo], bulk_type: str) -> BulkDataInfo:
    """
    Select a dataset descriptor by type name.

    Raises:
        ManifestLookupError: If the type is not in the manifest
    """
    for info in manifest:
        if info.type == bulk_type:
            return info
    raise ManifestLookupError(bulk_type, [info.type for info in manifest])


def cache_path_for(bulk_type: str, data_dir: Path | None = None) -> Path:
    """Location of the cached file for a dataset type."""
    return (data_dir or settings.data_dir) / f"scryfall-{bulk_type}.json"


async def download_bulk_data(
    client: httpx.AsyncClient,
    info: BulkDataInfo,
    output_path: Path,
) -> Path:
    """
    Stream a bulk dataset to disk.

    Writes to a temporary ".part" file and renames it into place only once
    the whole body has arrived, so a failed download never replaces a good
    cache file with a truncated one.

    Raises:
        BulkDownloadError: If the download fails
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    part_path = output_path.with_name(output_path.name + ".part")

    logger.info("Downloading %s (%.1f MB) to %s", info.type, info.size_mb, output_path)

    try:
        async with client.stream(
            "GET",
            info.download_uri,
            timeout=settings.download_timeout,
            follow_redirects=True,
        ) as response:
            response.raise_for_status()
            total = 0
            with open(part_path, "wb") as f:
                async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                    f.write(chunk)
                    total += len(chunk)
        os.replace(part_path, output_path)
    except (httpx.HTTPError, OSError) as e:
        part_path.unlink(missing_ok=True)
        raise BulkDownloadError(info.download_uri, detail=str(e)) from e

    logger.info("Saved %.1f MB to %s", total / (1024 * 1024), output_path)
    return output_path


async def fetch_bulk_file(
    client: httpx.AsyncClient,
    info: BulkDataInfo,
    data_dir: Path | None = None,
    force_refresh: bool = False,
) -> Path:
    """
    Return a local copy of a dataset, downloading only when needed.

    Args:
        client: HTTP client
        info: Dataset descriptor from the manifest
        data_dir: Cache directory. Defaults to settings.data_dir
        force_refresh: Download even if a cached copy exists

    Returns:
        Path to the local JSON file.
    """
    path = cache_path_for(info.type, data_dir)

    if path.exists() and not force_refresh:
        age = datetime.now() - datetime.fromtimestamp(path.stat().st_mtime)
        logger.info(
            "Using cached %s (%.1f days old, %.1f MB); pass --force-refresh for latest data",
            path,
            age.total_seconds() / 86400,
            path.stat().st_size / (1024 * 1024),
        )
        return path

    return await download_bulk_data(client, info, path)
