#!/usr/bin/env python3
"""
Snapshot builder for the Env Data API.

Fetches every live feed once and writes the bundled fallback dataset
(assets/env_snapshot.json by default). Only sections that were served live
are written; failed feeds are written empty, or keep the previous file's
section with --keep-existing.

Usage:
    python build_snapshot.py [--out PATH] [--keep-existing] [--verbose]
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from config import ENV_SNAPSHOT_PATH
from env_data import EnvDataService
from models import RainfallResponse
from utils.snapshot import SnapshotProvider


# Distances depend on the caller position and are recomputed on read
_RAINFALL_EXCLUDE = {"stations": {"__all__": {"distance_km"}}}


def _dump(data: Any) -> Any:
    if isinstance(data, RainfallResponse):
        return data.model_dump(mode="json", by_alias=True, exclude_none=True, exclude=_RAINFALL_EXCLUDE)
    if hasattr(data, "model_dump"):
        return data.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(data, list):
        return [_dump(item) for item in data]
    return data


async def build_snapshot(service: EnvDataService, previous: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Collect live feed data into the snapshot document layout."""
    previous = previous or {}
    results = await asyncio.gather(
        service.fetch_rainfall_data_result(),
        service.fetch_pm25_data_result(),
        service.fetch_wind_data_result(),
        service.fetch_humidity_data_result(),
        service.fetch_temperature_data_result(),
        service.fetch_weather_forecast_result(),
    )
    sections = ("rain", "pm25", "wind", "humidity", "temp", "twoHr")
    empty = {"rain": None, "twoHr": None}

    snapshot: Dict[str, Any] = {}
    for key, result in zip(sections, results):
        if result.is_live:
            snapshot[key] = _dump(result.data)
            logger.info(f"✅ {key}: captured live data")
        elif key in previous:
            snapshot[key] = previous[key]
            logger.warning(f"⚠️  {key}: live fetch failed ({result.error}) - keeping previous section")
        else:
            snapshot[key] = empty.get(key, [])
            logger.warning(f"⚠️  {key}: live fetch failed ({result.error}) - writing empty section")

    snapshot["_savedAt"] = int(time.time() * 1000)
    return snapshot


def write_atomically(path: Path, document: Dict[str, Any]) -> None:
    """Write JSON next to the target and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Capture live feeds into the bundled env snapshot")
    parser.add_argument("--out", default=str(ENV_SNAPSHOT_PATH), help="Output JSON path")
    parser.add_argument("--keep-existing", action="store_true",
                        help="Keep the previous file's section when a feed cannot be fetched live")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    out_path = Path(args.out)
    snapshot_provider = SnapshotProvider(out_path)
    previous = snapshot_provider.load() if args.keep_existing else None

    service = EnvDataService(snapshot=snapshot_provider)
    try:
        logger.info(f"Generating {out_path} ...")
        document = await build_snapshot(service, previous)
    finally:
        await service.close()

    write_atomically(out_path, document)
    logger.info(f"📦 Wrote {out_path}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
