"""Basic image acquisition example.

This example shows the simplest usage pattern: wire an ImageManager,
acquire an image and stage it. The library handles caching and
staleness automatically.
"""

import asyncio
from datetime import timedelta
from pathlib import Path

from imagemanager import FileImageCache, ImageManager, RouterSource, S3Source


async def main() -> None:
    # Option 1: Manual wiring (full control over adapters)
    # Use this when you need a custom source or cache configuration
    manager = ImageManager(
        source=RouterSource(
            {"s3": S3Source()}, "s3://my-bucket/images/{identifier}.zip"
        ),
        cache=FileImageCache(Path("./images"), max_age=timedelta(days=1)),
    )

    # Option 2: Factory method (recommended for most cases)
    # Reads IMAGEMANAGER_* environment variables
    # manager = ImageManager.from_settings(create_settings_from_env())

    # acquire() downloads if not cached or stale; the download is written
    # to the cache while you read it
    handle = await manager.acquire("raspberry-pi")
    path = await manager.stage_to_temporary(handle)
    print(f"Image staged at: {path}")

    # Within max_age, the next acquire is served from the cache
    handle = await manager.acquire("raspberry-pi")
    print(f"Cached image: {handle.total_length} bytes ({handle.content_type})")


if __name__ == "__main__":
    asyncio.run(main())
