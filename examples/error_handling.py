"""Error handling patterns with recovery hints.

This example demonstrates how to handle common errors and use
the recovery_hint property to provide actionable guidance.
"""

import asyncio
from pathlib import Path

from imagemanager import (
    FetchAccessError,
    FetchNotFoundError,
    FileImageCache,
    FilesystemSource,
    ImageManager,
    ImageManagerError,
    RouterSource,
    StagingError,
    StreamTransferError,
)


manager = ImageManager(
    source=RouterSource({None: FilesystemSource()}, "./mirror/{identifier}.img"),
    cache=FileImageCache(Path("./images")),
)


# Pattern 1: Errors opening the image are raised by acquire()
async def acquire_or_none(identifier: str) -> bytes | None:
    """Acquire an image, returning None if the origin has no such image."""
    try:
        handle = await manager.acquire(identifier)
    except FetchNotFoundError as e:
        print(f"Not found: {e}")
        print(f"Hint: {e.recovery_hint}")
        return None
    except FetchAccessError as e:
        print(f"Access denied: {e}")
        print(f"Hint: {e.recovery_hint}")
        raise

    # Pattern 2: Errors during the transfer are raised while reading
    try:
        return await handle.read()
    except StreamTransferError as e:
        print(f"Download interrupted: {e.cause}")
        return None


# Pattern 3: Staging failures leave the partial output for inspection
async def stage(identifier: str) -> Path | None:
    try:
        return await manager.stage_to_temporary(await manager.acquire(identifier))
    except StagingError as e:
        print(f"Staging failed, partial output at {e.path}")
        return None


# Pattern 4: Catch-all using the base exception
async def main() -> None:
    try:
        await acquire_or_none("raspberry-pi")
        await stage("beaglebone")
    except ImageManagerError as e:
        print(f"Error: {e}")
        if e.recovery_hint:
            print(f"Hint: {e.recovery_hint}")


if __name__ == "__main__":
    asyncio.run(main())
