"""
Image Cache Manager

Flat file-based cache of raw upstream image bytes:
- One file per source URL, named by the percent-encoded URL
- Freshness from file mtime (24 hours by default)
- Key safety checks before any filesystem access
- Atomic writes (temp file + rename) so readers never see partial files

There is no eviction: stale entries stay on disk and are
overwritten on the next miss.
"""

import asyncio
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import quote_plus, unquote_plus

logger = logging.getLogger(__name__)

# NAME_MAX on common filesystems
MAX_FILENAME_BYTES = 255


class DiskImageCache:
    """
    Maps cache keys to blob files in a single directory.

    Cache structure:
    cache_dir/
    ├── https%3A%2F%2Fexample.com%2Fa.jpg
    └── ...
    """

    def __init__(
        self,
        cache_dir: str = "./image_cache",
        ttl_seconds: int = 24 * 60 * 60,  # 24 hours
        max_key_length: int = 256,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_dir = Path(os.path.abspath(cache_dir))
        self.ttl_seconds = ttl_seconds
        self.max_key_length = min(max_key_length, MAX_FILENAME_BYTES)
        self._clock = clock

    @staticmethod
    def key_for(url: str) -> str:
        """Convert a source URL to its cache key."""
        return quote_plus(url, safe="")

    @staticmethod
    def url_for(key: str) -> str:
        """Recover the source URL from a cache key."""
        return unquote_plus(key)

    def path_for(self, key: str) -> Optional[Path]:
        """
        Get the file path for a key.

        Returns None when the key is too long (also capped at the
        255-byte filename limit), dot-prefixed, or the
        joined path contains a parent-directory token.
        """
        if not key or len(key.encode("utf-8")) > self.max_key_length:
            return None
        # Dot-prefixed names are reserved for temp files
        if key.startswith("."):
            return None

        joined = os.path.join(str(self.cache_dir), key)
        if "../" in joined or "..\\" in joined or ".." in Path(joined).parts:
            return None
        return Path(joined)

    async def read(self, key: str) -> Optional[bytes]:
        """
        Get cached bytes by key.

        Returns:
            The blob if present and fresh, None otherwise.
        """
        cache_path = self.path_for(key)
        if cache_path is None:
            logger.warning(f"[ImageCache] Unsafe cache key rejected ({len(key)} chars): {key[:60]}...")
            return None

        try:
            return await asyncio.to_thread(self._read_fresh, cache_path)
        except OSError as e:
            logger.error(f"[ImageCache] Failed to read cache {cache_path}: {e}")
            return None

    def _read_fresh(self, cache_path: Path) -> Optional[bytes]:
        if not cache_path.is_file():
            return None

        age = self._clock() - cache_path.stat().st_mtime
        if age >= self.ttl_seconds:
            logger.debug(f"[ImageCache] Cache expired ({age:.0f}s old): {cache_path.name[:60]}...")
            return None

        data = cache_path.read_bytes()
        logger.info(f"[ImageCache] Cache hit: {cache_path.name[:60]}... ({len(data)} bytes)")
        return data

    async def write(self, key: str, data: bytes) -> bool:
        """
        Cache raw image bytes under a key.

        Returns:
            True if cached successfully, False otherwise.
        """
        cache_path = self.path_for(key)
        if cache_path is None:
            logger.warning(f"[ImageCache] Unsafe cache key, not caching ({len(key)} chars): {key[:60]}...")
            return False

        try:
            await asyncio.to_thread(self._write_atomic, cache_path, data)
        except OSError as e:
            logger.error(f"[ImageCache] Failed to cache {cache_path}: {e}")
            return False

        logger.info(f"[ImageCache] Cached: {cache_path.name[:60]}... ({len(data)} bytes)")
        return True

    def _write_atomic(self, cache_path: Path, data: bytes) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        # Atomic write: temp file -> rename
        tmp_path = cache_path.with_name(f".{uuid.uuid4().hex}.tmp")
        try:
            tmp_path.write_bytes(data)
            os.replace(tmp_path, cache_path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def get_stats(self) -> dict:
        """Get cache statistics."""
        entries = 0
        total_size = 0
        if self.cache_dir.is_dir():
            for path in self.cache_dir.iterdir():
                if path.is_file() and not path.name.startswith("."):
                    entries += 1
                    total_size += path.stat().st_size
        return {
            "total_entries": entries,
            "total_size_bytes": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
            "cache_ttl_hours": self.ttl_seconds // 3600,
        }
