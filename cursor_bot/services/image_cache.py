"""File-backed cache of photos waiting to be attached to the next task.

Photos and the request that should use them arrive as separate Telegram
messages, so images are parked here per (user, chat) for a short TTL. Each
group is one JSON file; the file's mtime is the expiry clock, and every
write resets it. There is no locking: the last concurrent write wins.
"""

import asyncio
import json
import logging
import time
from pathlib import Path

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

CACHE_TTL = 3 * 60  # seconds
SWEEP_INTERVAL = 60  # seconds
CACHE_DIRNAME = "image-cache"


class CachedImage(BaseModel):
    data: str  # base64-encoded PNG
    width: int
    height: int


class ImageCache:
    def __init__(self, cache_dir: Path, ttl: float = CACHE_TTL):
        self.cache_dir = Path(cache_dir)
        self.ttl = ttl

    @classmethod
    def for_db_path(cls, db_path: Path, ttl: float = CACHE_TTL) -> "ImageCache":
        """Place the cache beside the database file."""
        return cls(Path(db_path).parent / CACHE_DIRNAME, ttl=ttl)

    def _dir(self) -> Path:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        return self.cache_dir

    def _path(self, user_id: int, chat_id: int) -> Path:
        return self._dir() / f"{user_id}_{chat_id}.json"

    def _is_expired(self, path: Path, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return now - path.stat().st_mtime > self.ttl

    def read(self, user_id: int, chat_id: int) -> list[CachedImage]:
        """Current images for (user, chat); an expired group is deleted and reads as empty."""
        path = self._path(user_id, chat_id)
        try:
            if self._is_expired(path):
                logger.info(f"Image cache for user {user_id} in chat {chat_id} expired, removing")
                path.unlink(missing_ok=True)
                return []
            raw = json.loads(path.read_text())
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            logger.error(f"Error reading image cache {path.name}: {e}")
            return []

        try:
            if not isinstance(raw, dict):
                raise ValueError("cache file is not a JSON object")
            images = [CachedImage.model_validate(img) for img in raw.get("images", [])]
        except (TypeError, ValueError, ValidationError) as e:
            logger.error(f"Discarding malformed image cache {path.name}: {e}")
            path.unlink(missing_ok=True)
            return []
        logger.info(f"Loaded {len(images)} cached images for user {user_id} in chat {chat_id}")
        return images

    def append(self, user_id: int, chat_id: int, image: CachedImage) -> int:
        """Add an image to the group and reset its expiry. Returns the group size."""
        images = self.read(user_id, chat_id)
        images.append(image)
        path = self._path(user_id, chat_id)
        payload = {
            "images": [img.model_dump() for img in images],
            "timestamp": time.time(),
        }
        path.write_text(json.dumps(payload))
        logger.info(f"Cached {len(images)} images for user {user_id} in chat {chat_id}")
        return len(images)

    def clear(self, user_id: int, chat_id: int) -> None:
        path = self._path(user_id, chat_id)
        if path.exists():
            path.unlink(missing_ok=True)
            logger.info(f"Cleared image cache for user {user_id} in chat {chat_id}")

    def sweep(self) -> int:
        """Delete every group older than the TTL. Returns how many were removed."""
        if not self.cache_dir.exists():
            return 0
        now = time.time()
        removed = 0
        for path in self.cache_dir.glob("*.json"):
            try:
                if self._is_expired(path, now):
                    path.unlink(missing_ok=True)
                    removed += 1
                    logger.info(f"Cleaned up expired cache file: {path.name}")
            except FileNotFoundError:
                continue
        return removed


async def sweep_loop(cache: ImageCache, interval: float = SWEEP_INTERVAL) -> None:
    """Background loop removing abandoned image groups."""
    logger.info("Image cache sweeper started")

    while True:
        try:
            cache.sweep()
        except Exception as e:
            logger.error(f"Image cache sweep error: {e}")

        await asyncio.sleep(interval)
