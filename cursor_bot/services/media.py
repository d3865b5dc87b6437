"""Telegram photo conversion into the PNG payload the Cursor API accepts."""

import asyncio
import base64
import io
import logging

from PIL import Image

from cursor_bot.services.image_cache import CachedImage

logger = logging.getLogger(__name__)


def _to_png(data: bytes) -> tuple[bytes, int, int]:
    with Image.open(io.BytesIO(data)) as img:
        if img.mode not in ("RGB", "RGBA", "L", "LA"):
            img = img.convert("RGBA")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue(), img.width, img.height


async def convert_image(data: bytes) -> CachedImage:
    """Re-encode an image as PNG and record its dimensions."""
    png, width, height = await asyncio.to_thread(_to_png, data)
    logger.info(f"Converted {len(data)} byte image to PNG {width}x{height} ({len(png)} bytes)")
    return CachedImage(data=base64.b64encode(png).decode("ascii"), width=width, height=height)
