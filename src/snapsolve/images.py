"""Screenshot bytes: read + base64 encode, and downsizing for local models."""
from __future__ import annotations

import asyncio
import base64
import io
import os
from pathlib import Path
from typing import List, Sequence, Union

from PIL import Image, UnidentifiedImageError

from .logging_util import get_logger

logger = get_logger(__name__)

def _env_int(name: str, default: int) -> int:
    try:
        v = int(os.environ.get(name, "").strip() or default)
    except ValueError:
        return default
    return v if v > 0 else default

MAX_IMAGE_DIMENSION = _env_int("SNAPSOLVE_OLLAMA_MAX_IMAGE_DIM", 1024)
JPEG_QUALITY = 85

def read_image_b64(path: Union[str, Path]) -> str:
    return base64.b64encode(Path(path).read_bytes()).decode("ascii")

async def load_images(paths: Sequence[Union[str, Path]]) -> List[str]:
    """Read and encode screenshots concurrently; result order follows paths."""
    return list(await asyncio.gather(*(asyncio.to_thread(read_image_b64, p) for p in paths)))

def shrink_image_b64(data: str, max_dimension: int = MAX_IMAGE_DIMENSION) -> str:
    """Downsize so the long side is at most max_dimension, re-encoded as JPEG.

    Images already small enough, or that Pillow cannot decode, are returned unchanged.
    """
    try:
        raw = base64.b64decode(data)
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (ValueError, OSError, UnidentifiedImageError) as e:
        logger.warning("Could not decode image for resizing, sending as-is: %s", e)
        return data

    if max(image.size) <= max_dimension:
        return data

    original = image.size
    image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

    if image.mode in ("RGBA", "LA", "P"):
        if image.mode == "P":
            image = image.convert("RGBA")
        background = Image.new("RGB", image.size, (255, 255, 255))
        background.paste(image, mask=image.split()[-1])
        image = background
    elif image.mode != "RGB":
        image = image.convert("RGB")

    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=JPEG_QUALITY, optimize=True)
    logger.debug("Resized image %sx%s -> %sx%s", original[0], original[1], image.size[0], image.size[1])
    return base64.b64encode(buffer.getvalue()).decode("ascii")
