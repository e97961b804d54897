from __future__ import annotations

import io
import logging

from PIL import Image, ImageOps

from gallery_sync.services.pipeline.interfaces import Encoder
from gallery_sync.services.pipeline.models import Thumbnail

logger = logging.getLogger(__name__)

THUMBNAIL_MAX_EDGE = 512
THUMBNAIL_QUALITY = 60


def decode_image(data: bytes) -> Image.Image:
    """Decode image bytes fully so truncated or corrupt files fail here, not later."""
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def target_size(width: int, height: int, max_edge: int) -> tuple[int, int]:
    """Scale the long edge down to max_edge, keeping aspect ratio and never upscaling."""
    long_edge = max(width, height)
    if long_edge <= max_edge:
        return width, height
    scale = max_edge / long_edge
    return max(1, round(width * scale)), max(1, round(height * scale))


class ThumbnailEncoder(Encoder):
    def __init__(self, max_edge: int = THUMBNAIL_MAX_EDGE, quality: int = THUMBNAIL_QUALITY) -> None:
        self.max_edge = max_edge
        self.quality = quality

    def encode(self, image: Image.Image) -> Thumbnail:
        processed = ImageOps.exif_transpose(image)
        source_width, source_height = processed.size
        processed = processed.convert("RGB")

        size = target_size(source_width, source_height, self.max_edge)
        if size != processed.size:
            processed = processed.resize(size, Image.Resampling.LANCZOS)

        buffer = io.BytesIO()
        processed.save(buffer, format="JPEG", optimize=True, quality=self.quality)
        data = buffer.getvalue()
        logger.debug(
            "thumbnail encoded source=%dx%d thumb=%dx%d bytes=%d",
            source_width,
            source_height,
            size[0],
            size[1],
            len(data),
        )
        return Thumbnail(
            data=data,
            source_width=source_width,
            source_height=source_height,
        )
