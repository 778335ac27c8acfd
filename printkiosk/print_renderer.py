"""
Server-side print renderer.

The authoritative renderer: its JPEG output is what the printer receives.
Given the same source bytes, format and edit parameters it produces
byte-identical output.
"""

import concurrent.futures
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from PIL import Image
from loguru import logger

from . import pipeline
from .errors import KioskError, RenderError, RenderTimeoutError
from .formats import Format
from .models import FIT_CONTAIN, FIT_COVER, EditParameters

# Render threads per renderer when a timeout is enforced
RENDER_WORKERS = 2


class PrintRenderer:
    """Render source photos into print-ready rasters for a Format."""

    def __init__(self,
                 dpi: int = 300,
                 quality: int = 95,
                 timeout_seconds: Optional[float] = None,
                 auto_orient_unedited: bool = True):
        self.dpi = dpi
        self.quality = quality
        self.timeout_seconds = timeout_seconds
        self.auto_orient_unedited = auto_orient_unedited
        self._executor = None
        if timeout_seconds:
            self._executor = ThreadPoolExecutor(max_workers=RENDER_WORKERS, thread_name_prefix='print-render')

    @classmethod
    def from_config(cls, config) -> 'PrintRenderer':
        return cls(
            dpi=config.PRINT_DPI,
            quality=config.PRINT_JPEG_QUALITY,
            timeout_seconds=config.RENDER_TIMEOUT_SECONDS,
            auto_orient_unedited=config.AUTO_ORIENT_UNEDITED,
        )

    def render(self, source_bytes: bytes, fmt: Format,
               edit_params: Optional[EditParameters] = None, source: str = None) -> bytes:
        """
        Render source_bytes for fmt and return baseline JPEG bytes.

        Raises UnsupportedImageError for undecodable input, RenderTimeoutError
        when the render exceeds timeout_seconds, RenderError otherwise.
        """
        if self._executor is None:
            return self._render(source_bytes, fmt, edit_params, source)

        # A stuck render cannot be killed; it keeps its worker until it finishes
        future = self._executor.submit(self._render, source_bytes, fmt, edit_params, source)
        try:
            return future.result(timeout=self.timeout_seconds)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise RenderTimeoutError(self.timeout_seconds, source)

    def _render(self, source_bytes: bytes, fmt: Format,
                edit_params: Optional[EditParameters], source: str) -> bytes:
        try:
            image = self.render_image(source_bytes, fmt, edit_params, source)
            return pipeline.encode_jpeg(image, self.quality, self.dpi)
        except KioskError:
            raise
        except Exception as e:
            raise RenderError(f"Failed to render {source or '<bytes>'} for {fmt.sku}: {e}",
                              details={'source': source, 'format': fmt.sku}) from e

    def render_image(self, source_bytes: bytes, fmt: Format,
                     edit_params: Optional[EditParameters] = None, source: str = None) -> Image.Image:
        """Run every stage except encoding."""
        image = pipeline.normalize_orientation(pipeline.decode(source_bytes, source))
        original_size = image.size

        if edit_params is None:
            # Never edited: best-effort orientation, then fill the image area
            if self.auto_orient_unedited:
                image = pipeline.auto_orient(image, fmt.image_size)
            image = pipeline.resize_cover(image, fmt.image_size)
        else:
            image = pipeline.rotate(image, edit_params.rotation)
            image = pipeline.adjust_color(image, edit_params)

            if edit_params.fit == FIT_COVER and edit_params.crop is not None:
                image = pipeline.crop_or_pad(image, edit_params.crop)
            elif edit_params.fit == FIT_CONTAIN and edit_params.aspect_ratio:
                image = pipeline.pad_to_aspect_ratio(image, edit_params.aspect_ratio)

            # The editor flipped the frame to follow the photo; turn it back onto the paper
            if edit_params.aspect_ratio and pipeline.orientation_mismatch(
                    (edit_params.aspect_ratio, 1.0), fmt.image_size):
                image = pipeline.auto_orient(image, fmt.image_size)

            if edit_params.fit == FIT_CONTAIN:
                image = pipeline.resize_contain(image, fmt.image_size)
            else:
                image = pipeline.resize_cover(image, fmt.image_size)

        image = pipeline.composite_on_canvas(image, fmt.canvas_size)
        logger.debug(f"Rendered {source or '<bytes>'} {original_size} -> {image.size} for {fmt.sku}")
        return image
