"""
Preview renderer for the photo editor.

Produces a reduced-size JPEG showing what the print renderer will produce
for the same edits: same stages, same order, bounded to max_size pixels.
"""

from typing import Optional, Tuple

from PIL import Image
from loguru import logger

from . import geometry, pipeline
from .errors import IncompleteEditError
from .models import FIT_CONTAIN, FIT_COVER, EditParameters


class PreviewRenderer:
    """Low-latency preview of an edited photo."""

    def __init__(self, max_size: int = 2000, quality: int = 85, smart_aspect_ratio: bool = True):
        self.max_size = max_size
        self.quality = quality
        self.smart_aspect_ratio = smart_aspect_ratio

    @classmethod
    def from_config(cls, config) -> 'PreviewRenderer':
        return cls(
            max_size=config.PREVIEW_MAX_SIZE,
            quality=config.PREVIEW_JPEG_QUALITY,
            smart_aspect_ratio=config.SMART_ASPECT_RATIO,
        )

    def render(self, image_bytes: bytes, edit_params: EditParameters, photo_id: str = None) -> bytes:
        """Render a preview JPEG. Cover fit without a crop raises IncompleteEditError."""
        image = self.render_image(image_bytes, edit_params, photo_id)
        return pipeline.encode_jpeg(image, self.quality, dpi=None)

    def render_image(self, image_bytes: bytes, edit_params: EditParameters,
                     photo_id: str = None) -> Image.Image:
        if edit_params.fit == FIT_COVER and edit_params.crop is None:
            raise IncompleteEditError(photo_id)

        image = pipeline.normalize_orientation(pipeline.decode(image_bytes, photo_id))
        image = pipeline.rotate(image, edit_params.rotation)
        image = pipeline.adjust_color(image, edit_params)

        if edit_params.fit == FIT_CONTAIN:
            if edit_params.aspect_ratio:
                image = pipeline.pad_to_aspect_ratio(image, edit_params.aspect_ratio)
        else:
            image = pipeline.crop_or_pad(image, edit_params.crop)

        preview = pipeline.fit_within(image, self.max_size)
        logger.debug(f"Preview {photo_id or '<bytes>'}: {image.size} -> {preview.size}")
        return preview

    def frame_for(self, image_size: Tuple[int, int], requested_aspect_ratio: float) -> float:
        """Crop frame ratio the editor should open with for this photo."""
        return geometry.smart_aspect_ratio(
            geometry.is_landscape(*image_size), requested_aspect_ratio, enabled=self.smart_aspect_ratio)

    def view_fit_scale(self, image_size: Tuple[int, int], edit_params: EditParameters,
                       frame_ratio: Optional[float] = None) -> float:
        """Scale for the live 'contain' view so a quarter-turned photo stays in frame."""
        frame_ratio = frame_ratio or edit_params.aspect_ratio
        if edit_params.fit != FIT_CONTAIN or not frame_ratio:
            return 1.0
        media_ratio = image_size[0] / image_size[1]
        return geometry.fit_scale_for_rotated_contain(media_ratio, frame_ratio, edit_params.rotation)
