"""
Render stages shared by the preview and print renderers.

Each stage is a plain (image, params) -> image function so the order of
operations is fixed in one place:

    decode -> normalize_orientation -> rotate -> adjust_color
           -> crop_or_pad | pad_to_aspect_ratio -> auto_orient
           -> resize_cover | resize_contain -> composite_on_canvas -> encode_jpeg

Padding and fill color is always white.
"""

import io
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener
from loguru import logger

from . import geometry
from .color import apply_color
from .errors import UnsupportedImageError
from .models import CropRect, EditParameters

register_heif_opener()

WHITE = (255, 255, 255)

# PIL rotates counter-clockwise; the editor rotates clockwise
_QUARTER_TURNS = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}


def decode(data: bytes, source: str = None) -> Image.Image:
    """Decode image bytes, raising UnsupportedImageError on anything unreadable."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        raise UnsupportedImageError(source, reason=str(e)) from e
    return image


def flatten_to_rgb(image: Image.Image) -> Image.Image:
    """Convert to RGB, compositing any transparency onto white."""
    if image.mode == 'RGB':
        return image
    if image.mode in ('RGBA', 'LA', 'PA') or (image.mode == 'P' and 'transparency' in image.info):
        rgba = image.convert('RGBA')
        background = Image.new('RGB', rgba.size, WHITE)
        background.paste(rgba, mask=rgba.split()[-1])
        return background
    return image.convert('RGB')


def normalize_orientation(image: Image.Image) -> Image.Image:
    """Apply the embedded EXIF orientation so the image is upright."""
    return flatten_to_rgb(ImageOps.exif_transpose(image))


def rotate(image: Image.Image, degrees: float) -> Image.Image:
    """
    Rotate clockwise by degrees onto a canvas the size of the rotated
    bounding box; exposed corners are white.
    """
    normalized = degrees % 360
    if normalized == 0:
        return image
    if normalized in _QUARTER_TURNS:
        return image.transpose(_QUARTER_TURNS[normalized])

    rotated = image.rotate(-degrees, resample=Image.Resampling.BICUBIC, expand=True, fillcolor=WHITE)
    bbox_w, bbox_h = geometry.rotated_bounding_box(image.width, image.height, degrees)
    target = (geometry.round_half_up(bbox_w), geometry.round_half_up(bbox_h))
    if rotated.size == target:
        return rotated

    # Keep the canvas on the geometry engine's grid so crop coordinates line up
    canvas = Image.new('RGB', target, WHITE)
    canvas.paste(rotated, geometry.center_offset(target, rotated.size))
    return canvas


def adjust_color(image: Image.Image, params: Optional[EditParameters]) -> Image.Image:
    if params is None or not params.has_color_adjustment:
        return image
    return apply_color(image, params.brightness, params.saturation, params.contrast)


def crop_or_pad(image: Image.Image, crop: CropRect) -> Image.Image:
    """Extract crop from image; parts of the crop outside the image are white."""
    placement = geometry.resolve_cover_canvas(image.width, image.height, crop.as_tuple())
    box = placement.source_box
    if box is None:
        logger.warning(f"Crop {crop} lies entirely outside {image.size}, output is blank")
        return Image.new('RGB', placement.output_size, WHITE)

    inside = placement.output_size == (box[2] - box[0], box[3] - box[1])
    if inside:
        return image.crop(box)

    output = Image.new('RGB', placement.output_size, WHITE)
    output.paste(image.crop(box), placement.offset)
    return output


def pad_to_aspect_ratio(image: Image.Image, aspect_ratio: float) -> Image.Image:
    """Grow the canvas to aspect_ratio with the image centered on white."""
    canvas_w, canvas_h = geometry.resolve_contain_canvas(image.width, image.height, aspect_ratio)
    size = (max(image.width, geometry.round_half_up(canvas_w)),
            max(image.height, geometry.round_half_up(canvas_h)))
    if size == image.size:
        return image
    canvas = Image.new('RGB', size, WHITE)
    canvas.paste(image, geometry.center_offset(size, image.size))
    return canvas


def orientation_mismatch(size: Tuple[int, int], target_size: Tuple[int, int]) -> bool:
    """True when one side is landscape and the other portrait (squares never mismatch)."""
    ours = geometry.orientation_of(*size)
    theirs = geometry.orientation_of(*target_size)
    return 'square' not in (ours, theirs) and ours != theirs


def auto_orient(image: Image.Image, target_size: Tuple[int, int]) -> Image.Image:
    """Turn the image a quarter clockwise if its orientation fights the target's."""
    if orientation_mismatch(image.size, target_size):
        logger.debug(f"Auto-rotating {image.size} to match target {target_size}")
        return image.transpose(_QUARTER_TURNS[90])
    return image


def resize_cover(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Center-crop to the target ratio, then scale to exactly size."""
    crop_box = geometry.cover_crop_box(image.size, size)
    if crop_box != (0, 0, image.width, image.height):
        image = image.crop(crop_box)
    if image.size == size:
        return image
    return image.resize(size, Image.Resampling.LANCZOS)


def resize_contain(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Scale to fit inside size and pad the remainder with white."""
    fitted = geometry.contain_size(image.size, size)
    if fitted != image.size:
        image = image.resize(fitted, Image.Resampling.LANCZOS)
    if fitted == size:
        return image
    canvas = Image.new('RGB', size, WHITE)
    canvas.paste(image, geometry.center_offset(size, fitted))
    return canvas


def fit_within(image: Image.Image, max_size: int) -> Image.Image:
    """Downscale so neither side exceeds max_size."""
    longest = max(image.size)
    if longest <= max_size:
        return image
    scale = max_size / longest
    size = (max(1, geometry.round_half_up(image.width * scale)),
            max(1, geometry.round_half_up(image.height * scale)))
    return image.resize(size, Image.Resampling.LANCZOS)


def composite_on_canvas(image: Image.Image, canvas_size: Tuple[int, int]) -> Image.Image:
    """Center the image on a white canvas of canvas_size."""
    if image.size == canvas_size:
        return image
    canvas = Image.new('RGB', canvas_size, WHITE)
    canvas.paste(image, geometry.center_offset(canvas_size, image.size))
    return canvas


def encode_jpeg(image: Image.Image, quality: int = 95, dpi: Optional[int] = 300) -> bytes:
    """Baseline JPEG bytes, tagged with the print resolution."""
    buffer = io.BytesIO()
    save_kwargs = {'quality': quality, 'optimize': False, 'progressive': False}
    if dpi:
        save_kwargs['dpi'] = (dpi, dpi)
    image.save(buffer, 'JPEG', **save_kwargs)
    return buffer.getvalue()
