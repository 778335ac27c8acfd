"""
Geometry engine for the print kiosk.

Pure functions shared by the preview and print renderers:
- Rotated bounding boxes for sizing intermediate canvases
- Crop rectangle placement with out-of-bounds padding
- Canvas growth for 'contain' fits at a target aspect ratio
- The smart aspect ratio orientation heuristic
- Fit scale for rotated 'contain' views in the editor

Nothing here validates its inputs; zero or negative sizes are rejected
at the EditParameters / Photo boundary (see models.py).
"""

import math
from typing import NamedTuple, Tuple


class CropPlacement(NamedTuple):
    """Where a crop rectangle lands relative to its source canvas.

    output_size: (width, height) of the rendered crop.
    source_box: (left, top, right, bottom) of the part of the source
        canvas that intersects the crop, or None if they do not overlap.
    offset: (x, y) at which source_box is pasted into the output.
    """
    output_size: Tuple[int, int]
    source_box: Tuple[int, int, int, int]
    offset: Tuple[int, int]


def round_half_up(value: float) -> int:
    """Round like JavaScript's Math.round (halves go up)."""
    return int(math.floor(value + 0.5))


def rotated_bounding_box(width: float, height: float, degrees: float) -> Tuple[float, float]:
    """
    Axis-aligned bounding box of a width x height rectangle rotated by degrees.

    w' = |cos t|*w + |sin t|*h, h' = |sin t|*w + |cos t|*h
    """
    normalized = degrees % 360
    # Right angles are exact; trig would leave ~1e-16 residue
    if normalized in (0, 180):
        return float(width), float(height)
    if normalized in (90, 270):
        return float(height), float(width)

    theta = math.radians(degrees)
    cos_t = abs(math.cos(theta))
    sin_t = abs(math.sin(theta))
    return cos_t * width + sin_t * height, sin_t * width + cos_t * height


def resolve_cover_canvas(bbox_width: float, bbox_height: float,
                         crop: Tuple[float, float, float, float]) -> CropPlacement:
    """
    Resolve a cover crop (x, y, width, height) against the rotated canvas.

    The output is exactly the crop rectangle. Regions of the crop that fall
    outside the canvas are left for the caller to fill with background.
    """
    canvas_w = round_half_up(bbox_width)
    canvas_h = round_half_up(bbox_height)
    x, y, w, h = (round_half_up(v) for v in crop)

    left = max(0, x)
    top = max(0, y)
    right = min(canvas_w, x + w)
    bottom = min(canvas_h, y + h)

    if right <= left or bottom <= top:
        return CropPlacement((w, h), None, (0, 0))

    return CropPlacement((w, h), (left, top, right, bottom), (left - x, top - y))


def resolve_contain_canvas(bbox_width: float, bbox_height: float,
                           target_aspect_ratio: float) -> Tuple[float, float]:
    """
    Grow the limiting dimension so canvas_w / canvas_h == target_aspect_ratio
    while still containing the rotated bounding box.
    """
    canvas_w, canvas_h = float(bbox_width), float(bbox_height)
    if canvas_w / canvas_h > target_aspect_ratio:
        # Wider than the target: width limits, add height
        canvas_h = canvas_w / target_aspect_ratio
    else:
        canvas_w = canvas_h * target_aspect_ratio
    return canvas_w, canvas_h


def is_landscape(width: float, height: float) -> bool:
    return width > height


def orientation_of(width: float, height: float) -> str:
    """'landscape', 'portrait' or 'square'."""
    if width > height:
        return 'landscape'
    if width < height:
        return 'portrait'
    return 'square'


def smart_aspect_ratio(image_is_landscape: bool, requested_aspect_ratio: float,
                       enabled: bool = True) -> float:
    """
    Flip the requested crop ratio when it disagrees with the photo's orientation.

    A square ratio (1.0) counts as portrait, which flips to itself.
    """
    if not enabled:
        return requested_aspect_ratio
    crop_is_landscape = requested_aspect_ratio > 1
    if image_is_landscape != crop_is_landscape:
        return 1 / requested_aspect_ratio
    return requested_aspect_ratio


def fit_scale_for_rotated_contain(media_ratio: float, target_ratio: float,
                                  rotation_degrees: float) -> float:
    """
    Shrink factor (<= 1) keeping a rotated 'contain' image inside its frame.

    Works in a normalized frame of width target_ratio and height 1. The
    unrotated image is fitted first, then its box is swapped by the quarter
    turn and scaled back into the frame.
    """
    if rotation_degrees % 180 == 0:
        return 1.0

    if media_ratio > target_ratio:
        fit_w, fit_h = target_ratio, target_ratio / media_ratio
    else:
        fit_w, fit_h = media_ratio, 1.0

    rot_w, rot_h = fit_h, fit_w
    return min(1.0, target_ratio / rot_w, 1.0 / rot_h)


def cover_crop_box(image_size: Tuple[int, int],
                   target_size: Tuple[int, int]) -> Tuple[int, int, int, int]:
    """
    Centered crop box that gives image_size the aspect ratio of target_size.

    Returns: (left, top, right, bottom)
    """
    img_width, img_height = image_size
    target_width, target_height = target_size

    img_ratio = img_width / img_height
    target_ratio = target_width / target_height

    if img_ratio > target_ratio:
        # Image is wider than target, crop horizontally
        new_width = max(1, round_half_up(img_height * target_ratio))
        left = (img_width - new_width) // 2
        return (left, 0, left + new_width, img_height)
    else:
        # Image is taller than target, crop vertically
        new_height = max(1, round_half_up(img_width / target_ratio))
        top = (img_height - new_height) // 2
        return (0, top, img_width, top + new_height)


def contain_size(image_size: Tuple[int, int], target_size: Tuple[int, int]) -> Tuple[int, int]:
    """Largest size with the image's aspect ratio that fits inside target_size."""
    img_width, img_height = image_size
    target_width, target_height = target_size
    scale = min(target_width / img_width, target_height / img_height)
    return (
        max(1, min(target_width, round_half_up(img_width * scale))),
        max(1, min(target_height, round_half_up(img_height * scale))),
    )


def center_offset(outer_size: Tuple[int, int], inner_size: Tuple[int, int]) -> Tuple[int, int]:
    """Top-left offset that centers inner_size inside outer_size."""
    return (outer_size[0] - inner_size[0]) // 2, (outer_size[1] - inner_size[1]) // 2
