"""
Color model for the print kiosk.

Brightness and saturation are multiplicative gains; contrast is a linear
slope/intercept transform pivoting on mid-gray, so 128 maps to 128 for
every contrast factor. A factor of 1 is always an exact no-op.
"""

from typing import Sequence, Tuple

import numpy as np
from PIL import Image

MID_GRAY = 128.0

# Rec. 601 luma weights, used as the achromatic reference for saturation
_LUMA = np.array([0.299, 0.587, 0.114], dtype=np.float32)


def _to_uint8(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def adjust_brightness_saturation(rgb: np.ndarray, brightness: float = 1.0,
                                 saturation: float = 1.0) -> np.ndarray:
    """
    Scale brightness and chroma of an (..., 3) float array.

    Brightness multiplies every channel. Saturation scales each channel's
    distance from the pixel's luma, so grays are unaffected.
    """
    out = rgb
    if brightness != 1:
        out = out * np.float32(brightness)
    if saturation != 1:
        luma = np.expand_dims(out @ _LUMA, -1)
        out = luma + (out - luma) * np.float32(saturation)
    return out


def adjust_contrast(rgb: np.ndarray, contrast: float = 1.0) -> np.ndarray:
    """
    output = input * c + 128 * (1 - c), written as 128 + (input - 128) * c
    so mid-gray stays exactly 128 in floating point.
    """
    if contrast == 1:
        return rgb
    return np.float32(MID_GRAY) + (rgb - np.float32(MID_GRAY)) * np.float32(contrast)


def apply_color_array(rgb: np.ndarray, brightness: float = 1.0, saturation: float = 1.0,
                      contrast: float = 1.0) -> np.ndarray:
    """Brightness + saturation, then contrast, on a uint8 RGB array."""
    if brightness == 1 and saturation == 1 and contrast == 1:
        return rgb
    values = rgb.astype(np.float32)
    values = adjust_brightness_saturation(values, brightness, saturation)
    values = adjust_contrast(values, contrast)
    return _to_uint8(values)


def apply_color(image: Image.Image, brightness: float = 1.0, saturation: float = 1.0,
                contrast: float = 1.0) -> Image.Image:
    """Apply the color model to an RGB PIL image."""
    if brightness == 1 and saturation == 1 and contrast == 1:
        return image
    adjusted = apply_color_array(np.asarray(image.convert('RGB')), brightness, saturation, contrast)
    return Image.fromarray(adjusted, 'RGB')


# Per-pixel helpers

def apply_brightness_saturation(pixel: Sequence[float], brightness_factor: float,
                                saturation_factor: float) -> Tuple[int, int, int]:
    values = adjust_brightness_saturation(np.asarray(pixel, dtype=np.float32),
                                          brightness_factor, saturation_factor)
    return tuple(int(v) for v in _to_uint8(values))


def apply_contrast(value, contrast_factor: float):
    """
    Contrast for a single channel value or an RGB tuple, clamped to [0, 255].

    apply_contrast(128, c) == 128 for any c.
    """
    result = _to_uint8(adjust_contrast(np.asarray(value, dtype=np.float32), contrast_factor))
    if result.ndim == 0:
        return int(result)
    return tuple(int(v) for v in result)
