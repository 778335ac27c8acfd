"""
Format registry: product SKU -> print dimensions and hot-folder name.

The registry is built from config/formats.yaml (or the built-in table) and
passed to the renderer and dispatcher, so tests and deployments can use
their own formats.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from loguru import logger

from .config import FormatConfig, load_format_configs
from .errors import ConfigurationError, UnknownFormatError
from .geometry import orientation_of, round_half_up


@dataclass(frozen=True)
class Format:
    """A physical print product with fixed output pixel dimensions."""
    sku: str
    folder: str
    image_width: int
    image_height: int
    canvas_width: int
    canvas_height: int
    name: str = ""
    pair_billing: bool = False

    @property
    def image_size(self):
        return (self.image_width, self.image_height)

    @property
    def canvas_size(self):
        return (self.canvas_width, self.canvas_height)

    @property
    def aspect_ratio(self) -> float:
        return self.image_width / self.image_height

    @property
    def orientation(self) -> str:
        return orientation_of(self.image_width, self.image_height)

    @classmethod
    def from_inches(cls, sku: str, folder: str, width_in: float, height_in: float,
                    canvas_width_in: float = None, canvas_height_in: float = None,
                    dpi: int = 300, **kwargs) -> 'Format':
        """Pixel counts from physical size x DPI."""
        image_w = round_half_up(width_in * dpi)
        image_h = round_half_up(height_in * dpi)
        canvas_w = round_half_up(canvas_width_in * dpi) if canvas_width_in else image_w
        canvas_h = round_half_up(canvas_height_in * dpi) if canvas_height_in else image_h
        return cls(sku, folder, image_w, image_h, canvas_w, canvas_h, **kwargs)

    @classmethod
    def from_config(cls, config: FormatConfig, dpi: int = 300) -> 'Format':
        if config.image_width and config.image_height:
            image_w, image_h = config.image_width, config.image_height
        elif config.width_in and config.height_in:
            image_w = round_half_up(config.width_in * dpi)
            image_h = round_half_up(config.height_in * dpi)
        else:
            raise ConfigurationError(
                f"Format {config.sku} needs image_width/image_height or width_in/height_in",
                details={'sku': config.sku})

        if config.canvas_width and config.canvas_height:
            canvas_w, canvas_h = config.canvas_width, config.canvas_height
        elif config.canvas_width_in and config.canvas_height_in:
            canvas_w = round_half_up(config.canvas_width_in * dpi)
            canvas_h = round_half_up(config.canvas_height_in * dpi)
        else:
            canvas_w, canvas_h = image_w, image_h

        if canvas_w < image_w or canvas_h < image_h:
            raise ConfigurationError(
                f"Format {config.sku} canvas is smaller than its image area",
                details={'sku': config.sku, 'image': (image_w, image_h), 'canvas': (canvas_w, canvas_h)})

        return cls(
            sku=config.sku,
            folder=config.folder,
            image_width=image_w,
            image_height=image_h,
            canvas_width=canvas_w,
            canvas_height=canvas_h,
            name=config.name,
            pair_billing=config.pair_billing,
        )


def default_formats(dpi: int = 300) -> List[Format]:
    """Built-in kiosk catalogue, used when formats.yaml is absent."""
    return [
        Format.from_inches('kiosco', 's4x6', 4, 6, dpi=dpi, name='10x15 cm', pair_billing=True),
        # 5x7 prints are produced centered on 6x8 media
        Format.from_inches('medium', 's6x8', 5, 7, 6, 8, dpi=dpi, name='13x18 cm'),
        Format.from_inches('large', 's6x8', 6, 8, dpi=dpi, name='15x20 cm'),
        Format.from_inches('square-small', 's6x6', 5, 5, 6, 6, dpi=dpi, name='13x13 cm',
                           pair_billing=True),
        Format.from_inches('square-large', 's6x6', 6, 6, dpi=dpi, name='15x15 cm'),
    ]


class FormatRegistry:
    """Lookup table of print formats keyed by SKU."""

    def __init__(self, formats: Iterable[Format]):
        self._formats: Dict[str, Format] = {}
        for fmt in formats:
            if fmt.sku in self._formats:
                logger.warning(f"Duplicate format SKU {fmt.sku}, keeping the last definition")
            self._formats[fmt.sku] = fmt

    @classmethod
    def from_yaml(cls, file_path: Optional[str] = None, dpi: int = 300) -> 'FormatRegistry':
        configs = load_format_configs(file_path)
        if not configs:
            logger.info("No formats configured, using built-in format table")
            return cls(default_formats(dpi))
        return cls(Format.from_config(c, dpi) for c in configs)

    def lookup(self, sku: str) -> Format:
        try:
            return self._formats[sku]
        except KeyError:
            raise UnknownFormatError(sku, known=self.skus)

    def get(self, sku: str) -> Optional[Format]:
        return self._formats.get(sku)

    @property
    def skus(self) -> List[str]:
        return list(self._formats)

    def __contains__(self, sku: str) -> bool:
        return sku in self._formats

    def __iter__(self) -> Iterator[Format]:
        return iter(self._formats.values())

    def __len__(self) -> int:
        return len(self._formats)
