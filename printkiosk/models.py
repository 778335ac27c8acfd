"""
Domain model for kiosk orders.

Orders store their cart as JSON; the dataclasses here parse and emit that
JSON using the field names the kiosk UI writes (camelCase).
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import InvalidEditParametersError, ValidationError

FIT_COVER = 'cover'
FIT_CONTAIN = 'contain'

COLOR_FACTOR_MIN = 0.5
COLOR_FACTOR_MAX = 2.0


class OrderStatus(str, Enum):
    PENDING = 'pending'
    PENDING_PAYMENT = 'pending_payment'
    PAID = 'paid'
    VALIDATED = 'validated'
    CANCELLED = 'cancelled'


class DispatchState(str, Enum):
    PENDING = 'pending'
    DISPATCHING = 'dispatching'
    DISPATCHED = 'dispatched'


@dataclass(frozen=True)
class CropRect:
    """Crop rectangle in pixels of the rotated image."""
    x: float
    y: float
    width: float
    height: float

    def as_tuple(self):
        return (self.x, self.y, self.width, self.height)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CropRect':
        try:
            rect = cls(float(data['x']), float(data['y']),
                       float(data['width']), float(data['height']))
        except (KeyError, TypeError, ValueError):
            raise InvalidEditParametersError('crop', data, 'expected numeric x, y, width, height')
        if not all(math.isfinite(v) for v in rect.as_tuple()):
            raise InvalidEditParametersError('crop', data, 'values must be finite')
        if rect.width <= 0 or rect.height <= 0:
            raise InvalidEditParametersError('crop', data, 'width and height must be positive')
        return rect

    def to_dict(self) -> Dict[str, float]:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}


@dataclass(frozen=True)
class EditParameters:
    """Edits chosen in the photo editor, persisted with the order."""
    rotation: float = 0
    scale: float = 1.0
    brightness: float = 1.0
    saturation: float = 1.0
    contrast: float = 1.0
    fit: str = FIT_COVER
    crop: Optional[CropRect] = None
    aspect_ratio: Optional[float] = None

    @property
    def has_color_adjustment(self) -> bool:
        return self.brightness != 1 or self.saturation != 1 or self.contrast != 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EditParameters':
        """Parse and validate the JSON stored in an order's photo record."""
        if not isinstance(data, dict):
            raise InvalidEditParametersError('editParams', data, 'expected an object')

        def number(key, default):
            value = data.get(key)
            # The UI writes `param || 1`, so 0/None mean "unset"
            if value is None or value == 0 and key != 'rotation':
                return default
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise InvalidEditParametersError(key, data.get(key), 'expected a number')
            if not math.isfinite(value):
                raise InvalidEditParametersError(key, data.get(key), 'must be finite')
            return value

        rotation = number('rotation', 0)
        scale = number('scale', 1.0)
        if scale < 1:
            raise InvalidEditParametersError('scale', scale, 'zoom must be at least 1')

        factors = {}
        for key in ('brightness', 'saturation', 'contrast'):
            value = number(key, 1.0)
            if not COLOR_FACTOR_MIN <= value <= COLOR_FACTOR_MAX:
                raise InvalidEditParametersError(
                    key, value, f'must be between {COLOR_FACTOR_MIN} and {COLOR_FACTOR_MAX}')
            factors[key] = value

        fit = data.get('fit') or FIT_COVER
        if fit not in (FIT_COVER, FIT_CONTAIN):
            raise InvalidEditParametersError('fit', fit, "must be 'cover' or 'contain'")

        crop = data.get('crop')
        crop = CropRect.from_dict(crop) if crop is not None else None

        aspect_ratio = data.get('aspectRatio')
        if aspect_ratio is not None:
            aspect_ratio = number('aspectRatio', None)
            if aspect_ratio is not None and aspect_ratio <= 0:
                raise InvalidEditParametersError('aspectRatio', aspect_ratio, 'must be positive')

        return cls(
            rotation=int(rotation) if float(rotation).is_integer() else rotation,
            scale=scale,
            fit=fit,
            crop=crop,
            aspect_ratio=aspect_ratio,
            **factors,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'rotation': self.rotation,
            'scale': self.scale,
            'brightness': self.brightness,
            'saturation': self.saturation,
            'contrast': self.contrast,
            'fit': self.fit,
        }
        if self.crop is not None:
            data['crop'] = self.crop.to_dict()
        if self.aspect_ratio is not None:
            data['aspectRatio'] = self.aspect_ratio
        return data


@dataclass
class Photo:
    """One print unit inside a cart item."""
    id: str
    name: str = ""
    file_name: Optional[str] = None
    source_path: Optional[str] = None
    file: Optional[bytes] = None
    edit_params: Optional[EditParameters] = None
    preview: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Photo':
        if not isinstance(data, dict):
            raise ValidationError("Photo must be an object", details={'photo': data})
        edit_params = data.get('editParams')
        return cls(
            id=str(data.get('id', '')),
            name=data.get('name') or "",
            file_name=data.get('fileName'),
            source_path=data.get('sourcePath'),
            edit_params=EditParameters.from_dict(edit_params) if edit_params else None,
            preview=data.get('preview'),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'id': self.id, 'name': self.name}
        if self.file_name:
            data['fileName'] = self.file_name
        if self.source_path:
            data['sourcePath'] = self.source_path
        if self.edit_params is not None:
            data['editParams'] = self.edit_params.to_dict()
        if self.preview:
            data['preview'] = self.preview
        return data


@dataclass
class Size:
    """Product as the cart sees it; `id` is the format SKU."""
    id: str
    name: str = ""
    price: float = 0.0
    requires_even: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Size':
        if not isinstance(data, dict) or not data.get('id'):
            raise ValidationError("Cart item size is missing its id", details={'size': data})
        return cls(
            id=str(data['id']),
            name=data.get('name') or "",
            price=float(data.get('price') or 0),
            requires_even=bool(data.get('requiresEven', False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'price': self.price,
                'requiresEven': self.requires_even}


def compute_subtotal(photo_count: int, price: float, billed_per_pair: bool) -> float:
    """Pair products bill ceil(n / 2) units, everything else one per photo."""
    units = math.ceil(photo_count / 2) if billed_per_pair else photo_count
    return units * price


@dataclass
class CartItem:
    """Photos grouped under one format."""
    size: Size
    photos: List[Photo] = field(default_factory=list)
    id: Optional[int] = None

    @property
    def total_photos(self) -> int:
        return len(self.photos)

    @property
    def subtotal(self) -> float:
        return compute_subtotal(self.total_photos, self.size.price, self.size.requires_even)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CartItem':
        if not isinstance(data, dict):
            raise ValidationError("Cart item must be an object", details={'item': data})
        return cls(
            id=data.get('id'),
            size=Size.from_dict(data.get('size')),
            photos=[Photo.from_dict(p) for p in data.get('photos', [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'size': self.size.to_dict(),
            'photos': [p.to_dict() for p in self.photos],
            'totalPhotos': self.total_photos,
            'subtotal': self.subtotal,
        }


@dataclass
class Order:
    """Aggregate root loaded from the order repository."""
    id: str
    items: List[CartItem]
    client: Dict[str, Any] = field(default_factory=dict)
    status: OrderStatus = OrderStatus.PENDING
    files_copied: bool = False
    total: float = 0.0
    payment_method: Optional[str] = None
    order_number: Optional[int] = None
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None

    @property
    def client_name(self) -> str:
        return str(self.client.get('name') or "")

    @property
    def dispatch_state(self) -> DispatchState:
        if self.files_copied:
            return DispatchState.DISPATCHED
        return DispatchState.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'orderNumber': self.order_number,
            'client': self.client,
            'items': [item.to_dict() for item in self.items],
            'total': self.total,
            'paymentMethod': self.payment_method,
            'status': self.status.value,
            'filesCopied': self.files_copied,
            'dispatchState': self.dispatch_state.value,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'paidAt': self.paid_at.isoformat() if self.paid_at else None,
            'dispatchedAt': self.dispatched_at.isoformat() if self.dispatched_at else None,
        }
