"""
Hot-folder dispatcher.

Renders every photo of an order into the folder of its print format, where
the external print spooler picks it up. Each order is dispatched at most
once: a per-order lock serializes concurrent triggers in this process and
the repository's conditional update on files_copied is the atomic gate.

Partial failures are tolerated per photo:
- unknown SKU: the cart item is skipped
- missing source file: the photo is skipped
- render failure: the source bytes are copied unchanged so something prints
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from loguru import logger
from werkzeug.utils import secure_filename

from .errors import DispatchError, MissingSourceFileError, RenderError, UnknownFormatError
from .formats import Format, FormatRegistry
from .models import DispatchState, Order, Photo
from .print_renderer import PrintRenderer
from .repository import OrderRepository

TIMESTAMP_FORMAT = '%H%M_%d%m%Y'
DEFAULT_CLIENT_NAME = 'cliente'

# order id -> [lock, number of threads holding or waiting for it]
_order_locks: Dict[str, list] = {}
_order_locks_guard = threading.Lock()


@contextmanager
def _order_lock(order_id: str) -> Iterator[None]:
    """Serialize work on one order; the entry is dropped with its last user."""
    with _order_locks_guard:
        entry = _order_locks.setdefault(order_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _order_locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _order_locks[order_id]


def sanitize_client_name(name: str) -> str:
    """Filesystem-safe client name for output files."""
    return secure_filename(name or '') or DEFAULT_CLIENT_NAME


def output_file_name(client_name: str, stamp: str, seq: int) -> str:
    return f"{sanitize_client_name(client_name)}_{stamp}_{seq:03d}.jpg"


@dataclass
class DispatchReport:
    """What a dispatch run did, for logging and the admin UI."""
    order_id: str
    already_dispatched: bool = False
    written: List[Path] = field(default_factory=list)
    fallback_copies: List[Path] = field(default_factory=list)
    skipped_photos: List[Dict[str, str]] = field(default_factory=list)
    skipped_items: List[str] = field(default_factory=list)
    deleted_sources: List[Path] = field(default_factory=list)
    marked: bool = False

    def to_dict(self) -> Dict:
        return {
            'orderId': self.order_id,
            'alreadyDispatched': self.already_dispatched,
            'written': [str(p) for p in self.written],
            'fallbackCopies': [str(p) for p in self.fallback_copies],
            'skippedPhotos': self.skipped_photos,
            'skippedItems': self.skipped_items,
            'deletedSources': [str(p) for p in self.deleted_sources],
        }


class HotFolderDispatcher:
    """Deliver an order's photos into the hot-folder tree."""

    def __init__(self,
                 repository: OrderRepository,
                 registry: FormatRegistry,
                 renderer: PrintRenderer,
                 print_base_path,
                 temp_upload_dir,
                 clock: Callable[[], datetime] = datetime.now):
        self.repository = repository
        self.registry = registry
        self.renderer = renderer
        self.print_base_path = Path(print_base_path)
        self.temp_upload_dir = Path(temp_upload_dir)
        self.clock = clock
        self._in_flight = set()

    def state_of(self, order: Order) -> DispatchState:
        if order.files_copied:
            return DispatchState.DISPATCHED
        if order.id in self._in_flight:
            return DispatchState.DISPATCHING
        return DispatchState.PENDING

    def dispatch(self, order_id: str) -> DispatchReport:
        """
        Dispatch an order once. Re-running on a dispatched order is a
        logged no-op that returns success.

        Raises OrderNotFoundError, or DispatchError when an output folder
        cannot be created or written.
        """
        with _order_lock(order_id):
            order = self.repository.get_order(order_id)
            if order.files_copied:
                logger.info(f"Order {order_id} already dispatched, nothing to do")
                return DispatchReport(order_id, already_dispatched=True)

            self._in_flight.add(order_id)
            try:
                report = self._dispatch_order(order)
            finally:
                self._in_flight.discard(order_id)

            report.marked = self.repository.mark_files_copied(order_id)
            if not report.marked:
                logger.warning(f"Order {order_id} was marked dispatched by another process")

        logger.info(f"Order {order_id} dispatched: {len(report.written)} files, "
                    f"{len(report.fallback_copies)} raw copies, "
                    f"{len(report.skipped_photos)} photos and {len(report.skipped_items)} items skipped")
        return report

    def _dispatch_order(self, order: Order) -> DispatchReport:
        report = DispatchReport(order.id)
        stamp = self.clock().strftime(TIMESTAMP_FORMAT)
        seq = 0

        for item in order.items:
            try:
                fmt = self.registry.lookup(item.size.id)
            except UnknownFormatError as e:
                logger.warning(f"Order {order.id}: skipping {item.total_photos} photos - {e}")
                report.skipped_items.append(item.size.id)
                continue

            target_dir = self._ensure_output_dir(fmt)

            for photo in item.photos:
                try:
                    data, source_path = self._load_source(photo)
                except MissingSourceFileError as e:
                    logger.error(f"Order {order.id}: skipping photo {photo.id or photo.name} - {e}")
                    report.skipped_photos.append({'id': photo.id, 'reason': e.message})
                    continue

                seq += 1
                seq = self._deliver(photo, data, source_path, fmt, target_dir,
                                    order.client_name, stamp, seq, report)

        return report

    def _ensure_output_dir(self, fmt: Format) -> Path:
        target_dir = self.print_base_path / fmt.folder
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DispatchError(
                f"Cannot create output folder {target_dir}: {e}",
                details={'path': str(target_dir), 'format': fmt.sku},
                suggestions=["Check that PRINT_BASE_PATH exists and is writable"]) from e
        return target_dir

    def resolve_source(self, photo: Photo) -> Path:
        """Explicit source path, or the photo's file in the temp upload folder."""
        if photo.source_path:
            path = Path(photo.source_path)
        elif photo.file_name:
            path = self.temp_upload_dir / photo.file_name
        else:
            raise MissingSourceFileError('<no fileName or sourcePath>', photo.id)

        if not path.is_file():
            raise MissingSourceFileError(str(path), photo.id)
        return path

    def _load_source(self, photo: Photo) -> Tuple[bytes, Optional[Path]]:
        if photo.file is not None and not (photo.source_path or photo.file_name):
            return photo.file, None
        path = self.resolve_source(photo)
        try:
            return path.read_bytes(), path
        except OSError as e:
            raise MissingSourceFileError(str(path), photo.id) from e

    def _deliver(self, photo: Photo, data: bytes, source_path: Optional[Path], fmt: Format,
                 target_dir: Path, client_name: str, stamp: str, seq: int,
                 report: DispatchReport) -> int:
        """Render (or raw-copy) one photo into target_dir. Returns the sequence number used."""
        source_label = str(source_path) if source_path else f"<photo {photo.id}>"
        try:
            payload = self.renderer.render(data, fmt, photo.edit_params, source=source_label)
            rendered = True
        except RenderError as e:
            # Degraded mode: print the untouched original rather than nothing
            logger.error(f"Render failed for {source_label} ({e.message}), copying raw bytes instead")
            payload = data
            rendered = False

        target, seq = self._write_output(target_dir, client_name, stamp, seq, payload, source_label)
        if rendered:
            report.written.append(target)
        else:
            report.fallback_copies.append(target)
        logger.debug(f"Delivered {source_label} -> {target}")

        if source_path is not None and not self._is_temp_upload(source_path):
            self._remove_source(source_path, report)
        return seq

    @staticmethod
    def _write_output(target_dir: Path, client_name: str, stamp: str, seq: int,
                      payload: bytes, source_label: str) -> Tuple[Path, int]:
        """
        Create the output file exclusively under the first free sequence
        number at or after seq.

        Another order for the same client in the same minute uses the same
        name stem; its files are never overwritten.
        """
        while True:
            target = target_dir / output_file_name(client_name, stamp, seq)
            try:
                with open(target, 'xb') as f:
                    f.write(payload)
                return target, seq
            except FileExistsError:
                seq += 1
            except OSError as e:
                raise DispatchError(
                    f"Cannot write {target}: {e}",
                    details={'target': str(target), 'source': source_label}) from e

    def _is_temp_upload(self, path: Path) -> bool:
        return self.temp_upload_dir.resolve() in path.resolve().parents

    def _remove_source(self, path: Path, report: DispatchReport) -> None:
        """Free removable/transient storage once the print file is written."""
        try:
            path.unlink()
            report.deleted_sources.append(path)
            logger.debug(f"Removed imported source {path}")
        except OSError as e:
            logger.warning(f"Could not remove imported source {path}: {e}")
