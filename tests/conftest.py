"""
Pytest configuration and fixtures for the print kiosk tests.

Provides synthetic photos, a small format registry, an in-memory order
repository and a fully wired dispatcher writing into temp directories.
"""

import io
from datetime import datetime
from pathlib import Path

import pytest
from PIL import Image

from printkiosk import create_app
from printkiosk.dispatcher import HotFolderDispatcher
from printkiosk.formats import Format, FormatRegistry, default_formats
from printkiosk.print_renderer import PrintRenderer
from printkiosk.repository import OrderRepository, build_session_factory


FIXED_NOW = datetime(2026, 10, 19, 14, 5)


def make_image_bytes(size=(400, 600), color=(100, 150, 200), fmt='JPEG', exif_orientation=None, **save_kwargs):
    """Encode a solid-color image; optionally tag it with an EXIF orientation."""
    mode = 'RGBA' if fmt == 'PNG' and len(color) == 4 else 'RGB'
    image = Image.new(mode, size, color)
    buffer = io.BytesIO()
    if exif_orientation is not None:
        exif = Image.Exif()
        exif[0x0112] = exif_orientation
        save_kwargs['exif'] = exif.tobytes()
    image.save(buffer, fmt, **save_kwargs)
    return buffer.getvalue()


def make_split_image_bytes(size=(400, 600), left=(255, 0, 0), right=(0, 0, 255)):
    """Lossless image whose left half and right half differ, for orientation checks."""
    image = Image.new('RGB', size, right)
    image.paste(Image.new('RGB', (size[0] // 2, size[1]), left), (0, 0))
    buffer = io.BytesIO()
    image.save(buffer, 'PNG')
    return buffer.getvalue()


def open_jpeg(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def assert_close(pixel, expected, tolerance=6):
    """JPEG is lossy; compare channels within a tolerance."""
    assert all(abs(a - b) <= tolerance for a, b in zip(pixel, expected)), f"{pixel} != {expected}"


@pytest.fixture
def registry():
    """The built-in kiosk formats."""
    return FormatRegistry(default_formats())


@pytest.fixture
def small_registry():
    """Tiny formats that keep image tests fast."""
    return FormatRegistry([
        Format('kiosco', 's4x6', 120, 180, 120, 180, pair_billing=True),
        Format('square-large', 's6x6', 100, 100, 100, 100),
        Format('medium', 's6x8', 100, 140, 120, 160),
    ])


@pytest.fixture
def renderer():
    return PrintRenderer(dpi=300, quality=95)


@pytest.fixture
def repository(small_registry):
    return OrderRepository(build_session_factory("sqlite://"), small_registry)


@pytest.fixture
def temp_upload_dir(tmp_path):
    path = tmp_path / "temp_uploads"
    path.mkdir()
    return path


@pytest.fixture
def print_base_path(tmp_path):
    return tmp_path / "prints"


@pytest.fixture
def dispatcher(repository, small_registry, renderer, print_base_path, temp_upload_dir):
    return HotFolderDispatcher(
        repository=repository,
        registry=small_registry,
        renderer=renderer,
        print_base_path=print_base_path,
        temp_upload_dir=temp_upload_dir,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def make_order(repository):
    """Create an order from (sku, [photo dicts]) pairs."""
    def _make(items, client_name="Ana Pérez", status="paid"):
        cart = [
            {'id': index, 'size': {'id': sku, 'name': sku, 'price': 1000}, 'photos': photos}
            for index, (sku, photos) in enumerate(items, 1)
        ]
        return repository.create_order(client={'name': client_name}, items=cart, total=1000, status=status)
    return _make


@pytest.fixture
def stage_upload(temp_upload_dir):
    """Write bytes into the temp upload folder and return the photo dict."""
    counter = {'n': 0}

    def _stage(data=None, name=None, **photo_fields):
        counter['n'] += 1
        name = name or f"1700000000{counter['n']:03d}_photo{counter['n']}.jpg"
        (temp_upload_dir / name).write_bytes(data if data is not None else make_image_bytes())
        return {'id': f"p{counter['n']}", 'name': name, 'fileName': name, **photo_fields}
    return _stage


@pytest.fixture
def app(tmp_path, small_registry):
    """Create and configure a test Flask application."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-key',
        'TEMP_UPLOAD_DIR': str(tmp_path / 'temp_uploads'),
        'PRINT_BASE_PATH': str(tmp_path / 'prints'),
        'DATABASE_URL': 'sqlite://',
        'LOG_FILE': str(tmp_path / 'logs' / 'app.log'),
        'ADMIN_TOKEN': 'admin-secret',
        'RENDER_TIMEOUT_SECONDS': None,
    }, registry=small_registry)
    yield app


@pytest.fixture
def client(app):
    """Create a test client for the Flask application."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test runner for CLI commands."""
    return app.test_cli_runner()


def list_outputs(base: Path):
    """Relative paths of every file under the hot-folder tree."""
    if not base.exists():
        return []
    return sorted(str(p.relative_to(base)).replace('\\', '/') for p in base.rglob('*') if p.is_file())
