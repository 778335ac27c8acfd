"""
Service wiring for the print kiosk.

Builds the format registry, renderers, order repository and dispatcher
from an AppConfig, so the Flask app and the CLI share one set of objects.
"""

from dataclasses import dataclass

from flask import current_app

from .config import AppConfig
from .dispatcher import HotFolderDispatcher
from .formats import FormatRegistry
from .preview_renderer import PreviewRenderer
from .print_renderer import PrintRenderer
from .repository import OrderRepository, build_session_factory

EXTENSION_KEY = 'printkiosk'


@dataclass
class KioskServices:
    config: AppConfig
    registry: FormatRegistry
    repository: OrderRepository
    print_renderer: PrintRenderer
    preview_renderer: PreviewRenderer
    dispatcher: HotFolderDispatcher


def build_services(config: AppConfig, registry: FormatRegistry = None) -> KioskServices:
    registry = registry or FormatRegistry.from_yaml(dpi=config.PRINT_DPI)
    repository = OrderRepository(build_session_factory(config.DATABASE_URL), registry)
    print_renderer = PrintRenderer.from_config(config)
    dispatcher = HotFolderDispatcher(
        repository=repository,
        registry=registry,
        renderer=print_renderer,
        print_base_path=config.PRINT_BASE_PATH,
        temp_upload_dir=config.TEMP_UPLOAD_DIR,
    )
    return KioskServices(
        config=config,
        registry=registry,
        repository=repository,
        print_renderer=print_renderer,
        preview_renderer=PreviewRenderer.from_config(config),
        dispatcher=dispatcher,
    )


def get_services() -> KioskServices:
    """Services of the current Flask app."""
    return current_app.extensions[EXTENSION_KEY]
