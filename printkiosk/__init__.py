"""
Photo Print Kiosk - Flask Application Factory
Renders edited customer photos for print and delivers them to the printer hot folders
"""

import os
from pathlib import Path

import click
from flask import Flask
from loguru import logger
from dotenv import load_dotenv

from .config import load_config
from .services import EXTENSION_KEY, build_services, get_services
from .uploads import sweep_temp_uploads


def create_app(config_name=None, overrides=None, registry=None):
    """Flask application factory"""

    # Load environment variables
    load_dotenv()

    # Tests pass a plain dict of settings
    if isinstance(config_name, dict):
        overrides, config_name = config_name, None
    environment = config_name or os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)

    # Load configuration
    config = load_config(environment, overrides)
    app.config.update(config.model_dump())

    # Configure logging
    setup_logging(app)

    # Ensure working directories exist
    setup_directories(app)

    app.extensions[EXTENSION_KEY] = build_services(config, registry)

    # Register blueprints
    from . import routes
    app.register_blueprint(routes.bp)

    register_commands(app)

    logger.info(f"Print kiosk initialized in {environment} mode "
                f"(hot folders at {config.PRINT_BASE_PATH})")

    return app


def setup_logging(app):
    """Configure loguru logging"""
    log_level = app.config.get('LOG_LEVEL', 'INFO')
    log_file = app.config.get('LOG_FILE', 'logs/app.log')

    # Ensure logs directory exists
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_file,
        rotation="1 day",
        retention="30 days",
        level=log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}"
    )


def setup_directories(app):
    """Ensure required directories exist"""
    dirs = [
        app.config.get('TEMP_UPLOAD_DIR', 'temp_uploads'),
        app.config.get('PRINT_BASE_PATH', 'prints'),
    ]

    for dir_path in dirs:
        Path(dir_path).mkdir(parents=True, exist_ok=True)


def register_commands(app):
    """Operator commands, run with `flask --app printkiosk <command>`"""

    @app.cli.command('sweep-uploads')
    @click.option('--days', type=float, default=None, help='Override RETENTION_DAYS')
    def sweep_uploads_command(days):
        """Delete temp uploads older than the retention window."""
        config = get_services().config
        removed = sweep_temp_uploads(config.TEMP_UPLOAD_DIR,
                                     days if days is not None else config.RETENTION_DAYS)
        click.echo(f"Removed {len(removed)} expired uploads")

    @app.cli.command('dispatch-order')
    @click.argument('order_id')
    def dispatch_order_command(order_id):
        """Render and deliver an order's photos to the hot folders."""
        report = get_services().dispatcher.dispatch(order_id)
        if report.already_dispatched:
            click.echo(f"Order {order_id} was already dispatched")
        else:
            click.echo(f"Wrote {len(report.written)} files, "
                       f"{len(report.fallback_copies)} raw copies, "
                       f"skipped {len(report.skipped_photos)} photos")
