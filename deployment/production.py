#!/usr/bin/env python3
"""
Production deployment for the Photo Print Kiosk.

Builds the app with production settings (config/settings_production.yaml
plus environment variables) and serves it with Waitress on the kiosk PC.
"""

import os
import sys
from pathlib import Path
from typing import List

from loguru import logger
from waitress import serve

project_root = Path(__file__).resolve().parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


def create_production_app():
    """Create production Flask application with proper configuration."""
    os.environ['FLASK_ENV'] = 'production'

    from printkiosk import create_app

    overrides = {
        'DEBUG': False,
        'TESTING': False,
    }
    if os.environ.get('LOG_FILE'):
        overrides['LOG_FILE'] = os.environ['LOG_FILE']

    return create_app('production', overrides)


def check_production_requirements(app) -> List[str]:
    """Check that production requirements are met."""
    errors = []

    if sys.version_info < (3, 9):
        errors.append("Python 3.9 or higher required")

    if not os.environ.get('SECRET_KEY'):
        errors.append("Environment variable SECRET_KEY is required")
    if not app.config.get('ADMIN_TOKEN'):
        errors.append("ADMIN_TOKEN must be set for operator validation")

    # The spooler only sees files we can actually write
    for key in ('PRINT_BASE_PATH', 'TEMP_UPLOAD_DIR'):
        folder = Path(app.config[key])
        try:
            marker = folder / '.write_test'
            marker.write_text('test')
            marker.unlink()
        except OSError as e:
            errors.append(f"No write permission to {key} ({folder}): {e}")

    return errors


# WSGI application instance
app = create_production_app()

if __name__ == '__main__':
    errors = check_production_requirements(app)
    if errors:
        print("❌ Production requirements not met:")
        for error in errors:
            print(f"  - {error}")
        sys.exit(1)

    print("✅ Production requirements check passed")

    host = os.environ.get('HOST', '0.0.0.0')
    port = int(os.environ.get('PORT', '8000'))
    threads = int(os.environ.get('THREADS', '4'))

    logger.info(f"Starting print kiosk on {host}:{port} with {threads} threads")

    try:
        serve(
            app,
            host=host,
            port=port,
            threads=threads,
            channel_timeout=120,
            cleanup_interval=30,
            connection_limit=1000,
        )
    except KeyboardInterrupt:
        print("\n👋 Shutting down gracefully...")
