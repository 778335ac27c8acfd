#!/usr/bin/env python3
"""
Photo Print Kiosk - Development Runner
Run this script to start the development server
"""

import os
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

# Set environment defaults
os.environ.setdefault('FLASK_APP', 'printkiosk')
os.environ.setdefault('FLASK_ENV', 'development')

from printkiosk import create_app
from printkiosk.services import EXTENSION_KEY


def main():
    """Main entry point"""
    print("=" * 60)
    print("Photo Print Kiosk - Development Server")
    print("=" * 60)

    app = create_app()
    services = app.extensions[EXTENSION_KEY]

    print(f"Environment: {app.config.get('FLASK_ENV', 'unknown')}")
    print(f"Debug mode: {app.config.get('DEBUG', False)}")
    print(f"Log level: {app.config.get('LOG_LEVEL', 'INFO')}")
    print(f"Hot folders: {Path(app.config['PRINT_BASE_PATH']).resolve()}")
    print(f"Formats: {', '.join(services.registry.skus)}")

    if not Path('config/formats.yaml').exists():
        print("⚠️  config/formats.yaml not found, using the built-in format table")
    if not app.config.get('ADMIN_TOKEN'):
        print("⚠️  ADMIN_TOKEN is not set; /api/admin endpoints will reject every request")

    print("-" * 60)
    print("Starting development server...")
    print("Open your browser to: http://localhost:5000")
    print("Press Ctrl+C to stop")
    print("-" * 60)

    app.run(
        host='0.0.0.0',
        port=5000,
        debug=app.config.get('DEBUG', True),
        use_reloader=True,
        threaded=True
    )


if __name__ == '__main__':
    main()
