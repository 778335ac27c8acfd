"""
Configuration management for the print kiosk
Loads settings from YAML files with environment variable overrides
"""

import os
import yaml
from pathlib import Path
from typing import Dict, List, Optional, Any
from pydantic import BaseModel, Field
from loguru import logger


CONFIG_DIR = os.getenv('KIOSK_CONFIG_DIR', 'config')


class FormatConfig(BaseModel):
    """Print format definition as written in formats.yaml"""
    sku: str
    folder: str
    name: str = ""
    # Either pixel sizes or physical inches may be given; inches are
    # converted with PRINT_DPI.
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    canvas_width: Optional[int] = None
    canvas_height: Optional[int] = None
    width_in: Optional[float] = None
    height_in: Optional[float] = None
    canvas_width_in: Optional[float] = None
    canvas_height_in: Optional[float] = None
    pair_billing: bool = False


class AppConfig(BaseModel):
    """Main application configuration"""

    # Flask settings
    SECRET_KEY: str = Field(default_factory=lambda: os.urandom(24).hex())
    FLASK_ENV: str = "development"
    DEBUG: bool = True
    TESTING: bool = False

    # Paths
    TEMP_UPLOAD_DIR: str = "temp_uploads"
    PRINT_BASE_PATH: str = "prints"
    DATABASE_URL: str = "sqlite:///kiosk.db"

    # Admin
    ADMIN_TOKEN: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/app.log"

    # Uploads
    MAX_UPLOAD_SIZE: int = 30 * 1024 * 1024  # 30MB
    ALLOWED_EXTENSIONS: List[str] = [".jpg", ".jpeg", ".png", ".heic", ".heif"]
    RETENTION_DAYS: float = 3.0

    # Print rendering
    PRINT_DPI: int = 300
    PRINT_JPEG_QUALITY: int = 95
    RENDER_TIMEOUT_SECONDS: Optional[float] = 60.0
    AUTO_ORIENT_UNEDITED: bool = True

    # Preview rendering
    PREVIEW_MAX_SIZE: int = 2000
    PREVIEW_JPEG_QUALITY: int = 85
    SMART_ASPECT_RATIO: bool = True


def load_yaml_config(file_path: str) -> Dict:
    """Load configuration from YAML file"""
    path = Path(file_path)
    if not path.exists():
        logger.warning(f"Config file not found: {file_path}")
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except Exception as e:
        logger.error(f"Error loading config file {file_path}: {e}")
        return {}


def load_config(environment: str = "development", overrides: Optional[Dict[str, Any]] = None) -> AppConfig:
    """Load configuration with environment-specific overrides"""

    # Load base settings
    base_config = load_yaml_config(f"{CONFIG_DIR}/settings.yaml")

    # Load environment-specific settings
    env_config = load_yaml_config(f"{CONFIG_DIR}/settings_{environment}.yaml")

    # Merge configurations (env overrides base)
    config_dict = {**base_config, **env_config}

    # Apply environment variable overrides
    env_overrides = {
        'PRINT_BASE_PATH': os.getenv('PRINT_BASE_PATH'),
        'TEMP_UPLOAD_DIR': os.getenv('TEMP_UPLOAD_DIR'),
        'DATABASE_URL': os.getenv('DATABASE_URL'),
        'ADMIN_TOKEN': os.getenv('ADMIN_TOKEN'),
        'FLASK_ENV': os.getenv('FLASK_ENV', environment),
        'LOG_LEVEL': os.getenv('LOG_LEVEL'),
        'SECRET_KEY': os.getenv('SECRET_KEY'),
    }

    # Only include non-None values
    env_overrides = {k: v for k, v in env_overrides.items() if v is not None}
    config_dict.update(env_overrides)

    # Special handling for boolean DEBUG flag
    if 'FLASK_ENV' in config_dict:
        config_dict['DEBUG'] = config_dict['FLASK_ENV'] == 'development'

    # Explicit overrides (tests, production launcher) win over everything
    config_dict.update(overrides or {})

    try:
        return AppConfig(**config_dict)
    except Exception as e:
        logger.error(f"Configuration validation error: {e}")
        # Return default config on validation error
        return AppConfig()


def load_format_configs(file_path: Optional[str] = None) -> List[FormatConfig]:
    """Load print format definitions from YAML"""
    config_data = load_yaml_config(file_path or f"{CONFIG_DIR}/formats.yaml")

    formats = []
    for item in config_data.get("formats", []):
        try:
            formats.append(FormatConfig(**item))
        except Exception as e:
            logger.error(f"Error loading format config {item.get('sku', 'unknown')}: {e}")

    logger.info(f"Loaded {len(formats)} format configurations")
    return formats
