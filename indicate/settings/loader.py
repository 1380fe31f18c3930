"""
Settings Loader
===============
Builds IndicateSettings from defaults, an optional .env file and
INDICATE_* environment variables.
"""

import os
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from dotenv import load_dotenv

from .schemas import IndicateSettings

logger = logging.getLogger(__name__)


ENV_PREFIX = "INDICATE_"

# Environment variable suffix -> (section, field); section None is top level
ENV_SETTINGS: Dict[str, Tuple[Optional[str], str]] = {
    "DB_PATH": (None, "db_path"),
    "MIN_ROWS": ("statistics", "min_rows"),
    "MAX_CATEGORICAL_VALUES": ("statistics", "max_categorical_values"),
    "MIN_CATEGORICAL_COUNT": ("statistics", "min_categorical_count"),
    "MAX_STORED_CATEGORIES": ("statistics", "max_stored_categories"),
    "COMPUTE_PERCENTILES": ("statistics", "compute_percentiles"),
    "BATCH_SIZE": ("statistics", "batch_size"),
    "WEIGHT_QUANTILE": ("comparison", "quantile"),
    "WEIGHT_CV": ("comparison", "cv"),
    "WEIGHT_RANGE": ("comparison", "range"),
    "WEIGHT_DISTANCE": ("comparison", "distance"),
    "FUZZY_MAX_DISTANCE": ("search", "max_distance"),
    "FUZZY_MIN_SCORE": ("search", "min_score"),
    "FUZZY_LIMIT": ("search", "limit"),
}


# Singleton instance
_settings: Optional[IndicateSettings] = None


def settings_from_env(environ: Optional[Mapping[str, str]] = None) -> IndicateSettings:
    """
    Build settings from environment variables.

    Args:
        environ: Mapping to read from (default: os.environ)

    Raises:
        pydantic.ValidationError: If a variable holds an invalid value
    """
    environ = os.environ if environ is None else environ
    data: Dict[str, Any] = {}

    for suffix, (section, field) in ENV_SETTINGS.items():
        raw = environ.get(ENV_PREFIX + suffix)
        if raw is None or raw == "":
            continue
        if section is None:
            data[field] = raw
        else:
            data.setdefault(section, {})[field] = raw

    if data:
        logger.debug(f"Settings overridden from environment: {sorted(data)}")
    return IndicateSettings.model_validate(data)


def load_settings(env_file: Optional[Union[str, Path]] = None) -> IndicateSettings:
    """
    Load settings, reading a .env file first when one is available.

    Variables already set in the environment take precedence over the file.

    Args:
        env_file: Path to a .env file (default: ./.env if present)
    """
    path = Path(env_file) if env_file else Path.cwd() / ".env"
    if path.exists():
        load_dotenv(path, override=False)
        logger.info(f"Loaded environment from {path}")
    elif env_file:
        logger.warning(f"Environment file not found: {path}")

    return settings_from_env()


def get_settings() -> IndicateSettings:
    """Get or create the process-wide settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
