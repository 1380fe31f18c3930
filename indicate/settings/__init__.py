"""
Settings module for INDICATE.

Tunable thresholds and weights, loaded from defaults, .env and
INDICATE_* environment variables.
"""

from .schemas import (
    StatisticsSettings,
    ComparisonWeights,
    SearchSettings,
    IndicateSettings,
)
from .loader import (
    ENV_PREFIX,
    settings_from_env,
    load_settings,
    get_settings,
)

__all__ = [
    "StatisticsSettings",
    "ComparisonWeights",
    "SearchSettings",
    "IndicateSettings",
    "ENV_PREFIX",
    "settings_from_env",
    "load_settings",
    "get_settings",
]
