"""
Process configuration for the CLI, with environment-specific profiles.

Supports dev and production environments via LOADPROJ_ENV. Every value
can be overridden by its environment variable. Domain constants are not
read from here: the engine only ever sees an explicit ``Calibration``.
"""

import json
import os
from dataclasses import dataclass
from typing import Dict, Optional

from core.calibration import Calibration, DEFAULT_CALIBRATION, load_calibration


@dataclass(frozen=True)
class Settings:
    """Immutable process settings resolved from environment."""

    app_env: str = "dev"
    log_level: str = "INFO"
    log_format: str = "plain"
    calibration_path: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


# -- Environment profiles --

_ENV_PROFILES: Dict[str, Dict[str, str]] = {
    "dev": {
        "log_level": "DEBUG",
        "log_format": "plain",
    },
    "production": {
        "log_level": "WARNING",
        "log_format": "json",
    },
}


def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("LOADPROJ_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    return Settings(
        app_env=app_env,
        log_level=os.getenv("LOADPROJ_LOG_LEVEL", profile["log_level"]),
        log_format=os.getenv("LOADPROJ_LOG_FORMAT", profile["log_format"]),
        calibration_path=os.getenv("LOADPROJ_CALIBRATION") or None,
    )


def resolve_calibration(settings: Settings) -> Calibration:
    """
    Calibration named by the settings, or the default one.

    Raises:
        ValueError: If the calibration file holds inconsistent constants
    """
    if settings.calibration_path is None:
        return DEFAULT_CALIBRATION
    with open(settings.calibration_path) as f:
        return load_calibration(json.load(f))
