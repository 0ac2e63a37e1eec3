"""Server configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: GEOTRACK_<SECTION>_<KEY> (uppercase).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from datetime import timedelta
from pathlib import Path

import yaml

from geotrack.core.validator import SpoofingThresholds, ValidationRules


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    env: str = "dev"  # "dev" or "prod"


@dataclass
class ValidationConfig:
    max_distance_m: float = 100.0
    min_accuracy_m: float = 50.0
    time_window_minutes: float = 5.0
    allow_fallback: bool = False
    strict_mode: bool = False
    high_accuracy_m: float = 10.0
    medium_accuracy_m: float = 30.0
    fallback_multiplier: float = 1.5
    max_speed_kmh: float = 60.0

    def to_rules(self) -> ValidationRules:
        return ValidationRules(
            max_distance_m=self.max_distance_m,
            min_accuracy_m=self.min_accuracy_m,
            time_window_minutes=self.time_window_minutes,
            allow_fallback=self.allow_fallback,
            strict_mode=self.strict_mode,
            high_accuracy_m=self.high_accuracy_m,
            medium_accuracy_m=self.medium_accuracy_m,
            fallback_multiplier=self.fallback_multiplier,
            max_speed_kmh=self.max_speed_kmh,
        )


@dataclass
class SpoofingConfig:
    impossible_speed_kmh: float = 300.0
    high_speed_kmh: float = 150.0
    perfect_accuracy_m: float = 1.0
    regular_variance_ratio: float = 0.1
    history_size: int = 20  # recent accepted samples checked per ping

    def to_thresholds(self) -> SpoofingThresholds:
        return SpoofingThresholds(
            impossible_speed_kmh=self.impossible_speed_kmh,
            high_speed_kmh=self.high_speed_kmh,
            perfect_accuracy_m=self.perfect_accuracy_m,
            regular_variance_ratio=self.regular_variance_ratio,
        )


@dataclass
class TrailConfig:
    max_gap_minutes: float = 30.0

    @property
    def max_gap(self) -> timedelta:
        return timedelta(minutes=self.max_gap_minutes)


@dataclass
class AttendanceConfig:
    timezone: str = "Asia/Colombo"
    site_region_id: str = ""  # geofence clock events are checked against, if set


@dataclass
class LimitsConfig:
    active_window_seconds: float = 120.0
    max_trail_points: int = 1000


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"
    file: str = ""


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    spoofing: SpoofingConfig = field(default_factory=SpoofingConfig)
    trails: TrailConfig = field(default_factory=TrailConfig)
    attendance: AttendanceConfig = field(default_factory=AttendanceConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "GEOTRACK_SERVER_HOST": lambda v: setattr(config.server, "host", v),
        "GEOTRACK_SERVER_PORT": lambda v: setattr(config.server, "port", int(v)),
        "GEOTRACK_SERVER_ENV": lambda v: setattr(config.server, "env", v),
        "GEOTRACK_VALIDATION_MAX_DISTANCE": lambda v: setattr(config.validation, "max_distance_m", float(v)),
        "GEOTRACK_VALIDATION_MIN_ACCURACY": lambda v: setattr(config.validation, "min_accuracy_m", float(v)),
        "GEOTRACK_VALIDATION_TIME_WINDOW": lambda v: setattr(config.validation, "time_window_minutes", float(v)),
        "GEOTRACK_VALIDATION_ALLOW_FALLBACK": lambda v: setattr(config.validation, "allow_fallback", _parse_bool(v)),
        "GEOTRACK_VALIDATION_STRICT_MODE": lambda v: setattr(config.validation, "strict_mode", _parse_bool(v)),
        "GEOTRACK_SPOOFING_HISTORY_SIZE": lambda v: setattr(config.spoofing, "history_size", int(v)),
        "GEOTRACK_TRAILS_MAX_GAP": lambda v: setattr(config.trails, "max_gap_minutes", float(v)),
        "GEOTRACK_ATTENDANCE_TIMEZONE": lambda v: setattr(config.attendance, "timezone", v),
        "GEOTRACK_ATTENDANCE_SITE": lambda v: setattr(config.attendance, "site_region_id", v),
        "GEOTRACK_LIMITS_ACTIVE_WINDOW": lambda v: setattr(config.limits, "active_window_seconds", float(v)),
        "GEOTRACK_LIMITS_MAX_TRAIL_POINTS": lambda v: setattr(config.limits, "max_trail_points", int(v)),
        "GEOTRACK_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "GEOTRACK_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
        "GEOTRACK_LOG_FILE": lambda v: setattr(config.logging, "file", v),
    }
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            setter(val)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    # Try to load YAML
    if config_path is None:
        config_path = Path("config.yaml")
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for section_name in ("server", "validation", "spoofing", "trails",
                             "attendance", "limits", "logging"):
            section = getattr(config, section_name)
            for k, v in (raw.get(section_name) or {}).items():
                if k in {f.name for f in fields(section)}:
                    setattr(section, k, v)

    # Environment overrides always win
    _apply_env_overrides(config)
    return config
