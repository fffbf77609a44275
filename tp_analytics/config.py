"""
Configuration module for the training analytics package.
Provides cache, analysis and source settings with environment overrides.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Tuple
import os

DEFAULT_CACHE_DIR = str(Path.home() / ".trainingpeaks-mcp" / "cache" / "fit")
DEFAULT_CACHE_MAX_BYTES = 500 * 1024 * 1024  # 500 MiB

DEFAULT_CURVE_DURATIONS: Tuple[int, ...] = (5, 10, 20, 30, 60, 90, 120, 180, 240, 300, 360, 600, 1200)


@dataclass
class CacheSettings:
    """Activity file cache configuration."""
    cache_dir: str = DEFAULT_CACHE_DIR  # One <workout_id>.fit file per cached workout
    max_bytes: int = DEFAULT_CACHE_MAX_BYTES  # Total byte budget before LRU eviction
    enabled: bool = True


@dataclass
class AnalysisSettings:
    """Multi-workout analysis configuration."""
    batch_size: int = 5  # Concurrent downloads per power-curve batch
    cycling_workout_type: str = "Bike"
    default_durations: Tuple[int, ...] = DEFAULT_CURVE_DURATIONS
    duration_tolerance_s: float = 2.0  # Default +/- window for lap duration filters


@dataclass
class SourceSettings:
    """Local activity source configuration."""
    data_dir: str = "training_data"  # Holds workouts.json and <workout_id>.fit[.gz]
    workouts_index: str = "workouts.json"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


class AnalyticsConfig:
    """Main configuration class for the analytics package."""

    def __init__(self):
        self.cache = CacheSettings(
            cache_dir=os.environ.get("TP_CACHE_DIR") or DEFAULT_CACHE_DIR,
            max_bytes=_env_int("TP_CACHE_MAX_BYTES", DEFAULT_CACHE_MAX_BYTES),
        )
        self.analysis = AnalysisSettings()
        self.source = SourceSettings(data_dir=os.environ.get("TP_DATA_DIR") or SourceSettings.data_dir)
        self._user_inputs: Dict[str, Any] = {}

    def _update(self, section_name: str, section: Any, **kwargs):
        for key, value in kwargs.items():
            if hasattr(section, key):
                setattr(section, key, value)
                self._user_inputs[f'{section_name}_{key}'] = value
            else:
                raise ValueError(f"Unknown {section_name} setting: {key}")

    def update_cache_settings(self, **kwargs):
        """Update cache settings dynamically."""
        self._update("cache", self.cache, **kwargs)

    def update_analysis_settings(self, **kwargs):
        """Update analysis settings dynamically."""
        self._update("analysis", self.analysis, **kwargs)

    def update_source_settings(self, **kwargs):
        """Update source settings dynamically."""
        self._update("source", self.source, **kwargs)

    def validate_configuration(self) -> bool:
        """Validate that settings are usable."""
        errors = []

        if self.cache.max_bytes <= 0:
            errors.append("Cache max_bytes must be greater than 0")

        if self.analysis.batch_size < 1:
            errors.append("Analysis batch_size must be at least 1")

        if self.analysis.duration_tolerance_s < 0:
            errors.append("Duration tolerance must not be negative")

        if errors:
            raise ValueError(f"Configuration errors: {'; '.join(errors)}")

        return True

    def get_summary(self) -> Dict[str, Any]:
        """Get configuration summary."""
        return {
            'cache': {
                'cache_dir': self.cache.cache_dir,
                'max_bytes': self.cache.max_bytes,
                'enabled': self.cache.enabled,
            },
            'analysis': {
                'batch_size': self.analysis.batch_size,
                'cycling_workout_type': self.analysis.cycling_workout_type,
                'default_durations': list(self.analysis.default_durations),
                'duration_tolerance_s': self.analysis.duration_tolerance_s,
            },
            'source': {
                'data_dir': self.source.data_dir,
                'workouts_index': self.source.workouts_index,
            },
            'user_inputs': self._user_inputs,
        }


# Global configuration instance
config = AnalyticsConfig()


def get_config() -> AnalyticsConfig:
    """Get the global configuration instance."""
    return config


def reset_config() -> AnalyticsConfig:
    """Reset configuration to defaults (re-reading the environment)."""
    global config
    config = AnalyticsConfig()
    return config
