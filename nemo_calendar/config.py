"""
Configuration parser for nemo-calendar.

Handles TOML file parsing for the canonical time zone, debug output and
the bounds applied to recurrence expansion (instance count and years
searched).
"""

import tomllib
import os
import sys
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional


DEFAULT_MAX_INSTANCES = 100000
DEFAULT_HORIZON_YEARS = 100

_debug_enabled: bool = False


def set_debug(enabled: bool) -> None:
    """Enable or disable the stderr debug trace."""
    global _debug_enabled
    _debug_enabled = enabled


def is_debug() -> bool:
    return _debug_enabled


@dataclass
class RecurrenceConfig:
    """Bounds for recurrence instance generation."""
    max_instances: int = DEFAULT_MAX_INSTANCES  # Instances examined per lookup
    horizon_years: int = DEFAULT_HORIZON_YEARS  # Years searched past the requested time


@dataclass
class Config:
    """Main configuration container for nemo-calendar."""

    timezone: str = "UTC"
    debug: bool = False
    recurrence: RecurrenceConfig = field(default_factory=RecurrenceConfig)

    @classmethod
    def get_default_config_path(cls) -> Path:
        """Get the default configuration file path."""
        xdg_config = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
        return Path(xdg_config) / 'nemo-calendar' / 'nemo-calendar.toml'

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> 'Config':
        """Load configuration from TOML file."""
        if config_path is None:
            config_path = cls.get_default_config_path()

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'rb') as f:
            data = tomllib.load(f)

        # Parse General section
        general = data.get('General', {})
        timezone = general.get('timezone', Config.timezone)
        debug = bool(general.get('debug', False))

        # Parse Recurrence section
        recurrence_data = data.get('Recurrence', {})
        max_instances = recurrence_data.get('max_instances', RecurrenceConfig.max_instances)
        if not isinstance(max_instances, int) or max_instances <= 0:
            print(f"Warning: ignoring invalid max_instances={max_instances!r}", file=sys.stderr)
            max_instances = RecurrenceConfig.max_instances
        horizon_years = recurrence_data.get('horizon_years', RecurrenceConfig.horizon_years)
        if not isinstance(horizon_years, int) or horizon_years <= 0:
            print(f"Warning: ignoring invalid horizon_years={horizon_years!r}", file=sys.stderr)
            horizon_years = RecurrenceConfig.horizon_years

        return cls(
            timezone=timezone,
            debug=debug,
            recurrence=RecurrenceConfig(max_instances=max_instances,
                                        horizon_years=horizon_years),
        )

    def apply(self) -> None:
        """Make this configuration the active one for the library."""
        from . import occurrence_locator, timezone_utils

        set_debug(self.debug)
        if timezone_utils.lookup_timezone(self.timezone) is not None:
            timezone_utils.set_timezone(self.timezone)
        occurrence_locator.set_max_instances(self.recurrence.max_instances)
        occurrence_locator.set_horizon_years(self.recurrence.horizon_years)
