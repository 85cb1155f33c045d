"""
Engine configuration

Reads an optional TSV file (key<TAB>value, '#' comments) and falls back
to SCRIPT_LAYERS_* environment variables, then to defaults.

Keys:
    precedence                   outer_first | self_first (default self_first)
    on_demand_cache              true | false (default true)
    on_demand_precedence         outer_first | self_first (default outer_first)
    allow_cross_layer_conflicts  true | false (default true)
    allow_outer_conflicts        true | false (default true)
    on_demand_latency            seconds (default 0)
    sources_latency              seconds (default 5)
    log_dir                      directory for TSV logs (default: in memory)
"""

from pathlib import Path
from typing import Dict, Optional
import csv
import os

from ..core.errors import ConfigError
from ..load.precedence import Precedence

ENV_PREFIX = 'SCRIPT_LAYERS_'
DEFAULT_CONFIG_FILE = 'script_layers.tsv'

_TRUE = {'1', 'true', 'yes', 'on'}
_FALSE = {'0', 'false', 'no', 'off'}


class EngineConfig:
    """Settings for a LayeredEngine"""

    def __init__(
        self,
        precedence: Precedence = Precedence.SELF_FIRST,
        on_demand_cache: bool = True,
        on_demand_precedence: Precedence = Precedence.OUTER_FIRST,
        allow_cross_layer_conflicts: bool = True,
        allow_outer_conflicts: bool = True,
        on_demand_latency: float = 0.0,
        sources_latency: float = 5.0,
        log_dir: Optional[Path | str] = None,
    ):
        on_demand_latency = _coerce_float('on_demand_latency', on_demand_latency)
        sources_latency = _coerce_float('sources_latency', sources_latency)
        if on_demand_latency < 0 or sources_latency < 0:
            raise ConfigError("Latency must not be negative.")
        self.precedence = _coerce_precedence('precedence', precedence)
        self.on_demand_cache = _coerce_bool('on_demand_cache', on_demand_cache)
        self.on_demand_precedence = _coerce_precedence('on_demand_precedence', on_demand_precedence)
        self.allow_cross_layer_conflicts = _coerce_bool('allow_cross_layer_conflicts', allow_cross_layer_conflicts)
        self.allow_outer_conflicts = _coerce_bool('allow_outer_conflicts', allow_outer_conflicts)
        self.on_demand_latency = on_demand_latency
        self.sources_latency = sources_latency
        self.log_dir = Path(log_dir) if log_dir is not None else None

    @classmethod
    def from_mapping(cls, values: Dict[str, str]) -> 'EngineConfig':
        """Build a config from string values; missing keys keep defaults"""
        kwargs = {}
        for key in ('precedence', 'on_demand_precedence'):
            if key in values:
                kwargs[key] = _parse_precedence(key, values[key])
        for key in ('on_demand_cache', 'allow_cross_layer_conflicts', 'allow_outer_conflicts'):
            if key in values:
                kwargs[key] = _parse_bool(key, values[key])
        for key in ('on_demand_latency', 'sources_latency'):
            if key in values:
                kwargs[key] = _parse_float(key, values[key])
        if values.get('log_dir'):
            kwargs['log_dir'] = values['log_dir']
        return cls(**kwargs)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> 'EngineConfig':
        """Build a config from SCRIPT_LAYERS_* environment variables"""
        environ = os.environ if environ is None else environ
        values = {
            key[len(ENV_PREFIX):].lower(): value
            for key, value in environ.items()
            if key.startswith(ENV_PREFIX)
        }
        return cls.from_mapping(values)

    @classmethod
    def from_file(cls, config_file: Path | str = DEFAULT_CONFIG_FILE) -> 'EngineConfig':
        """Build a config from a TSV file, or the environment if it doesn't exist"""
        config_file = Path(config_file)
        if not config_file.exists():
            return cls.from_env()

        values = {}
        with open(config_file, 'r', encoding='utf-8') as f:
            reader = csv.reader(
                (line for line in f if line.strip() and not line.startswith('#')),
                delimiter='\t',
            )
            for row in reader:
                if len(row) < 2 or not row[0].strip():
                    continue
                values[row[0].strip()] = row[1].strip()
        return cls.from_mapping(values)

    def to_dict(self) -> Dict[str, str]:
        return {
            'precedence': self.precedence.value,
            'on_demand_cache': str(self.on_demand_cache).lower(),
            'on_demand_precedence': self.on_demand_precedence.value,
            'allow_cross_layer_conflicts': str(self.allow_cross_layer_conflicts).lower(),
            'allow_outer_conflicts': str(self.allow_outer_conflicts).lower(),
            'on_demand_latency': str(self.on_demand_latency),
            'sources_latency': str(self.sources_latency),
            'log_dir': str(self.log_dir) if self.log_dir is not None else '',
        }

    def __repr__(self):
        return f"EngineConfig({self.to_dict()})"


def _parse_bool(key: str, value: str) -> bool:
    value = value.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"Invalid boolean for {key}: {value!r}")


def _parse_float(key: str, value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"Invalid number for {key}: {value!r}") from None


def _parse_precedence(key: str, value: str) -> Precedence:
    try:
        return Precedence(value.strip().lower())
    except ValueError:
        raise ConfigError(f"Invalid precedence for {key}: {value!r}") from None


def _coerce_bool(key: str, value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return _parse_bool(key, value)
    raise ConfigError(f"Invalid boolean for {key}: {value!r}")


def _coerce_float(key: str, value) -> float:
    if isinstance(value, str):
        return _parse_float(key, value)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"Invalid number for {key}: {value!r}")
    return float(value)


def _coerce_precedence(key: str, value) -> Precedence:
    if isinstance(value, Precedence):
        return value
    if isinstance(value, str):
        return _parse_precedence(key, value)
    raise ConfigError(f"Invalid precedence for {key}: {value!r}")


# Global instance (lazy loaded)
_config = None


def get_config() -> EngineConfig:
    """Get the global engine configuration"""
    global _config
    if _config is None:
        _config = EngineConfig.from_file()
    return _config


def reload_config() -> EngineConfig:
    """Reload configuration from file"""
    global _config
    _config = EngineConfig.from_file()
    return _config
