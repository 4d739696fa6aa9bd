"""Configuration Management Package"""

import json
import sys
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Optional

VALID_PROVIDERS = {"auto", "claude", "ollama"}
VALID_STYLES = {"simple", "conventional", "detailed"}
KNOWN_BACKENDS = ("ollama", "claude")


class ConfigurationError(ValueError):
    """Raised when a component is built with invalid parameters."""
    pass


@dataclass(frozen=True)
class BreakerConfig:
    """Per-provider circuit breaker settings. Durations are in seconds."""
    failure_threshold: int = 5
    reset_timeout: float = 60.0
    call_timeout: float = 30.0

    def __post_init__(self):
        for name in ("failure_threshold", "reset_timeout", "call_timeout"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive number, got {value!r}")


@dataclass
class Config:
    """User configuration with sensible defaults."""
    provider: str = "auto"
    model: Optional[str] = None
    style: str = "conventional"
    include_body: bool = True
    max_subject_length: int = 72
    max_file_display: int = 8
    providers: list[str] = field(default_factory=lambda: list(KNOWN_BACKENDS))
    failure_threshold: int = 5
    reset_timeout: float = 60.0
    call_timeout: float = 30.0
    cache_enabled: bool = True
    cache_max_entries: int = 100
    cache_ttl: float = 86400.0
    similarity_lookup: bool = False

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def breaker_config(self) -> BreakerConfig:
        return BreakerConfig(
            failure_threshold=self.failure_threshold,
            reset_timeout=self.reset_timeout,
            call_timeout=self.call_timeout,
        )

    def validate(self) -> list[str]:
        """Validate config values and return list of warnings.

        Invalid values are replaced with defaults after warning.
        """
        warnings = []
        defaults = Config()

        if self.provider not in VALID_PROVIDERS:
            warnings.append(f"Invalid provider '{self.provider}', using '{defaults.provider}'")
            self.provider = defaults.provider

        if self.style not in VALID_STYLES:
            warnings.append(f"Invalid style '{self.style}', using '{defaults.style}'")
            self.style = defaults.style

        if (not isinstance(self.providers, list) or not self.providers
                or any(p not in KNOWN_BACKENDS for p in self.providers)):
            warnings.append(f"Invalid providers {self.providers!r}, using {defaults.providers}")
            self.providers = defaults.providers

        for name in ("max_subject_length", "max_file_display", "failure_threshold", "cache_max_entries"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                warnings.append(f"Invalid {name} '{value}', using {getattr(defaults, name)}")
                setattr(self, name, getattr(defaults, name))

        for name in ("reset_timeout", "call_timeout", "cache_ttl"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                warnings.append(f"Invalid {name} '{value}', using {getattr(defaults, name)}")
                setattr(self, name, getattr(defaults, name))

        return warnings

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        config = cls(**filtered)
        for warning in config.validate():
            print(f"Config warning: {warning}", file=sys.stderr)
        return config


class ConfigManager:
    """Loads the JSON config file, local before global."""

    CONFIG_FILENAME = ".aicmrc"

    def __init__(self):
        self._config: Optional[Config] = None
        self._config_path: Optional[Path] = None

    def load(self) -> Config:
        if self._config is not None:
            return self._config

        for path in (Path.cwd() / self.CONFIG_FILENAME, Path.home() / self.CONFIG_FILENAME):
            if path.exists():
                self._config = self._load_from_file(path)
                self._config_path = path
                return self._config

        self._config = Config()
        return self._config

    def _load_from_file(self, path: Path) -> Config:
        try:
            with open(path, 'r') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("top-level value must be an object")
            return Config.from_dict(data)
        except (json.JSONDecodeError, ValueError, OSError) as e:
            print(f"Warning: Could not load {path}: {e}", file=sys.stderr)
            return Config()

    def get_config_path(self) -> Optional[Path]:
        return self._config_path


_manager = ConfigManager()


def load_config() -> Config:
    return _manager.load()


def get_config_path() -> Optional[Path]:
    return _manager.get_config_path()


__all__ = [
    "BreakerConfig",
    "Config",
    "ConfigManager",
    "ConfigurationError",
    "load_config",
    "get_config_path",
    "KNOWN_BACKENDS",
    "VALID_PROVIDERS",
    "VALID_STYLES",
]
