"""Configuration management for maria-autostart."""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

from maria_autostart.providers.catalog import PROVIDERS
from maria_autostart.providers.models import PriorityMode

logger = logging.getLogger(__name__)

# Default config locations
CONFIG_PATHS = [
    Path.home() / ".config" / "maria" / "autostart.json",
    Path.home() / ".maria" / "autostart.json",
]

DEFAULT_STATE_DIR = Path.home() / ".maria"
DEFAULT_ENV_FILE = Path(".env.local")

# Environment variable that overrides the configured priority mode
PRIORITY_ENV_VAR = "MARIA_PRIORITY"


def fetch_secret(key: str, env_file: Path | None = None, default: str | None = None) -> str | None:
    """
    Fetch a value from the process environment, then from ``env_file``.

    A non-empty environment variable wins over .env.local; an empty one
    (`export KEY=`) counts as unset.
    """
    value = os.environ.get(key)
    if value:
        return value

    if env_file and env_file.exists():
        values = dotenv_values(env_file)
        if values.get(key) is not None:
            return values[key]

    return default


@dataclass
class ProviderSettings:
    """Per-provider overrides."""

    enabled: bool = True
    auto_start: bool = True
    base_url: str | None = None  # None means the catalog default
    api_key: str | None = None  # None means read from the environment
    model: str | None = None  # Model to load/pull when starting

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProviderSettings":
        return cls(
            enabled=data.get("enabled", True),
            auto_start=data.get("auto_start", True),
            base_url=data.get("base_url"),
            api_key=data.get("api_key"),
            model=data.get("model"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "auto_start": self.auto_start,
            "base_url": self.base_url,
            "api_key": self.api_key,
            "model": self.model,
        }


@dataclass
class TimeoutConfig:
    """Probe and startup timing, in seconds."""

    probe_timeout: float = 3.0
    cloud_probe_timeout: float = 5.0
    start_timeout: float = 30.0  # Launch plus readiness polling, per candidate
    poll_interval: float = 1.0
    model_load_timeout: float = 300.0  # Upper bound for `lms load`

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimeoutConfig":
        return cls(
            probe_timeout=data.get("probe_timeout", 3.0),
            cloud_probe_timeout=data.get("cloud_probe_timeout", 5.0),
            start_timeout=data.get("start_timeout", 30.0),
            poll_interval=data.get("poll_interval", 1.0),
            model_load_timeout=data.get("model_load_timeout", 300.0),
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "probe_timeout": self.probe_timeout,
            "cloud_probe_timeout": self.cloud_probe_timeout,
            "start_timeout": self.start_timeout,
            "poll_interval": self.poll_interval,
            "model_load_timeout": self.model_load_timeout,
        }


@dataclass
class Config:
    """Main configuration for maria-autostart."""

    priority_mode: str = PriorityMode.PRIVACY_FIRST.value
    providers: dict[str, ProviderSettings] = field(default_factory=dict)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    state_dir: Path = field(default_factory=lambda: DEFAULT_STATE_DIR)
    env_file: Path = field(default_factory=lambda: DEFAULT_ENV_FILE)
    cache_max_age: float = 300.0
    max_starts: int = 1

    def __post_init__(self) -> None:
        # Every known provider gets settings, even if the file omits it
        for provider_id in PROVIDERS:
            if provider_id not in self.providers:
                self.providers[provider_id] = ProviderSettings()

    def get_provider_settings(self, provider_id: str) -> ProviderSettings:
        return self.providers.get(provider_id, ProviderSettings())

    @property
    def mode(self) -> PriorityMode:
        """The priority mode as an enum; raises ValueError if unknown."""
        return PriorityMode.parse(self.priority_mode)

    @property
    def selection_file(self) -> Path:
        return self.state_dir / "selection.json"

    @property
    def log_file(self) -> Path:
        return self.state_dir / "startup.log"

    def secret(self, key: str) -> str | None:
        return fetch_secret(key, self.env_file)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create config from a dictionary."""
        providers: dict[str, ProviderSettings] = {}
        for provider_id, provider_data in data.get("providers", {}).items():
            if provider_id not in PROVIDERS:
                logger.warning(f"Unknown provider in config: {provider_id}")
            providers[provider_id] = ProviderSettings.from_dict(provider_data or {})

        state_dir = Path(data["state_dir"]).expanduser() if data.get("state_dir") else None
        env_file = Path(data["env_file"]).expanduser() if data.get("env_file") else None

        return cls(
            priority_mode=data.get("priority_mode", PriorityMode.PRIVACY_FIRST.value),
            providers=providers,
            timeouts=TimeoutConfig.from_dict(data.get("timeouts", {})),
            state_dir=state_dir or DEFAULT_STATE_DIR,
            env_file=env_file or DEFAULT_ENV_FILE,
            cache_max_age=data.get("cache_max_age", 300.0),
            max_starts=data.get("max_starts", 1),
        )

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load configuration from file (or defaults) and apply MARIA_PRIORITY."""
        config = cls._load_file(path)

        priority = fetch_secret(PRIORITY_ENV_VAR, config.env_file)
        if priority:
            logger.debug(f"Priority mode from {PRIORITY_ENV_VAR}: {priority}")
            config.priority_mode = priority

        return config

    @classmethod
    def _load_file(cls, path: Path | None) -> "Config":
        if path:
            paths_to_try = [path]
        else:
            paths_to_try = CONFIG_PATHS

        for config_path in paths_to_try:
            if config_path.exists():
                try:
                    with open(config_path) as f:
                        data = json.load(f)
                    logger.info(f"Loaded config from {config_path}")
                    return cls.from_dict(data)
                except (json.JSONDecodeError, OSError) as e:
                    logger.warning(f"Failed to load config from {config_path}: {e}")

        logger.info("Using default configuration")
        return cls()

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary."""
        return {
            "priority_mode": self.priority_mode,
            "providers": {
                provider_id: settings.to_dict()
                for provider_id, settings in self.providers.items()
            },
            "timeouts": self.timeouts.to_dict(),
            "state_dir": str(self.state_dir),
            "env_file": str(self.env_file),
            "cache_max_age": self.cache_max_age,
            "max_starts": self.max_starts,
        }

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        save_path = path or CONFIG_PATHS[0]
        save_path.parent.mkdir(parents=True, exist_ok=True)
        with open(save_path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Saved config to {save_path}")

    def validate(self) -> list[str]:
        """Validate the configuration and return any issues."""
        issues: list[str] = []

        try:
            PriorityMode.parse(self.priority_mode)
        except ValueError as e:
            issues.append(str(e))

        for name, value in self.timeouts.to_dict().items():
            if value <= 0:
                issues.append(f"Timeout {name} should be positive, got {value}")

        for provider_id in self.providers:
            if provider_id not in PROVIDERS:
                issues.append(f"Unknown provider: {provider_id}")

        if not any(settings.enabled for settings in self.providers.values()):
            issues.append("All providers are disabled")

        if self.max_starts < 0:
            issues.append(f"max_starts should not be negative, got {self.max_starts}")

        if self.cache_max_age < 0:
            issues.append(f"cache_max_age should not be negative, got {self.cache_max_age}")

        return issues
