"""
Off-chain Client Configuration

Configuration with YAML files, environment variables, validation, and
runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (PARROT_*)
    2. Runtime overrides
    3. Config files, later files overriding earlier ones:
       ./parrot.yaml, ./config/parrot.yaml, ~/.parrot/config.yaml
    4. Default values

Copyright (c) 2026 Parrot Network. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar, Union

import yaml

from parrot.offchain.observability import OffchainLayer, get_logger

T = TypeVar("T")

logger = get_logger("config", OffchainLayer.CONFIG)

BACKOFF_CHOICES = ("fixed", "linear", "exponential", "exponential_jitter")

_TRUE_WORDS = ("true", "1", "yes", "on")


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """A value was refused by its validator."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    One setting: its default, the PARROT_* variable that overrides it,
    a validator, and callbacks fired on runtime changes.

    Strings (from YAML, the environment or the CLI) are coerced to the type
    of the default before validation.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[Optional[T], T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        env = os.environ.get(self.env_var) if self.env_var else None
        if env is not None:
            return self._coerce(env)
        return self.default if self._value is None else self._value

    def set(self, value: Any) -> None:
        if isinstance(value, str):
            value = self._coerce(value)
        if not self.accepts(value):
            raise ConfigValidationError(f"Invalid value {value!r} ({self.description or 'no description'})")

        previous, self._value = self._value, value
        for callback in self._callbacks:
            callback(previous, value)

    def accepts(self, value: Any) -> bool:
        return self.validator is None or bool(self.validator(value))

    def reset(self) -> None:
        self._value = None

    def _coerce(self, raw: str) -> T:
        kind = type(self.default)
        if kind is bool:
            return raw.strip().lower() in _TRUE_WORDS  # type: ignore[return-value]
        if kind in (int, float):
            try:
                return kind(raw)  # type: ignore[return-value]
            except ValueError as ex:
                raise ConfigValidationError(f"Expected {kind.__name__}, got {raw!r}") from ex
        return raw  # type: ignore[return-value]

    def on_change(self, callback: Callable[[Optional[T], T], None]) -> None:
        self._callbacks.append(callback)


def _walk(section: Any, prefix: str = "") -> Iterator[Tuple[str, ConfigValue]]:
    """Yield ``(dotted.path, ConfigValue)`` for every setting under `section`."""
    for name in section.__dataclass_fields__:
        attr = getattr(section, name)
        path = f"{prefix}{name}"
        if isinstance(attr, ConfigValue):
            yield path, attr
        else:
            yield from _walk(attr, f"{path}.")


@dataclass
class LedgerConfig:
    """Where and how to reach the ledger node."""
    endpoint: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="ws://127.0.0.1:9944",
        env_var="PARROT_LEDGER_ENDPOINT",
        description="Node RPC endpoint; read by node-backed LedgerClient implementations",
        validator=lambda x: bool(x),
    ))
    connect_timeout_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=10.0,
        env_var="PARROT_LEDGER_CONNECT_TIMEOUT",
        description="Seconds to wait for the ledger connection",
        validator=lambda x: x > 0,
    ))
    ss58_prefix: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=42,
        env_var="PARROT_SS58_PREFIX",
        description="SS58 network prefix for rendered addresses",
        validator=lambda x: 0 <= x < 64,
    ))


@dataclass
class SubmissionRetryConfig:
    """Retry policy for ledger submissions. One attempt means no retries."""
    max_attempts: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=1,
        env_var="PARROT_RETRY_MAX_ATTEMPTS",
        description="Total submission attempts on NetworkError",
        validator=lambda x: x >= 1,
    ))
    base_delay_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=0.5,
        env_var="PARROT_RETRY_BASE_DELAY",
        description="Delay before the first retry",
        validator=lambda x: x >= 0,
    ))
    max_delay_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=10.0,
        env_var="PARROT_RETRY_MAX_DELAY",
        description="Upper bound on any single retry delay",
        validator=lambda x: x >= 0,
    ))
    backoff: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="exponential_jitter",
        env_var="PARROT_RETRY_BACKOFF",
        description="Backoff strategy (fixed, linear, exponential, exponential_jitter)",
        validator=lambda x: x in BACKOFF_CHOICES,
    ))
    jitter_factor: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=0.5,
        env_var="PARROT_RETRY_JITTER",
        description="Random jitter as a fraction of the delay (0-1)",
        validator=lambda x: 0 <= x <= 1,
    ))


@dataclass
class ConfirmationConfig:
    """State polling used to confirm an authorization took effect."""
    poll_interval_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=1.0,
        env_var="PARROT_CONFIRM_INTERVAL",
        description="Seconds between state polls",
        validator=lambda x: x >= 0,
    ))
    timeout_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=30.0,
        env_var="PARROT_CONFIRM_TIMEOUT",
        description="Give up confirming after this many seconds",
        validator=lambda x: x > 0,
    ))
    max_polls: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=60,
        env_var="PARROT_CONFIRM_MAX_POLLS",
        description="Give up confirming after this many polls",
        validator=lambda x: x >= 1,
    ))


@dataclass
class ObservabilityConfig:
    """Logging settings."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="PARROT_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="PARROT_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class OffchainConfig:
    """
    Root configuration for the off-chain client.

    Aggregates all section configurations and provides
    dictionary/YAML export.
    """
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    retry: SubmissionRetryConfig = field(default_factory=SubmissionRetryConfig)
    confirmation: ConfirmationConfig = field(default_factory=ConfirmationConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for path, value in _walk(self):
            *sections, leaf = path.split(".")
            node = out
            for section in sections:
                node = node.setdefault(section, {})
            node[leaf] = value.get()
        return out

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)


class ConfigManager:
    """
    Process-wide configuration: file loading, dotted-path access, validation.

    Thread-safe singleton; `reset()` returns it to defaults.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._config = OffchainConfig()
                instance._config_paths = []
                cls._instance = instance
            return cls._instance

    @property
    def config(self) -> OffchainConfig:
        return self._config

    @property
    def loaded_files(self) -> List[Path]:
        return list(self._config_paths)

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Apply a YAML mapping of sections to this configuration.

        Unknown keys are errors, so a typo never silently falls back to a default.
        """
        path = Path(path)
        if not path.is_file():
            raise ConfigError(f"Configuration file not found: {path}")

        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"Configuration file must contain a mapping: {path}")

        for dotted, value in _flatten(data or {}):
            self.set(dotted, value)
        if path not in self._config_paths:
            self._config_paths.append(path)
        logger.debug("Loaded configuration file", path=str(path))

    def load_defaults(self) -> List[Path]:
        """Load whichever default files exist; returns the ones applied."""
        candidates = [
            Path("parrot.yaml"),
            Path("config") / "parrot.yaml",
            Path.home() / ".parrot" / "config.yaml",
        ]

        loaded = []
        for path in candidates:
            if not path.is_file():
                continue
            try:
                self.load_from_file(path)
            except (ConfigError, yaml.YAMLError) as ex:
                logger.warning("Skipping unreadable configuration file", path=str(path), error=str(ex))
                continue
            loaded.append(path)
        return loaded

    def _lookup(self, path: str) -> ConfigValue:
        settings = dict(_walk(self._config))
        if path not in settings:
            raise ConfigError(f"Unknown configuration key: {path}")
        return settings[path]

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: manager.set("retry.max_attempts", 3)
        """
        self._lookup(path).set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: manager.get("confirmation.timeout_seconds")
        """
        return self._lookup(path).get()

    def reset(self) -> None:
        """Drop overrides and loaded files, back to defaults plus environment."""
        self._config = OffchainConfig()
        self._config_paths = []

    def validate(self) -> List[str]:
        """Check every effective value, environment overrides included; returns the problems found."""
        problems: List[str] = []
        for path, setting in _walk(self._config):
            try:
                value = setting.get()
            except ConfigValidationError as ex:
                problems.append(f"{path}: {ex}")
                continue
            if not setting.accepts(value):
                problems.append(f"{path}: validation failed for value {value!r}")
        return problems


def _flatten(data: Dict[str, Any], prefix: str = "") -> Iterator[Tuple[str, Any]]:
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            yield from _flatten(value, f"{dotted}.")
        else:
            yield dotted, value


def get_config() -> OffchainConfig:
    """Get the current configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    return ConfigManager()
