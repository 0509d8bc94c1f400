"""
carledger Configuration System

Unified configuration management with YAML files, environment variables,
validation, and runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (CARLEDGER_*)
    2. Runtime overrides
    3. User config file (~/.carledger/config.yaml)
    4. Project config file (./carledger.yaml)
    5. Default values

Copyright (c) 2026 carledger contributors. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

T = TypeVar("T")


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding,
    validation, and change callbacks.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[Optional[T], T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])

        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value!r}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            try:
                return int(value)  # type: ignore
            except ValueError:
                raise ConfigValidationError(f"{self.env_var}: expected an integer, got {value!r}")
        elif target_type == list:
            return [v.strip() for v in value.split(",") if v.strip()]  # type: ignore
        else:
            return value  # type: ignore

    def on_change(self, callback: Callable[[Optional[T], T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


@dataclass
class PolicyConfig:
    """Ownership policy: quota, administrative override, reserved keys."""
    max_cars: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=20,
        env_var="CARLEDGER_MAX_CARS",
        description="Maximum cars a single identity may hold",
        validator=lambda x: isinstance(x, int) and x > 0,
    ))
    admin_org: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="IBMMSP",
        env_var="CARLEDGER_ADMIN_ORG",
        description="Organisation exempt from quota and allowed to override custody",
        validator=lambda x: isinstance(x, str) and bool(x.strip()),
    ))
    reserved_keys: ConfigValue[list] = field(default_factory=lambda: ConfigValue(
        default=["CAR10"],
        env_var="CARLEDGER_RESERVED_KEYS",
        description="Keys only the administrative organisation may create",
        validator=lambda x: isinstance(x, list) and all(isinstance(k, str) for k in x),
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for logging."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="CARLEDGER_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="CARLEDGER_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class LedgerConfig:
    """
    Root configuration for carledger.

    Aggregates all section configurations and provides
    serialisation helpers.
    """
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @property
    def max_cars(self) -> int:
        return self.policy.max_cars.get()

    @property
    def admin_org(self) -> str:
        return self.policy.admin_org.get()

    @property
    def reserved_keys(self) -> List[str]:
        return list(self.policy.reserved_keys.get())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)


def apply_dict(config: LedgerConfig, data: Dict[str, Any]) -> None:
    """Apply nested dictionary values onto a configuration tree."""
    def apply_to_config(config_obj: Any, values: Dict[str, Any], path: str) -> None:
        for key, value in values.items():
            here = f"{path}.{key}" if path else key
            if not hasattr(config_obj, key):
                raise ConfigError(f"Unknown config key: {here}")
            attr = getattr(config_obj, key)
            if isinstance(attr, ConfigValue):
                attr.set(value)
            elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                apply_to_config(attr, value, here)
            else:
                raise ConfigError(f"Invalid config section: {here}")

    apply_to_config(config, data, "")


def load_config(path: Union[str, Path]) -> LedgerConfig:
    """Build a fresh configuration from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    config = LedgerConfig()
    if data:
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must contain a mapping: {path}")
        apply_dict(config, data)
    return config


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = LedgerConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @property
    def config(self) -> LedgerConfig:
        """Get the current configuration."""
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data:
            apply_dict(self._config, data)
            self._config_paths.append(path)

    def load_defaults(self) -> List[Path]:
        """Load default configuration files if they exist. Returns the files applied."""
        default_paths = [
            Path.home() / ".carledger" / "config.yaml",
            Path("config/carledger.yaml"),
            Path("carledger.yaml"),
        ]

        loaded = []
        for path in default_paths:
            if path.exists():
                self.load_from_file(path)
                loaded.append(path)
        return loaded

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("policy.max_cars", 50)
        """
        parts = path.split(".")
        obj: Any = self._config

        for part in parts[:-1]:
            obj = getattr(obj, part, None)
            if obj is None:
                raise ConfigError(f"Invalid config path: {path}")

        attr = getattr(obj, parts[-1], None)
        if isinstance(attr, ConfigValue):
            attr.set(value)
        else:
            raise ConfigError(f"Invalid config path: {path}")

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("policy.admin_org")
        """
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)

        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def reset(self) -> None:
        """Drop all overrides and loaded files."""
        self._config = LedgerConfig()
        self._config_paths = []

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value!r}")
                except ConfigError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors


def get_config() -> LedgerConfig:
    """Get the current process-wide configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
