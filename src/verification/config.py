"""
Application configuration: YAML file plus environment overrides.

Precedence (highest first): environment variables, the YAML file, the
dataclass defaults below. The file path comes from the caller or from
VERIFICATION_CONFIG; a missing default file is not an error.

Example file:

    engine:
      connection_string: "DSN=spark-thrift"
      username: etl
    sink:
      host: results-db
      database: verification
      user: verifier
    verification:
      max_parallel_partitions: 50
      sample_limit: 5
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, get_args

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """ODBC settings for the SQL engine."""

    connection_string: str | None = None
    dsn: str | None = None
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    min_size: int = 1
    # None sizes the pool to the partition parallelism
    max_size: int | None = None
    acquire_timeout: float = 300.0
    login_timeout: int = 30

    def pool_kwargs(self, parallelism: int) -> dict[str, Any]:
        if not self.connection_string and not self.dsn:
            raise ConfigurationError(
                "Engine connection not configured: set engine.connection_string, "
                "engine.dsn, ENGINE_CONNECTION_STRING or ENGINE_ODBC_DSN"
            )
        max_size = self.max_size or max(parallelism, 1)
        return {
            "connection_string": self.connection_string,
            "dsn": self.dsn,
            "username": self.username,
            "password": self.password,
            "login_timeout": self.login_timeout,
            "min_size": min(self.min_size, max_size),
            "max_size": max_size,
            "acquire_timeout": self.acquire_timeout,
        }


@dataclass
class SinkConfig:
    """PostgreSQL settings for the result store."""

    host: str | None = None
    port: int = 5432
    database: str = "verification"
    user: str | None = None
    password: str | None = field(default=None, repr=False)
    min_size: int = 1
    max_size: int = 5
    acquire_timeout: float = 30.0

    @property
    def configured(self) -> bool:
        return bool(self.host and self.user)

    def pool_kwargs(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "password": self.password or "",
            "min_size": self.min_size,
            "max_size": self.max_size,
            "acquire_timeout": self.acquire_timeout,
        }


@dataclass
class VerificationConfig:
    """Tuning for a verification run."""

    max_parallel_partitions: int = 100
    sample_limit: int = 5
    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    fanout_timeout_seconds: int = 1800
    shutdown_grace_seconds: int = 30

    def validate(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            minimum = 0 if f.name in ("retry_delay_ms", "shutdown_grace_seconds") else 1
            if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
                raise ConfigurationError(
                    f"verification.{f.name} must be an integer >= {minimum}, got {value!r}"
                )


@dataclass
class ApplicationConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    sink: SinkConfig = field(default_factory=SinkConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)


# Environment variable -> (section, attribute, type)
ENV_OVERRIDES: dict[str, tuple[str, str, type]] = {
    "ENGINE_CONNECTION_STRING": ("engine", "connection_string", str),
    "ENGINE_ODBC_DSN": ("engine", "dsn", str),
    "ENGINE_USERNAME": ("engine", "username", str),
    "ENGINE_PASSWORD": ("engine", "password", str),
    "SINK_HOST": ("sink", "host", str),
    "SINK_PORT": ("sink", "port", int),
    "SINK_DB": ("sink", "database", str),
    "SINK_USER": ("sink", "user", str),
    "SINK_PASSWORD": ("sink", "password", str),
    "VERIFICATION_MAX_PARALLEL": ("verification", "max_parallel_partitions", int),
    "VERIFICATION_SAMPLE_LIMIT": ("verification", "sample_limit", int),
    "VERIFICATION_RETRY_ATTEMPTS": ("verification", "retry_attempts", int),
    "VERIFICATION_RETRY_DELAY_MS": ("verification", "retry_delay_ms", int),
    "VERIFICATION_FANOUT_TIMEOUT": ("verification", "fanout_timeout_seconds", int),
}


def _coerce(value: Any, target_type: type, name: str) -> Any:
    if value is None:
        return None
    try:
        if target_type is int:
            if isinstance(value, bool):
                raise ValueError("booleans are not integers")
            return int(str(value).strip())
        if target_type is float:
            return float(value)
        return str(value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {value!r} ({e})") from e


def _scalar_type(declared: Any) -> type:
    """Map a field annotation such as `int | None` to the type values are coerced to."""
    candidates = get_args(declared) or (declared,)
    for candidate in (int, float):
        if candidate in candidates:
            return candidate
    return str


def _apply_section(target: Any, values: Mapping[str, Any] | None, section: str) -> None:
    if not values:
        return
    if not isinstance(values, Mapping):
        raise ConfigurationError(f"Config section '{section}' must be a mapping")

    known = {f.name: f for f in fields(target)}
    for key, value in values.items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key {section}.{key}")
            continue
        setattr(target, key, _coerce(value, _scalar_type(known[key].type), f"{section}.{key}"))


def load_config(
    path: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> ApplicationConfig:
    """
    Build the application configuration.

    Args:
        path: YAML file; defaults to $VERIFICATION_CONFIG when set
        environ: Environment mapping (default: os.environ)

    Raises:
        ConfigurationError: On unreadable files, malformed YAML or invalid values
    """
    environ = os.environ if environ is None else environ
    config = ApplicationConfig()

    path = path or environ.get("VERIFICATION_CONFIG")
    if path:
        try:
            with open(path, encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        _apply_section(config.engine, data.get("engine"), "engine")
        _apply_section(config.sink, data.get("sink"), "sink")
        _apply_section(config.verification, data.get("verification"), "verification")
        logger.info(f"Loaded configuration from {path}")

    for env_name, (section, attribute, target_type) in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None or raw == "":
            continue
        setattr(getattr(config, section), attribute, _coerce(raw, target_type, env_name))

    config.verification.validate()
    return config
