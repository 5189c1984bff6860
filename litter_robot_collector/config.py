"""
Configuration for the Litter Robot stats collector.

Settings are read from a YAML file and may be overridden by environment
variables. Keys in the file are matched case-insensitively and ignoring
underscores, so ``measurementPrefix`` and ``measurement_prefix`` are the
same setting.
"""
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Type, Union

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .exceptions import ConfigError, InfluxWriteConfigError

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_INTERVAL = 30


class _EnvOverrideSettings(BaseSettings):
    """Settings section where environment variables win over file values."""

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, dotenv_settings, init_settings, file_secret_settings


class LitterRobotSettings(_EnvOverrideSettings):
    """Litter Robot cloud API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LITTER_ROBOT_",
        env_file=".env",
        extra="ignore",
    )

    email: str = Field(default="", description="Account email")
    password: str = Field(default="", description="Account password")
    auth_endpoint: str = Field(
        default="https://autopet-api.litterrobot.com/oauth/token",
        description="OAuth2 token endpoint",
    )
    api_endpoint: str = Field(
        default="https://v2.api.whisker.iothings.site",
        description="Robot API base URL",
    )
    api_key: Optional[str] = Field(default=None, description="x-api-key header value")
    client_id: Optional[str] = Field(default=None, description="OAuth2 client id")
    client_secret: Optional[str] = Field(default=None, description="OAuth2 client secret")
    timeout: float = Field(default=10.0, gt=0, description="Request timeout in seconds")


class InfluxDBSettings(_EnvOverrideSettings):
    """InfluxDB write configuration."""

    model_config = SettingsConfigDict(
        env_prefix="INFLUXDB_",
        env_file=".env",
        extra="ignore",
    )

    address: str = Field(default="http://localhost:8086", description="InfluxDB URL")
    username: str = Field(default="", description="1.x username")
    password: str = Field(default="", description="1.x password")
    measurement_prefix: str = Field(default="", description="Prepended to measurement names")
    database: str = Field(default="", description="1.x database")
    retention_policy: str = Field(default="", description="1.x retention policy")
    token: str = Field(default="", description="2.x API token")
    organization: str = Field(default="", description="2.x organization")
    bucket: str = Field(default="", description="2.x bucket")
    skip_verify_ssl: bool = Field(default=False, description="Disable TLS certificate checks")
    flush_interval: int = Field(
        default=DEFAULT_FLUSH_INTERVAL, ge=0, description="Write buffer flush interval (seconds)"
    )
    batch_size: int = Field(default=5000, gt=0, description="Points per write batch")
    error_queue_size: int = Field(
        default=100, gt=0, description="Pending write error notifications kept before dropping"
    )
    verify_connection: bool = Field(default=True, description="Ping InfluxDB at startup")

    @field_validator("flush_interval")
    @classmethod
    def _default_flush_interval(cls, value: int) -> int:
        return value or DEFAULT_FLUSH_INTERVAL

    def write_destination(self) -> str:
        """
        Resolve where points are written.

        Returns:
            The bucket name, or ``database/retention_policy`` for 1.x servers.

        Raises:
            InfluxWriteConfigError: If neither scheme is configured.
        """
        if self.bucket:
            return self.bucket
        if self.database and self.retention_policy:
            return f"{self.database}/{self.retention_policy}"
        raise InfluxWriteConfigError()

    def auth_token(self) -> str:
        """Token for 2.x, ``username:password`` for 1.x, or empty."""
        if self.token:
            return self.token
        if self.username and self.password:
            return f"{self.username}:{self.password}"
        return ""


class PollingSettings(_EnvOverrideSettings):
    """Polling loop configuration."""

    model_config = SettingsConfigDict(
        env_prefix="POLLING_",
        env_file=".env",
        extra="ignore",
    )

    interval: float = Field(default=60.0, gt=0, description="Seconds between ticks")
    max_retries: int = Field(default=3, ge=0, description="Retries per tick on transient errors")
    retry_delay: float = Field(default=1.0, ge=0, description="First retry delay (seconds)")
    backoff_multiplier: float = Field(default=2.0, ge=1, description="Backoff multiplier")
    max_backoff: float = Field(default=30.0, ge=0, description="Maximum retry delay (seconds)")


class CollectorSettings(_EnvOverrideSettings):
    """Main configuration for the collector."""

    model_config = SettingsConfigDict(
        env_prefix="COLLECTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = Field(default="INFO")

    litter_robot: LitterRobotSettings = Field(default_factory=LitterRobotSettings)
    influxdb: InfluxDBSettings = Field(default_factory=InfluxDBSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {value!r}")
        return level


def _normalize_key(key: Any) -> str:
    return str(key).replace("_", "").replace("-", "").lower()


def _match_fields(
    raw: Mapping[str, Any],
    model: Type[BaseSettings],
    origin: str,
) -> Dict[str, Any]:
    """Map loosely spelled keys onto the model's field names."""
    fields = {_normalize_key(name): name for name in model.model_fields}
    matched: Dict[str, Any] = {}
    for key, value in raw.items():
        name = fields.get(_normalize_key(key))
        if name is None:
            logger.debug(f"Ignoring unknown config key {origin}.{key}")
            continue
        matched[name] = value
    return matched


def parse_configuration(raw: Mapping[str, Any], origin: str = "<config>") -> CollectorSettings:
    """
    Build settings from an already parsed YAML document.

    Args:
        raw: Top level mapping.
        origin: Name used in error messages.

    Returns:
        Validated settings.

    Raises:
        ConfigError: If a section is malformed or a value fails validation.
    """
    top = _match_fields(raw, CollectorSettings, origin)

    sections: Dict[str, BaseSettings] = {}
    for name in ("litter_robot", "influxdb", "polling"):
        model = CollectorSettings.model_fields[name].annotation
        section = top.pop(name, None) or {}
        if not isinstance(section, Mapping):
            raise ConfigError(f"{origin}: section '{name}' must be a mapping")
        try:
            sections[name] = model(**_match_fields(section, model, f"{origin}.{name}"))
        except ValidationError as e:
            raise ConfigError(
                f"unable to decode section '{name}', {e}",
                details={"origin": origin, "section": name},
            ) from e

    try:
        return CollectorSettings(**top, **sections)
    except ValidationError as e:
        raise ConfigError(f"unable to decode configuration, {e}", details={"origin": origin}) from e


def load_configuration(config_path: Union[str, Path]) -> CollectorSettings:
    """
    Load the YAML configuration file.

    Args:
        config_path: Path to the YAML file.

    Returns:
        Validated settings.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated.
    """
    path = Path(config_path)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"error reading config file, {e}", details={"path": str(path)}) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"error parsing config file, {e}", details={"path": str(path)}) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a YAML mapping")

    logger.info(f"Loaded configuration from {path}")
    return parse_configuration(data, origin=str(path))
