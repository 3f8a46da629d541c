"""
Configuration management for the peakauth package.

This module provides the configuration models consumed by the login flow
and the refresh coordinator. It supports:
1. Defaults matching the platform's production endpoints
2. Environment variables (optionally from a .env file)
3. YAML configuration files
4. Validation of URLs, durations and backoff bounds

A Config instance is built once by the caller and passed to every component
that needs it; there is no module-level configuration singleton.
"""

# Standard library imports
import os
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union
from urllib.parse import urljoin, urlparse

# Third-party imports
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

# Local imports
from peakauth.core import immutables as K
from peakauth.core.errors import ConfigurationError

ENV_CONFIG_PREFIX = "PEAKAUTH_"
CONFIG_SECTIONS = ("urls", "timeouts", "browser", "tokens", "refresh", "logging", "debug")


class Environment(Enum):
    """Available environment types."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


def _require_non_negative(values: Dict[str, Any]) -> None:
    for key, value in values.items():
        if isinstance(value, bool) or not isinstance(value, int):
            continue
        if value < 0:
            raise ValueError(f"Invalid duration for {key}: {value}")


class UrlConfig(BaseModel):
    """Platform URLs."""
    api_base_url: str = Field(default=K.DEFAULT_API_BASE_URL, description="REST API base URL")
    login_url: str = Field(default=K.DEFAULT_LOGIN_URL, description="Web login form URL")
    app_url: str = Field(default=K.DEFAULT_APP_URL, description="Application URL reached after login")
    platform_domain: str = Field(
        default=K.DEFAULT_PLATFORM_DOMAIN,
        description="Registrable domain whose 4xx responses count as authentication failures"
    )

    @field_validator("api_base_url", "login_url", "app_url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        parsed = urlparse(value or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid URL format: {value!r}")
        return value

    @property
    def refresh_url(self) -> str:
        return urljoin(self.api_base_url, K.TOKEN_REFRESH_PATH)

    def is_platform_url(self, url: str) -> bool:
        """Check whether ``url`` belongs to the platform domain or one of its subdomains."""
        host = (urlparse(url).hostname or "").lower()
        domain = self.platform_domain.lower().lstrip(".")
        return host == domain or host.endswith("." + domain)


class TimeoutConfig(BaseModel):
    """Timeouts in milliseconds."""
    default: int = Field(default=K.DEFAULT_TIMEOUT, description="General request timeout")
    web_auth: int = Field(default=K.WEB_AUTH_TIMEOUT, description="Overall browser login timeout")
    api_auth: int = Field(default=K.API_AUTH_TIMEOUT, description="Direct API call timeout")
    element_wait: int = Field(default=K.ELEMENT_WAIT_TIMEOUT, description="Optional element wait timeout")
    page_load: int = Field(default=K.PAGE_LOAD_TIMEOUT, description="Network idle wait after opening the login page")

    @model_validator(mode="after")
    def validate_durations(self):
        _require_non_negative(self.model_dump())
        return self


class BrowserConfig(BaseModel):
    """Headless browser launch and interaction settings."""
    headless: bool = Field(default=True, description="Run the browser headless")
    executable_path: Optional[str] = Field(default=None, description="Custom browser executable")
    launch_timeout: int = Field(default=K.LAUNCH_TIMEOUT, description="Browser launch timeout in ms")
    page_wait_timeout: int = Field(default=K.PAGE_WAIT_TIMEOUT, description="Settle time after submission in ms")
    selector_timeout: int = Field(
        default=K.SELECTOR_CANDIDATE_TIMEOUT,
        description="Timeout for each selector candidate in ms"
    )
    error_poll_interval: int = Field(default=K.ERROR_POLL_INTERVAL, description="Error banner poll interval in ms")

    @model_validator(mode="after")
    def validate_durations(self):
        _require_non_negative(self.model_dump())
        if self.error_poll_interval == 0:
            raise ValueError("error_poll_interval must be positive")
        return self


class TokenConfig(BaseModel):
    """Token lifetime settings in milliseconds."""
    refresh_window: int = Field(default=K.TOKEN_REFRESH_WINDOW, description="Refresh this long before expiry")
    default_expiration: int = Field(
        default=K.TOKEN_DEFAULT_EXPIRATION,
        description="Lifetime assumed when an intercepted token carries no expiry"
    )

    @model_validator(mode="after")
    def validate_durations(self):
        _require_non_negative(self.model_dump())
        if self.default_expiration == 0:
            raise ValueError("default_expiration must be positive")
        return self


class RefreshConfig(BaseModel):
    """Refresh cooldown and backoff in milliseconds."""
    cooldown_base: int = Field(default=K.REFRESH_COOLDOWN_BASE, description="Cooldown after the first failure")
    max_backoff: int = Field(default=K.REFRESH_MAX_BACKOFF, description="Ceiling for the growing cooldown")

    @model_validator(mode="after")
    def validate_backoff(self):
        _require_non_negative(self.model_dump())
        if self.max_backoff < self.cooldown_base:
            raise ValueError("max_backoff must be greater than or equal to cooldown_base")
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Default log level")
    format: str = Field(
        default="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        description="Log format string"
    )
    file_path: Optional[str] = Field(default=None, description="Log file path")
    max_size: int = Field(default=10_485_760, description="Max log file size in bytes")
    backup_count: int = Field(default=5, description="Number of backup log files")
    use_color: bool = Field(default=True, description="Colorize console output")


class DebugConfig(BaseModel):
    """Diagnostic switches."""
    enabled: bool = Field(default=False, description="Enable debug logging")
    log_network: bool = Field(default=False, description="Log intercepted API requests as cURL")
    log_browser: bool = Field(default=False, description="Log browser console messages")


class Config(BaseModel):
    """Main configuration class."""
    environment: Environment = Field(default=Environment.PRODUCTION, description="Current environment")
    urls: UrlConfig = Field(default_factory=UrlConfig, description="Platform URLs")
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig, description="Timeouts")
    browser: BrowserConfig = Field(default_factory=BrowserConfig, description="Browser settings")
    tokens: TokenConfig = Field(default_factory=TokenConfig, description="Token settings")
    refresh: RefreshConfig = Field(default_factory=RefreshConfig, description="Refresh cooldown settings")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging settings")
    debug: DebugConfig = Field(default_factory=DebugConfig, description="Debug settings")

    @classmethod
    def build(cls, **data) -> "Config":
        """Create a validated configuration, raising ConfigurationError on bad values."""
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @classmethod
    def load_from_file(cls, path: Union[str, Path]) -> "Config":
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")

        with open(path) as f:
            config_data = yaml.safe_load(f) or {}
        return cls.build(**config_data)

    @classmethod
    def load_from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "Config":
        """
        Load configuration from environment variables.

        Environment variables are prefixed with PEAKAUTH_ and name the section
        first, for example:
        PEAKAUTH_TIMEOUTS_WEB_AUTH=60000
        PEAKAUTH_BROWSER_HEADLESS=false
        PEAKAUTH_URLS_LOGIN_URL=https://home.example.com/login

        Args:
            env_file: Optional .env file loaded before reading the environment

        Returns:
            A validated Config
        """
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()

        config_data: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(ENV_CONFIG_PREFIX):
                continue
            config_key = key[len(ENV_CONFIG_PREFIX):].lower()
            section, _, nested_key = config_key.partition("_")

            if section in CONFIG_SECTIONS and nested_key:
                config_data.setdefault(section, {})[nested_key] = _convert_value(value)
            elif config_key in cls.model_fields:
                config_data[config_key] = _convert_value(value)

        return cls.build(**config_data)

    def save_to_file(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False)

    # Durations are stored in milliseconds; components work in seconds or timedeltas.

    @property
    def login_timeout(self) -> float:
        return self.timeouts.web_auth / 1000

    @property
    def refresh_window(self) -> timedelta:
        return timedelta(milliseconds=self.tokens.refresh_window)

    @property
    def default_token_lifetime(self) -> timedelta:
        return timedelta(milliseconds=self.tokens.default_expiration)


def _convert_value(value: str) -> Any:
    """Convert string value to appropriate type."""
    lowered = value.lower()
    if lowered in ("none", "null"):
        return None
    if lowered in ("true", "false"):
        return lowered == "true"
    if value.isdigit():
        return int(value)
    return value
