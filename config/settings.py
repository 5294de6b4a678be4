"""
Configuration management for the session store.

Settings come from environment variables and .env files, validated with
pydantic-settings. Keys and connection details never live in code.

ENVIRONMENT picks an environment-specific file (.env.development,
.env.staging or .env.production) layered over a shared .env.
"""

import base64
import binascii
import os
import re
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from session.codec import codecs_from_pairs
from session.constants import DEFAULT_MAX_AGE, DEFAULT_MAX_LENGTH

_TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,255}$")

_ENV_FILES = {
    "development": ".env.development",
    "staging": ".env.staging",
    "production": ".env.production",
}


class Environment(str, Enum):
    """Deployment environments with their own .env file."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def _detect_environment() -> Environment:
    """Read ENVIRONMENT, falling back to development when unset or unknown."""
    value = os.environ.get("ENVIRONMENT", "").strip().lower()
    try:
        return Environment(value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """The shared .env first, then the environment's own file, which wins."""
    return (".env", _ENV_FILES[environment.value])


def _decode_key(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


class Settings(BaseSettings):
    """
    Session store settings loaded from environment variables.

    Required fields must be provided via environment variables or a .env
    file. session_key_pairs is a JSON list of URL-safe base64 keys laid out
    as hash key, block key, hash key, block key, ... with the newest pair
    first.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # DynamoDB Configuration
    aws_region: str = Field(
        default="us-east-1",
        description="AWS region of the session table"
    )
    dynamodb_endpoint_url: Optional[str] = Field(
        default=None,
        description="Endpoint override, e.g. http://localhost:8000 for DynamoDB Local"
    )
    session_table_name: str = Field(
        ...,
        description="DynamoDB table holding session records"
    )
    session_record_ttl_minutes: int = Field(
        default=60,
        ge=1,
        description="Backend retention of a session record after its last save"
    )
    session_table_ready_attempts: int = Field(
        default=6,
        ge=1,
        le=20,
        description="Polls while waiting for a new table to become ACTIVE"
    )
    session_table_ready_initial_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="First delay in seconds between table status polls"
    )

    # Codec Configuration
    session_key_pairs: List[str] = Field(
        ...,
        description="URL-safe base64 hash/block keys, newest pair first"
    )
    session_max_age: int = Field(
        default=DEFAULT_MAX_AGE,
        description="Cookie max-age in seconds; <= 0 expires sessions on save"
    )
    session_max_length: int = Field(
        default=DEFAULT_MAX_LENGTH,
        ge=0,
        description="Maximum encoded token length; 0 disables the limit"
    )

    # Cookie Configuration
    session_cookie_path: str = Field(default="/")
    session_cookie_domain: Optional[str] = Field(default=None)
    session_cookie_secure: bool = Field(default=False)
    session_cookie_http_only: bool = Field(default=True)
    session_cookie_same_site: str = Field(default="lax")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @field_validator("aws_region")
    @classmethod
    def validate_aws_region(cls, v: str) -> str:
        """Validate that aws_region is not empty."""
        if not v or not v.strip():
            raise ValueError("aws_region cannot be empty")
        return v.strip()

    @field_validator("dynamodb_endpoint_url")
    @classmethod
    def validate_dynamodb_endpoint_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the endpoint override is an HTTP/HTTPS URL."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("dynamodb_endpoint_url must be a valid HTTP/HTTPS URL")
        return v

    @field_validator("session_table_name")
    @classmethod
    def validate_session_table_name(cls, v: str) -> str:
        """Validate the table name against DynamoDB naming rules."""
        v = v.strip()
        if not _TABLE_NAME_PATTERN.match(v):
            raise ValueError(
                "session_table_name must be 3-255 characters of letters, "
                "digits, '_', '-' or '.'"
            )
        return v

    @field_validator("session_key_pairs")
    @classmethod
    def validate_session_key_pairs(cls, v: List[str]) -> List[str]:
        """Validate that at least one key is given and every key decodes."""
        keys = [key.strip() for key in v]
        if not keys:
            raise ValueError("session_key_pairs must contain at least one key")
        for i, key in enumerate(keys):
            if not key:
                raise ValueError(f"session_key_pairs[{i}] cannot be empty")
            try:
                _decode_key(key)
            except (binascii.Error, ValueError) as e:
                raise ValueError(
                    f"session_key_pairs[{i}] is not valid URL-safe base64"
                ) from e
        return keys

    @field_validator("session_cookie_same_site")
    @classmethod
    def validate_session_cookie_same_site(cls, v: str) -> str:
        """Validate that same_site is one of lax, strict or none."""
        v = v.strip().lower()
        if v not in {"lax", "strict", "none"}:
            raise ValueError("session_cookie_same_site must be 'lax', 'strict' or 'none'")
        return v

    @model_validator(mode="after")
    def validate_cookie_security(self) -> "Settings":
        """Browsers drop SameSite=None cookies that are not Secure."""
        if self.session_cookie_same_site == "none" and not self.session_cookie_secure:
            raise ValueError(
                "session_cookie_secure must be true when session_cookie_same_site is 'none'"
            )
        return self

    def decoded_key_pairs(self) -> List[bytes]:
        """Return session_key_pairs as raw bytes, in configured order."""
        return [_decode_key(key) for key in self.session_key_pairs]


class ConfigurationError(Exception):
    """
    Settings are missing or unusable.

    Attributes:
        missing_fields: Required fields that were not provided.
        invalid_fields: Field name to reason for every rejected value.
    """

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.message = message
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        lines = [self.message]
        if self.missing_fields:
            lines.append(f"Missing required fields: {', '.join(self.missing_fields)}")
        if self.invalid_fields:
            lines.append("Invalid field values:")
            lines.extend(f"  - {name}: {reason}" for name, reason in self.invalid_fields.items())
        return "\n".join(lines)

    @classmethod
    def from_validation_error(
        cls, message: str, error: ValidationError
    ) -> "ConfigurationError":
        """Sort pydantic's field errors into missing and invalid fields."""
        missing, invalid = [], {}
        for item in error.errors():
            name = ".".join(str(part) for part in item.get("loc", ())) or "settings"
            if item.get("type") == "missing":
                missing.append(name)
            else:
                invalid[name] = item.get("msg", "invalid value")
        return cls(message, missing_fields=missing, invalid_fields=invalid)


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Load settings from the environment and the .env files of ``environment``.

    Args:
        environment: Which .env files to read. Detected from ENVIRONMENT
            when omitted.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    environment = environment or _detect_environment()
    env_files = tuple(f for f in _get_env_files(environment) if Path(f).exists())

    class EnvironmentSettings(Settings):
        model_config = SettingsConfigDict(
            env_file=env_files or None,
            env_file_encoding="utf-8",
            case_sensitive=False,
            extra="ignore"
        )

    try:
        return EnvironmentSettings()
    except ValidationError as e:
        raise ConfigurationError.from_validation_error(
            f"Failed to load configuration for environment '{environment.value}'", e
        ) from e


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Return the process-wide settings, loading them on first call.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()
    return _settings_cache


def clear_settings_cache() -> None:
    """Forget the loaded settings so the next get_settings() reloads them."""
    global _settings_cache
    _settings_cache = None


def validate_startup(settings: Optional[Settings] = None) -> None:
    """
    Checks that need the settings as a whole, run once at startup.

    The key pairs must build codecs (block keys of 16, 24 or 32 bytes), and
    production deployments must use secure cookies.

    Raises:
        ConfigurationError: If any setting is unusable.
    """
    settings = settings or get_settings()
    problems = {}

    try:
        codecs_from_pairs(*settings.decoded_key_pairs())
    except ValueError as e:
        problems["session_key_pairs"] = str(e)

    if settings.environment == Environment.PRODUCTION and not settings.session_cookie_secure:
        problems["session_cookie_secure"] = "must be true in production"

    if problems:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=problems
        )
