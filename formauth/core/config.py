"""
Application configuration loaded from a JSON file.

The file is organised in sections (``App``, ``Server``, ``Log``, ``Auth``,
``SQL``, ``SMTP``) whose keys keep their JSON spelling through aliases, so
``Auth.BaseURL`` in the file is ``config.auth.base_url`` in code. Uses
pydantic-settings so values missing from the file may still be supplied by
the environment. Secrets are ``SecretStr`` and never appear in a dump.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator
from pydantic_core import PydanticCustomError
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.core.logging import LOG_TYPES

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": timedelta(microseconds=1) / 1000,
    "us": timedelta(microseconds=1),
    "µs": timedelta(microseconds=1),
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
}


def parse_duration(value: str) -> timedelta:
    """Parse a duration such as ``"300ms"``, ``"1h30m"`` or ``"-5m"``.

    Raises:
        ValueError: if ``value`` is not a valid duration string.
    """
    text = value.strip()
    sign = 1
    if text.startswith(("-", "+")):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    total = timedelta(0)
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos != len(text):
        raise ValueError(f"invalid duration {value!r}")

    return sign * total


def _require_secret(value: SecretStr) -> SecretStr:
    if not value.get_secret_value():
        raise PydanticCustomError("missing", "Field required")
    return value


class _Section(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ── Sections ────────────────────────────────────────────────────────
class AppConfig(_Section):
    name: str = Field(alias="Name", min_length=1)
    template_dir: Path | None = Field(default=None, alias="TemplateDir")


class ServerConfig(_Section):
    host: str = Field(default="127.0.0.1", alias="Host")
    port: int = Field(default=8080, alias="Port", gt=0, lt=65536)
    log_requests: bool = Field(default=True, alias="LogRequests")


class LogConfig(_Section):
    filename: str = Field(default="", alias="Filename")
    type: str = Field(default="text", alias="Type")
    level: str = Field(default="INFO", alias="Level")

    @field_validator("type")
    @classmethod
    def _validate_type(cls, v: str) -> str:
        v = v.strip().lower() or "text"
        if v not in LOG_TYPES:
            raise ValueError(f"log type must be one of {LOG_TYPES}")
        return v

    @field_validator("level")
    @classmethod
    def _validate_level(cls, v: str) -> str:
        v = v.strip().upper() or "INFO"
        if not isinstance(logging.getLevelName(v), int):
            raise ValueError(f"invalid log level {v!r}")
        return v


class AuthConfig(_Section):
    base_url: str = Field(alias="BaseURL", min_length=1)
    login_expires: timedelta = Field(alias="LoginExpires")
    reset_expires: timedelta = Field(default=timedelta(hours=1), alias="ResetExpires")
    reset_token_size: int = Field(default=12, alias="ResetTokenSize", ge=12)
    password_cost: int = Field(default=12, alias="PasswordCost", ge=4, le=31)
    csrf_protect: bool = Field(default=False, alias="CSRFProtect")

    @field_validator("login_expires", "reset_expires", mode="before")
    @classmethod
    def _parse_duration(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_duration(v)
        return v

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.rstrip("/") or v


class SQLConfig(_Section):
    driver_name: str = Field(alias="DriverName", min_length=1)
    data_source_name: SecretStr = Field(alias="DataSourceName")

    @field_validator("data_source_name")
    @classmethod
    def _require_dsn(cls, v: SecretStr) -> SecretStr:
        return _require_secret(v)

    def url(self) -> str:
        """SQLAlchemy URL built from the driver and data source names."""
        return f"{self.driver_name}://{self.data_source_name.get_secret_value()}"


class SMTPConfig(_Section):
    host: str = Field(alias="Host", min_length=1)
    port: int = Field(alias="Port", gt=0, lt=65536)
    user: str = Field(alias="User", min_length=1)
    password: SecretStr = Field(alias="Password")
    start_tls: bool | None = Field(default=None, alias="StartTLS")

    @field_validator("password")
    @classmethod
    def _require_password(cls, v: SecretStr) -> SecretStr:
        return _require_secret(v)


# ── Root ────────────────────────────────────────────────────────────
class Config(BaseSettings):
    app: AppConfig = Field(alias="App")
    server: ServerConfig = Field(default_factory=ServerConfig, alias="Server")
    log: LogConfig = Field(default_factory=LogConfig, alias="Log")
    auth: AuthConfig = Field(alias="Auth")
    sql: SQLConfig = Field(alias="SQL")
    smtp: SMTPConfig = Field(alias="SMTP")

    model_config = SettingsConfigDict(
        populate_by_name=True,
        extra="ignore",
        env_nested_delimiter="__",
    )

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> Config:
        """Validate ``data``, raising ``config_invalid`` with every problem found."""
        try:
            return cls(**data)
        except ValidationError as exc:
            raise WebAuthError(ErrorKind.CONFIG_INVALID, "; ".join(_describe(exc))) from exc
        except SettingsError as exc:
            # An environment variable named after a section is not valid JSON
            raise WebAuthError(ErrorKind.CONFIG_INVALID, str(exc)) from exc

    @classmethod
    def from_json_file(cls, path: str | Path) -> Config:
        try:
            raw = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise WebAuthError(ErrorKind.CONFIG_INVALID, f"failed to read config file: {exc}") from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise WebAuthError(ErrorKind.CONFIG_INVALID, f"failed to parse config file: {exc}") from exc

        if not isinstance(data, dict):
            raise WebAuthError(ErrorKind.CONFIG_INVALID, "config file must contain a JSON object")

        return cls.from_mapping(data)

    def redacted(self) -> dict[str, Any]:
        """JSON-safe dump for logging; secrets are masked."""
        return self.model_dump(mode="json", by_alias=True)


def _describe(exc: ValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"])
        if error["type"] == "missing" or error["type"] == "string_too_short":
            messages.append(f"{field} is required")
        else:
            messages.append(f"{field}: {error['msg']}")
    return messages
