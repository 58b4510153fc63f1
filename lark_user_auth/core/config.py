"""
Configuration models and helpers.

Centralizes settings management so the credential manager, the callback
listener and the token management script share one configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_DOMAIN = "https://open.feishu.cn"
DEFAULT_REDIRECT_PORT = 3000
DEFAULT_TOKEN_STORE_PATH = Path.home() / ".lark-mcp" / "tokens.json"

MINIMAL_SCOPES: tuple[str, ...] = ("contact:user.email:readonly",)
RECOMMENDED_SCOPES: tuple[str, ...] = (
    "contact:user.email:readonly",
    "docs:doc",
    "docs:doc:readonly",
    "docs:document:export",
    "docs:document.media:download",
    "drive:drive",
    "drive:drive:readonly",
    "drive:drive.search:readonly",
    "drive:export:readonly",
    "drive:file",
    "drive:file:download",
    "drive:file:readonly",
    "sheets:spreadsheet:read",
    "sheets:spreadsheet:write_only",
    "space:document:retrieve",
)


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps.

    Runs once at import so every settings object, nested ones included, sees
    the values. Variables already present in the environment win.
    """
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


def _split_csv(value: str | tuple[str, ...] | list[str] | None) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, tuple):
        return value
    if isinstance(value, list):
        return tuple(value)
    return tuple(item.strip() for item in value.split(",") if item.strip())


class LarkAppSettings(BaseSettings):
    """Application credentials registered on the Feishu/Lark open platform."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    app_id: Optional[str] = Field(None, validation_alias="APP_ID")
    app_secret: Optional[str] = Field(None, validation_alias="APP_SECRET")
    domain: str = Field(
        DEFAULT_DOMAIN,
        validation_alias="LARK_DOMAIN",
        description="Platform base address, e.g. https://open.larksuite.com.",
    )

    @field_validator("domain")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.app_id and self.app_secret)


class OAuthSettings(BaseSettings):
    """User authorization flow configuration."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    redirect_port: int = Field(
        DEFAULT_REDIRECT_PORT,
        ge=1,
        le=65535,
        validation_alias="LARK_OAUTH_PORT",
        description="Must match the redirect URL registered for the application.",
    )
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        (),
        validation_alias="LARK_SCOPES",
        description="Requested permission scopes; empty means the minimal scope.",
    )
    callback_timeout_seconds: float = Field(300, gt=0, validation_alias="LARK_OAUTH_TIMEOUT")
    refresh_window_seconds: int = Field(300, ge=0, validation_alias="LARK_REFRESH_WINDOW")
    token_store_path: Path = Field(
        default_factory=lambda: DEFAULT_TOKEN_STORE_PATH,
        validation_alias="LARK_TOKEN_STORE",
    )
    open_browser: bool = Field(True, validation_alias="LARK_OAUTH_OPEN_BROWSER")

    @property
    def effective_scopes(self) -> tuple[str, ...]:
        return self.scopes or MINIMAL_SCOPES

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str] | None
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        return _split_csv(value)

    @field_validator("token_store_path", mode="after")
    @classmethod
    def _expand_user(cls, value: Path) -> Path:
        return value.expanduser()


class AppSettings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        populate_by_name=True,
        extra="ignore",
    )

    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    user_access_token: Optional[str] = Field(
        None,
        validation_alias="USER_ACCESS_TOKEN",
        description="Optional preset user token that bypasses the interactive flow.",
    )
    lark: LarkAppSettings = Field(default_factory=LarkAppSettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)


def get_default_scopes() -> tuple[str, ...]:
    """Scope set covering the document, drive and sheet operations."""
    return RECOMMENDED_SCOPES


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()


__all__ = [
    "AppSettings",
    "DEFAULT_DOMAIN",
    "DEFAULT_REDIRECT_PORT",
    "DEFAULT_TOKEN_STORE_PATH",
    "LarkAppSettings",
    "MINIMAL_SCOPES",
    "OAuthSettings",
    "RECOMMENDED_SCOPES",
    "get_default_scopes",
    "get_settings",
]
