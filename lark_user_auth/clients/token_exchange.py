"""
Feishu/Lark user token endpoint client.

Exchanges authorization codes and refresh tokens for user access tokens.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type

import httpx
from pydantic import ValidationError

from lark_user_auth.core.config import LarkAppSettings
from lark_user_auth.core.errors import (
    ConfigurationError,
    ExchangeError,
    RefreshError,
    TokenExchangeError,
)
from lark_user_auth.models.token import TokenRecord, now_ms
from lark_user_auth.schemas.token import TokenEnvelope
from lark_user_auth.utils.http import RetryConfig, request_with_retry

logger = logging.getLogger(__name__)

AUTHORIZE_PATH = "/open-apis/authen/v1/authorize"
ACCESS_TOKEN_PATH = "/open-apis/authen/v1/access_token"
REFRESH_TOKEN_PATH = "/open-apis/authen/v1/refresh_access_token"


class TokenExchangeClient:
    """Perform the two outbound token endpoint calls."""

    def __init__(
        self,
        app_settings: LarkAppSettings,
        *,
        timeout: float = 10.0,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not app_settings.is_configured:
            raise ConfigurationError("APP_ID and APP_SECRET are required for user authorization.")
        self._app = app_settings
        self._timeout = timeout
        self._retry = retry_config or RetryConfig()
        self._transport = transport

    @property
    def domain(self) -> str:
        return self._app.domain

    async def exchange_code(self, code: str) -> TokenRecord:
        """Exchange an authorization code for a token record."""
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "app_id": self._app.app_id,
            "app_secret": self._app.app_secret,
        }
        return await self._request_token(ACCESS_TOKEN_PATH, payload, ExchangeError)

    async def refresh(self, refresh_token: str) -> Optional[TokenRecord]:
        """Exchange a refresh token; return None when the platform refuses it."""
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "app_id": self._app.app_id,
            "app_secret": self._app.app_secret,
        }
        try:
            return await self._request_token(REFRESH_TOKEN_PATH, payload, RefreshError)
        except RefreshError as exc:
            logger.warning("Refreshing the user access token failed: %s", exc)
            return None

    async def _request_token(
        self,
        path: str,
        payload: Dict[str, Any],
        error_cls: Type[TokenExchangeError],
    ) -> TokenRecord:
        url = f"{self._app.domain}{path}"
        acquired_at = now_ms()

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await request_with_retry(
                    client.post,
                    url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                    retry_config=self._retry,
                )
        except httpx.HTTPError as exc:
            raise error_cls(f"Failed to reach token endpoint: {exc}") from exc

        try:
            envelope = TokenEnvelope.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise error_cls(
                f"Unexpected token endpoint response (HTTP {response.status_code}): "
                f"{response.text[:200]}"
            ) from exc

        if envelope.code != 0:
            raise error_cls(
                f"Failed to obtain access token: {envelope.msg}",
                platform_code=envelope.code,
            )
        if response.is_error:
            raise error_cls(f"Token endpoint returned HTTP {response.status_code}.")
        if envelope.data is None:
            raise error_cls("Incomplete token payload returned from the platform.")

        data = envelope.data
        return TokenRecord.from_ttl(
            access_token=data.access_token,
            refresh_token=data.refresh_token,
            ttl_seconds=data.expires_in,
            user_id=data.open_id,
            acquired_at_ms=acquired_at,
        )


__all__ = [
    "ACCESS_TOKEN_PATH",
    "AUTHORIZE_PATH",
    "REFRESH_TOKEN_PATH",
    "TokenExchangeClient",
]
