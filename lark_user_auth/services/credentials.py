"""
Supplies a usable user access token, refreshing or re-authorizing as needed.
"""

from __future__ import annotations

import logging
from typing import Optional

from lark_user_auth.clients.token_exchange import TokenExchangeClient
from lark_user_auth.clients.token_store import CredentialStore
from lark_user_auth.core.config import LarkAppSettings, OAuthSettings
from lark_user_auth.core.errors import ConfigurationError
from lark_user_auth.services.authorization import AuthorizationCoordinator

logger = logging.getLogger(__name__)


class CredentialLifecycleManager:
    """Owns the in-memory user token for the lifetime of the process."""

    def __init__(
        self,
        app_settings: LarkAppSettings,
        oauth_settings: OAuthSettings,
        *,
        store: Optional[CredentialStore] = None,
        exchange_client: Optional[TokenExchangeClient] = None,
        coordinator: Optional[AuthorizationCoordinator] = None,
        user_access_token: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> None:
        self._app = app_settings
        self._oauth = oauth_settings
        self._store = store or CredentialStore(oauth_settings.token_store_path)
        self._access_token = user_access_token or None
        self._user_id = user_id
        self._exchange = exchange_client
        self._coordinator = coordinator

        if app_settings.is_configured:
            if self._exchange is None:
                self._exchange = TokenExchangeClient(app_settings)
            if self._coordinator is None:
                self._coordinator = AuthorizationCoordinator(
                    app_settings,
                    oauth_settings,
                    store=self._store,
                    exchange_client=self._exchange,
                )

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def is_configured(self) -> bool:
        return self._coordinator is not None and self._exchange is not None

    def update_user_access_token(self, token: str) -> None:
        """Use ``token`` for subsequent requests without consulting the store."""
        self._access_token = token

    def _require_configured(self) -> None:
        if not self.is_configured:
            raise ConfigurationError(
                "OAuth is not configured: APP_ID and APP_SECRET are required "
                "to authorize as a user."
            )

    async def get_stored_token(self, user_id: Optional[str] = None) -> Optional[str]:
        """Return a fresh or refreshed stored token without user interaction."""
        self._require_configured()
        found = self._store.find(user_id or self._user_id)
        if found is None:
            return None
        key, record = found

        if record.is_fresh(window_seconds=self._oauth.refresh_window_seconds):
            return record.access_token

        if not record.refresh_token:
            logger.info("Stored token for %r expired and cannot be refreshed.", key)
            return None

        refreshed = await self._exchange.refresh(record.refresh_token)
        if refreshed is None:
            return None
        if refreshed.user_id is None and record.user_id:
            refreshed = refreshed.model_copy(update={"user_id": record.user_id})
        self._store.write(key, refreshed)
        logger.info("Refreshed user access token for %r.", key)
        return refreshed.access_token

    async def get_token(self) -> str:
        """Return a currently usable user access token.

        May block on an interactive browser authorization when no stored
        credential can be used or refreshed.
        """
        if self._access_token:
            return self._access_token

        self._require_configured()

        token = await self.get_stored_token()
        if token is None:
            token = await self._coordinator.start_oauth_flow()
        self._access_token = token
        return token

    def clear_stored_token(self, user_id: Optional[str] = None) -> None:
        self._store.delete(user_id or self._user_id)
        self._access_token = None

    def clear_all_tokens(self) -> None:
        """Delete every persisted credential and forget the cached token."""
        self._store.delete_all()
        self._access_token = None


__all__ = ["CredentialLifecycleManager"]
