"""
Interactive authorization-code flow for obtaining a user access token.
"""

from __future__ import annotations

import logging
import sys
import webbrowser
from typing import Callable, Optional
from urllib.parse import urlencode

from lark_user_auth.clients.callback_listener import (
    CALLBACK_PATH,
    AuthorizationAttempt,
    CallbackListener,
)
from lark_user_auth.clients.token_exchange import AUTHORIZE_PATH, TokenExchangeClient
from lark_user_auth.clients.token_store import CredentialStore
from lark_user_auth.core.config import LarkAppSettings, OAuthSettings

logger = logging.getLogger(__name__)

BrowserOpener = Callable[[str], bool]


class AuthorizationCoordinator:
    """Run one end-to-end browser authorization and persist the result."""

    def __init__(
        self,
        app_settings: LarkAppSettings,
        oauth_settings: OAuthSettings,
        *,
        store: CredentialStore,
        exchange_client: TokenExchangeClient,
        browser_opener: Optional[BrowserOpener] = None,
        listener_factory: Callable[..., CallbackListener] = CallbackListener,
    ) -> None:
        self._app = app_settings
        self._oauth = oauth_settings
        self._store = store
        self._exchange = exchange_client
        self._open_browser = browser_opener or webbrowser.open
        self._listener_factory = listener_factory

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self._oauth.redirect_port}{CALLBACK_PATH}"

    def build_authorization_url(self, state: str, redirect_uri: Optional[str] = None) -> str:
        """Construct the platform consent URL."""
        params = {
            "app_id": self._app.app_id,
            "redirect_uri": redirect_uri or self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self._oauth.effective_scopes),
            "state": state,
        }
        return f"{self._app.domain}{AUTHORIZE_PATH}?{urlencode(params)}"

    def _surface_url(self, url: str) -> None:
        logger.info("Authorization URL: %s", url)
        if not self._oauth.open_browser:
            print(f"Visit this URL to authorize:\n{url}", file=sys.stderr)
            return
        try:
            if self._open_browser(url):
                return
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Could not open a browser: %s", exc)
        print(
            "Could not open a browser automatically. "
            f"Visit this URL to authorize:\n{url}",
            file=sys.stderr,
        )

    async def start_oauth_flow(self) -> str:
        """Return a user access token, prompting the user in a browser if needed."""
        found = self._store.find()
        existing = found[1] if found else None
        if existing and existing.is_fresh(window_seconds=self._oauth.refresh_window_seconds):
            logger.info("Found a valid stored user access token.")
            return existing.access_token

        logger.info("User authorization required; opening the consent page.")
        attempt = AuthorizationAttempt()
        async with self._listener_factory(
            attempt,
            port=self._oauth.redirect_port,
            timeout_seconds=self._oauth.callback_timeout_seconds,
        ) as listener:
            url = self.build_authorization_url(attempt.state, listener.redirect_uri)
            self._surface_url(url)
            code = await listener.wait_for_code()

        record = await self._exchange.exchange_code(code)
        self._store.write(record.storage_key, record)
        logger.info("Authorization successful for key %r.", record.storage_key)
        return record.access_token


__all__ = ["AuthorizationCoordinator", "BrowserOpener"]
