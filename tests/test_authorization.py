from __future__ import annotations

import asyncio
from typing import Callable, Optional
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from lark_user_auth.clients.callback_listener import AuthorizationAttempt
from lark_user_auth.clients.token_store import CredentialStore
from lark_user_auth.core.config import LarkAppSettings, OAuthSettings
from lark_user_auth.core.errors import (
    CsrfValidationError,
    ExchangeError,
    UserDeniedError,
)
from lark_user_auth.models.token import TokenRecord, now_ms
from lark_user_auth.schemas.callback import OAuthCallbackParams
from lark_user_auth.services.authorization import AuthorizationCoordinator

pytestmark = pytest.mark.anyio


class DummyExchangeClient:
    def __init__(self, *, open_id: Optional[str] = "ou_abc", error: Exception | None = None) -> None:
        self.codes: list[str] = []
        self._open_id = open_id
        self._error = error

    async def exchange_code(self, code: str) -> TokenRecord:
        self.codes.append(code)
        if self._error is not None:
            raise self._error
        return TokenRecord.from_ttl(
            access_token=f"access-for-{code}",
            refresh_token="ur-refresh",
            ttl_seconds=7200,
            user_id=self._open_id,
        )


def simulated_browser_listener(
    query: Optional[Callable[[AuthorizationAttempt], dict]] = None,
):
    """Listener stand-in whose 'browser' redirects back as soon as it is awaited."""
    created = []

    class _Listener:
        def __init__(self, attempt: AuthorizationAttempt, *, port: int, timeout_seconds: float) -> None:
            self.attempt = attempt
            self.port = port
            self.timeout_seconds = timeout_seconds
            self.closed = False
            created.append(self)

        @property
        def redirect_uri(self) -> str:
            return f"http://localhost:{self.port}/oauth/callback"

        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc_info) -> None:
            self.closed = True

        async def wait_for_code(self) -> str:
            params = (
                {"code": "abc123", "state": self.attempt.state}
                if query is None
                else query(self.attempt)
            )
            self.attempt.handle_callback(OAuthCallbackParams(**params))
            return await self.attempt.wait()

    return _Listener, created


def _coordinator(
    app_settings: LarkAppSettings,
    oauth_settings: OAuthSettings,
    store: CredentialStore,
    exchange: DummyExchangeClient,
    listener_factory,
    opener: Callable[[str], bool] | None = None,
) -> AuthorizationCoordinator:
    return AuthorizationCoordinator(
        app_settings,
        oauth_settings,
        store=store,
        exchange_client=exchange,
        browser_opener=opener or (lambda url: True),
        listener_factory=listener_factory,
    )


def test_build_authorization_url(app_settings: LarkAppSettings, store: CredentialStore) -> None:
    oauth = OAuthSettings(redirect_port=8080, scopes="docx:document, wiki:node:read")
    coordinator = AuthorizationCoordinator(
        app_settings, oauth, store=store, exchange_client=DummyExchangeClient()
    )

    url = coordinator.build_authorization_url("state-value")

    parts = urlsplit(url)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == (
        "https://open.feishu.test/open-apis/authen/v1/authorize"
    )
    assert parse_qs(parts.query) == {
        "app_id": ["cli_test_app"],
        "redirect_uri": ["http://localhost:8080/oauth/callback"],
        "response_type": ["code"],
        "scope": ["docx:document wiki:node:read"],
        "state": ["state-value"],
    }


def test_authorization_url_defaults_to_minimal_scope(
    app_settings: LarkAppSettings, store: CredentialStore
) -> None:
    coordinator = AuthorizationCoordinator(
        app_settings, OAuthSettings(), store=store, exchange_client=DummyExchangeClient()
    )

    query = parse_qs(urlsplit(coordinator.build_authorization_url("s")).query)
    assert query["scope"] == ["contact:user.email:readonly"]


async def test_flow_exchanges_code_and_persists_under_open_id(
    app_settings: LarkAppSettings, oauth_settings: OAuthSettings, store: CredentialStore
) -> None:
    exchange = DummyExchangeClient()
    factory, created = simulated_browser_listener()
    opened: list[str] = []
    coordinator = _coordinator(
        app_settings, oauth_settings, store, exchange, factory, opener=lambda url: opened.append(url) or True
    )

    token = await coordinator.start_oauth_flow()

    assert token == "access-for-abc123"
    assert exchange.codes == ["abc123"]
    assert store.read("ou_abc").access_token == token
    assert store.read_all().keys() == {"ou_abc"}
    listener = created[0]
    assert listener.closed
    assert listener.port == 3000
    assert listener.timeout_seconds == 5
    state = parse_qs(urlsplit(opened[0]).query)["state"][0]
    assert state == listener.attempt.state


async def test_flow_without_open_id_uses_default_key(
    app_settings: LarkAppSettings, oauth_settings: OAuthSettings, store: CredentialStore
) -> None:
    factory, _ = simulated_browser_listener()
    coordinator = _coordinator(
        app_settings, oauth_settings, store, DummyExchangeClient(open_id=None), factory
    )

    await coordinator.start_oauth_flow()

    assert store.read_all().keys() == {"default"}


async def test_fresh_stored_token_skips_the_flow(
    app_settings: LarkAppSettings, oauth_settings: OAuthSettings, store: CredentialStore
) -> None:
    store.write("default", TokenRecord(access_token="cached", expires_at=now_ms() + 3_600_000))

    def _no_listener(*args, **kwargs):
        raise AssertionError("listener must not start")

    coordinator = _coordinator(
        app_settings, oauth_settings, store, DummyExchangeClient(), _no_listener
    )

    assert await coordinator.start_oauth_flow() == "cached"


async def test_browser_failure_prints_url_and_continues(
    app_settings: LarkAppSettings,
    oauth_settings: OAuthSettings,
    store: CredentialStore,
    capsys: pytest.CaptureFixture[str],
) -> None:
    def _broken_browser(url: str) -> bool:
        raise RuntimeError("no display")

    factory, _ = simulated_browser_listener()
    coordinator = _coordinator(
        app_settings, oauth_settings, store, DummyExchangeClient(), factory, opener=_broken_browser
    )

    assert await coordinator.start_oauth_flow() == "access-for-abc123"
    err = capsys.readouterr().err
    assert "Could not open a browser automatically" in err
    assert "open-apis/authen/v1/authorize" in err


async def test_disabled_browser_prints_url(
    app_settings: LarkAppSettings,
    store: CredentialStore,
    capsys: pytest.CaptureFixture[str],
) -> None:
    opened: list[str] = []
    factory, _ = simulated_browser_listener()
    coordinator = _coordinator(
        app_settings,
        OAuthSettings(open_browser=False),
        store,
        DummyExchangeClient(),
        factory,
        opener=lambda url: opened.append(url) or True,
    )

    await coordinator.start_oauth_flow()

    err = capsys.readouterr().err
    assert opened == []
    assert "Visit this URL to authorize" in err
    assert "Could not open a browser" not in err


async def test_user_denial_propagates_and_persists_nothing(
    app_settings: LarkAppSettings, oauth_settings: OAuthSettings, store: CredentialStore
) -> None:
    exchange = DummyExchangeClient()
    factory, created = simulated_browser_listener(
        lambda attempt: {"error": "access_denied", "code": "abc123", "state": attempt.state}
    )
    coordinator = _coordinator(app_settings, oauth_settings, store, exchange, factory)

    with pytest.raises(UserDeniedError):
        await coordinator.start_oauth_flow()

    assert exchange.codes == []
    assert created[0].closed
    assert not store.path.exists()


async def test_forged_state_propagates(
    app_settings: LarkAppSettings, oauth_settings: OAuthSettings, store: CredentialStore
) -> None:
    factory, _ = simulated_browser_listener(
        lambda attempt: {"code": "abc123", "state": "not-" + attempt.state}
    )
    coordinator = _coordinator(
        app_settings, oauth_settings, store, DummyExchangeClient(), factory
    )

    with pytest.raises(CsrfValidationError):
        await coordinator.start_oauth_flow()


async def test_exchange_failure_is_fatal(
    app_settings: LarkAppSettings, oauth_settings: OAuthSettings, store: CredentialStore
) -> None:
    factory, _ = simulated_browser_listener()
    coordinator = _coordinator(
        app_settings,
        oauth_settings,
        store,
        DummyExchangeClient(error=ExchangeError("code expired")),
        factory,
    )

    with pytest.raises(ExchangeError):
        await coordinator.start_oauth_flow()
    assert store.read_all() == {}


async def test_end_to_end_over_local_socket(
    app_settings: LarkAppSettings, store: CredentialStore, free_port: int
) -> None:
    """Drive the real listener: the fake browser follows the redirect URL."""
    oauth = OAuthSettings(
        redirect_port=free_port, callback_timeout_seconds=5, open_browser=True
    )
    pending: list[asyncio.Task] = []

    async def _follow(url: str) -> None:
        query = parse_qs(urlsplit(url).query)
        redirect_uri = query["redirect_uri"][0].replace("localhost", "127.0.0.1")
        async with httpx.AsyncClient(trust_env=False) as client:
            await client.get(redirect_uri, params={"code": "abc123", "state": query["state"][0]})

    def _browser(url: str) -> bool:
        pending.append(asyncio.get_running_loop().create_task(_follow(url)))
        return True

    coordinator = AuthorizationCoordinator(
        app_settings,
        oauth,
        store=store,
        exchange_client=DummyExchangeClient(),
        browser_opener=_browser,
    )

    token = await coordinator.start_oauth_flow()
    await asyncio.gather(*pending)

    assert token == "access-for-abc123"
    assert store.read("ou_abc") is not None
