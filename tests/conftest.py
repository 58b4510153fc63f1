"""Pytest configuration shared across the suite."""

from __future__ import annotations

import socket
from pathlib import Path

import pytest

try:
    from . import _bootstrap  # noqa: F401
except ImportError:  # pragma: no cover - rootdir-relative import
    import _bootstrap  # type: ignore # noqa: F401

from lark_user_auth.clients.token_store import CredentialStore
from lark_user_auth.core.config import LarkAppSettings, OAuthSettings


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def app_settings() -> LarkAppSettings:
    return LarkAppSettings(
        app_id="cli_test_app",
        app_secret="test-app-secret",
        domain="https://open.feishu.test",
    )


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "lark-mcp" / "tokens.json"


@pytest.fixture
def store(store_path: Path) -> CredentialStore:
    return CredentialStore(store_path)


@pytest.fixture
def oauth_settings(store_path: Path) -> OAuthSettings:
    return OAuthSettings(
        redirect_port=3000,
        token_store_path=store_path,
        callback_timeout_seconds=5,
        open_browser=True,
    )


@pytest.fixture
def free_port() -> int:
    """Return a port that was free a moment ago on 127.0.0.1."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
