"""
Local redirect target for the interactive authorization flow.

One ``AuthorizationAttempt`` owns the anti-forgery state and a single-shot
future. The HTTP handler, the timeout timer and a bind failure each try to
settle that future; only the first one wins.
"""

from __future__ import annotations

import asyncio
import errno
import hmac
import html
import logging
import secrets
import socket
from http import HTTPStatus
from typing import Optional

import uvicorn
from fastapi import FastAPI, Query
from fastapi.responses import HTMLResponse

from lark_user_auth.core.errors import (
    CallbackTimeoutError,
    CsrfValidationError,
    OAuthFlowError,
    PortConflictError,
    UserDeniedError,
)
from lark_user_auth.schemas.callback import OAuthCallbackParams

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/oauth/callback"
LOOPBACK_HOST = "127.0.0.1"
LOOPBACK_HOST_V6 = "::1"
DEFAULT_CALLBACK_TIMEOUT = 300.0

_PAGE_TEMPLATE = """
<html>
  <head><meta charset="utf-8"><title>{title}</title></head>
  <body style="font-family: Arial, sans-serif; text-align: center; padding: 50px;">
    <h2 style="color: {color};">{title}</h2>
    {body}
  </body>
</html>
"""


def generate_state() -> str:
    """Return 256 bits of randomness, hex encoded."""
    return secrets.token_hex(32)


def _render_page(title: str, body: str, *, success: bool) -> str:
    return _PAGE_TEMPLATE.format(
        title=title,
        color="#27ae60" if success else "#e74c3c",
        body=body,
    )


def _retrieve_exception(future: asyncio.Future) -> None:
    # A rejection nobody awaits (e.g. bind failure) must not log "never retrieved".
    if not future.cancelled():
        future.exception()


class AuthorizationAttempt:
    """Single-use state for one interactive authorization.

    All settlement happens on the event loop thread, so checking and setting
    ``resolved`` cannot interleave between the request handler and the timer.
    """

    def __init__(self, state: Optional[str] = None) -> None:
        self.state = state or generate_state()
        self._future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._future.add_done_callback(_retrieve_exception)
        self._resolved = False

    @property
    def resolved(self) -> bool:
        return self._resolved

    def _claim(self) -> bool:
        if self._resolved or self._future.done():
            return False
        self._resolved = True
        return True

    def resolve(self, code: str) -> bool:
        if not self._claim():
            return False
        self._future.set_result(code)
        return True

    def reject(self, error: BaseException) -> bool:
        if not self._claim():
            return False
        self._future.set_exception(error)
        return True

    def state_matches(self, candidate: Optional[str]) -> bool:
        if candidate is None:
            return False
        return hmac.compare_digest(candidate.encode("utf-8"), self.state.encode("utf-8"))

    def handle_callback(self, params: OAuthCallbackParams) -> tuple[int, str]:
        """Settle the attempt from redirect parameters and return the page to render."""
        if self._resolved:
            return (
                HTTPStatus.CONFLICT,
                _render_page(
                    "Request already handled",
                    "<p>This authorization request has already been processed.</p>",
                    success=False,
                ),
            )

        if params.error:
            self.reject(UserDeniedError(params.error))
            return (
                HTTPStatus.BAD_REQUEST,
                _render_page(
                    "Authorization failed",
                    f"<p>Error: {html.escape(params.error)}</p>"
                    "<p>Please close this page and try again.</p>",
                    success=False,
                ),
            )

        if not params.code or not self.state_matches(params.state):
            self.reject(CsrfValidationError())
            return (
                HTTPStatus.BAD_REQUEST,
                _render_page(
                    "Authorization failed",
                    "<p>Invalid authorization code or state.</p>"
                    "<p>Please close this page and try again.</p>",
                    success=False,
                ),
            )

        self.resolve(params.code)
        return (
            HTTPStatus.OK,
            _render_page(
                "Authorization successful",
                "<p>You can close this page and return to your terminal.</p>"
                "<script>setTimeout(() => window.close(), 3000);</script>",
                success=True,
            ),
        )

    async def wait(self) -> str:
        return await self._future


def create_callback_app(
    attempt: AuthorizationAttempt, path: str = CALLBACK_PATH
) -> FastAPI:
    """Build the ASGI app serving exactly one redirect path for ``attempt``."""
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get(path, response_class=HTMLResponse)
    async def oauth_callback(
        code: Optional[str] = Query(None),
        state: Optional[str] = Query(None),
        error: Optional[str] = Query(None),
    ) -> HTMLResponse:
        params = OAuthCallbackParams(code=code, state=state, error=error)
        status_code, content = attempt.handle_callback(params)
        return HTMLResponse(content=content, status_code=status_code)

    return app


class CallbackListener:
    """Serve the redirect target on a fixed local port for one attempt.

    Use as an async context manager; the port is released before ``__aexit__``
    returns on every exit route.

    The redirect URI names ``localhost``, which browsers may resolve to either
    loopback family. With the default host the listener therefore binds both
    ``127.0.0.1`` and ``::1`` on the same port. Another process already holding
    the port on ``::1`` is reported as a conflict. Hosts without IPv6 are
    served on IPv4 only.
    """

    def __init__(
        self,
        attempt: AuthorizationAttempt,
        *,
        port: int,
        host: str = LOOPBACK_HOST,
        path: str = CALLBACK_PATH,
        timeout_seconds: float = DEFAULT_CALLBACK_TIMEOUT,
    ) -> None:
        self._attempt = attempt
        self._host = host
        self._port = port
        self._path = path
        self._timeout = timeout_seconds
        self._server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._closed = False

    @property
    def port(self) -> int:
        return self._port

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self._port}{self._path}"

    @staticmethod
    def _bind_socket(family: socket.AddressFamily, host: str, port: int) -> socket.socket:
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if family == socket.AF_INET6:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
            sock.bind((host, port))
        except OSError:
            sock.close()
            raise
        return sock

    def _bind(self) -> list[socket.socket]:
        try:
            primary = self._bind_socket(socket.AF_INET, self._host, self._port)
        except OSError as exc:
            raise PortConflictError(self._port, exc) from exc
        sockets = [primary]
        if self._host != LOOPBACK_HOST or not socket.has_ipv6:
            return sockets

        port = primary.getsockname()[1]
        try:
            sockets.append(self._bind_socket(socket.AF_INET6, LOOPBACK_HOST_V6, port))
        except OSError as exc:
            if exc.errno == errno.EADDRINUSE:
                primary.close()
                raise PortConflictError(self._port, exc) from exc
            logger.debug("IPv6 loopback unavailable, serving IPv4 only: %s", exc)
        return sockets

    async def start(self) -> None:
        try:
            sockets = self._bind()
        except PortConflictError as exc:
            self._attempt.reject(exc)
            self._closed = True
            raise
        self._port = sockets[0].getsockname()[1]

        config = uvicorn.Config(
            create_callback_app(self._attempt, self._path),
            log_level="warning",
            access_log=False,
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._server_task = asyncio.create_task(self._server.serve(sockets=sockets))

        try:
            while not self._server.started:
                if self._server_task.done():
                    self._server_task.result()
                    raise OAuthFlowError("Callback server exited during startup.")
                await asyncio.sleep(0.01)
        except BaseException:
            for sock in sockets:
                sock.close()
            await self.close()
            raise

        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._timeout, self._on_timeout)
        logger.info("Callback server listening on port %d", self._port)

    def _on_timeout(self) -> None:
        if self._attempt.reject(
            CallbackTimeoutError("Authorization timed out, please try again.")
        ):
            logger.warning("No authorization callback within %.0f seconds.", self._timeout)

    async def wait_for_code(self) -> str:
        """Wait until the attempt resolves, rejects or times out."""
        return await self._attempt.wait()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._server is not None and self._server_task is not None:
            self._server.should_exit = True
            try:
                await self._server_task
            finally:
                self._server = None
                self._server_task = None
        logger.debug("Callback server on port %d closed", self._port)

    async def __aenter__(self) -> "CallbackListener":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


__all__ = [
    "AuthorizationAttempt",
    "CALLBACK_PATH",
    "CallbackListener",
    "create_callback_app",
    "generate_state",
]
