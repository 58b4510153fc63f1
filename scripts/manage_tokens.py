"""Manage stored Feishu/Lark user access tokens from the command line.

Commands:

1. ``auth`` runs the browser authorization flow (or reuses/refreshes a stored
   token) and saves the result.
2. ``clear-tokens`` deletes every stored user token.
3. ``status`` lists stored credentials without printing token values.

Example usages::

    python -m scripts.manage_tokens auth --app-id cli_xxx --app-secret yyy \
        --scopes "docx:document,wiki:node:read"

    python -m scripts.manage_tokens clear-tokens --app-id cli_xxx --app-secret yyy
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from lark_user_auth.core.config import LarkAppSettings, OAuthSettings
from lark_user_auth.core.errors import ConfigurationError, LarkAuthError
from lark_user_auth.core.logging import configure_logging
from lark_user_auth.clients.token_store import CredentialStore
from lark_user_auth.models.token import now_ms
from lark_user_auth.services import CredentialLifecycleManager

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2
EXIT_AUTH_ERROR = 4
EXIT_RUNTIME_ERROR = 5

TOKEN_PREVIEW_LENGTH = 20


def _overrides(**values: Any) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _load_settings(args: argparse.Namespace) -> tuple[LarkAppSettings, OAuthSettings]:
    lark = LarkAppSettings(
        **_overrides(
            app_id=getattr(args, "app_id", None),
            app_secret=getattr(args, "app_secret", None),
            domain=getattr(args, "domain", None),
        )
    )
    oauth = OAuthSettings(
        **_overrides(
            redirect_port=getattr(args, "oauth_port", None),
            scopes=getattr(args, "scopes", None),
            token_store_path=getattr(args, "token_store", None),
            open_browser=False if getattr(args, "no_browser", False) else None,
        )
    )
    return lark, oauth


def _require_app_credentials(lark: LarkAppSettings) -> None:
    if not lark.is_configured:
        raise ConfigurationError(
            "APP_ID and APP_SECRET are required. Pass --app-id/--app-secret "
            "or set the APP_ID and APP_SECRET environment variables."
        )


def _run_auth(args: argparse.Namespace) -> int:
    lark, oauth = _load_settings(args)
    _require_app_credentials(lark)
    manager = CredentialLifecycleManager(lark, oauth)

    print("Starting user authorization...")
    token = asyncio.run(manager.get_token())
    print("Authorization succeeded; the user access token has been saved.")
    print(f"Token: {token[:TOKEN_PREVIEW_LENGTH]}...")
    return EXIT_OK


def _run_clear(args: argparse.Namespace) -> int:
    lark, oauth = _load_settings(args)
    _require_app_credentials(lark)
    manager = CredentialLifecycleManager(lark, oauth)
    manager.clear_all_tokens()
    print("All stored user access tokens have been cleared.")
    return EXIT_OK


def _run_status(args: argparse.Namespace) -> int:
    _, oauth = _load_settings(args)
    store = CredentialStore(oauth.token_store_path)
    records = store.read_all()
    if not records:
        print(f"No stored user access tokens in {store.path}.")
        return EXIT_OK

    current = now_ms()
    for key, record in sorted(records.items()):
        expires = datetime.fromtimestamp(record.expires_at / 1000, tz=timezone.utc)
        state = "valid" if record.expires_at > current else "expired"
        refreshable = "yes" if record.refresh_token else "no"
        print(f"{key}: {state}, expires {expires.isoformat()}, refreshable: {refreshable}")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Authorize, inspect and clear Feishu/Lark user access tokens."
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level for diagnostic output (default: WARNING).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_app_arguments(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument("-a", "--app-id", help="Feishu/Lark App ID.")
        subparser.add_argument("-s", "--app-secret", help="Feishu/Lark App Secret.")
        subparser.add_argument(
            "-d",
            "--domain",
            help='Platform domain (default: "https://open.feishu.cn").',
        )

    def add_store_argument(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--token-store",
            help="Path of the token file (default: ~/.lark-mcp/tokens.json).",
        )

    auth_parser = subparsers.add_parser(
        "auth",
        help="Run the authorization flow and store the user access token.",
    )
    add_app_arguments(auth_parser)
    add_store_argument(auth_parser)
    auth_parser.add_argument(
        "--oauth-port",
        type=int,
        help="OAuth callback server port (default: 3000).",
    )
    auth_parser.add_argument(
        "--scopes",
        help='Permission scopes separated by commas, e.g. "docx:document,wiki:node:read".',
    )
    auth_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Print the authorization URL instead of opening a browser.",
    )

    clear_parser = subparsers.add_parser(
        "clear-tokens",
        help="Clear all stored user access tokens.",
    )
    add_app_arguments(clear_parser)
    add_store_argument(clear_parser)

    status_parser = subparsers.add_parser(
        "status",
        help="List stored user access tokens without revealing them.",
    )
    add_store_argument(status_parser)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    handlers: dict[str, Callable[[argparse.Namespace], int]] = {
        "auth": _run_auth,
        "clear-tokens": _run_clear,
        "status": _run_status,
    }

    try:
        return handlers[args.command](args)
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_CONFIG_ERROR
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except LarkAuthError as exc:
        print(f"Authorization failed: {exc}", file=sys.stderr)
        return EXIT_AUTH_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
