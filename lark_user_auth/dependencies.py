"""
Factory functions providing the shared credential manager to collaborators.

Tool handlers and transport adapters only need ``get_user_access_token`` and
``clear_all_tokens``; everything else stays behind the manager.
"""

from functools import lru_cache

from lark_user_auth.core.config import AppSettings, get_settings
from lark_user_auth.services import CredentialLifecycleManager


def build_credential_manager(settings: AppSettings) -> CredentialLifecycleManager:
    """Create a manager wired to the configured store and platform."""
    return CredentialLifecycleManager(
        settings.lark,
        settings.oauth,
        user_access_token=settings.user_access_token,
    )


@lru_cache()
def get_credential_manager() -> CredentialLifecycleManager:
    """Provide the process-wide credential manager."""
    return build_credential_manager(get_settings())


async def get_user_access_token() -> str:
    """Return a usable user access token, authorizing interactively if needed."""
    return await get_credential_manager().get_token()


def clear_all_tokens() -> None:
    """Delete every persisted user token."""
    get_credential_manager().clear_all_tokens()


__all__ = [
    "build_credential_manager",
    "clear_all_tokens",
    "get_credential_manager",
    "get_user_access_token",
]
