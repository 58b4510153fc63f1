"""Expose constructed client wrappers."""

from .callback_listener import AuthorizationAttempt, CallbackListener, create_callback_app
from .token_exchange import TokenExchangeClient
from .token_store import CredentialStore

__all__ = [
    "AuthorizationAttempt",
    "CallbackListener",
    "CredentialStore",
    "TokenExchangeClient",
    "create_callback_app",
]
