"""Pydantic schemas for the callback query and token responses."""

from .callback import OAuthCallbackParams
from .token import TokenEnvelope, TokenPayload

__all__ = [
    "OAuthCallbackParams",
    "TokenEnvelope",
    "TokenPayload",
]
