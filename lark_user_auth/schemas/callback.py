"""Schemas related to the OAuth redirect callback."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class OAuthCallbackParams(BaseModel):
    """Query parameters delivered to the local redirect target."""

    code: Optional[str] = Field(None, description="Authorization code issued by the platform.")
    state: Optional[str] = Field(None, description="Anti-forgery value echoed by the platform.")
    error: Optional[str] = Field(None, description="Set when the user denied the request.")


__all__ = ["OAuthCallbackParams"]
