"""Schemas for the platform token endpoint envelope."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class TokenPayload(BaseModel):
    """The ``data`` member of a successful token response."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = Field(..., description="Access token time-to-live in seconds.")
    open_id: Optional[str] = None


class TokenEnvelope(BaseModel):
    """``{code, msg, data}`` wrapper returned by the authen endpoints."""

    code: int
    msg: str = ""
    data: Optional[TokenPayload] = None


__all__ = ["TokenEnvelope", "TokenPayload"]
