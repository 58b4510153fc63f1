"""
Domain models for user token persistence.
"""

import time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_STORAGE_KEY = "default"


def now_ms() -> int:
    """Current wall-clock instant in epoch milliseconds."""
    return int(time.time() * 1000)


class TokenRecord(BaseModel):
    """Represents one user credential as stored in the token file.

    Field names are serialized in camelCase so files written by earlier
    releases of the tool remain readable.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    access_token: str = Field(..., alias="accessToken")
    refresh_token: Optional[str] = Field(None, alias="refreshToken")
    expires_at: int = Field(
        ...,
        alias="expiresAt",
        description="Absolute expiry instant in epoch milliseconds.",
    )
    user_id: Optional[str] = Field(
        None,
        alias="userId",
        description="Platform-assigned subject identifier (open_id).",
    )

    @classmethod
    def from_ttl(
        cls,
        *,
        access_token: str,
        ttl_seconds: int,
        refresh_token: Optional[str] = None,
        user_id: Optional[str] = None,
        acquired_at_ms: Optional[int] = None,
    ) -> "TokenRecord":
        """Build a record whose expiry is derived from a relative TTL."""
        acquired = now_ms() if acquired_at_ms is None else acquired_at_ms
        return cls(
            access_token=access_token,
            refresh_token=refresh_token or None,
            expires_at=acquired + int(ttl_seconds) * 1000,
            user_id=user_id or None,
        )

    @property
    def storage_key(self) -> str:
        return self.user_id or DEFAULT_STORAGE_KEY

    def is_fresh(self, *, window_seconds: int = 300, at_ms: Optional[int] = None) -> bool:
        """True when the token stays valid for more than ``window_seconds``."""
        current = now_ms() if at_ms is None else at_ms
        return self.expires_at > current + window_seconds * 1000

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


__all__ = ["DEFAULT_STORAGE_KEY", "TokenRecord", "now_ms"]
