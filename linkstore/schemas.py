"""
Pydantic models returned to callers of the link manager.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime, timedelta


class UserRecord(BaseModel):
    """User information."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    device_name: str


class AccountRecord(BaseModel):
    """Linked account with decrypted tokens."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    access_token: str = Field(..., repr=False)
    refresh_token: str = Field(..., repr=False)
    session_token: Optional[str] = Field(None, repr=False)
    expires: datetime
    last_updated: datetime

    def is_expired(self, now: datetime, offset: timedelta = timedelta(0)) -> bool:
        """True if the access token is expired at ``now`` (or within ``offset`` of it)."""
        return now + offset >= self.expires


class LinkRequestRecord(BaseModel):
    """Issued link request."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    token: str
    user_id: str
    expires: datetime


class TokenGrant(BaseModel):
    """Token set handed back by the OAuth provider."""
    access_token: str = Field(..., repr=False)
    refresh_token: Optional[str] = Field(
        None,
        repr=False,
        description="Rotated refresh token; None keeps the stored one"
    )
    expires: datetime

    @classmethod
    def from_token_response(cls, payload: dict, now: datetime) -> "TokenGrant":
        """
        Build a grant from a standard OAuth token endpoint response.

        Args:
            payload: Decoded JSON body with access_token / expires_in / refresh_token
            now: Reference time for expires_in
        """
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires=now + timedelta(seconds=int(payload.get("expires_in", 3600))),
        )
