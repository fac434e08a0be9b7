"""OAuth credential models."""

from datetime import datetime, timedelta

from pydantic import BaseModel, Field


class StoredCredential(BaseModel):
    """The single persisted OAuth credential for the account owner."""

    refresh_token: str
    access_token: str
    expires_at: datetime
    owner_email: str

    def expires_within(self, buffer: timedelta, now: datetime | None = None) -> bool:
        """True when the token expires inside the buffer window."""
        return self.expires_at <= (now or datetime.now()) + buffer


class TokenGrant(BaseModel):
    """Response body of a refresh_token grant."""

    access_token: str
    expires_in: int = Field(..., description='Lifetime in seconds')
    refresh_token: str | None = Field(
        default=None, description='Present only when the provider rotates the refresh token'
    )
    scope: str | None = None
    token_type: str | None = None


class AccessGrant(BaseModel):
    """What callers receive from the credential guard."""

    access_token: str
    owner_email: str
