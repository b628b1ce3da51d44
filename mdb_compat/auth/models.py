"""
Auth wire models.

Pydantic models for the auth service's JSON bodies. Fields use snake_case in
Python and accept the service's camelCase names on input.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..constants import DEFAULT_SIGN_IN_PROVIDER


class User(BaseModel):
    """The signed-in identity as returned by the auth service."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    uid: str
    email: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")
    photo_url: str | None = Field(default=None, alias="photoURL")
    email_verified: bool = Field(default=False, alias="emailVerified")


class TokenPair(BaseModel):
    """Short-lived access credential and longer-lived refresh credential."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    expires_in: int = Field(alias="expiresIn", ge=0)


class AuthResponse(BaseModel):
    """Successful sign-in, sign-up or refresh response."""

    model_config = ConfigDict(populate_by_name=True)

    user: User
    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    expires_in: int = Field(alias="expiresIn", ge=0)

    @property
    def token_pair(self) -> TokenPair:
        return TokenPair(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_in=self.expires_in,
        )


class UserCredential(BaseModel):
    """Legacy ``UserCredential`` wrapper returned by sign-in and sign-up."""

    user: User


class IdTokenResult(BaseModel):
    """Metadata for the stored access token."""

    model_config = ConfigDict(populate_by_name=True)

    token: str
    auth_time: str | None = Field(default=None, alias="authTime")
    issued_at_time: str | None = Field(default=None, alias="issuedAtTime")
    expiration_time: str | None = Field(default=None, alias="expirationTime")
    sign_in_provider: str = Field(default=DEFAULT_SIGN_IN_PROVIDER, alias="signInProvider")
    claims: dict[str, Any] = Field(default_factory=dict)
