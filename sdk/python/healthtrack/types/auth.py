from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class MfaHint(BaseModel):
    enrollment_id: str
    phone_info: Optional[str] = None
    display_name: Optional[str] = None
    enrolled_at: Optional[str] = None


class Account(BaseModel):
    uid: str
    email: Optional[str] = None
    email_verified: bool = False
    display_name: Optional[str] = None
    phone_number: Optional[str] = None
    created_at: Optional[datetime] = None
    enrolled_factors: list[MfaHint] = Field(default_factory=list)
    id_token: Optional[str] = Field(default=None, repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)


class SecondFactorChallenge(BaseModel):
    """The provider's multi-factor resolver for a pending sign-in."""

    pending_credential: str = Field(repr=False)
    hints: list[MfaHint] = Field(default_factory=list)
    email: Optional[str] = None
    uid: Optional[str] = None


class SignUpRequest(BaseModel):
    email: str
    password: str
    return_secure_token: bool = Field(default=True, alias="returnSecureToken")

    model_config = {"populate_by_name": True}


class SignInRequest(BaseModel):
    email: str
    password: str
    return_secure_token: bool = Field(default=True, alias="returnSecureToken")

    model_config = {"populate_by_name": True}


class AuthResponse(BaseModel):
    local_id: str = Field(alias="localId")
    email: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")
    id_token: Optional[str] = Field(default=None, alias="idToken")
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    expires_in: Optional[str] = Field(default=None, alias="expiresIn")
    registered: Optional[bool] = None
    mfa_pending_credential: Optional[str] = Field(default=None, alias="mfaPendingCredential")
    mfa_info: Optional[list[dict]] = Field(default=None, alias="mfaInfo")

    model_config = {"populate_by_name": True}


class UserRecord(BaseModel):
    """One entry of an ``accounts:lookup`` response."""

    local_id: str = Field(alias="localId")
    email: Optional[str] = None
    email_verified: bool = Field(default=False, alias="emailVerified")
    display_name: Optional[str] = Field(default=None, alias="displayName")
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    disabled: Optional[bool] = None
    mfa_info: Optional[list[dict]] = Field(default=None, alias="mfaInfo")

    model_config = {"populate_by_name": True}
