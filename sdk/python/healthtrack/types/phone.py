from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from .auth import SecondFactorChallenge


class Country(BaseModel):
    code: str
    name: str
    calling_code: str


class PhoneChallenge(BaseModel):
    phone_number: str
    session_id: str = Field(repr=False)
    resolver: Optional[SecondFactorChallenge] = None
    sent_at: float = 0.0


class PhoneCredential(BaseModel):
    session_id: str = Field(repr=False)
    code: str = Field(repr=False)
    phone_number: Optional[str] = None
