from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

VERIFICATION_FIELDS = ("emailVerified", "phoneVerified", "twoFactorEnabled", "phoneNumber")


class HealthData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    heart_rate: int = Field(default=78, alias="heartRate")
    cycling: float = 24
    steps: int = 15000
    sleep: float = 8


class EmergencyContact(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: str
    relationship: str
    country_code: str = Field(alias="countryCode")
    phone: str
    is_default: bool = Field(default=False, alias="isDefault")


class VerificationStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email_verified: bool = Field(default=False, alias="emailVerified")
    phone_verified: bool = Field(default=False, alias="phoneVerified")
    two_factor_enabled: bool = Field(default=False, alias="twoFactorEnabled")
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> VerificationStatus:
        return cls.model_validate({k: data[k] for k in VERIFICATION_FIELDS if data.get(k) is not None})

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class UserProfile(BaseModel):
    """The ``users/{uid}`` document."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str = ""
    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    email: str = ""
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    phone_verified: bool = Field(default=False, alias="phoneVerified")
    email_verified: bool = Field(default=False, alias="emailVerified")
    two_factor_enabled: bool = Field(default=False, alias="twoFactorEnabled")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    date_of_birth: Optional[str] = Field(default=None, alias="dateOfBirth")
    gender: str = "male"
    blood_type: str = Field(default="", alias="bloodType")
    height: float = 180
    weight: float = 80
    health_data: HealthData = Field(default_factory=HealthData, alias="healthData")
    emergency_contacts: list[EmergencyContact] = Field(default_factory=list, alias="emergencyContacts")

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> UserProfile:
        """Null fields fall back to their defaults."""
        return cls.model_validate({k: v for k, v in data.items() if v is not None})

    @property
    def verification(self) -> VerificationStatus:
        return VerificationStatus(
            email_verified=self.email_verified,
            phone_verified=self.phone_verified,
            two_factor_enabled=self.two_factor_enabled,
            phone_number=self.phone_number,
        )

    def with_verification(self, status: VerificationStatus) -> UserProfile:
        return self.model_copy(update={
            "email_verified": status.email_verified,
            "phone_verified": status.phone_verified,
            "two_factor_enabled": status.two_factor_enabled,
            "phone_number": status.phone_number,
        })

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
