"""HealthTrack SDK exceptions."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .types.auth import SecondFactorChallenge


class ErrorKind(str, Enum):
    """Every failure kind the SDK surfaces to a UI layer."""

    # input validation
    INVALID_INPUT = "invalid_input"
    # authentication
    EMAIL_IN_USE = "email_in_use"
    WEAK_PASSWORD = "weak_password"
    INVALID_EMAIL = "invalid_email"
    WRONG_PASSWORD = "wrong_password"
    USER_NOT_FOUND = "user_not_found"
    USER_DISABLED = "user_disabled"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    SECOND_FACTOR_REQUIRED = "second_factor_required"
    REQUIRES_RECENT_LOGIN = "requires_recent_login"
    # phone challenge
    INVALID_PHONE_NUMBER = "invalid_phone_number"
    QUOTA_EXCEEDED = "quota_exceeded"
    CAPTCHA_FAILED = "captcha_failed"
    INVALID_CODE = "invalid_code"
    CODE_EXPIRED = "code_expired"
    INVALID_SESSION = "invalid_session"
    # linkage
    PROVIDER_ALREADY_LINKED = "provider_already_linked"
    INCOMPLETE_SETUP = "incomplete_setup"
    PHONE_VERIFICATION_REQUIRED = "phone_verification_required"
    # storage
    STORAGE_UNAUTHORIZED = "storage_unauthorized"
    STORAGE_QUOTA_EXCEEDED = "storage_quota_exceeded"
    UNKNOWN = "unknown"


class HealthTrackError(Exception):
    """Base exception for all HealthTrack SDK errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN


class ApiError(HealthTrackError):
    """API returned a non-2xx response."""

    def __init__(self, status_code: int, error: str = "", message: str = "") -> None:
        self.status_code = status_code
        self.error = error
        self.message = message
        super().__init__(f"[{status_code}] {error}: {message}" if error else f"[{status_code}] {message}")


class NotFoundError(ApiError):
    """404 Not Found."""

    def __init__(self, error: str = "not_found", message: str = "Resource not found") -> None:
        super().__init__(404, error, message)


class InputError(HealthTrackError):
    """Client-side validation failure. Never reaches the provider."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class ProviderError(HealthTrackError):
    """A provider failure translated to one closed kind."""

    def __init__(self, message: str = "", code: str = "") -> None:
        self.code = code
        self.message = message or self.kind.value
        super().__init__(self.message)


class EmailInUse(ProviderError):
    kind = ErrorKind.EMAIL_IN_USE


class WeakPassword(ProviderError):
    kind = ErrorKind.WEAK_PASSWORD


class InvalidEmail(ProviderError):
    kind = ErrorKind.INVALID_EMAIL


class WrongPassword(ProviderError):
    kind = ErrorKind.WRONG_PASSWORD


class UserNotFound(ProviderError):
    kind = ErrorKind.USER_NOT_FOUND


class UserDisabled(ProviderError):
    kind = ErrorKind.USER_DISABLED


class TooManyAttempts(ProviderError):
    kind = ErrorKind.TOO_MANY_ATTEMPTS


class RequiresRecentLogin(ProviderError):
    kind = ErrorKind.REQUIRES_RECENT_LOGIN


class SecondFactorRequired(ProviderError):
    """Password accepted, but sign-in is pending a second factor."""

    kind = ErrorKind.SECOND_FACTOR_REQUIRED

    def __init__(self, challenge: SecondFactorChallenge) -> None:
        self.challenge = challenge
        super().__init__("Multi-factor authentication required")


class InvalidPhoneNumber(ProviderError):
    kind = ErrorKind.INVALID_PHONE_NUMBER


class QuotaExceeded(ProviderError):
    kind = ErrorKind.QUOTA_EXCEEDED


class CaptchaFailed(ProviderError):
    kind = ErrorKind.CAPTCHA_FAILED


class InvalidCode(ProviderError):
    kind = ErrorKind.INVALID_CODE


class CodeExpired(ProviderError):
    kind = ErrorKind.CODE_EXPIRED


class InvalidSession(ProviderError):
    kind = ErrorKind.INVALID_SESSION


class ProviderAlreadyLinked(ProviderError):
    kind = ErrorKind.PROVIDER_ALREADY_LINKED


class IncompleteSetup(ProviderError):
    """Provider reports the phone linked, but no second factor is enrolled."""

    kind = ErrorKind.INCOMPLETE_SETUP


class PhoneVerificationRequired(HealthTrackError):
    """Two-factor enrollment attempted without a verified phone."""

    kind = ErrorKind.PHONE_VERIFICATION_REQUIRED


class UnknownProviderError(ProviderError):
    kind = ErrorKind.UNKNOWN


class StorageError(HealthTrackError):
    """Document store write or read failed."""

    def __init__(self, message: str = "", cause: Optional[BaseException] = None) -> None:
        self.message = message or "Storage request failed"
        self.cause = cause
        super().__init__(self.message)


class StorageUnauthorized(StorageError):
    kind = ErrorKind.STORAGE_UNAUTHORIZED


class StorageQuotaExceeded(StorageError):
    kind = ErrorKind.STORAGE_QUOTA_EXCEEDED


class ScopeClosed(HealthTrackError):
    """The owning flow was closed before the awaited call completed."""
