"""Fixed user-facing messages for every :class:`ErrorKind`."""

from __future__ import annotations

from typing import Optional

from .exceptions import ErrorKind

SIGN_IN = "sign_in"
SIGN_UP = "sign_up"
PHONE = "phone"
CHANGE_PASSWORD = "change_password"

MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_INPUT: "Please check the highlighted fields.",
    ErrorKind.EMAIL_IN_USE: "An account with this email already exists.",
    ErrorKind.WEAK_PASSWORD: "Password is too weak. Please use a stronger password.",
    ErrorKind.INVALID_EMAIL: "Invalid email address",
    ErrorKind.WRONG_PASSWORD: "Incorrect password",
    ErrorKind.USER_NOT_FOUND: "No account found with this email",
    ErrorKind.USER_DISABLED: "This account has been disabled",
    ErrorKind.TOO_MANY_ATTEMPTS: "Too many failed attempts. Please try again later",
    ErrorKind.SECOND_FACTOR_REQUIRED: "Two-factor authentication is required to finish signing in.",
    ErrorKind.REQUIRES_RECENT_LOGIN: "This operation requires recent authentication. Please log in again.",
    ErrorKind.INVALID_PHONE_NUMBER: (
        "Invalid phone number format. Please ensure you include the country code (e.g., +1 for US)."
    ),
    ErrorKind.QUOTA_EXCEEDED: "Too many verification attempts. Please try again later.",
    ErrorKind.CAPTCHA_FAILED: "reCAPTCHA verification failed. Please try again.",
    ErrorKind.INVALID_CODE: "Invalid verification code. Please try again.",
    ErrorKind.CODE_EXPIRED: "Verification code has expired. Please request a new code.",
    ErrorKind.INVALID_SESSION: "Invalid verification session. Please request a new code.",
    ErrorKind.PROVIDER_ALREADY_LINKED: "Phone is already linked to this account",
    ErrorKind.INCOMPLETE_SETUP: (
        "Phone is linked but 2FA is not fully set up. Please try again with a new verification code."
    ),
    ErrorKind.PHONE_VERIFICATION_REQUIRED: (
        "You need to set up phone verification before enabling two-factor authentication."
    ),
    ErrorKind.STORAGE_UNAUTHORIZED: "Storage rules are preventing access. Your changes were kept on this device.",
    ErrorKind.STORAGE_QUOTA_EXCEEDED: "Storage quota exceeded. Your changes were kept on this device.",
    ErrorKind.UNKNOWN: "Something went wrong. Please try again.",
}

# Per-screen wording where it differs from the shared table.
OVERRIDES: dict[str, dict[ErrorKind, str]] = {
    SIGN_IN: {
        ErrorKind.UNKNOWN: "Failed to sign in. Please try again",
    },
    SIGN_UP: {
        ErrorKind.INVALID_EMAIL: "Please enter a valid email address.",
        ErrorKind.UNKNOWN: "Failed to create an account. Please try again.",
    },
    PHONE: {
        ErrorKind.UNKNOWN: "Failed to verify phone number. Please try again.",
    },
    CHANGE_PASSWORD: {
        ErrorKind.WRONG_PASSWORD: "The current password is incorrect",
        ErrorKind.WEAK_PASSWORD: "The new password is too weak. Please use at least 6 characters",
        ErrorKind.REQUIRES_RECENT_LOGIN: (
            "This operation is sensitive and requires recent authentication. "
            "Please sign in again before retrying"
        ),
        ErrorKind.UNKNOWN: "Failed to update password. Please try again",
    },
}


def message_for(kind: ErrorKind, context: Optional[str] = None) -> str:
    if context is not None:
        override = OVERRIDES.get(context, {}).get(kind)
        if override is not None:
            return override
    return MESSAGES[kind]
