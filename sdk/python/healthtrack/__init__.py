"""HealthTrack Python SDK: account verification and sign-in core."""

import logging

from .client import HealthTrackClient
from .config import Settings, configure_logging, get_settings
from .exceptions import (
    ApiError,
    ErrorKind,
    HealthTrackError,
    InputError,
    NotFoundError,
    PhoneVerificationRequired,
    ProviderError,
    ScopeClosed,
    StorageError,
)
from .flows import FlowState, Intent, PhoneVerificationFlow, SignInFlow, SignInStep
from .messages import message_for
from .session import SessionStore
from .verification import VerificationStateTracker

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "HealthTrackClient",
    "Settings",
    "get_settings",
    "configure_logging",
    "HealthTrackError",
    "ApiError",
    "NotFoundError",
    "ErrorKind",
    "InputError",
    "ProviderError",
    "PhoneVerificationRequired",
    "StorageError",
    "ScopeClosed",
    "FlowState",
    "Intent",
    "PhoneVerificationFlow",
    "SignInFlow",
    "SignInStep",
    "SessionStore",
    "VerificationStateTracker",
    "message_for",
]
