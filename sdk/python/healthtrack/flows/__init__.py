from .contacts import EmergencyContactBook
from .phone import FlowState, Intent, PhoneVerificationFlow, ResendCountdown
from .results import FlowResult
from .security import SecuritySettings
from .sign_in import SignInFlow, SignInResult, SignInStep
from .sign_up import SignUpFlow

__all__ = [
    "EmergencyContactBook",
    "FlowResult",
    "FlowState",
    "Intent",
    "PhoneVerificationFlow",
    "ResendCountdown",
    "SecuritySettings",
    "SignInFlow",
    "SignInResult",
    "SignInStep",
    "SignUpFlow",
]
