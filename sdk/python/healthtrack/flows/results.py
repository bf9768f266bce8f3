from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from ..exceptions import ErrorKind

if TYPE_CHECKING:
    from .phone import PhoneVerificationFlow


@dataclass
class FlowResult:
    """Outcome of a single screen action.

    ``error``/``message`` block the action; ``warning`` is a non-blocking
    alert (the change was applied locally). ``flow`` is the phone
    verification flow to hand to the next screen, when there is one.
    """

    ok: bool = True
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    field_errors: dict[str, str] = field(default_factory=dict)
    warning: Optional[ErrorKind] = None
    flow: Optional[PhoneVerificationFlow] = None

    @classmethod
    def invalid(cls, field_errors: dict[str, str], message: Optional[str] = None) -> FlowResult:
        return cls(ok=False, error=ErrorKind.INVALID_INPUT,
                   message=message or next(iter(field_errors.values()), None), field_errors=field_errors)

    @classmethod
    def failed(cls, kind: ErrorKind, message: str, flow: Optional[PhoneVerificationFlow] = None) -> FlowResult:
        return cls(ok=False, error=kind, message=message, flow=flow)
