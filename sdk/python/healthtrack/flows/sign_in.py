"""Email/password sign-in.

A successful password check is not enough to enter the app: the account
must also have a verified phone and a verified email, and accounts with a
second factor are sent through the phone flow first.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..exceptions import ErrorKind, ProviderError, SecondFactorRequired, StorageError, UserNotFound
from ..messages import SIGN_IN, message_for
from ..phone import COUNTRIES
from ..ports import CaptchaVerifier, IdentityProvider
from ..session import SessionStore
from ..types.auth import Account
from ..types.phone import Country
from ..types.profile import VerificationStatus
from ..verification import VerificationStateTracker
from .phone import RESEND_SECONDS, Intent, PhoneVerificationFlow
from .results import FlowResult

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

EMAIL_NOT_VERIFIED = (
    "Please verify your email before signing in. "
    "A new verification link has been sent to your inbox."
)


class SignInStep(str, Enum):
    AUTHENTICATED = "authenticated"
    PHONE_VERIFICATION_REQUIRED = "phone_verification_required"
    EMAIL_VERIFICATION_REQUIRED = "email_verification_required"
    SECOND_FACTOR_REQUIRED = "second_factor_required"
    FAILED = "failed"


@dataclass
class SignInResult:
    step: SignInStep
    account: Optional[Account] = None
    flow: Optional[PhoneVerificationFlow] = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    field_error: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.step is SignInStep.AUTHENTICATED


class SignInFlow:
    def __init__(
        self,
        identity: IdentityProvider,
        tracker: VerificationStateTracker,
        session: SessionStore,
        captcha: CaptchaVerifier,
        countries: tuple[Country, ...] = COUNTRIES,
        resend_seconds: int = RESEND_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._identity = identity
        self._tracker = tracker
        self._session = session
        self._captcha = captcha
        self._countries = countries
        self._resend_seconds = resend_seconds
        self._clock = clock
        self._unverified: Optional[Account] = None
        self.busy = False

    def _phone_flow(self, intent: Intent, **kwargs) -> PhoneVerificationFlow:
        return PhoneVerificationFlow(
            self._identity, self._tracker, self._session, self._captcha,
            intent=intent, countries=self._countries,
            resend_seconds=self._resend_seconds, clock=self._clock, **kwargs,
        )

    async def sign_in(self, email: str, password: str) -> SignInResult:
        email = (email or "").strip()
        if not email or not password:
            return SignInResult(
                SignInStep.FAILED, error=ErrorKind.INVALID_INPUT,
                field_error="Please enter both email and password",
            )
        if self.busy:
            return SignInResult(SignInStep.FAILED, message="Sign-in already in progress")
        self.busy = True
        try:
            return await self._sign_in(email, password)
        finally:
            self.busy = False

    async def _sign_in(self, email: str, password: str) -> SignInResult:
        self._unverified = None
        try:
            account = await self._identity.sign_in(email, password)
        except SecondFactorRequired as e:
            logger.info("second factor required for %s", email)
            flow = self._phone_flow(Intent.RESOLVE, resolver=e.challenge)
            return SignInResult(SignInStep.SECOND_FACTOR_REQUIRED, flow=flow)
        except ProviderError as e:
            return self._failed(e.kind)

        try:
            account = await self._identity.reload(account)
        except ProviderError as e:
            logger.warning("could not reload %s after sign-in: %s", account.uid, e)

        status = await self._load_status(account.uid)

        # phone first: a fresh sign-up finishes phone verification before email
        if not status.phone_verified:
            logger.info("phone not verified for %s", account.uid)
            stored = status.phone_number or self._session.profile.phone_number or account.phone_number
            flow = self._phone_flow(Intent.STANDALONE, phone_number=stored)
            return SignInResult(SignInStep.PHONE_VERIFICATION_REQUIRED, account=account, flow=flow)

        if not account.email_verified:
            logger.info("email not verified for %s, resending link", account.uid)
            self._unverified = account
            await self._send_verification(account)
            await self._identity.sign_out()
            return SignInResult(
                SignInStep.EMAIL_VERIFICATION_REQUIRED, account=account,
                error=ErrorKind.INVALID_INPUT, message=EMAIL_NOT_VERIFIED,
            )

        if not status.email_verified:
            try:
                await self._tracker.mark_email_verified(account.uid)
            except StorageError as e:
                logger.warning("could not persist email verification for %s: %s", account.uid, e)

        self._session.set_authenticated(True)
        logger.info("signed in %s", account.uid)
        return SignInResult(SignInStep.AUTHENTICATED, account=account)

    async def _load_status(self, uid: str) -> VerificationStatus:
        try:
            return await self._tracker.load(uid)
        except StorageError as e:
            logger.warning("verification status unavailable for %s, using cached copy: %s", uid, e)
            return self._tracker.current(uid) or await self._tracker.read_local(uid) or VerificationStatus()

    async def _send_verification(self, account: Account) -> bool:
        try:
            await self._identity.send_email_verification(account)
            return True
        except ProviderError as e:
            logger.warning("verification email not sent to %s: %s", account.uid, e)
            return False

    async def resend_verification_email(self) -> bool:
        """Send the verification link again for the account last blocked on email."""
        if self._unverified is None:
            return False
        return await self._send_verification(self._unverified)

    async def send_password_reset(self, email: str) -> FlowResult:
        email = (email or "").strip()
        if not email:
            return FlowResult.invalid({"email": "Please enter your email address"})
        if not EMAIL_PATTERN.match(email):
            return FlowResult.invalid({"email": "Please enter a valid email address"})
        try:
            await self._identity.send_password_reset(email)
        except UserNotFound:
            # unknown emails get the same answer as known ones
            logger.info("password reset requested for unknown email")
        except ProviderError as e:
            return FlowResult.failed(e.kind, message_for(e.kind, SIGN_IN))
        return FlowResult(message="Password reset email sent. Please check your inbox.")

    def _failed(self, kind: ErrorKind) -> SignInResult:
        logger.info("sign-in failed: %s", kind.value)
        return SignInResult(SignInStep.FAILED, error=kind, message=message_for(kind, SIGN_IN))
