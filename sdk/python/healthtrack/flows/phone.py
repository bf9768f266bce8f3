"""Phone verification state machine.

::

    IDLE -> AWAITING_CAPTCHA -> CODE_SENT -> CONFIRMING -> LINK_OR_ENROLL -> DONE
                  |                 |            |               |
                  +-----------------+------------+---------------+--> FAILED(kind)

What happens after a code is confirmed is decided by the caller's
:class:`Intent`, never inferred. Every awaited call runs inside the flow's
:class:`FlowScope`; once the flow is closed, late results are dropped.
"""

from __future__ import annotations

import logging
import math
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from ..exceptions import (
    CaptchaFailed,
    ErrorKind,
    IncompleteSetup,
    InputError,
    PhoneVerificationRequired,
    ProviderAlreadyLinked,
    ProviderError,
    RequiresRecentLogin,
    ScopeClosed,
    StorageError,
)
from ..messages import PHONE, message_for
from ..phone import COUNTRIES, country_by_code, format_e164, is_valid_code, mask_phone, split_e164
from ..ports import CaptchaVerifier, IdentityProvider
from ..scope import FlowScope
from ..session import SessionStore
from ..types.auth import Account, SecondFactorChallenge
from ..types.phone import Country, PhoneChallenge, PhoneCredential
from ..types.profile import VerificationStatus
from ..verification import VerificationStateTracker

logger = logging.getLogger(__name__)

RESEND_SECONDS = 60


class Intent(str, Enum):
    STANDALONE = "standalone"
    LINK = "link"
    ENROLL = "enroll"
    RESOLVE = "resolve"


class FlowState(str, Enum):
    IDLE = "idle"
    AWAITING_CAPTCHA = "awaiting_captcha"
    CODE_SENT = "code_sent"
    CONFIRMING = "confirming"
    LINK_OR_ENROLL = "link_or_enroll"
    DONE = "done"
    FAILED = "failed"


class ResendCountdown:
    def __init__(self, seconds: int = RESEND_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self._seconds = seconds
        self._clock = clock
        self._started: Optional[float] = None

    @property
    def started(self) -> bool:
        return self._started is not None

    def start(self) -> None:
        self._started = self._clock()

    def remaining(self) -> int:
        if self._started is None:
            return self._seconds
        left = self._seconds - (self._clock() - self._started)
        return max(0, math.ceil(left))

    @property
    def expired(self) -> bool:
        return self._started is not None and self.remaining() == 0


class PhoneVerificationFlow:
    """One phone verification attempt, driven by a verification screen."""

    def __init__(
        self,
        identity: IdentityProvider,
        tracker: VerificationStateTracker,
        session: SessionStore,
        captcha: CaptchaVerifier,
        intent: Intent = Intent.STANDALONE,
        phone_number: Optional[str] = None,
        resolver: Optional[SecondFactorChallenge] = None,
        countries: tuple[Country, ...] = COUNTRIES,
        resend_seconds: int = RESEND_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if intent is Intent.RESOLVE and resolver is None:
            raise ValueError("resolving a sign-in challenge needs the provider's resolver")
        self._identity = identity
        self._tracker = tracker
        self._session = session
        self._captcha = captcha
        self._countries = countries
        self._clock = clock
        self._scope = FlowScope()

        self.intent = intent
        self.resolver = resolver
        self.countdown = ResendCountdown(resend_seconds, clock)
        self.state = FlowState.IDLE
        self.error: Optional[ErrorKind] = None
        self.message: Optional[str] = None
        self.field_error: Optional[str] = None
        self.warning: Optional[ErrorKind] = None
        self.challenge: Optional[PhoneChallenge] = None
        self.phone_number: Optional[str] = None
        self.country: Country = countries[0]
        self.subscriber_number = ""
        self.account: Optional[Account] = None
        self.email_verification_pending = False
        self.busy = False
        self._failed_from: Optional[FlowState] = None

        if phone_number:
            country, subscriber = split_e164(phone_number, countries)
            if country is not None:
                self.country = country
            self.subscriber_number = subscriber
        if intent is Intent.RESOLVE:
            hint = resolver.hints[0] if resolver.hints else None
            self.phone_number = hint.phone_info if hint else None
            self.state = FlowState.AWAITING_CAPTCHA

    # -- helpers ----------------------------------------------------------

    @property
    def can_resend(self) -> bool:
        return (
            not self.busy
            and self.countdown.expired
            and self.state in (FlowState.CODE_SENT, FlowState.FAILED)
        )

    def close(self) -> None:
        """Drop the flow; in-flight calls are cancelled and their results ignored."""
        self._scope.close()

    def _fail(self, kind: ErrorKind, message: Optional[str] = None) -> FlowState:
        self._failed_from = self.state
        self.state = FlowState.FAILED
        self.error = kind
        self.message = message or message_for(kind, PHONE)
        logger.info("phone verification (%s) failed: %s", self.intent.value, kind.value)
        return self.state

    def _clear_errors(self) -> None:
        self.error = None
        self.message = None
        self.field_error = None

    def _phone_not_verified(self) -> bool:
        uid = self._session.uid
        status = self._tracker.current(uid) if uid else None
        return status is None or not status.phone_verified

    # -- transitions ------------------------------------------------------

    async def submit_phone_number(self, number: str, country: Union[str, Country, None] = None) -> FlowState:
        """IDLE -> AWAITING_CAPTCHA, or stay IDLE with ``field_error``."""
        if self.busy:
            return self.state
        if self.intent is Intent.RESOLVE:
            return self.state
        resubmit = self.state is FlowState.FAILED and self._failed_from is FlowState.AWAITING_CAPTCHA
        if self.state is not FlowState.IDLE and not resubmit:
            return self.state
        self.state = FlowState.IDLE
        self._clear_errors()
        if self.intent is Intent.ENROLL and self._phone_not_verified():
            return self._fail(ErrorKind.PHONE_VERIFICATION_REQUIRED)
        try:
            if isinstance(country, str):
                country = country_by_code(country, self._countries)
            self.country = country or self.country
            self.phone_number = format_e164(number, self.country)
        except InputError as e:
            self.field_error = e.message
            return self.state
        self.subscriber_number = number
        self.state = FlowState.AWAITING_CAPTCHA
        return self.state

    def retry(self) -> FlowState:
        """Re-enter AWAITING_CAPTCHA after a failure that happened before a code was sent."""
        if self.state is FlowState.FAILED and self._failed_from is FlowState.AWAITING_CAPTCHA:
            self._clear_errors()
            self.state = FlowState.AWAITING_CAPTCHA
        return self.state

    async def complete_captcha(self) -> FlowState:
        """AWAITING_CAPTCHA -> CODE_SENT once a CAPTCHA token has been obtained and the code issued."""
        if self.busy or self.state is not FlowState.AWAITING_CAPTCHA:
            return self.state
        self._clear_errors()
        self.busy = True
        try:
            try:
                token = await self._scope.run(self._captcha.verify())
            except CaptchaFailed:
                return self._fail(ErrorKind.CAPTCHA_FAILED)
            if not token:
                return self._fail(ErrorKind.CAPTCHA_FAILED)
            try:
                challenge = await self._scope.run(self._send(token))
            except ProviderError as e:
                return self._fail(e.kind)
            self.challenge = challenge.model_copy(update={"sent_at": self._clock()})
            self.countdown.start()
            self.state = FlowState.CODE_SENT
            return self.state
        except ScopeClosed:
            return self.state
        finally:
            self.busy = False

    async def _send(self, token: str) -> PhoneChallenge:
        if self.intent is Intent.RESOLVE:
            return await self._identity.send_second_factor_code(self.resolver, token)
        if self.intent is Intent.ENROLL:
            account = self._identity.current_account
            if account is None:
                raise RequiresRecentLogin("Sign in again to enable two-factor authentication")
            return await self._identity.send_enrollment_code(account, self.phone_number, token)
        return await self._identity.send_phone_code(self.phone_number, token)

    async def resend(self) -> bool:
        """Discard the current challenge and issue a new one once the countdown is over."""
        if not self.can_resend:
            return False
        logger.info("resending verification code to %s", mask_phone(self.phone_number))
        self.challenge = None
        self._clear_errors()
        self.state = FlowState.AWAITING_CAPTCHA
        await self.complete_captcha()
        return self.state is FlowState.CODE_SENT

    async def submit_code(self, code: str) -> FlowState:
        """CODE_SENT -> CONFIRMING -> LINK_OR_ENROLL -> DONE."""
        if self.busy or self.state is not FlowState.CODE_SENT or self.challenge is None:
            return self.state
        self._clear_errors()
        code = (code or "").strip()
        if not code:
            self.field_error = "Please enter verification code"
            return self.state
        if not is_valid_code(code):
            self.field_error = "Please enter the 6-digit verification code"
            return self.state

        self.busy = True
        try:
            self.state = FlowState.CONFIRMING
            challenge, self.challenge = self.challenge, None
            try:
                credential = await self._scope.run(self._identity.confirm_phone_code(challenge.session_id, code))
            except ProviderError as e:
                return self._fail(e.kind)

            self.state = FlowState.LINK_OR_ENROLL
            try:
                await self._complete(credential)
            except (ProviderError, PhoneVerificationRequired) as e:
                return self._fail(e.kind)
            self.state = FlowState.DONE
            logger.info("phone verification (%s) done for %s", self.intent.value, mask_phone(self.phone_number))
            return self.state
        except ScopeClosed:
            return self.state
        finally:
            self.busy = False

    # -- completion by intent ---------------------------------------------

    async def _complete(self, credential: PhoneCredential) -> None:
        if self.intent is Intent.RESOLVE:
            self.account = await self._scope.run(
                self._identity.resolve_second_factor_challenge(self.resolver, credential),
            )
            self._session.set_authenticated(True)
            return

        account = self._identity.current_account
        if account is None:
            raise RequiresRecentLogin("No signed-in account")
        self.account = account
        uid = account.uid
        phone_number = credential.phone_number or self.phone_number

        if self.intent is Intent.ENROLL:
            if self._phone_not_verified():
                raise PhoneVerificationRequired("Phone must be verified before enrollment")
            self.account = await self._scope.run(self._enroll(account, credential))
        else:
            # the provider checks the code when the credential is attached
            try:
                self.account = await self._scope.run(self._identity.link_phone_to_account(account, credential))
            except ProviderAlreadyLinked:
                logger.info("phone already linked for %s, continuing", uid)

        await self._persist(uid, phone_number)

        if self.intent is Intent.STANDALONE:
            try:
                await self._scope.run(self._session.refresh_verification())
            except (ProviderError, StorageError) as e:
                logger.warning("could not refresh verification state: %s", e)
            self.email_verification_pending = not self._session.is_authenticated

    async def _enroll(self, account: Account, credential: PhoneCredential) -> Account:
        try:
            return await self._identity.enroll_second_factor(account, credential)
        except ProviderAlreadyLinked:
            # the conflict alone does not prove enrollment; ask the provider
            refreshed = await self._identity.reload(account)
            if refreshed.enrolled_factors:
                logger.info("second factor already enrolled for %s", account.uid)
                return refreshed
            raise IncompleteSetup("Phone is linked but no second factor is enrolled") from None

    async def _persist(self, uid: str, phone_number: Optional[str]) -> None:
        await self._mark(uid, self._tracker.mark_phone_verified, phone_number or "")
        if self.intent is Intent.ENROLL:
            await self._mark(uid, self._tracker.mark_two_factor_enabled, True)

    async def _mark(self, uid: str, mark: Callable[[str, Any], Awaitable[VerificationStatus]], value: Any) -> None:
        try:
            await self._scope.run(mark(uid, value))
        except StorageError as e:
            # the tracker already holds the new flag
            logger.warning("verification state not persisted for %s: %s", uid, e)
            self.warning = e.kind
