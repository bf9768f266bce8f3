from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from ..exceptions import InputError, ProviderError, StorageError
from ..messages import SIGN_UP, message_for
from ..phone import COUNTRIES, country_by_code, format_e164
from ..ports import CaptchaVerifier, DocumentStore, IdentityProvider
from ..services.documents import USERS
from ..session import SessionStore
from ..types.auth import Account
from ..types.phone import Country
from ..types.profile import UserProfile
from ..verification import VerificationStateTracker
from .phone import RESEND_SECONDS, Intent, PhoneVerificationFlow
from .results import FlowResult

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8

ACCOUNT_CREATED = (
    "Your account has been created! You need to verify your email and phone number "
    "before you can use the app."
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignUpFlow:
    """Create an account and hand over to phone verification.

    The new account is never authenticated here; it still needs a verified
    phone (the returned ``STANDALONE`` flow) and a verified email.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        documents: DocumentStore,
        tracker: VerificationStateTracker,
        session: SessionStore,
        captcha: CaptchaVerifier,
        countries: tuple[Country, ...] = COUNTRIES,
        resend_seconds: int = RESEND_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._identity = identity
        self._documents = documents
        self._tracker = tracker
        self._session = session
        self._captcha = captcha
        self._countries = countries
        self._resend_seconds = resend_seconds
        self._clock = clock
        self._now = now
        self.account: Optional[Account] = None
        self.busy = False

    def validate(self, first_name: str, last_name: str, email: str, password: str,
                 phone_number: str, country: Union[str, Country]) -> str:
        """Return the E.164 phone number, or raise :class:`InputError` for the first bad field."""
        if not first_name.strip() or not last_name.strip() or not email.strip() or not password.strip():
            raise InputError("form", "Please fill out all required fields.")
        if not phone_number.strip():
            raise InputError("phone_number", "Phone number is required for account verification.")
        if isinstance(country, str):
            country = country_by_code(country, self._countries)
        formatted = format_e164(phone_number, country)
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InputError("password", "Password must be at least 8 characters long.")
        if not EMAIL_PATTERN.match(email.strip()):
            raise InputError("email", "Please enter a valid email address.")
        return formatted

    async def sign_up(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        phone_number: str,
        country: Union[str, Country] = "AU",
        height: Optional[float] = None,
    ) -> FlowResult:
        if self.busy:
            return FlowResult(ok=False, message="Sign-up already in progress")
        try:
            formatted = self.validate(first_name, last_name, email, password, phone_number, country)
        except InputError as e:
            return FlowResult.invalid({e.field: e.message})

        self.busy = True
        try:
            return await self._create(first_name.strip(), last_name.strip(), email.strip(), password,
                                      formatted, height)
        finally:
            self.busy = False

    async def _create(self, first_name: str, last_name: str, email: str, password: str,
                      phone_number: str, height: Optional[float]) -> FlowResult:
        try:
            account = await self._identity.create_account(email, password)
        except ProviderError as e:
            logger.info("sign-up failed: %s", e.kind.value)
            return FlowResult.failed(e.kind, message_for(e.kind, SIGN_UP))

        display_name = f"{first_name} {last_name}"
        try:
            account = await self._identity.update_display_name(account, display_name)
        except ProviderError as e:
            logger.warning("display name not set for %s: %s", account.uid, e)
        try:
            await self._identity.send_email_verification(account)
        except ProviderError as e:
            logger.error("failed to send verification email to %s: %s", account.uid, e)
        self.account = account

        profile = UserProfile(
            name=display_name,
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone_number=phone_number,
            created_at=self._now(),
            height=height or 180,
        )
        result = FlowResult(message=ACCOUNT_CREATED)
        try:
            await self._documents.set(USERS, account.uid, profile.to_document())
            logger.info("saved profile for new account %s", account.uid)
        except StorageError as e:
            logger.warning("profile for %s not saved: %s", account.uid, e)
            result.warning = e.kind
        # pick up the written document (or the defaults) in the session
        await self._session.on_auth_change(self._identity.current_account or account)

        result.flow = PhoneVerificationFlow(
            self._identity, self._tracker, self._session, self._captcha,
            intent=Intent.STANDALONE, phone_number=phone_number, countries=self._countries,
            resend_seconds=self._resend_seconds, clock=self._clock,
        )
        return result
