"""Security settings: two-factor authentication and password changes."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ..exceptions import ErrorKind, ProviderError, StorageError
from ..messages import CHANGE_PASSWORD, message_for
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

MIN_PASSWORD_LENGTH = 8


class SecuritySettings:
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
        self.busy = False

    @property
    def two_factor_enabled(self) -> bool:
        return self._session.status.two_factor_enabled

    def _account(self) -> Optional[Account]:
        return self._identity.current_account

    def _phone_flow(self, intent: Intent) -> PhoneVerificationFlow:
        return PhoneVerificationFlow(
            self._identity, self._tracker, self._session, self._captcha,
            intent=intent, phone_number=self._session.status.phone_number,
            countries=self._countries, resend_seconds=self._resend_seconds, clock=self._clock,
        )

    async def load_two_factor_status(self) -> VerificationStatus:
        """Load the stored flag and bring it in line with the provider's enrolled factors."""
        account = self._account()
        if account is None:
            return VerificationStatus()
        try:
            status = await self._tracker.load(account.uid)
        except StorageError as e:
            logger.warning("stored 2FA flag unavailable for %s: %s", account.uid, e)
            status = self._tracker.current(account.uid) or self._session.status
        try:
            account = await self._identity.reload(account)
        except ProviderError as e:
            logger.warning("could not reload %s, keeping stored 2FA flag: %s", account.uid, e)
            return status

        enrolled = bool(account.enrolled_factors)
        if enrolled == status.two_factor_enabled:
            return status
        logger.info("2FA flag for %s out of sync with provider (enrolled=%s)", account.uid, enrolled)
        try:
            if enrolled and not status.phone_verified:
                # an enrolled factor is a verified phone
                status = await self._tracker.mark_phone_verified(
                    account.uid, status.phone_number or account.phone_number or "",
                )
            status = await self._tracker.mark_two_factor_enabled(account.uid, enrolled)
        except StorageError as e:
            logger.warning("could not persist 2FA flag for %s: %s", account.uid, e)
            status = self._tracker.current(account.uid) or status
        return status

    async def begin_two_factor_setup(self, password: str) -> FlowResult:
        """Confirm the password and hand back an ``ENROLL`` flow.

        Without a verified phone the result carries ``PHONE_VERIFICATION_REQUIRED``
        and a ``LINK`` flow to set the phone up first.
        """
        account = self._account()
        if account is None:
            return FlowResult.failed(ErrorKind.REQUIRES_RECENT_LOGIN,
                                     message_for(ErrorKind.REQUIRES_RECENT_LOGIN))
        if not self._session.status.phone_verified:
            return FlowResult.failed(
                ErrorKind.PHONE_VERIFICATION_REQUIRED,
                message_for(ErrorKind.PHONE_VERIFICATION_REQUIRED),
                flow=self._phone_flow(Intent.LINK),
            )
        if not password:
            return FlowResult.invalid({"password": "Password cannot be empty"})

        self.busy = True
        try:
            await self._identity.reauthenticate(account, password)
        except ProviderError as e:
            logger.info("re-authentication for 2FA setup failed: %s", e.kind.value)
            return FlowResult.failed(e.kind, "Incorrect password. Please try again.")
        finally:
            self.busy = False
        return FlowResult(flow=self._phone_flow(Intent.ENROLL))

    async def disable_two_factor(self) -> FlowResult:
        account = self._account()
        if account is None:
            return FlowResult.failed(ErrorKind.REQUIRES_RECENT_LOGIN,
                                     message_for(ErrorKind.REQUIRES_RECENT_LOGIN))
        self.busy = True
        try:
            await self._identity.unenroll_second_factor(account)
        except ProviderError as e:
            logger.warning("could not disable 2FA for %s: %s", account.uid, e)
            return FlowResult.failed(e.kind, "Failed to disable two-factor authentication")
        finally:
            self.busy = False

        result = FlowResult(message="Two-factor authentication has been disabled for your account.")
        try:
            await self._tracker.mark_two_factor_enabled(account.uid, False)
        except StorageError as e:
            logger.warning("2FA disabled for %s but flag not persisted: %s", account.uid, e)
            result.warning = e.kind
        return result

    @staticmethod
    def validate_password_change(current: str, new: str, confirm: str) -> dict[str, str]:
        errors: dict[str, str] = {}
        if not current:
            errors["current_password"] = "Current password is required"
        if not new:
            errors["new_password"] = "New password is required"
        elif len(new) < MIN_PASSWORD_LENGTH:
            errors["new_password"] = "Password must be at least 8 characters"
        if not confirm:
            errors["confirm_password"] = "Please confirm your password"
        elif new != confirm:
            errors["confirm_password"] = "Passwords do not match"
        return errors

    async def change_password(self, current: str, new: str, confirm: str) -> FlowResult:
        errors = self.validate_password_change(current, new, confirm)
        if errors:
            return FlowResult.invalid(errors)
        account = self._account()
        if account is None:
            return FlowResult.failed(ErrorKind.REQUIRES_RECENT_LOGIN,
                                     "You must be logged in to change your password")
        if not account.email:
            return FlowResult.failed(ErrorKind.INVALID_EMAIL,
                                     "Your account does not have an email associated with it")

        self.busy = True
        try:
            account = await self._identity.reauthenticate(account, current)
            await self._identity.update_password(account, new)
        except ProviderError as e:
            logger.info("password change failed for %s: %s", account.uid, e.kind.value)
            return FlowResult.failed(e.kind, message_for(e.kind, CHANGE_PASSWORD))
        finally:
            self.busy = False
        return FlowResult(message="Your password has been updated successfully")

