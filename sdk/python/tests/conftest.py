"""Shared fakes and fixtures.

``FakeIdentityProvider`` keeps accounts in memory and behaves like the
provider for the parts the flows rely on. Issued verification sessions are
single use, and codes are only checked once a credential is used. Accounts
with an enrolled second factor get a sign-in challenge, and sign-in and
sign-out are emitted on ``auth_state``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from healthtrack.cache import InMemoryCache
from healthtrack.events import AuthStateStream
from healthtrack.exceptions import (
    CaptchaFailed,
    EmailInUse,
    InvalidCode,
    ProviderAlreadyLinked,
    SecondFactorRequired,
    UserNotFound,
    WrongPassword,
)
from healthtrack.phone import is_valid_code
from healthtrack.services import InMemoryDocumentStore
from healthtrack.session import SessionStore
from healthtrack.types.auth import Account, MfaHint, SecondFactorChallenge
from healthtrack.types.phone import PhoneChallenge, PhoneCredential
from healthtrack.verification import VerificationStateTracker

VALID_CODE = "123456"


@dataclass
class FakeUser:
    uid: str
    email: str
    password: str
    email_verified: bool = False
    display_name: Optional[str] = None
    phone_number: Optional[str] = None
    linked: bool = False
    enrolled: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class FakeIdentityProvider:
    def __init__(self) -> None:
        self.auth_state = AuthStateStream()
        self.users: dict[str, FakeUser] = {}
        self.calls: list[str] = []
        self.failures: dict[str, list[Exception]] = {}
        self.issued: dict[str, str] = {}
        self.consumed: set[str] = set()
        self.verification_emails: list[str] = []
        self.password_resets: list[str] = []
        self._current: Optional[Account] = None
        self._seq = 0

    # -- test controls ----------------------------------------------------

    def add_user(self, email: str, password: str = "password123", uid: Optional[str] = None,
                 **attrs) -> FakeUser:
        uid = uid or f"uid-{len(self.users) + 1}"
        user = FakeUser(uid=uid, email=email, password=password, **attrs)
        self.users[uid] = user
        return user

    def fail(self, operation: str, exc: Exception) -> None:
        """Make the next call to ``operation`` raise ``exc``."""
        self.failures.setdefault(operation, []).append(exc)

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        queued = self.failures.get(operation)
        if queued:
            raise queued.pop(0)

    def _by_email(self, email: str) -> Optional[FakeUser]:
        return next((u for u in self.users.values() if u.email == email), None)

    def _account(self, user: FakeUser) -> Account:
        factors = [MfaHint(enrollment_id=f"mfa-{user.uid}", phone_info=user.phone_number)] if user.enrolled else []
        return Account(
            uid=user.uid,
            email=user.email,
            email_verified=user.email_verified,
            display_name=user.display_name,
            phone_number=user.phone_number if user.linked else None,
            created_at=user.created_at,
            enrolled_factors=factors,
            id_token=f"token-{user.uid}",
        )

    async def _set_current(self, account: Optional[Account]) -> None:
        self._current = account
        await self.auth_state.emit(account)

    # -- accounts ---------------------------------------------------------

    @property
    def current_account(self) -> Optional[Account]:
        return self._current

    async def create_account(self, email: str, password: str) -> Account:
        self._enter("create_account")
        if self._by_email(email) is not None:
            raise EmailInUse("exists", "EMAIL_EXISTS")
        account = self._account(self.add_user(email, password))
        await self._set_current(account)
        return account

    async def sign_in(self, email: str, password: str) -> Account:
        self._enter("sign_in")
        user = self._by_email(email)
        if user is None:
            raise UserNotFound("no user", "EMAIL_NOT_FOUND")
        if user.password != password:
            raise WrongPassword("bad password", "INVALID_PASSWORD")
        if user.enrolled:
            raise SecondFactorRequired(SecondFactorChallenge(
                pending_credential=f"pending-{user.uid}",
                hints=[MfaHint(enrollment_id=f"mfa-{user.uid}", phone_info=user.phone_number)],
                email=user.email,
                uid=user.uid,
            ))
        account = self._account(user)
        await self._set_current(account)
        return account

    async def reauthenticate(self, account: Account, password: str) -> Account:
        self._enter("reauthenticate")
        if self.users[account.uid].password != password:
            raise WrongPassword("bad password", "INVALID_PASSWORD")
        return account

    async def sign_out(self) -> None:
        self._enter("sign_out")
        self.issued.clear()
        await self._set_current(None)

    async def reload(self, account: Account) -> Account:
        self._enter("reload")
        user = self.users.get(account.uid)
        if user is None:
            raise UserNotFound("gone", "USER_NOT_FOUND")
        fresh = self._account(user)
        if self._current is not None and self._current.uid == fresh.uid:
            self._current = fresh
        return fresh

    async def update_display_name(self, account: Account, display_name: str) -> Account:
        self._enter("update_display_name")
        self.users[account.uid].display_name = display_name
        return account.model_copy(update={"display_name": display_name})

    async def update_password(self, account: Account, new_password: str) -> Account:
        self._enter("update_password")
        self.users[account.uid].password = new_password
        return account

    async def send_email_verification(self, account: Account) -> None:
        self._enter("send_email_verification")
        self.verification_emails.append(account.email)

    async def send_password_reset(self, email: str) -> None:
        self._enter("send_password_reset")
        if self._by_email(email) is None:
            raise UserNotFound("no user", "EMAIL_NOT_FOUND")
        self.password_resets.append(email)

    # -- phone ------------------------------------------------------------

    def _issue(self, phone_number: str, resolver: Optional[SecondFactorChallenge] = None) -> PhoneChallenge:
        self._seq += 1
        session_id = f"session-{self._seq}"
        self.issued[session_id] = phone_number
        return PhoneChallenge(phone_number=phone_number, session_id=session_id, resolver=resolver)

    async def send_phone_code(self, phone_number: str, captcha_token: str) -> PhoneChallenge:
        self._enter("send_phone_code")
        return self._issue(phone_number)

    async def send_enrollment_code(self, account: Account, phone_number: str, captcha_token: str) -> PhoneChallenge:
        self._enter("send_enrollment_code")
        return self._issue(phone_number)

    async def send_second_factor_code(self, challenge: SecondFactorChallenge, captcha_token: str) -> PhoneChallenge:
        self._enter("send_second_factor_code")
        return self._issue(challenge.hints[0].phone_info or "", challenge)

    async def confirm_phone_code(self, session_id: str, code: str) -> PhoneCredential:
        self._enter("confirm_phone_code")
        if not is_valid_code(code):
            raise InvalidCode("Verification codes are 6 digits")
        if session_id in self.consumed or session_id not in self.issued:
            raise InvalidCode("Unknown or already used verification session")
        self.consumed.add(session_id)
        return PhoneCredential(session_id=session_id, code=code, phone_number=self.issued.pop(session_id))

    def _check_code(self, credential: PhoneCredential) -> None:
        if credential.code != VALID_CODE:
            raise InvalidCode("wrong code", "INVALID_CODE")

    async def link_phone_to_account(self, account: Account, credential: PhoneCredential) -> Account:
        self._enter("link_phone_to_account")
        self._check_code(credential)
        user = self.users[account.uid]
        if user.linked:
            raise ProviderAlreadyLinked("linked", "PROVIDER_ALREADY_LINKED")
        user.linked = True
        user.phone_number = credential.phone_number
        return self._account(user)

    async def enroll_second_factor(self, account: Account, credential: PhoneCredential) -> Account:
        self._enter("enroll_second_factor")
        self._check_code(credential)
        user = self.users[account.uid]
        user.enrolled = True
        user.phone_number = credential.phone_number or user.phone_number
        return self._account(user)

    async def unenroll_second_factor(self, account: Account) -> Account:
        self._enter("unenroll_second_factor")
        user = self.users[account.uid]
        user.enrolled = False
        return self._account(user)

    async def resolve_second_factor_challenge(
        self, challenge: SecondFactorChallenge, credential: PhoneCredential,
    ) -> Account:
        self._enter("resolve_second_factor_challenge")
        self._check_code(credential)
        account = self._account(self.users[challenge.uid])
        await self._set_current(account)
        return account


class FakeCaptcha:
    def __init__(self, token: str = "captcha-token") -> None:
        self.token = token
        self.calls = 0
        self.fail_next = False
        self.gate: Optional[asyncio.Event] = None

    async def verify(self) -> str:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next:
            self.fail_next = False
            raise CaptchaFailed("challenge dismissed", "CAPTCHA_CHECK_FAILED")
        return self.token


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def identity() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def documents() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def tracker(documents, cache) -> VerificationStateTracker:
    return VerificationStateTracker(documents, cache)


@pytest.fixture
def session(identity, documents, tracker, cache) -> SessionStore:
    return SessionStore(identity, documents, tracker, cache)


@pytest.fixture
def captcha() -> FakeCaptcha:
    return FakeCaptcha()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def signed_in(identity, documents, session):
    """Create an existing (not new) account with the given verification state and sign it in."""

    async def sign_in(email="ada@b.com", password="password123", uid="uid-1", email_verified=True,
                      phone_number=None, phone_verified=False, two_factor_enabled=False, linked=False):
        identity.add_user(
            email, password, uid=uid, email_verified=email_verified, display_name="Ada Lovelace",
            phone_number=phone_number, linked=linked,
            created_at=datetime.now(timezone.utc) - timedelta(days=30),
        )
        doc = {
            "name": "Ada Lovelace",
            "email": email,
            "phoneVerified": phone_verified,
            "emailVerified": email_verified,
            "twoFactorEnabled": two_factor_enabled,
        }
        if phone_number:
            doc["phoneNumber"] = phone_number
        await documents.set("users", uid, doc)
        await session.init()
        return await identity.sign_in(email, password)

    return sign_in
