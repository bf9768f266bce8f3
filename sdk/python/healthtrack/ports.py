"""Interfaces the flows depend on.

``IdentityService`` and ``FirestoreService`` are the production adapters;
``InMemoryDocumentStore`` and ``InMemoryCache`` ship for tests and offline use.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Protocol

if TYPE_CHECKING:
    from .events import AuthStateStream
    from .types.auth import Account, SecondFactorChallenge
    from .types.phone import PhoneChallenge, PhoneCredential


class CaptchaVerifier(Protocol):
    async def verify(self) -> str:
        """Return a CAPTCHA token, or raise :class:`CaptchaFailed`."""
        ...


class LocalCache(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def remove_prefix(self, prefix: str) -> None: ...


class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]: ...

    async def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None: ...


class IdentityProvider(Protocol):
    auth_state: AuthStateStream

    @property
    def current_account(self) -> Optional[Account]: ...

    async def create_account(self, email: str, password: str) -> Account: ...

    async def sign_in(self, email: str, password: str) -> Account: ...

    async def reauthenticate(self, account: Account, password: str) -> Account: ...

    async def sign_out(self) -> None: ...

    async def reload(self, account: Account) -> Account: ...

    async def update_display_name(self, account: Account, display_name: str) -> Account: ...

    async def update_password(self, account: Account, new_password: str) -> Account: ...

    async def send_email_verification(self, account: Account) -> None: ...

    async def send_password_reset(self, email: str) -> None: ...

    async def send_phone_code(self, phone_number: str, captcha_token: str) -> PhoneChallenge: ...

    async def send_enrollment_code(
        self, account: Account, phone_number: str, captcha_token: str,
    ) -> PhoneChallenge: ...

    async def send_second_factor_code(
        self, challenge: SecondFactorChallenge, captcha_token: str,
    ) -> PhoneChallenge: ...

    async def confirm_phone_code(self, session_id: str, code: str) -> PhoneCredential: ...

    async def link_phone_to_account(self, account: Account, credential: PhoneCredential) -> Account: ...

    async def enroll_second_factor(self, account: Account, credential: PhoneCredential) -> Account: ...

    async def unenroll_second_factor(self, account: Account) -> Account: ...

    async def resolve_second_factor_challenge(
        self, challenge: SecondFactorChallenge, credential: PhoneCredential,
    ) -> Account: ...
