"""HealthTrack SDK client."""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Optional

import httpx

from ._http import HttpClient
from .cache import InMemoryCache, JsonFileCache
from .config import Settings, get_settings
from .events import AuthStateStream
from .flows import (
    EmergencyContactBook,
    Intent,
    PhoneVerificationFlow,
    SecuritySettings,
    SignInFlow,
    SignUpFlow,
)
from .ports import CaptchaVerifier, DocumentStore, LocalCache
from .services import FirestoreService, IdentityService
from .session import SessionStore
from .types.auth import SecondFactorChallenge
from .verification import VerificationStateTracker


class HealthTrackClient:
    """Wires the identity provider, document store, cache and session together.

    Usage:
        async with HealthTrackClient() as client:
            await client.session.init()
            result = await client.sign_in_flow(captcha).sign_in("user@example.com", "password")
            if result.flow is not None:
                ...  # drive the phone verification screen with result.flow
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        cache: Optional[LocalCache] = None,
        documents: Optional[DocumentStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.auth_state = AuthStateStream()
        self._identity_http = HttpClient(
            self.settings.identity_url,
            api_key=self.settings.api_key or None,
            timeout=self.settings.http_timeout,
            transport=transport,
        )
        self._documents_http = HttpClient(
            self.settings.documents_url,
            timeout=self.settings.http_timeout,
            transport=transport,
        )
        self.identity = IdentityService(self._identity_http, self.auth_state)
        self.documents = documents or FirestoreService(self._documents_http, token_source=self._id_token)
        if cache is None:
            cache = JsonFileCache(self.settings.cache_path) if self.settings.cache_path else InMemoryCache()
        self.cache = cache
        self.tracker = VerificationStateTracker(self.documents, self.cache)
        self.session = SessionStore(
            self.identity,
            self.documents,
            self.tracker,
            self.cache,
            new_account_window=timedelta(seconds=self.settings.new_account_window_seconds),
        )
        self.clock = time.monotonic

    def _id_token(self) -> Optional[str]:
        account = self.identity.current_account
        return account.id_token if account else None

    # -- flows ------------------------------------------------------------

    def phone_flow(
        self,
        captcha: CaptchaVerifier,
        intent: Intent = Intent.STANDALONE,
        phone_number: Optional[str] = None,
        resolver: Optional[SecondFactorChallenge] = None,
    ) -> PhoneVerificationFlow:
        return PhoneVerificationFlow(
            self.identity, self.tracker, self.session, captcha,
            intent=intent, phone_number=phone_number, resolver=resolver,
            resend_seconds=self.settings.resend_countdown_seconds, clock=self.clock,
        )

    def sign_in_flow(self, captcha: CaptchaVerifier) -> SignInFlow:
        return SignInFlow(
            self.identity, self.tracker, self.session, captcha,
            resend_seconds=self.settings.resend_countdown_seconds, clock=self.clock,
        )

    def sign_up_flow(self, captcha: CaptchaVerifier) -> SignUpFlow:
        return SignUpFlow(
            self.identity, self.documents, self.tracker, self.session, captcha,
            resend_seconds=self.settings.resend_countdown_seconds, clock=self.clock,
        )

    def security_settings(self, captcha: CaptchaVerifier) -> SecuritySettings:
        return SecuritySettings(
            self.identity, self.tracker, self.session, captcha,
            resend_seconds=self.settings.resend_countdown_seconds, clock=self.clock,
        )

    def emergency_contacts(self) -> EmergencyContactBook:
        return EmergencyContactBook(self.session)

    # -- lifecycle --------------------------------------------------------

    async def close(self) -> None:
        """Stop following auth changes and close the HTTP clients."""
        await self.session.dispose()
        await self._identity_http.close()
        await self._documents_http.close()

    async def __aenter__(self) -> HealthTrackClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"HealthTrackClient(identity_url={self._identity_http.base_url!r}, project={self.settings.project_id!r})"
