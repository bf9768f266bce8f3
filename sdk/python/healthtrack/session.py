"""Process-wide session and profile state.

One :class:`SessionStore` is created per app process and handed to every
flow. It follows the identity provider's auth-state stream for its whole
lifetime (``init`` to ``dispose``) and is the only writer of the in-memory
account, profile and verification status.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from pydantic import ValidationError

from .cache import AUTHENTICATED_KEY, ONBOARDED_KEY, user_key, user_prefix
from .exceptions import HealthTrackError, StorageError
from .ports import DocumentStore, IdentityProvider, LocalCache
from .services.documents import USERS
from .types.auth import Account
from .types.profile import UserProfile, VerificationStatus
from .verification import VerificationStateTracker

logger = logging.getLogger(__name__)

PROFILE_FIELD = "profile"
NEW_ACCOUNT_WINDOW = timedelta(minutes=5)

_VERIFICATION_NAMES = frozenset({"email_verified", "phone_verified", "two_factor_enabled", "phone_number"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def default_profile(account: Account, now: datetime) -> UserProfile:
    display_name = account.display_name or ""
    parts = display_name.split(" ")
    return UserProfile(
        name=display_name or f"User-{account.uid[:4]}",
        first_name=parts[0] if display_name else "",
        last_name=" ".join(parts[1:]) if display_name else "",
        email=account.email or "",
        created_at=now,
    )


class SessionStore:
    def __init__(
        self,
        identity: IdentityProvider,
        documents: DocumentStore,
        tracker: VerificationStateTracker,
        cache: LocalCache,
        new_account_window: timedelta = NEW_ACCOUNT_WINDOW,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._identity = identity
        self._documents = documents
        self._tracker = tracker
        self._cache = cache
        self._new_account_window = new_account_window
        self._now = now

        self._account: Optional[Account] = None
        self._profile = UserProfile()
        self._status = VerificationStatus()
        self._authenticated = False
        self._onboarded = False
        self._loading = True
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._remove_listener: Optional[Callable[[], None]] = None

    # -- state ------------------------------------------------------------

    @property
    def account(self) -> Optional[Account]:
        return self._account

    @property
    def uid(self) -> Optional[str]:
        return self._account.uid if self._account else None

    @property
    def profile(self) -> UserProfile:
        return self._profile

    @property
    def status(self) -> VerificationStatus:
        return self._status

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    @property
    def is_onboarded(self) -> bool:
        return self._onboarded

    @property
    def is_loading(self) -> bool:
        return self._loading

    # -- lifecycle --------------------------------------------------------

    async def init(self) -> None:
        if self._unsubscribe is not None:
            return
        self._onboarded = (await self._cache.get(ONBOARDED_KEY)) == "true"
        self._remove_listener = self._tracker.add_listener(self.apply_status)
        self._unsubscribe = self._identity.auth_state.subscribe(self.on_auth_change)
        current = self._identity.current_account
        if current is not None:
            await self.on_auth_change(current)
        else:
            self._loading = False

    async def dispose(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None

    async def on_auth_change(self, account: Optional[Account]) -> None:
        try:
            if account is None:
                await self._reset()
                return
            if self._account is None or self._account.uid != account.uid:
                self._clear_memory()
            self._account = account
            await self._load(account)
        except HealthTrackError:
            logger.exception("failed to load session for %s", account.uid if account else None)
            self._clear_memory()
            self._account = account
        finally:
            self._loading = False

    async def _load(self, account: Account) -> None:
        try:
            account = await self._identity.reload(account)
            self._account = account
        except HealthTrackError as e:
            logger.warning("could not reload account %s: %s", account.uid, e)

        uid = account.uid
        data = await self._documents.get(USERS, uid)
        if data is None:
            logger.info("no profile document for %s, creating defaults", uid)
            profile = default_profile(account, self._now())
            await self._documents.set(USERS, uid, profile.to_document())
        else:
            try:
                profile = UserProfile.from_document(data)
            except ValidationError as e:
                logger.warning("profile document for %s is malformed, using defaults: %s", uid, e)
                profile = default_profile(account, self._now()).model_copy(update={"created_at": None})
            if not profile.name and account.display_name:
                profile = profile.model_copy(update={"name": account.display_name})
                await self._documents.set(USERS, uid, {"name": account.display_name}, merge=True)

        if self._is_new_account(profile, account):
            logger.info("new account %s, onboarding reset", uid)
            self._onboarded = False
            await self._cache.set(ONBOARDED_KEY, "false")

        status = await self._tracker.load(uid)
        if account.email_verified and not status.email_verified:
            try:
                status = await self._tracker.mark_email_verified(uid)
            except StorageError as e:
                logger.warning("could not persist email verification for %s: %s", uid, e)
                status = self._tracker.current(uid) or status

        self._profile = profile.with_verification(status)
        self._status = status
        self._authenticated = account.email_verified and status.phone_verified
        await self._cache.set(user_key(uid, PROFILE_FIELD), self._profile.model_dump_json(by_alias=True))
        await self._cache.set(AUTHENTICATED_KEY, "true" if self._authenticated else "false")

    def _is_new_account(self, profile: UserProfile, account: Account) -> bool:
        created = profile.created_at or account.created_at
        if created is None:
            return False
        return self._now() - _aware(created) < self._new_account_window

    def _clear_memory(self) -> None:
        self._account = None
        self._profile = UserProfile()
        self._status = VerificationStatus()
        self._authenticated = False

    async def _reset(self) -> None:
        uid = self.uid
        self._clear_memory()
        if uid is not None:
            await self._tracker.forget(uid)
            await self._cache.remove_prefix(user_prefix(uid))
        # the device onboarding flag survives sign-out
        await self._cache.set(AUTHENTICATED_KEY, "false")
        logger.info("session reset")

    # -- setters ----------------------------------------------------------

    def apply_status(self, uid: str, status: VerificationStatus) -> None:
        if self._account is None or self._account.uid != uid:
            return
        self._status = status
        self._profile = self._profile.with_verification(status)

    def set_authenticated(self, value: bool) -> None:
        self._authenticated = value

    async def complete_onboarding(self) -> None:
        await self._cache.set(ONBOARDED_KEY, "true")
        self._onboarded = True

    async def cached_profile(self, uid: str) -> Optional[UserProfile]:
        raw = await self._cache.get(user_key(uid, PROFILE_FIELD))
        if raw is None:
            return None
        try:
            return UserProfile.model_validate_json(raw)
        except ValidationError:
            return None

    async def update_profile(self, **fields: Any) -> UserProfile:
        """Apply profile edits locally, then write them to the remote document.

        Verification flags are owned by the verification tracker and cannot
        be set here. A failed remote write raises ``StorageError`` with the
        local edit kept.
        """
        blocked = _VERIFICATION_NAMES.intersection(fields)
        if blocked:
            raise ValueError(f"verification fields are not editable here: {sorted(blocked)}")
        if self._account is None:
            raise HealthTrackError("No signed-in account")
        uid = self._account.uid
        updated = UserProfile.model_validate({**self._profile.model_dump(), **fields})
        document = updated.model_dump(by_alias=True)
        aliases = {name: UserProfile.model_fields[name].alias or name
                   for name in fields if name in UserProfile.model_fields}
        changed = {alias: document.get(alias) for alias in aliases.values()}
        changed.update({name: value for name, value in fields.items() if name not in aliases})

        self._profile = updated
        await self._cache.set(user_key(uid, PROFILE_FIELD), updated.model_dump_json(by_alias=True))
        await self._documents.set(USERS, uid, changed, merge=True)
        return updated

    async def refresh_verification(self) -> VerificationStatus:
        """Re-read the provider's email flag and recompute the authenticated flag."""
        if self._account is None:
            return self._status
        account = await self._identity.reload(self._account)
        self._account = account
        status = self._tracker.current(account.uid) or await self._tracker.load(account.uid)
        if account.email_verified and not status.email_verified:
            status = await self._tracker.mark_email_verified(account.uid)
        self._authenticated = account.email_verified and status.phone_verified
        return status
