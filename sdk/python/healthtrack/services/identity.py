from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Optional, TypeVar

from ..events import AuthStateStream
from ..exceptions import (
    ApiError,
    CaptchaFailed,
    CodeExpired,
    EmailInUse,
    HealthTrackError,
    InvalidCode,
    InvalidEmail,
    InvalidPhoneNumber,
    InvalidSession,
    ProviderAlreadyLinked,
    ProviderError,
    QuotaExceeded,
    RequiresRecentLogin,
    SecondFactorRequired,
    TooManyAttempts,
    UnknownProviderError,
    UserDisabled,
    UserNotFound,
    WeakPassword,
    WrongPassword,
)
from ..phone import is_valid_code, mask_phone
from ..types.auth import Account, AuthResponse, MfaHint, SecondFactorChallenge, SignInRequest, SignUpRequest, UserRecord
from ..types.phone import PhoneChallenge, PhoneCredential

if TYPE_CHECKING:
    from .._http import HttpClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

SECOND_FACTOR_DISPLAY_NAME = "Phone 2FA"

PROVIDER_CODES: dict[str, type[ProviderError]] = {
    "EMAIL_EXISTS": EmailInUse,
    "WEAK_PASSWORD": WeakPassword,
    "INVALID_EMAIL": InvalidEmail,
    "MISSING_EMAIL": InvalidEmail,
    "INVALID_PASSWORD": WrongPassword,
    "INVALID_LOGIN_CREDENTIALS": WrongPassword,
    "MISSING_PASSWORD": WrongPassword,
    "EMAIL_NOT_FOUND": UserNotFound,
    "USER_NOT_FOUND": UserNotFound,
    "USER_DISABLED": UserDisabled,
    "TOO_MANY_ATTEMPTS_TRY_LATER": TooManyAttempts,
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": RequiresRecentLogin,
    "TOKEN_EXPIRED": RequiresRecentLogin,
    "INVALID_ID_TOKEN": RequiresRecentLogin,
    "INVALID_PHONE_NUMBER": InvalidPhoneNumber,
    "MISSING_PHONE_NUMBER": InvalidPhoneNumber,
    "QUOTA_EXCEEDED": QuotaExceeded,
    "CAPTCHA_CHECK_FAILED": CaptchaFailed,
    "MISSING_RECAPTCHA_TOKEN": CaptchaFailed,
    "INVALID_RECAPTCHA_TOKEN": CaptchaFailed,
    "INVALID_CODE": InvalidCode,
    "MISSING_CODE": InvalidCode,
    "SESSION_EXPIRED": CodeExpired,
    "CODE_EXPIRED": CodeExpired,
    "INVALID_SESSION_INFO": InvalidSession,
    "MISSING_SESSION_INFO": InvalidSession,
    "INVALID_MFA_PENDING_CREDENTIAL": InvalidSession,
    "PROVIDER_ALREADY_LINKED": ProviderAlreadyLinked,
    "SECOND_FACTOR_EXISTS": ProviderAlreadyLinked,
}

# Closed failure sets per operation; anything else surfaces as UnknownProviderError.
CREATE_ACCOUNT_ERRORS = frozenset({EmailInUse, WeakPassword, InvalidEmail, TooManyAttempts})
SIGN_IN_ERRORS = frozenset({WrongPassword, UserNotFound, UserDisabled, TooManyAttempts, InvalidEmail})
ACCOUNT_ERRORS = frozenset({RequiresRecentLogin, UserNotFound, UserDisabled, WeakPassword, InvalidEmail, TooManyAttempts})
SEND_CODE_ERRORS = frozenset({InvalidPhoneNumber, QuotaExceeded, CaptchaFailed})
SEND_ENROLLMENT_CODE_ERRORS = SEND_CODE_ERRORS | {RequiresRecentLogin}
SEND_SECOND_FACTOR_CODE_ERRORS = SEND_CODE_ERRORS | {InvalidSession}
CONFIRM_CODE_ERRORS = frozenset({InvalidCode, CodeExpired})
LINK_ERRORS = frozenset({ProviderAlreadyLinked, InvalidCode, CodeExpired, InvalidSession, RequiresRecentLogin})
ENROLL_ERRORS = frozenset({InvalidCode, CodeExpired, InvalidSession, RequiresRecentLogin, ProviderAlreadyLinked})
RESOLVE_ERRORS = frozenset({InvalidCode, CodeExpired, InvalidSession})


def translate_error(exc: ApiError, allowed: frozenset[type[ProviderError]]) -> ProviderError:
    cls = PROVIDER_CODES.get(exc.error)
    if cls is None or cls not in allowed:
        return UnknownProviderError(exc.message or exc.error, exc.error)
    return cls(exc.message, exc.error)


def _hints(mfa_info: Optional[list[dict]]) -> list[MfaHint]:
    return [
        MfaHint(
            enrollment_id=item.get("mfaEnrollmentId", ""),
            phone_info=item.get("phoneInfo"),
            display_name=item.get("displayName"),
            enrolled_at=item.get("enrolledAt"),
        )
        for item in mfa_info or []
    ]


def _created_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except ValueError:
        return None


class IdentityService:
    """Identity provider client over the Identity Toolkit REST API.

    Tracks the signed-in account and emits on :attr:`auth_state` whenever it
    changes. Every operation raises only its declared ``ProviderError`` kinds.
    """

    def __init__(self, http: HttpClient, auth_state: Optional[AuthStateStream] = None) -> None:
        self._http = http
        self.auth_state = auth_state or AuthStateStream()
        self._current: Optional[Account] = None
        self._issued: dict[str, str] = {}

    @property
    def current_account(self) -> Optional[Account]:
        return self._current

    async def _call(self, allowed: frozenset[type[ProviderError]], request: Awaitable[T]) -> T:
        try:
            return await request
        except ApiError as e:
            err = translate_error(e, allowed)
            logger.info("provider rejected request: %s (%s)", err.kind.value, e.error)
            raise err from e
        except ProviderError:
            raise
        except HealthTrackError as e:
            raise UnknownProviderError(str(e)) from e

    async def _set_current(self, account: Optional[Account], notify: bool = True) -> None:
        self._current = account
        if notify:
            await self.auth_state.emit(account)

    def _token(self, account: Account) -> str:
        if not account.id_token:
            raise RequiresRecentLogin("Account has no active session")
        return account.id_token

    # -- accounts ---------------------------------------------------------

    async def create_account(self, email: str, password: str) -> Account:
        body = SignUpRequest(email=email, password=password).model_dump(by_alias=True)
        data = await self._call(CREATE_ACCOUNT_ERRORS, self._http.post("/v1/accounts:signUp", json=body))
        resp = AuthResponse.model_validate(data)
        account = Account(
            uid=resp.local_id,
            email=resp.email or email,
            id_token=resp.id_token,
            refresh_token=resp.refresh_token,
            created_at=datetime.now(timezone.utc),
        )
        logger.info("created account %s", account.uid)
        await self._set_current(account)
        return account

    async def _password_sign_in(self, email: str, password: str) -> Account:
        body = SignInRequest(email=email, password=password).model_dump(by_alias=True)
        data = await self._call(SIGN_IN_ERRORS, self._http.post("/v1/accounts:signInWithPassword", json=body))
        resp = AuthResponse.model_validate(data)
        if resp.mfa_pending_credential:
            logger.info("second factor required for %s", resp.local_id)
            raise SecondFactorRequired(SecondFactorChallenge(
                pending_credential=resp.mfa_pending_credential,
                hints=_hints(resp.mfa_info),
                email=resp.email or email,
                uid=resp.local_id,
            ))
        return Account(
            uid=resp.local_id,
            email=resp.email or email,
            display_name=resp.display_name,
            id_token=resp.id_token,
            refresh_token=resp.refresh_token,
        )

    async def sign_in(self, email: str, password: str) -> Account:
        account = await self._password_sign_in(email, password)
        logger.info("signed in %s", account.uid)
        await self._set_current(account)
        return account

    async def reauthenticate(self, account: Account, password: str) -> Account:
        if not account.email:
            raise InvalidEmail("Your account does not have an email associated with it")
        fresh = await self._password_sign_in(account.email, password)
        if fresh.uid != account.uid:
            raise UserNotFound("Credential belongs to a different account")
        updated = account.model_copy(update={"id_token": fresh.id_token, "refresh_token": fresh.refresh_token})
        await self._set_current(updated, notify=False)
        return updated

    async def sign_out(self) -> None:
        if self._current is not None:
            logger.info("signed out %s", self._current.uid)
        self._issued.clear()
        await self._set_current(None)

    async def reload(self, account: Account) -> Account:
        data = await self._call(
            ACCOUNT_ERRORS, self._http.post("/v1/accounts:lookup", json={"idToken": self._token(account)}),
        )
        users = (data or {}).get("users") or []
        if not users:
            raise UserNotFound("Account no longer exists")
        record = UserRecord.model_validate(users[0])
        updated = account.model_copy(update={
            "uid": record.local_id,
            "email": record.email or account.email,
            "email_verified": record.email_verified,
            "display_name": record.display_name,
            "phone_number": record.phone_number,
            "created_at": _created_at(record.created_at) or account.created_at,
            "enrolled_factors": _hints(record.mfa_info),
        })
        if self._current is not None and self._current.uid == updated.uid:
            self._current = updated
        return updated

    async def _update(self, account: Account, fields: dict[str, Any]) -> Account:
        body = {"idToken": self._token(account), "returnSecureToken": True, **fields}
        data = await self._call(ACCOUNT_ERRORS, self._http.post("/v1/accounts:update", json=body)) or {}
        updated = account.model_copy(update={
            "id_token": data.get("idToken") or account.id_token,
            "refresh_token": data.get("refreshToken") or account.refresh_token,
            "display_name": data.get("displayName", account.display_name),
        })
        if self._current is not None and self._current.uid == updated.uid:
            self._current = updated
        return updated

    async def update_display_name(self, account: Account, display_name: str) -> Account:
        return await self._update(account, {"displayName": display_name})

    async def update_password(self, account: Account, new_password: str) -> Account:
        updated = await self._update(account, {"password": new_password})
        logger.info("password updated for %s", account.uid)
        return updated

    async def send_email_verification(self, account: Account) -> None:
        await self._call(ACCOUNT_ERRORS, self._http.post("/v1/accounts:sendOobCode", json={
            "requestType": "VERIFY_EMAIL",
            "idToken": self._token(account),
        }))
        logger.info("verification email sent for %s", account.uid)

    async def send_password_reset(self, email: str) -> None:
        await self._call(ACCOUNT_ERRORS, self._http.post("/v1/accounts:sendOobCode", json={
            "requestType": "PASSWORD_RESET",
            "email": email,
        }))

    # -- phone challenges -------------------------------------------------

    def _issue(self, phone_number: str, session_id: Optional[str],
               resolver: Optional[SecondFactorChallenge] = None) -> PhoneChallenge:
        if not session_id:
            raise UnknownProviderError("Provider did not return a verification session")
        self._issued[session_id] = phone_number
        logger.info("verification code sent to %s", mask_phone(phone_number))
        return PhoneChallenge(phone_number=phone_number, session_id=session_id, resolver=resolver)

    async def send_phone_code(self, phone_number: str, captcha_token: str) -> PhoneChallenge:
        data = await self._call(SEND_CODE_ERRORS, self._http.post("/v1/accounts:sendVerificationCode", json={
            "phoneNumber": phone_number,
            "recaptchaToken": captcha_token,
        })) or {}
        return self._issue(phone_number, data.get("sessionInfo"))

    async def send_enrollment_code(self, account: Account, phone_number: str, captcha_token: str) -> PhoneChallenge:
        data = await self._call(SEND_ENROLLMENT_CODE_ERRORS, self._http.post("/v2/accounts/mfaEnrollment:start", json={
            "idToken": self._token(account),
            "phoneEnrollmentInfo": {"phoneNumber": phone_number, "recaptchaToken": captcha_token},
        })) or {}
        return self._issue(phone_number, (data.get("phoneSessionInfo") or {}).get("sessionInfo"))

    async def send_second_factor_code(self, challenge: SecondFactorChallenge, captcha_token: str) -> PhoneChallenge:
        if not challenge.hints:
            raise InvalidSession("No enrolled second factor to challenge")
        hint = challenge.hints[0]
        data = await self._call(SEND_SECOND_FACTOR_CODE_ERRORS, self._http.post("/v2/accounts/mfaSignIn:start", json={
            "mfaPendingCredential": challenge.pending_credential,
            "mfaEnrollmentId": hint.enrollment_id,
            "phoneSignInInfo": {"recaptchaToken": captcha_token},
        })) or {}
        return self._issue(hint.phone_info or "", (data.get("phoneResponseInfo") or {}).get("sessionInfo"), challenge)

    async def confirm_phone_code(self, session_id: str, code: str) -> PhoneCredential:
        """Consume an issued session id; the code itself is checked by the provider on use."""
        if not is_valid_code(code):
            raise InvalidCode("Verification codes are 6 digits")
        phone_number = self._issued.pop(session_id, None)
        if phone_number is None:
            raise InvalidCode("Unknown or already used verification session")
        return PhoneCredential(session_id=session_id, code=code, phone_number=phone_number or None)

    async def link_phone_to_account(self, account: Account, credential: PhoneCredential) -> Account:
        data = await self._call(LINK_ERRORS, self._http.post("/v1/accounts:signInWithPhoneNumber", json={
            "idToken": self._token(account),
            "sessionInfo": credential.session_id,
            "code": credential.code,
        })) or {}
        updated = account.model_copy(update={
            "phone_number": data.get("phoneNumber") or credential.phone_number,
            "id_token": data.get("idToken") or account.id_token,
            "refresh_token": data.get("refreshToken") or account.refresh_token,
        })
        if self._current is not None and self._current.uid == updated.uid:
            self._current = updated
        logger.info("phone linked for %s", account.uid)
        return updated

    async def enroll_second_factor(self, account: Account, credential: PhoneCredential) -> Account:
        data = await self._call(ENROLL_ERRORS, self._http.post("/v2/accounts/mfaEnrollment:finalize", json={
            "idToken": self._token(account),
            "phoneVerificationInfo": {"sessionInfo": credential.session_id, "code": credential.code},
            "displayName": SECOND_FACTOR_DISPLAY_NAME,
        })) or {}
        updated = account.model_copy(update={
            "id_token": data.get("idToken") or account.id_token,
            "refresh_token": data.get("refreshToken") or account.refresh_token,
        })
        logger.info("second factor enrolled for %s", account.uid)
        return await self.reload(updated)

    async def unenroll_second_factor(self, account: Account) -> Account:
        account = await self.reload(account)
        if not account.enrolled_factors:
            return account
        await self._call(ACCOUNT_ERRORS, self._http.post("/v2/accounts/mfaEnrollment:withdraw", json={
            "idToken": self._token(account),
            "mfaEnrollmentId": account.enrolled_factors[0].enrollment_id,
        }))
        logger.info("second factor withdrawn for %s", account.uid)
        return await self.reload(account)

    async def resolve_second_factor_challenge(
        self, challenge: SecondFactorChallenge, credential: PhoneCredential,
    ) -> Account:
        data = await self._call(RESOLVE_ERRORS, self._http.post("/v2/accounts/mfaSignIn:finalize", json={
            "mfaPendingCredential": challenge.pending_credential,
            "phoneVerificationInfo": {"sessionInfo": credential.session_id, "code": credential.code},
        })) or {}
        account = Account(
            uid=challenge.uid or "",
            email=challenge.email,
            id_token=data.get("idToken"),
            refresh_token=data.get("refreshToken"),
        )
        account = await self.reload(account)
        logger.info("second factor challenge resolved for %s", account.uid)
        await self._set_current(account)
        return account
