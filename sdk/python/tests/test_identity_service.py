"""Tests for the Identity Toolkit adapter against a mocked transport."""

import json

import httpx
import pytest

from healthtrack._http import HttpClient
from healthtrack.exceptions import (
    CodeExpired,
    EmailInUse,
    InvalidCode,
    ProviderAlreadyLinked,
    RequiresRecentLogin,
    SecondFactorRequired,
    UnknownProviderError,
    WrongPassword,
)
from healthtrack.services.identity import IdentityService

BASE = "https://identitytoolkit.test"


def _error(status, message):
    return httpx.Response(status, json={"error": {"code": status, "message": message, "status": "INVALID_ARGUMENT"}})


class Backend:
    """Routes requests by path and records them."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, path, response):
        self.routes[path] = response

    def __call__(self, request):
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.url.path, dict(request.url.params), body))
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": {"message": "NOT_FOUND"}})
        return route(body) if callable(route) else route


LOOKUP = {
    "users": [{
        "localId": "uid-1",
        "email": "a@b.com",
        "emailVerified": True,
        "displayName": "Ada Lovelace",
        "createdAt": "1700000000000",
    }],
}


@pytest.fixture
def backend():
    return Backend()


@pytest.fixture
def service(backend):
    http = HttpClient(BASE, api_key="test-key", transport=httpx.MockTransport(backend))
    return IdentityService(http)


@pytest.mark.asyncio
async def test_sign_in_sets_current_account_and_emits(service, backend):
    backend.on("/v1/accounts:signInWithPassword", httpx.Response(200, json={
        "localId": "uid-1", "email": "a@b.com", "idToken": "id-1", "refreshToken": "r-1",
    }))
    seen = []

    async def listener(account):
        seen.append(account)

    service.auth_state.subscribe(listener)

    account = await service.sign_in("a@b.com", "password123")

    assert account.uid == "uid-1"
    assert account.id_token == "id-1"
    assert service.current_account == account
    assert seen == [account]
    path, params, body = backend.requests[0]
    assert params == {"key": "test-key"}
    assert body == {"email": "a@b.com", "password": "password123", "returnSecureToken": True}


@pytest.mark.asyncio
async def test_sign_in_with_enrolled_factor_raises_challenge(service, backend):
    backend.on("/v1/accounts:signInWithPassword", httpx.Response(200, json={
        "localId": "uid-1",
        "email": "a@b.com",
        "mfaPendingCredential": "pending",
        "mfaInfo": [{"mfaEnrollmentId": "enr-1", "phoneInfo": "+61412345678", "displayName": "Phone 2FA"}],
    }))

    with pytest.raises(SecondFactorRequired) as exc_info:
        await service.sign_in("a@b.com", "password123")

    challenge = exc_info.value.challenge
    assert challenge.pending_credential == "pending"
    assert challenge.hints[0].enrollment_id == "enr-1"
    assert challenge.hints[0].phone_info == "+61412345678"
    assert service.current_account is None


@pytest.mark.asyncio
async def test_provider_codes_map_to_error_kinds(service, backend):
    backend.on("/v1/accounts:signInWithPassword", _error(400, "INVALID_LOGIN_CREDENTIALS"))
    with pytest.raises(WrongPassword):
        await service.sign_in("a@b.com", "nope")

    backend.on("/v1/accounts:signUp", _error(400, "EMAIL_EXISTS"))
    with pytest.raises(EmailInUse):
        await service.create_account("a@b.com", "password123")


@pytest.mark.asyncio
async def test_codes_outside_the_operation_set_become_unknown(service, backend):
    # a phone-code failure is not a declared sign-in failure
    backend.on("/v1/accounts:signInWithPassword", _error(400, "INVALID_CODE"))

    with pytest.raises(UnknownProviderError) as exc_info:
        await service.sign_in("a@b.com", "password123")

    assert exc_info.value.code == "INVALID_CODE"


@pytest.mark.asyncio
async def test_reload_reads_lookup_record(service, backend):
    backend.on("/v1/accounts:signInWithPassword", httpx.Response(200, json={
        "localId": "uid-1", "email": "a@b.com", "idToken": "id-1",
    }))
    backend.on("/v1/accounts:lookup", httpx.Response(200, json=LOOKUP))
    account = await service.sign_in("a@b.com", "password123")

    reloaded = await service.reload(account)

    assert reloaded.email_verified is True
    assert reloaded.display_name == "Ada Lovelace"
    assert reloaded.created_at.year == 2023
    assert reloaded.id_token == "id-1"
    assert service.current_account == reloaded


@pytest.mark.asyncio
async def test_account_calls_without_token_require_recent_login(service):
    from healthtrack.types.auth import Account

    with pytest.raises(RequiresRecentLogin):
        await service.reload(Account(uid="uid-1"))


@pytest.mark.asyncio
async def test_confirmed_session_cannot_be_confirmed_again(service, backend):
    backend.on("/v1/accounts:sendVerificationCode", httpx.Response(200, json={"sessionInfo": "sess-1"}))
    challenge = await service.send_phone_code("+61412345678", "captcha")

    credential = await service.confirm_phone_code(challenge.session_id, "123456")
    assert credential.phone_number == "+61412345678"

    with pytest.raises(InvalidCode):
        await service.confirm_phone_code(challenge.session_id, "123456")


@pytest.mark.asyncio
async def test_confirm_rejects_unknown_session(service):
    with pytest.raises(InvalidCode):
        await service.confirm_phone_code("never-issued", "123456")


@pytest.mark.asyncio
async def test_sign_out_discards_issued_sessions(service, backend):
    backend.on("/v1/accounts:sendVerificationCode", httpx.Response(200, json={"sessionInfo": "sess-1"}))
    challenge = await service.send_phone_code("+61412345678", "captcha")

    await service.sign_out()

    with pytest.raises(InvalidCode):
        await service.confirm_phone_code(challenge.session_id, "123456")


@pytest.mark.asyncio
async def test_enroll_conflict_is_reported(service, backend):
    from healthtrack.types.auth import Account
    from healthtrack.types.phone import PhoneCredential

    backend.on("/v2/accounts/mfaEnrollment:finalize", _error(400, "SECOND_FACTOR_EXISTS"))

    with pytest.raises(ProviderAlreadyLinked):
        await service.enroll_second_factor(
            Account(uid="uid-1", id_token="id-1"),
            PhoneCredential(session_id="sess-1", code="123456"),
        )


@pytest.mark.asyncio
async def test_enroll_sends_session_and_code(service, backend):
    from healthtrack.types.auth import Account
    from healthtrack.types.phone import PhoneCredential

    backend.on("/v2/accounts/mfaEnrollment:finalize", httpx.Response(200, json={"idToken": "id-2"}))
    backend.on("/v1/accounts:lookup", httpx.Response(200, json={"users": [{
        **LOOKUP["users"][0],
        "mfaInfo": [{"mfaEnrollmentId": "enr-1", "phoneInfo": "+61412345678"}],
    }]}))

    account = await service.enroll_second_factor(
        Account(uid="uid-1", id_token="id-1"),
        PhoneCredential(session_id="sess-1", code="123456"),
    )

    assert [f.enrollment_id for f in account.enrolled_factors] == ["enr-1"]
    path, _, body = backend.requests[0]
    assert path == "/v2/accounts/mfaEnrollment:finalize"
    assert body["phoneVerificationInfo"] == {"sessionInfo": "sess-1", "code": "123456"}
    assert body["displayName"] == "Phone 2FA"
    assert backend.requests[1][2] == {"idToken": "id-2"}


@pytest.mark.asyncio
@pytest.mark.parametrize("code,expected", [("INVALID_CODE", InvalidCode), ("SESSION_EXPIRED", CodeExpired)])
async def test_provider_rejects_code_when_phone_is_attached(service, backend, code, expected):
    from healthtrack.types.auth import Account

    backend.on("/v1/accounts:sendVerificationCode", httpx.Response(200, json={"sessionInfo": "sess-1"}))
    backend.on("/v1/accounts:signInWithPhoneNumber", _error(400, code))
    challenge = await service.send_phone_code("+61412345678", "captcha")
    credential = await service.confirm_phone_code(challenge.session_id, "000000")

    with pytest.raises(expected):
        await service.link_phone_to_account(Account(uid="uid-1", id_token="id-1"), credential)

    path, _, body = backend.requests[-1]
    assert path == "/v1/accounts:signInWithPhoneNumber"
    assert body == {"idToken": "id-1", "sessionInfo": "sess-1", "code": "000000"}
