"""Tests for client wiring against a mocked backend."""

import json

import httpx
import pytest

from healthtrack import HealthTrackClient, Settings
from healthtrack.cache import JsonFileCache
from healthtrack.flows import FlowState, Intent, SignInStep


class Backend:
    """Minimal Identity Toolkit + Firestore stand-in."""

    def __init__(self):
        self.docs = {}
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        path = request.url.path
        if path == "/v1/accounts:signInWithPassword":
            return httpx.Response(200, json={"localId": "uid-1", "email": "a@b.com", "idToken": "id-1"})
        if path == "/v1/accounts:lookup":
            return httpx.Response(200, json={"users": [{
                "localId": "uid-1", "email": "a@b.com", "emailVerified": True, "createdAt": "1600000000000",
            }]})
        if "/documents/users/" in path:
            uid = path.rsplit("/", 1)[-1]
            if request.method == "GET":
                if uid not in self.docs:
                    return httpx.Response(404, json={"error": {"status": "NOT_FOUND", "message": "missing"}})
                return httpx.Response(200, json={"fields": self.docs[uid]})
            body = json.loads(request.content)
            self.docs.setdefault(uid, {}).update(body["fields"])
            return httpx.Response(200, json={"fields": self.docs[uid]})
        return httpx.Response(400, json={"error": {"message": "UNEXPECTED"}})


@pytest.fixture
def settings():
    return Settings(_env_file=None, api_key="key", project_id="health-track", resend_countdown_seconds=30)


@pytest.mark.asyncio
async def test_sign_in_through_rest_adapters(settings, captcha):
    backend = Backend()
    async with HealthTrackClient(settings, transport=httpx.MockTransport(backend)) as client:
        await client.session.init()

        result = await client.sign_in_flow(captcha).sign_in("a@b.com", "password123")

        assert result.step is SignInStep.PHONE_VERIFICATION_REQUIRED
        assert client.session.uid == "uid-1"
        assert backend.docs["uid-1"]["name"] == {"stringValue": "User-uid-"}
        doc_requests = [r for r in backend.requests if "/documents/" in r.url.path]
        assert doc_requests[0].headers["Authorization"] == "Bearer id-1"
        assert all("key" not in r.url.params for r in doc_requests)


def test_flow_factories_use_settings(settings, captcha):
    client = HealthTrackClient(settings, transport=httpx.MockTransport(Backend()))
    flow = client.phone_flow(captcha, Intent.LINK, phone_number="+61412345678")

    assert flow.state is FlowState.IDLE
    assert flow.countdown.remaining() == 30
    assert "health-track" in repr(client)


def test_cache_path_selects_file_cache(tmp_path):
    settings = Settings(_env_file=None, project_id="p", cache_path=str(tmp_path / "cache.json"))

    client = HealthTrackClient(settings)

    assert isinstance(client.cache, JsonFileCache)
