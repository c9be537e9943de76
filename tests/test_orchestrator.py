import asyncio

import httpx
import pytest

from promptify.client.api import PromptifyAPI
from promptify.client.orchestrator import (
    MSG_NO_COINS,
    MSG_RETRY,
    MSG_UNAVAILABLE,
    PromptState,
    UnlockOrchestrator,
)
from promptify.errors import InsufficientBalance, NotAuthenticated, NotFound, TransientError

pytestmark = pytest.mark.anyio

PID = 7


def _profile(coins=3, unlocked=()):
    return {
        "id": "sub-1",
        "email": "ada@example.com",
        "name": None,
        "avatar_url": None,
        "coins": coins,
        "role": None,
        "unlocked_prompt_ids": list(unlocked),
    }


def _error(status, code):
    return httpx.Response(status, json={"error": {"code": code, "message": code}})


class FakeService:
    """Routes requests to per-endpoint responders and counts calls."""

    def __init__(self, profile=None):
        self.profile = profile or _profile()
        self.prompts = [{"id": PID, "title": "Neon city"}]
        self.calls = []
        self.auth = []
        self.login = lambda request: httpx.Response(200, json={"access_token": "tok-1", "token_type": "bearer"})
        self.unlock = lambda request: httpx.Response(200, json={"unlocked": True, "coins_left": 2})
        self.secret = lambda request: httpx.Response(200, json={"prompt_id": PID, "prompt_text": "the prompt"})

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))
        self.auth.append(request.headers.get("Authorization"))
        if path == "/auth/jwt/login":
            return self.login(request)
        if path == "/api/me":
            return httpx.Response(200, json=self.profile)
        if path == "/api/me/unlocked":
            return httpx.Response(200, json={"prompt_ids": self.profile["unlocked_prompt_ids"]})
        if path == "/api/prompts":
            return httpx.Response(200, json=self.prompts)
        if path.endswith("/unlock"):
            response = self.unlock(request)
        elif path.endswith("/secret"):
            response = self.secret(request)
        else:
            for prompt in self.prompts:
                if path == f"/api/prompts/{prompt['id']}":
                    return httpx.Response(200, json=prompt)
            return httpx.Response(404, json={"error": {"code": "not_found", "message": path}})
        if asyncio.iscoroutine(response):
            response = await response
        return response

    def count(self, suffix):
        return sum(1 for _, path in self.calls if path.endswith(suffix))


def _orchestrator(service):
    client = httpx.AsyncClient(transport=httpx.MockTransport(service), base_url="http://test")
    return UnlockOrchestrator(PromptifyAPI(client=client))


async def test_refresh_applies_boundary_defaults():
    orch = _orchestrator(FakeService())
    profile = await orch.refresh()

    assert profile.name == "User"
    assert profile.avatar_url == ""
    assert profile.role.value == "user"
    assert orch.cache.coins == 3


async def test_unlock_reconciles_cache_from_service():
    service = FakeService(_profile(coins=3))
    orch = _orchestrator(service)
    await orch.refresh()

    await orch.request_unlock(PID)

    assert orch.cache.coins == 2
    assert PID in orch.cache.unlocked
    assert orch.cache.profile.coins == 2
    assert orch.secret_for(PID) == "the prompt"
    assert orch.state_of(PID) == PromptState.unlocked
    assert service.calls.index(("POST", f"/api/prompts/{PID}/unlock")) < service.calls.index(
        ("GET", f"/api/prompts/{PID}/secret")
    )


async def test_balance_comes_from_service_not_local_arithmetic():
    service = FakeService(_profile(coins=3))
    service.unlock = lambda request: httpx.Response(200, json={"unlocked": True, "coins_left": 7})
    orch = _orchestrator(service)
    await orch.refresh()

    await orch.request_unlock(PID)

    assert orch.cache.coins == 7


async def test_signed_out_caller_never_reaches_service():
    service = FakeService()
    orch = _orchestrator(service)

    with pytest.raises(NotAuthenticated):
        await orch.request_unlock(PID)
    assert service.calls == []


async def test_empty_cached_balance_short_circuits():
    service = FakeService(_profile(coins=0))
    orch = _orchestrator(service)
    await orch.refresh()

    with pytest.raises(InsufficientBalance):
        await orch.request_unlock(PID)

    assert service.count("/unlock") == 0
    assert orch.state_of(PID) == PromptState.locked
    assert orch.message_for(PID) == MSG_NO_COINS


async def test_service_refusal_leaves_cache_unchanged():
    service = FakeService(_profile(coins=1))
    service.unlock = lambda request: _error(402, "insufficient_funds")
    orch = _orchestrator(service)
    await orch.refresh()

    with pytest.raises(InsufficientBalance):
        await orch.request_unlock(PID)

    assert orch.cache.coins == 1
    assert orch.cache.unlocked == set()
    assert orch.state_of(PID) == PromptState.locked
    assert service.count("/secret") == 0


async def test_network_failure_fails_closed_and_allows_retry():
    service = FakeService(_profile(coins=3))

    def broken(request):
        raise httpx.ConnectError("connection refused", request=request)

    service.unlock = broken
    orch = _orchestrator(service)
    await orch.refresh()

    with pytest.raises(TransientError):
        await orch.request_unlock(PID)

    assert orch.cache.coins == 3
    assert orch.cache.unlocked == set()
    assert orch.state_of(PID) == PromptState.locked
    assert orch.message_for(PID) == MSG_RETRY

    service.unlock = lambda request: httpx.Response(200, json={"unlocked": True, "coins_left": 2})
    await orch.request_unlock(PID)
    assert orch.cache.coins == 2
    assert orch.message_for(PID) is None


async def test_server_error_is_transient():
    service = FakeService()
    service.unlock = lambda request: httpx.Response(503, text="upstream unavailable")
    orch = _orchestrator(service)
    await orch.refresh()

    with pytest.raises(TransientError):
        await orch.request_unlock(PID)
    assert orch.cache.coins == 3


async def test_unexpected_enforcer_error_surfaces_as_retryable():
    service = FakeService()
    service.unlock = lambda request: _error(404, "not_found")
    orch = _orchestrator(service)
    await orch.refresh()

    with pytest.raises(TransientError):
        await orch.request_unlock(PID)
    assert orch.cache.unlocked == set()


async def test_forbidden_secret_degrades_to_unavailable():
    service = FakeService()
    service.secret = lambda request: _error(403, "forbidden")
    orch = _orchestrator(service)
    await orch.refresh()

    await orch.request_unlock(PID)

    assert orch.state_of(PID) == PromptState.unavailable
    assert orch.message_for(PID) == MSG_UNAVAILABLE
    assert orch.secret_for(PID) is None
    assert PID in orch.cache.unlocked


async def test_owned_prompt_only_fetches_secret():
    service = FakeService(_profile(coins=0, unlocked=[PID]))
    orch = _orchestrator(service)
    await orch.refresh()

    await orch.request_unlock(PID)

    assert service.count("/unlock") == 0
    assert orch.secret_for(PID) == "the prompt"
    assert orch.cache.coins == 0


async def test_duplicate_requests_share_one_call():
    service = FakeService()
    release = asyncio.Event()

    async def slow_unlock(request):
        await release.wait()
        return httpx.Response(200, json={"unlocked": True, "coins_left": 2})

    service.unlock = slow_unlock
    orch = _orchestrator(service)
    await orch.refresh()

    first = asyncio.ensure_future(orch.request_unlock(PID))
    second = asyncio.ensure_future(orch.request_unlock(PID))
    await asyncio.sleep(0.01)
    assert orch.state_of(PID) == PromptState.pending

    release.set()
    await asyncio.gather(first, second)

    assert service.count("/unlock") == 1
    assert orch.cache.coins == 2


async def test_abandoned_request_still_reconciles():
    service = FakeService()
    release = asyncio.Event()

    async def slow_unlock(request):
        await release.wait()
        return httpx.Response(200, json={"unlocked": True, "coins_left": 2})

    service.unlock = slow_unlock
    orch = _orchestrator(service)
    await orch.refresh()

    caller = asyncio.ensure_future(orch.request_unlock(PID))
    await asyncio.sleep(0.01)
    inflight = orch._inflight[PID]
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    release.set()
    await inflight
    await asyncio.sleep(0)

    assert orch.cache.coins == 2
    assert orch.secret_for(PID) == "the prompt"
    assert PID not in orch._inflight


async def test_unreadable_unlock_response_is_transient():
    service = FakeService(_profile(coins=3))
    service.unlock = lambda request: httpx.Response(200, text="<html>proxy</html>")
    orch = _orchestrator(service)
    await orch.refresh()

    with pytest.raises(TransientError):
        await orch.request_unlock(PID)
    await asyncio.sleep(0)

    assert orch.state_of(PID) == PromptState.locked
    assert orch.message_for(PID) == MSG_RETRY
    assert orch.cache.coins == 3
    assert orch.cache.unlocked == set()
    assert PID not in orch._inflight
    assert service.count("/secret") == 0


@pytest.mark.parametrize(
    "body",
    [
        {"unlocked": True},
        {"unlocked": True, "coins_left": -1},
        ["unexpected"],
    ],
)
async def test_malformed_unlock_result_is_transient(body):
    service = FakeService(_profile(coins=3))
    service.unlock = lambda request: httpx.Response(200, json=body)
    orch = _orchestrator(service)
    await orch.refresh()

    with pytest.raises(TransientError):
        await orch.request_unlock(PID)

    assert orch.state_of(PID) == PromptState.locked
    assert orch.cache.coins == 3


async def test_unreadable_secret_response_is_transient():
    service = FakeService()
    service.secret = lambda request: httpx.Response(200, text="not json")
    orch = _orchestrator(service)
    await orch.refresh()

    with pytest.raises(TransientError):
        await orch.request_unlock(PID)

    assert PID in orch.cache.unlocked
    assert orch.state_of(PID) == PromptState.unlocked
    assert orch.secret_for(PID) is None
    assert orch.message_for(PID) == MSG_RETRY


async def test_sign_in_stores_token_and_loads_profile():
    service = FakeService(_profile(coins=5, unlocked=[PID]))
    orch = _orchestrator(service)

    profile = await orch.sign_in("ada@example.com", "hunter2")

    assert orch.authenticated
    assert orch.api.token == "tok-1"
    assert profile.coins == 5
    assert orch.state_of(PID) == PromptState.unlocked
    assert service.calls[:2] == [("POST", "/auth/jwt/login"), ("GET", "/api/me")]
    assert service.auth[:2] == [None, "Bearer tok-1"]


async def test_login_without_token_is_not_authenticated():
    service = FakeService()
    service.login = lambda request: httpx.Response(200, json={"token_type": "bearer"})
    orch = _orchestrator(service)

    with pytest.raises(NotAuthenticated):
        await orch.sign_in("ada@example.com", "hunter2")

    assert not orch.authenticated
    assert orch.api.token is None
    assert service.count("/api/me") == 0


async def test_sign_out_forgets_session():
    service = FakeService()
    orch = _orchestrator(service)
    await orch.sign_in("ada@example.com", "hunter2")
    await orch.request_unlock(PID)

    orch.sign_out()

    assert not orch.authenticated
    assert orch.api.token is None
    assert orch.cache.coins == 0
    assert orch.secret_for(PID) is None
    assert orch.state_of(PID) == PromptState.locked
    calls = len(service.calls)
    with pytest.raises(NotAuthenticated):
        await orch.request_unlock(PID)
    assert len(service.calls) == calls


async def test_unlock_finishing_after_sign_out_stays_in_old_session():
    service = FakeService(_profile(coins=3))
    release = asyncio.Event()

    async def slow_unlock(request):
        await release.wait()
        return httpx.Response(200, json={"unlocked": True, "coins_left": 2})

    service.unlock = slow_unlock
    orch = _orchestrator(service)
    await orch.sign_in("ada@example.com", "hunter2")

    caller = asyncio.ensure_future(orch.request_unlock(PID))
    await asyncio.sleep(0.01)
    inflight = orch._inflight[PID]
    orch.sign_out()
    assert orch._inflight == {}

    release.set()
    await caller
    await inflight
    await asyncio.sleep(0)

    assert not orch.authenticated
    assert orch.cache.coins == 0
    assert orch.cache.unlocked == set()
    assert orch.cache.secrets == {}
    assert orch.state_of(PID) == PromptState.locked

    service.profile = dict(_profile(coins=5), id="sub-2", email="grace@example.com")
    await orch.sign_in("grace@example.com", "hunter2")

    assert orch.cache.coins == 5
    assert orch.secret_for(PID) is None
    assert orch.state_of(PID) == PromptState.locked


async def test_refresh_drops_secrets_the_service_no_longer_grants():
    service = FakeService()
    orch = _orchestrator(service)
    await orch.refresh()
    await orch.request_unlock(PID)
    assert orch.secret_for(PID) == "the prompt"

    service.profile = _profile(coins=2, unlocked=[])
    await orch.refresh()
    assert orch.secret_for(PID) is None
    assert orch.state_of(PID) == PromptState.locked


async def test_refresh_for_another_profile_drops_secrets():
    service = FakeService()
    orch = _orchestrator(service)
    await orch.refresh()
    await orch.request_unlock(PID)

    service.profile = dict(_profile(coins=4, unlocked=[PID]), id="sub-2")
    await orch.refresh()

    assert orch.secret_for(PID) is None
    assert orch.state_of(PID) == PromptState.unlocked


async def test_catalogue_and_grant_listing_are_parsed():
    service = FakeService(_profile(unlocked=[PID, 9]))
    service.prompts = [
        {"id": PID, "title": "Neon city", "ai_model": None, "rating_avg": "4.5"},
        {"id": 9, "title": "Koi", "category": "Photo", "is_trending": True},
    ]
    api = _orchestrator(service).api

    prompts = await api.list_prompts()
    detail = await api.get_prompt(9)
    owned = await api.unlocked_prompt_ids()

    assert [p.id for p in prompts] == [PID, 9]
    assert prompts[0].ai_model == "Midjourney"
    assert prompts[0].rating_avg == 4.5
    assert prompts[0].description == ""
    assert detail.category == "Photo"
    assert detail.is_trending is True
    assert owned == [PID, 9]
    with pytest.raises(NotFound):
        await api.get_prompt(404)


async def test_end_to_end_against_service(client, identity, make_profile, make_prompt):
    await make_profile("sub-1", coins=2)
    identity.sign_in("sub-1")
    pid = await make_prompt(secret="volumetric light, dusk")
    orch = UnlockOrchestrator(PromptifyAPI(client=client))

    await orch.refresh()
    await orch.request_unlock(pid)
    await orch.request_unlock(pid)
    profile = await orch.refresh()

    assert profile.coins == 1
    assert orch.cache.coins == 1
    assert orch.cache.unlocked == {pid}
    assert orch.secret_for(pid) == "volumetric light, dusk"
