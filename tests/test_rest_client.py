"""Tests for CallCenterRestClient against a local aiohttp backend."""

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer as BackendServer

from backend.auth import TokenAuth
from backend.errors import AuthRejectedError, BackendError, SnapshotFetchError
from backend.rest_client import CallCenterRestClient

TOKEN = "tok-123"


def _authorized(request: web.Request) -> bool:
    return request.headers.get("Authorization") == f"Bearer {TOKEN}"


async def _login(request: web.Request) -> web.Response:
    body = await request.json()
    if body.get("password") != "secret":
        return web.json_response({"error": "Identifiants invalides", "errorKey": "BAD_CREDENTIALS"}, status=401)
    return web.json_response({
        "user": {"id": "s1", "loginId": body["loginId"], "role": "Superviseur"},
        "accessToken": TOKEN,
    })


async def _application_data(request: web.Request) -> web.Response:
    if not _authorized(request):
        return web.json_response({"error": "Token invalide", "errorKey": "TOKEN_INVALID"}, status=401)
    if request.app["fail_snapshot"]:
        return web.json_response({"error": "db down"}, status=500)
    return web.json_response({"users": [{"id": "a1", "role": "Agent"}], "campaigns": []})


async def _supervisor(request: web.Request) -> web.Response:
    if not _authorized(request):
        return web.json_response({}, status=401)
    body = await request.json()
    request.app["actions"].append((request.match_info["action"], body["agentId"]))
    return web.json_response({"message": f"{request.match_info['action']} ok"})


async def _logout(request: web.Request) -> web.Response:
    return web.Response(status=204)


async def _call_history(request: web.Request) -> web.Response:
    return web.json_response({"page": int(request.query["page"]), "limit": int(request.query["limit"]), "rows": []})


@pytest_asyncio.fixture
async def backend():
    app = web.Application()
    app["fail_snapshot"] = False
    app["actions"] = []
    app.router.add_post("/api/auth/login", _login)
    app.router.add_post("/api/auth/logout", _logout)
    app.router.add_get("/api/application-data", _application_data)
    app.router.add_get("/api/supervisor/call-history", _call_history)
    app.router.add_post("/api/supervisor/{action}", _supervisor)
    async with BackendServer(app) as server:
        yield server


@pytest_asyncio.fixture
async def client(backend):
    auth = TokenAuth()
    rest = CallCenterRestClient(str(backend.make_url("/api")), auth)
    await rest.startup()
    yield rest
    await rest.shutdown()


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_stores_token(self, client):
        user = await client.login("sup", "secret")
        assert user["role"] == "Superviseur"
        assert client._auth.token == TOKEN

    @pytest.mark.asyncio
    async def test_bad_credentials(self, client):
        with pytest.raises(AuthRejectedError) as info:
            await client.login("sup", "wrong")
        assert info.value.error_code == "BAD_CREDENTIALS"
        assert not client._auth.has_token()

    @pytest.mark.asyncio
    async def test_logout_invalidates_token(self, client):
        await client.login("sup", "secret")
        await client.logout()
        assert not client._auth.has_token()


class TestSnapshot:

    @pytest.mark.asyncio
    async def test_fetch(self, client):
        await client.login("sup", "secret")
        data = await client.get_application_data()
        assert data["users"] == [{"id": "a1", "role": "Agent"}]

    @pytest.mark.asyncio
    async def test_401_passes_through(self, client):
        with pytest.raises(AuthRejectedError) as info:
            await client.get_application_data()
        assert not isinstance(info.value, SnapshotFetchError)
        assert info.value.error_code == "TOKEN_INVALID"

    @pytest.mark.asyncio
    async def test_server_error_becomes_snapshot_error(self, client, backend):
        await client.login("sup", "secret")
        backend.app["fail_snapshot"] = True
        with pytest.raises(SnapshotFetchError):
            await client.get_application_data()

    @pytest.mark.asyncio
    async def test_unreachable_backend(self):
        rest = CallCenterRestClient("http://127.0.0.1:1/api", TokenAuth(TOKEN), timeout_s=1)
        await rest.startup()
        try:
            with pytest.raises(SnapshotFetchError):
                await rest.get_application_data()
        finally:
            await rest.shutdown()


class TestSupervisorActions:

    @pytest.mark.asyncio
    async def test_action_posts_agent_id(self, client, backend):
        await client.login("sup", "secret")
        message = await client.supervisor_action("force-pause", "a1")
        assert message == "force-pause ok"
        assert backend.app["actions"] == [("force-pause", "a1")]

    @pytest.mark.asyncio
    async def test_unknown_action_rejected_locally(self, client, backend):
        with pytest.raises(ValueError):
            await client.supervisor_action("eject", "a1")
        assert backend.app["actions"] == []

    @pytest.mark.asyncio
    async def test_action_requires_auth(self, client):
        with pytest.raises(BackendError):
            await client.supervisor_action("listen", "a1")

    @pytest.mark.asyncio
    async def test_call_history_paging(self, client):
        await client.login("sup", "secret")
        history = await client.get_call_history(page=2, limit=25)
        assert history == {"page": 2, "limit": 25, "rows": []}
