"""Tests for the Parse identity service client and session providers."""
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from login_app.auth.errors import IdentityServiceError
from login_app.auth.identity_service import IdentityService, ParseIdentityService
from login_app.auth.schemas import User
from login_app.auth.session import SessionStore, TokenSessionProvider


def _make_service(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ParseIdentityService(
        server_url="https://parse.example.com/",
        application_id="app-id",
        client_key="client-key",
        client=client,
        **kwargs,
    )


class TestParseLogin:
    """Tests for ParseIdentityService.login."""

    @pytest.mark.asyncio
    async def test_login_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json={
                "objectId": "u-123",
                "username": "alice",
                "sessionToken": "r:abc",
            })

        service = _make_service(handler)
        user = await service.login("alice", "secret")

        request = seen["request"]
        assert request.method == "POST"
        assert str(request.url) == "https://parse.example.com/login"
        assert json.loads(request.content) == {"username": "alice", "password": "secret"}
        assert request.headers["X-Parse-Application-Id"] == "app-id"
        assert request.headers["X-Parse-Client-Key"] == "client-key"
        assert request.headers["X-Parse-Revocable-Session"] == "1"
        assert "X-Parse-REST-API-Key" not in request.headers
        assert user.object_id == "u-123"
        assert user.session_token == "r:abc"

    @pytest.mark.asyncio
    async def test_login_parse_error(self):
        def handler(request):
            return httpx.Response(404, json={"code": 101, "error": "Invalid username/password."})

        service = _make_service(handler)
        with pytest.raises(IdentityServiceError) as exc_info:
            await service.login("alice", "wrong")

        assert exc_info.value.message == "Invalid username/password."
        assert exc_info.value.code == 101

    @pytest.mark.asyncio
    async def test_login_non_json_error(self):
        def handler(request):
            return httpx.Response(502, text="<html>Bad Gateway</html>")

        service = _make_service(handler)
        with pytest.raises(IdentityServiceError) as exc_info:
            await service.login("alice", "secret")

        assert exc_info.value.message == "Bad Gateway"
        assert exc_info.value.code is None

    @pytest.mark.asyncio
    async def test_login_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused")

        service = _make_service(handler)
        with pytest.raises(IdentityServiceError, match="Connection refused"):
            await service.login("alice", "secret")

    @pytest.mark.asyncio
    async def test_login_records_current_user(self):
        def handler(request):
            return httpx.Response(200, json={"objectId": "u-123", "sessionToken": "r:abc"})

        store = SessionStore()
        service = _make_service(handler, session_store=store)

        assert await service.current_user() is None
        user = await service.login("alice", "secret")
        assert await service.current_user() is user

    @pytest.mark.asyncio
    async def test_rest_api_key_header(self):
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            return httpx.Response(200, json={"objectId": "u-123"})

        service = _make_service(handler, rest_api_key="rest-key", revocable_session=False)
        await service.login("alice", "secret")

        assert seen["headers"]["X-Parse-REST-API-Key"] == "rest-key"
        assert "X-Parse-Revocable-Session" not in seen["headers"]


class TestParseLoginWithApple:
    """Tests for ParseIdentityService.login_with_apple."""

    @pytest.mark.asyncio
    async def test_sends_apple_auth_data(self):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(201, json={
                "objectId": "u-new",
                "createdAt": "2022-09-30T10:00:00.000Z",
                "sessionToken": "r:new",
            })

        service = _make_service(handler)
        user = await service.login_with_apple("001234.abcd.0987", b"eyJhbGciOi.payload.sig")

        request = seen["request"]
        assert str(request.url) == "https://parse.example.com/users"
        assert json.loads(request.content) == {
            "authData": {"apple": {"id": "001234.abcd.0987", "token": "eyJhbGciOi.payload.sig"}}
        }
        assert user.object_id == "u-new"
        assert user.session_token == "r:new"
        assert user.auth_data == {"apple": {"id": "001234.abcd.0987", "token": "eyJhbGciOi.payload.sig"}}

    @pytest.mark.asyncio
    async def test_rejected_token(self):
        def handler(request):
            return httpx.Response(400, json={"code": 252, "error": "Apple auth is invalid for this user."})

        service = _make_service(handler)
        with pytest.raises(IdentityServiceError) as exc_info:
            await service.login_with_apple("u1", b"T")

        assert exc_info.value.message == "Apple auth is invalid for this user."


class TestParseBecome:
    """Tests for ParseIdentityService.become."""

    @pytest.mark.asyncio
    async def test_become_sends_session_header(self):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(200, json={"objectId": "u-123", "username": "alice"})

        service = _make_service(handler)
        user = await service.become("r:abc")

        request = seen["request"]
        assert request.method == "GET"
        assert str(request.url) == "https://parse.example.com/users/me"
        assert request.headers["X-Parse-Session-Token"] == "r:abc"
        assert user.session_token == "r:abc"
        assert user.username == "alice"


class TestSessionProviders:
    """Tests for SessionStore and TokenSessionProvider."""

    @pytest.mark.asyncio
    async def test_session_store_set_and_clear(self):
        store = SessionStore()
        user = User(objectId="u-1")

        store.set_current(user)
        assert await store.current_user() is user
        store.clear()
        assert await store.current_user() is None

    @pytest.mark.asyncio
    async def test_token_provider_resolves_user(self):
        service = MagicMock(spec=IdentityService)
        service.become = AsyncMock(return_value=User(objectId="u-1"))

        provider = TokenSessionProvider(service, "r:abc")
        user = await provider.current_user()

        assert user.object_id == "u-1"
        service.become.assert_awaited_once_with("r:abc")

    @pytest.mark.asyncio
    async def test_token_provider_invalid_session(self):
        service = MagicMock(spec=IdentityService)
        service.become = AsyncMock(
            side_effect=IdentityServiceError("Invalid session token", code=209)
        )

        provider = TokenSessionProvider(service, "r:revoked")
        assert await provider.current_user() is None

    @pytest.mark.asyncio
    async def test_token_provider_without_token(self):
        service = MagicMock(spec=IdentityService)
        service.become = AsyncMock()

        assert await TokenSessionProvider(service, None).current_user() is None
        service.become.assert_not_called()
