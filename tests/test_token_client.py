"""Tests for the user token service client."""
import base64
import json

import httpx
import pytest

from config.settings import TokenServiceConfig
from models.schemas import ConversationAccount, ConversationReference, TokenExchangeRequest
from oauth.errors import TokenServiceError
from oauth.token_client import UserTokenClient, encode_state


def retrying_client(handler, attempts: int = 3) -> UserTokenClient:
    config = TokenServiceConfig(base_url="https://token.test", retry_attempts=attempts, retry_backoff=0)
    return UserTokenClient(config, transport=httpx.MockTransport(handler))


class TestEncodeState:
    def test_round_trips_as_base64_json(self):
        reference = ConversationReference(channel_id="test", conversation=ConversationAccount(id="c1"))
        state = json.loads(base64.b64decode(encode_state("graph", reference, app_id="app")))
        assert state == {
            "connectionName": "graph",
            "conversation": {"channelId": "test", "conversation": {"id": "c1"}},
            "relatesTo": None,
            "msAppId": "app",
        }


class TestGetUserToken:
    @pytest.mark.asyncio
    async def test_returns_token(self, token_client, token_service):
        token_service.tokens[("u1", "graph")] = "abc"
        token = await token_client.get_user_token("u1", "graph", "test")
        assert token.token == "abc"
        assert token.connection_name == "graph"

        request = token_service.requests[-1]
        assert request.headers["Authorization"] == "Bearer secret"
        assert "code" not in request.url.params

    @pytest.mark.asyncio
    async def test_not_found_is_empty(self, token_client):
        token = await token_client.get_user_token("u1", "graph", "test")
        assert token.token is None

    @pytest.mark.asyncio
    async def test_redeems_code(self, token_client, token_service):
        token_service.magic_codes["123456"] = "abc"
        token = await token_client.get_user_token("u1", "graph", "test", "123456")
        assert token.token == "abc"

    @pytest.mark.asyncio
    async def test_client_error_raises(self, token_client, token_service):
        token_service.fail_with = 401
        with pytest.raises(TokenServiceError) as excinfo:
            await token_client.get_user_token("u1", "graph", "test")
        assert excinfo.value.status_code == 401
        assert excinfo.value.operation == "get_user_token"


class TestRetries:
    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"token": "abc"})

        token = await retrying_client(handler).get_user_token("u1", "graph", "test")
        assert token.token == "abc"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(500)

        with pytest.raises(TokenServiceError) as excinfo:
            await retrying_client(handler, attempts=2).get_user_token("u1", "graph", "test")
        assert excinfo.value.status_code == 500
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(404)

        token = await retrying_client(handler).get_user_token("u1", "graph", "test")
        assert token.token is None
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(403)

        with pytest.raises(TokenServiceError):
            await retrying_client(handler).get_token_status("u1", "test")
        assert len(attempts) == 1


class TestOtherOperations:
    @pytest.mark.asyncio
    async def test_exchange(self, token_client, token_service):
        token_service.exchangeable["sso"] = "abc"
        token = await token_client.exchange_token("u1", "graph", "test", TokenExchangeRequest(token="sso"))
        assert token.token == "abc"
        assert json.loads(token_service.requests[-1].content) == {"token": "sso"}

    @pytest.mark.asyncio
    async def test_refused_exchange_is_empty(self, token_client):
        token = await token_client.exchange_token("u1", "graph", "test", TokenExchangeRequest(token="nope"))
        assert token.token is None

    @pytest.mark.asyncio
    async def test_sign_out(self, token_client, token_service):
        token_service.tokens[("u1", "graph")] = "abc"
        await token_client.sign_out("u1", "graph", "test")
        assert token_service.tokens == {}
        assert token_service.requests[-1].method == "DELETE"

    @pytest.mark.asyncio
    async def test_token_status(self, token_client, token_service):
        token_service.tokens[("u1", "graph")] = "abc"
        token_service.tokens[("u2", "github")] = "def"
        statuses = await token_client.get_token_status("u1", "test")
        assert [(s.connection_name, s.has_token) for s in statuses] == [("graph", True)]

    @pytest.mark.asyncio
    async def test_sign_in_resource(self, token_client, token_service, turn):
        resource = await token_client.get_sign_in_resource("graph", turn("hi").activity)
        assert resource.sign_in_link == token_service.SIGN_IN_LINK
        assert resource.token_exchange_resource.uri == "api://bot"

        state = json.loads(base64.b64decode(token_service.requests[-1].url.params["state"]))
        assert state["connectionName"] == "graph"
        assert state["msAppId"] == "app-id"
        assert state["conversation"]["conversation"]["id"] == "convo1"

    @pytest.mark.asyncio
    async def test_token_or_sign_in_resource(self, token_client, token_service, turn):
        activity = turn("hi").activity
        missing = await token_client.get_token_or_sign_in_resource("user1", "graph", "test", activity)
        assert missing.token_response is None
        assert missing.sign_in_resource.sign_in_link == token_service.SIGN_IN_LINK

        token_service.tokens[("user1", "graph")] = "abc"
        found = await token_client.get_token_or_sign_in_resource("user1", "graph", "test", activity)
        assert found.token_response.token == "abc"

    @pytest.mark.asyncio
    async def test_close(self, token_client, token_service):
        token_service.tokens[("u1", "graph")] = "abc"
        await token_client.get_user_token("u1", "graph", "test")
        await token_client.close()
        assert token_client.client.is_closed
