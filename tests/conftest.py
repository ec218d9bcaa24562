"""Shared test fixtures for the dialog engine."""
import json
from typing import Any, Optional

import httpx
import pytest

from channels.loopback import LoopbackAdapter
from config.settings import TokenServiceConfig
from context.turn import TurnContext
from database.store_memory import MemoryStorage
from models.schemas import ActivityTypes
from oauth.token_client import UserTokenClient
from state.agent_state import ConversationState, UserState

T0 = 1_700_000_000_000


class FakeClock:
    """Millisecond clock the test moves by hand."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeTokenService:
    """
    In-memory token service behind httpx.MockTransport.

    tokens        (user_id, connection) -> token already held by the service
    magic_codes   code -> token granted when the code is redeemed
    exchangeable  SSO token -> token granted by /exchange
    """

    SIGN_IN_LINK = "https://login.test/signin?code=abc"

    def __init__(self):
        self.tokens: dict[tuple[str, str], str] = {}
        self.magic_codes: dict[str, str] = {}
        self.exchangeable: dict[str, str] = {}
        self.requests: list[httpx.Request] = []
        self.fail_with: Optional[int] = None

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def _token_body(self, token: str, connection: str, channel: str) -> dict[str, Any]:
        return {"token": token, "connectionName": connection, "channelId": channel}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with)

        path = request.url.path
        params = request.url.params
        user = params.get("userId")
        connection = params.get("connectionName")
        channel = params.get("channelId")

        if path == "/api/usertoken/GetToken":
            code = params.get("code")
            if code and code in self.magic_codes:
                self.tokens[(user, connection)] = self.magic_codes.pop(code)
            token = self.tokens.get((user, connection))
            if token is None:
                return httpx.Response(404)
            return httpx.Response(200, json=self._token_body(token, connection, channel))

        if path == "/api/usertoken/SignOut":
            self.tokens.pop((user, connection), None)
            return httpx.Response(200)

        if path == "/api/botsignin/GetSignInResource":
            return httpx.Response(200, json={
                "signInLink": self.SIGN_IN_LINK,
                "tokenExchangeResource": {"id": "tx-resource", "uri": "api://bot"},
            })

        if path == "/api/usertoken/exchange":
            body = json.loads(request.content or b"{}")
            token = self.exchangeable.get(body.get("token"))
            if token is None:
                return httpx.Response(400)
            self.tokens[(user, connection)] = token
            return httpx.Response(200, json=self._token_body(token, connection, channel))

        if path == "/api/usertoken/GetTokenOrSignInResource":
            token = self.tokens.get((user, connection))
            if token is not None:
                return httpx.Response(200, json={
                    "tokenResponse": self._token_body(token, connection, channel),
                })
            return httpx.Response(200, json={"signInResource": {"signInLink": self.SIGN_IN_LINK}})

        if path == "/api/usertoken/GetTokenStatus":
            return httpx.Response(200, json=[
                {"channelId": channel, "connectionName": c, "hasToken": True}
                for (u, c) in self.tokens if u == user
            ])

        return httpx.Response(404)


# ──────────────────────────────────────────────────────────────
#  Fixtures
# ──────────────────────────────────────────────────────────────

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def adapter() -> LoopbackAdapter:
    return LoopbackAdapter()


@pytest.fixture
def conversation_state(storage) -> ConversationState:
    return ConversationState(storage)


@pytest.fixture
def user_state(storage) -> UserState:
    return UserState(storage)


@pytest.fixture
def token_service() -> FakeTokenService:
    return FakeTokenService()


@pytest.fixture
def token_client(token_service) -> UserTokenClient:
    config = TokenServiceConfig(
        base_url="https://token.test",
        app_id="app-id",
        access_token="secret",
        retry_attempts=1,
        retry_backoff=0,
    )
    return UserTokenClient(config, transport=httpx.MockTransport(token_service.handler))


def make_turn(adapter: LoopbackAdapter, text: str = None,
              type: str = ActivityTypes.MESSAGE.value, **kwargs: Any) -> TurnContext:
    """Build a TurnContext for one inbound activity from the loopback adapter."""
    return TurnContext(adapter, adapter.make_activity(text, type=type, **kwargs))


@pytest.fixture
def turn(adapter):
    def _turn(text: str = None, type: str = ActivityTypes.MESSAGE.value, **kwargs: Any) -> TurnContext:
        return make_turn(adapter, text, type, **kwargs)
    return _turn


class DialogDriver:
    """Runs one turn per call against a DialogSet, saving conversation state after each."""

    def __init__(self, dialogs, conversation_state: ConversationState, adapter: LoopbackAdapter):
        self.dialogs = dialogs
        self.conversation_state = conversation_state
        self.adapter = adapter
        self.context: Optional[TurnContext] = None
        self.dc = None

    async def _run(self, context: TurnContext, action):
        self.context = context
        self.dc = await self.dialogs.create_context(context)
        result = await action(self.dc)
        await self.conversation_state.save_changes(context)
        return result

    async def begin(self, dialog_id: str, options: Any = None, text: str = "hi"):
        return await self._run(make_turn(self.adapter, text),
                               lambda dc: dc.begin_dialog(dialog_id, options))

    async def prompt(self, dialog_id: str, options: Any, text: str = "hi"):
        return await self._run(make_turn(self.adapter, text),
                               lambda dc: dc.prompt(dialog_id, options))

    async def send(self, text: str = None, type: str = ActivityTypes.MESSAGE.value, **kwargs: Any):
        return await self._run(make_turn(self.adapter, text, type, **kwargs),
                               lambda dc: dc.continue_dialog())


@pytest.fixture
def driver(conversation_state, adapter):
    def _driver(dialogs) -> DialogDriver:
        return DialogDriver(dialogs, conversation_state, adapter)
    return _driver
