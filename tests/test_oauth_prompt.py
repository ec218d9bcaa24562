"""Tests for OAuthPrompt: card, magic codes, invokes, expiry and retries."""
import pytest

from config.settings import load_settings, reset_settings
from context.turn import TurnContext
from dialogs import DialogSet
from models.schemas import Activity, ActivityTypes, DialogTurnStatus, PromptOptions, TokenResponse
from oauth.activities import TOKEN_EXCHANGE_INVOKE, TOKEN_RESPONSE_EVENT, VERIFY_STATE_INVOKE
from oauth.cards import OAUTH_CARD_CONTENT_TYPE
from oauth.errors import AuthConfigurationError
from prompts import OAuthPrompt, OAuthPromptSettings

CONNECTION = "graph"
PROMPT_TIMEOUT_MS = 900000


@pytest.fixture(autouse=True)
def prompt_settings(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(f"oauth:\n  prompt_timeout_ms: {PROMPT_TIMEOUT_MS}\n")
    load_settings(str(path))
    yield
    reset_settings()


@pytest.fixture
def dialogs(conversation_state) -> DialogSet:
    return DialogSet(conversation_state.create_property("DialogState"))


@pytest.fixture
def add_prompt(dialogs, token_client, clock):
    def _add(validator=None, **settings) -> OAuthPrompt:
        settings.setdefault("connection_name", CONNECTION)
        prompt = OAuthPrompt("login", OAuthPromptSettings(**settings), token_client, validator, clock=clock)
        dialogs.add(prompt)
        return prompt
    return _add


async def started(driver, dialogs, adapter, options="Please sign in"):
    convo = driver(dialogs)
    await convo.prompt("login", options)
    adapter.pop_sent()
    return convo


class TestBegin:
    def test_requires_settings(self, token_client):
        with pytest.raises(AuthConfigurationError):
            OAuthPrompt("login", None, token_client)

    @pytest.mark.asyncio
    async def test_cached_token_ends_immediately(self, dialogs, add_prompt, driver, adapter, token_service):
        add_prompt()
        token_service.tokens[("user1", CONNECTION)] = "cached-token"

        result = await driver(dialogs).prompt("login", "Please sign in")
        assert result.status == DialogTurnStatus.COMPLETE
        assert result.result.token == "cached-token"
        assert adapter.sent == []

    @pytest.mark.asyncio
    async def test_sends_card_and_waits(self, dialogs, add_prompt, driver, adapter, token_service):
        add_prompt(title="Log in", text="Sign in to Graph")
        convo = driver(dialogs)

        result = await convo.prompt("login", "Please sign in")
        assert result.status == DialogTurnStatus.WAITING

        sent = adapter.pop_sent()
        assert len(sent) == 1
        assert sent[0].text == "Please sign in"
        card = sent[0].attachments[0]
        assert card.content_type == OAUTH_CARD_CONTENT_TYPE
        assert card.content["connectionName"] == CONNECTION
        assert card.content["text"] == "Sign in to Graph"
        assert card.content["buttons"][0]["title"] == "Log in"
        assert card.content["buttons"][0]["value"] == token_service.SIGN_IN_LINK
        assert card.content["tokenExchangeResource"]["id"] == "tx-resource"
        assert convo.context.login_timeout == PROMPT_TIMEOUT_MS

    @pytest.mark.asyncio
    async def test_card_without_link(self, dialogs, add_prompt, driver, adapter):
        add_prompt(show_sign_in_link=False)
        await driver(dialogs).prompt("login", "Please sign in")
        assert adapter.pop_sent()[0].attachments[0].content["buttons"][0]["value"] is None

    @pytest.mark.asyncio
    async def test_expiry_recorded_in_frame_state(self, dialogs, add_prompt, driver, clock):
        add_prompt(timeout=60000)
        convo = driver(dialogs)
        await convo.prompt("login", "Please sign in")
        assert convo.dc.active_dialog.state["expires"] == clock.now + 60000
        assert convo.context.login_timeout == 60000

    @pytest.mark.asyncio
    async def test_timeout_defaults_from_settings(self, dialogs, add_prompt, driver, clock, tmp_path):
        path = tmp_path / "short.yaml"
        path.write_text("oauth:\n  prompt_timeout_ms: 5000\n")
        load_settings(str(path))
        add_prompt()
        convo = driver(dialogs)
        await convo.prompt("login", "Please sign in")
        assert convo.dc.active_dialog.state["expires"] == clock.now + 5000
        assert convo.context.login_timeout == 5000

    @pytest.mark.asyncio
    async def test_zero_timeout_is_honoured(self, dialogs, add_prompt, driver, clock):
        add_prompt(timeout=0)
        convo = driver(dialogs)
        await convo.prompt("login", "Please sign in")
        assert convo.dc.active_dialog.state["expires"] == clock.now
        assert convo.context.login_timeout == 0

    @pytest.mark.asyncio
    async def test_missing_identity_raises(self, add_prompt, adapter):
        prompt = add_prompt()
        context = TurnContext(adapter, Activity.message("hi", channel_id="test"))
        with pytest.raises(AuthConfigurationError):
            await prompt.get_user_token(context)


class TestMagicCode:
    @pytest.mark.asyncio
    async def test_code_in_sentence_is_redeemed(self, dialogs, add_prompt, driver, adapter, token_service):
        add_prompt()
        token_service.magic_codes["123456"] = "graph-token"
        convo = await started(driver, dialogs, adapter)

        result = await convo.send("Here is your code 123456, thanks")
        assert result.status == DialogTurnStatus.COMPLETE
        assert result.result.token == "graph-token"
        assert token_service.calls("/api/usertoken/GetToken")[-1].url.params["code"] == "123456"

    @pytest.mark.asyncio
    async def test_unknown_code_keeps_waiting(self, dialogs, add_prompt, driver, adapter, token_service):
        add_prompt()
        convo = await started(driver, dialogs, adapter)

        result = await convo.send("999999")
        assert result.status == DialogTurnStatus.WAITING

    @pytest.mark.asyncio
    async def test_text_without_code_sends_retry_prompt(self, dialogs, add_prompt, driver, adapter):
        add_prompt()
        convo = await started(
            driver, dialogs, adapter,
            PromptOptions(prompt="Please sign in", retry_prompt="Type the 6-digit code"),
        )

        result = await convo.send("hello")
        assert result.status == DialogTurnStatus.WAITING
        assert [a.text for a in adapter.pop_sent()] == ["Type the 6-digit code"]

    @pytest.mark.asyncio
    async def test_end_on_invalid_message(self, dialogs, add_prompt, driver, adapter):
        add_prompt(end_on_invalid_message=True)
        convo = await started(driver, dialogs, adapter)

        result = await convo.send("hello")
        assert result.status == DialogTurnStatus.COMPLETE
        assert result.result is None

    @pytest.mark.asyncio
    async def test_validator_sees_token(self, dialogs, add_prompt, driver, adapter, token_service):
        seen = []

        async def only_admins(prompt_context):
            seen.append(prompt_context.attempt_count)
            return prompt_context.recognized.succeeded and prompt_context.recognized.value.token == "admin"

        add_prompt(validator=only_admins)
        token_service.magic_codes["111111"] = "guest"
        token_service.magic_codes["222222"] = "admin"
        convo = await started(driver, dialogs, adapter)

        assert (await convo.send("111111")).status == DialogTurnStatus.WAITING
        result = await convo.send("222222")
        assert result.result.token == "admin"
        assert seen == [1, 2]


class TestExpiry:
    @pytest.mark.asyncio
    async def test_message_after_timeout_ends_with_none(self, dialogs, add_prompt, driver, adapter,
                                                        token_service, clock):
        add_prompt()
        token_service.magic_codes["123456"] = "graph-token"
        convo = await started(driver, dialogs, adapter)

        clock.advance(PROMPT_TIMEOUT_MS + 1)
        result = await convo.send("123456")
        assert result.status == DialogTurnStatus.COMPLETE
        assert result.result is None
        assert token_service.calls("/api/usertoken/GetToken")[-1].url.params.get("code") is None

    @pytest.mark.asyncio
    async def test_unrelated_event_after_timeout_keeps_waiting(self, dialogs, add_prompt, driver,
                                                               adapter, clock):
        add_prompt()
        convo = await started(driver, dialogs, adapter)

        clock.advance(PROMPT_TIMEOUT_MS + 1)
        result = await convo.send(type=ActivityTypes.EVENT.value, name="typing")
        assert result.status == DialogTurnStatus.WAITING


class TestEventsAndInvokes:
    @pytest.mark.asyncio
    async def test_token_response_event(self, dialogs, add_prompt, driver, adapter):
        add_prompt()
        convo = await started(driver, dialogs, adapter)

        result = await convo.send(
            type=ActivityTypes.EVENT.value, name=TOKEN_RESPONSE_EVENT,
            value={"token": "from-event", "connectionName": CONNECTION},
        )
        assert result.status == DialogTurnStatus.COMPLETE
        assert isinstance(result.result, TokenResponse)
        assert result.result.token == "from-event"

    @pytest.mark.asyncio
    async def test_verify_state_success(self, dialogs, add_prompt, driver, adapter, token_service):
        add_prompt()
        token_service.magic_codes["654321"] = "verified"
        convo = await started(driver, dialogs, adapter)

        result = await convo.send(type=ActivityTypes.INVOKE.value, name=VERIFY_STATE_INVOKE,
                                  value={"state": "654321"})
        assert result.result.token == "verified"
        assert convo.context.invoke_response.status == 200

    @pytest.mark.asyncio
    async def test_verify_state_unknown_code(self, dialogs, add_prompt, driver, adapter):
        add_prompt()
        convo = await started(driver, dialogs, adapter)

        result = await convo.send(type=ActivityTypes.INVOKE.value, name=VERIFY_STATE_INVOKE,
                                  value={"state": "000000"})
        assert result.status == DialogTurnStatus.WAITING
        assert convo.context.invoke_response.status == 404
        assert adapter.sent == []

    @pytest.mark.asyncio
    async def test_verify_state_service_error(self, dialogs, add_prompt, driver, adapter, token_service):
        add_prompt()
        convo = await started(driver, dialogs, adapter)

        token_service.fail_with = 500
        result = await convo.send(type=ActivityTypes.INVOKE.value, name=VERIFY_STATE_INVOKE,
                                  value={"state": "000000"})
        assert result.status == DialogTurnStatus.WAITING
        assert convo.context.invoke_response.status == 500

    @pytest.mark.asyncio
    async def test_token_exchange_success(self, dialogs, add_prompt, driver, adapter, token_service):
        add_prompt()
        token_service.exchangeable["sso-token"] = "graph-token"
        convo = await started(driver, dialogs, adapter)

        result = await convo.send(type=ActivityTypes.INVOKE.value, name=TOKEN_EXCHANGE_INVOKE,
                                  value={"id": "x1", "connectionName": CONNECTION, "token": "sso-token"})
        assert result.status == DialogTurnStatus.COMPLETE
        assert result.result.token == "graph-token"
        assert result.result.connection_name == CONNECTION
        assert result.result.channel_id == "test"

        response = convo.context.invoke_response
        assert response.status == 200
        assert response.body["id"] == "x1"
        assert response.body["connectionName"] == CONNECTION

    @pytest.mark.asyncio
    async def test_token_exchange_missing_token(self, dialogs, add_prompt, driver, adapter, token_service):
        add_prompt()
        convo = await started(driver, dialogs, adapter)

        result = await convo.send(type=ActivityTypes.INVOKE.value, name=TOKEN_EXCHANGE_INVOKE,
                                  value={"id": "x1", "connectionName": CONNECTION})
        assert result.status == DialogTurnStatus.WAITING
        response = convo.context.invoke_response
        assert response.status == 400
        assert "missing a TokenExchangeInvokeRequest" in response.body["failureDetail"]
        assert token_service.calls("/api/usertoken/exchange") == []

    @pytest.mark.asyncio
    async def test_token_exchange_connection_mismatch(self, dialogs, add_prompt, driver, adapter):
        add_prompt()
        convo = await started(driver, dialogs, adapter)

        await convo.send(type=ActivityTypes.INVOKE.value, name=TOKEN_EXCHANGE_INVOKE,
                         value={"id": "x1", "connectionName": "other", "token": "sso-token"})
        response = convo.context.invoke_response
        assert response.status == 400
        assert "does not match the ConnectionName" in response.body["failureDetail"]

    @pytest.mark.asyncio
    async def test_token_exchange_refused(self, dialogs, add_prompt, driver, adapter):
        add_prompt()
        convo = await started(driver, dialogs, adapter)

        result = await convo.send(type=ActivityTypes.INVOKE.value, name=TOKEN_EXCHANGE_INVOKE,
                                  value={"id": "x2", "connectionName": CONNECTION, "token": "bad"})
        assert result.status == DialogTurnStatus.WAITING
        response = convo.context.invoke_response
        assert response.status == 412
        assert response.body["id"] == "x2"
        assert response.body["failureDetail"] == "The bot is unable to exchange token. Proceed with regular login."


class TestOperations:
    @pytest.mark.asyncio
    async def test_reprompt_resends_card(self, dialogs, add_prompt, driver, adapter):
        add_prompt()
        convo = await started(driver, dialogs, adapter)

        await convo.dc.reprompt_dialog()
        sent = adapter.pop_sent()
        assert sent[0].text == "Please sign in"
        assert sent[0].attachments[0].content_type == OAUTH_CARD_CONTENT_TYPE

    @pytest.mark.asyncio
    async def test_sign_out_user(self, dialogs, add_prompt, turn, token_service):
        prompt = add_prompt()
        token_service.tokens[("user1", CONNECTION)] = "cached-token"

        await prompt.sign_out_user(turn("bye"))
        assert ("user1", CONNECTION) not in token_service.tokens
