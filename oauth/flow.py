"""
OAuthFlow — storage-backed sign-in for one connection outside a dialog.

  begin_flow     token already cached? return it. Otherwise send a sign-in
                 card and remember that a flow is in progress (expires in
                 OAuthConfig.flow_expiry_ms).
  continue_flow  read the completion out of the inbound activity: a magic
                 code in a message, a verifyState invoke, or an SSO
                 tokenExchange invoke (each exchange id is handled once).
  sign_out       drop the user's token and mark their flow not started.

Flow state is persisted at oauth/{channel}/{conversation}/{user}/flowState.
"""
from __future__ import annotations

import structlog
from typing import Optional

from context.turn import TurnContext
from database.store_base import Storage
from models.schemas import (
    Activity, FlowState, TokenExchangeInvokeRequest, TokenExchangeRequest, TokenResponse,
)
from oauth.activities import SignInActivityKind, classify, extract_magic_code
from oauth.cards import oauth_card
from oauth.errors import AuthConfigurationError
from oauth.token_client import UserTokenClient
from utils.clock import Clock, now_ms

logger = structlog.get_logger()

DEFAULT_FLOW_EXPIRY_MS = 30000
SESSION_EXPIRED_TEXT = "Sign-in session expired. Please try again."


class OAuthFlow:

    def __init__(
        self,
        storage: Storage,
        connection_name: str,
        token_client: UserTokenClient,
        card_title: str = "Sign in",
        card_text: str = "login",
        expiry_ms: int = DEFAULT_FLOW_EXPIRY_MS,
        clock: Clock = now_ms,
    ):
        self.storage = storage
        self.connection_name = connection_name
        self.token_client = token_client
        self.card_title = card_title
        self.card_text = card_text
        self.expiry_ms = expiry_ms
        self._clock = clock

        self.state = FlowState()
        self.token_exchange_id: Optional[str] = None

        self._completions = {
            SignInActivityKind.MESSAGE: self._code_from_message,
            SignInActivityKind.VERIFY_STATE: self._code_from_verify_state,
            SignInActivityKind.TOKEN_EXCHANGE: self._exchange,
        }

    # ── Public API ────────────────────────────────────────────

    async def get_user_token(self, context: TurnContext, code: str = None) -> TokenResponse:
        channel_id, user_id = self._identity(context)
        return await self.token_client.get_user_token(user_id, self.connection_name, channel_id, code)

    async def begin_flow(self, context: TurnContext) -> Optional[TokenResponse]:
        self.state = await self.get_flow_state(context)
        if not self.connection_name:
            raise AuthConfigurationError("connectionName is not set in the auth config")

        channel_id, user_id = self._identity(context)
        output = await self.token_client.get_token_or_sign_in_resource(
            user_id, self.connection_name, channel_id, context.activity,
        )

        if output.token_response is not None and output.token_response.token:
            self.state = FlowState(flow_started=False, flow_expires=0)
            await self.set_flow_state(context, self.state)
            logger.info("oauth_flow_token_cached", connection_name=self.connection_name)
            return output.token_response

        card = oauth_card(self.connection_name, self.card_title, self.card_text,
                          output.sign_in_resource)
        await context.send_activity(Activity.message(attachments=[card]))

        self.state = FlowState(flow_started=True, flow_expires=self._clock() + self.expiry_ms)
        await self.set_flow_state(context, self.state)
        logger.info("oauth_flow_begun", connection_name=self.connection_name,
                    expires=self.state.flow_expires)
        return None

    async def continue_flow(self, context: TurnContext) -> TokenResponse:
        self.state = await self.get_flow_state(context)

        if self.state.flow_expires != 0 and self._clock() > self.state.flow_expires:
            self.state.flow_started = False
            logger.warning("oauth_flow_expired", connection_name=self.connection_name)
            await context.send_activity(SESSION_EXPIRED_TEXT)
            return TokenResponse()

        handler = self._completions.get(classify(context.activity))
        if handler is None:
            return TokenResponse()
        return await handler(context)

    async def sign_out(self, context: TurnContext) -> None:
        # One flow serves every user; reload this user's record first.
        self.state = await self.get_flow_state(context)
        channel_id, user_id = self._identity(context)
        await self.token_client.sign_out(user_id, self.connection_name, channel_id)
        self.state.flow_started = False
        self.state.flow_expires = 0
        await self.set_flow_state(context, self.state)
        logger.info("oauth_flow_signed_out", connection_name=self.connection_name)

    async def get_flow_state(self, context: TurnContext) -> FlowState:
        key = self._key(context)
        items = await self.storage.read([key])
        item = items.get(key)
        return FlowState.model_validate(item) if item else FlowState()

    async def set_flow_state(self, context: TurnContext, state: FlowState) -> None:
        item = state.to_wire()
        item["eTag"] = "*"
        await self.storage.write({self._key(context): item})

    # ── Completion sources ────────────────────────────────────

    async def _code_from_message(self, context: TurnContext) -> TokenResponse:
        text = context.activity.text or ""
        code = extract_magic_code(text) or text.strip()
        return await self.get_user_token(context, code)

    async def _code_from_verify_state(self, context: TurnContext) -> TokenResponse:
        value = context.activity.value or {}
        return await self.get_user_token(context, value.get("state"))

    async def _exchange(self, context: TurnContext) -> TokenResponse:
        request = TokenExchangeInvokeRequest.model_validate(context.activity.value or {})
        if request.id and request.id == self.token_exchange_id:
            logger.debug("oauth_flow_duplicate_exchange", exchange_id=request.id)
            return TokenResponse()
        self.token_exchange_id = request.id

        channel_id, user_id = self._identity(context)
        token = await self.token_client.exchange_token(
            user_id, self.connection_name, channel_id,
            TokenExchangeRequest(token=request.token),
        )
        if token.token:
            self.state.flow_started = False
            await self.set_flow_state(context, self.state)
            return token

        self.state.flow_started = True
        return TokenResponse()

    # ── Helpers ───────────────────────────────────────────────

    @staticmethod
    def _identity(context: TurnContext) -> tuple[str, str]:
        if not context.channel_id or not context.user_id:
            raise AuthConfigurationError("OAuthFlow requires channelId and from.id to be set")
        return context.channel_id, context.user_id

    @staticmethod
    def _key(context: TurnContext) -> str:
        channel_id = context.channel_id
        conversation_id = context.conversation_id
        user_id = context.user_id
        if not channel_id or not conversation_id or not user_id:
            raise AuthConfigurationError("Activity is missing channelId, conversation.id or from.id")
        return f"oauth/{channel_id}/{conversation_id}/{user_id}/flowState"
