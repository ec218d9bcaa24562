"""
SignInContext — drives one auth handler's OAuthFlow across turns.

Each handler has a persisted record (SignInStorage) moving through

  begin ──> continue ──> success
                 └─────> failure

The status selects the step through a dispatch table. A failure either
keeps the record (nothing arrived yet, the user may still finish) or
resets it (sign the flow out and delete the record) when the flow can no
longer complete.
"""
from __future__ import annotations

import structlog
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from context.turn import TurnContext
from models.schemas import SignInHandlerState, SignInStatus, TokenResponse
from oauth.errors import AuthConfigurationError
from oauth.flow import OAuthFlow
from oauth.sign_in_storage import SignInStorage
from utils.clock import Clock, now_ms

logger = structlog.get_logger()

SuccessHandler = Callable[[TurnContext, str], Awaitable[None]]
FailureHandler = Callable[[TurnContext, str, str], Awaitable[None]]

REASON_NO_TOKEN = "token was not received"
REASON_EXPIRED = "flow expired"
REASON_NO_CONTINUATION = "no continuation activity available"
REASON_CONVERSATION_MISSING = "conversation missing during the continuation flow"
REASON_CONVERSATION_CHANGED = "conversation changed during the continuation flow"
REASON_RESTARTED = "flow was restarted"


@dataclass
class AuthHandler:
    connection_name: str
    title: str = "Sign in"
    text: str = "login"
    flow: Optional[OAuthFlow] = None


class SignInContext:

    def __init__(
        self,
        storage: SignInStorage,
        handlers: dict[str, AuthHandler],
        context: TurnContext,
        handler_id: str = None,
        clock: Clock = now_ms,
    ):
        self.storage = storage
        self.handlers = handlers
        self.context = context
        self.handler_id = handler_id
        self._clock = clock

        self.handler: Optional[SignInHandlerState] = None
        self.auth_handler: Optional[AuthHandler] = None
        self._on_success: Optional[SuccessHandler] = None
        self._on_failure: Optional[FailureHandler] = None

        self._steps = {
            SignInStatus.BEGIN: self._begin,
            SignInStatus.CONTINUE: self._continue,
            SignInStatus.SUCCESS: self._success,
            SignInStatus.FAILURE: self._failure,
        }

    def on_success(self, handler: SuccessHandler) -> None:
        self._on_success = handler

    def on_failure(self, handler: FailureHandler) -> None:
        self._on_failure = handler

    @property
    def flow(self) -> OAuthFlow:
        return self.auth_handler.flow

    # ── Loading ───────────────────────────────────────────────

    async def load_handler(self) -> bool:
        """Resolve the handler record for this turn. False when there is nothing to drive."""
        if self.handler_id:
            handler = await self.storage.get(self.context, self.handler_id)
        else:
            handler = await self.storage.active(self.context)
        if handler is None and self.handler_id:
            handler = SignInHandlerState(id=self.handler_id, status=SignInStatus.BEGIN)
        if handler is None:
            return False

        auth_handler = self.handlers.get(handler.id)
        if auth_handler is None or auth_handler.flow is None:
            raise AuthConfigurationError(f"AuthHandler with ID {handler.id} not configured")

        self.handler = handler
        self.auth_handler = auth_handler

        if handler.status == SignInStatus.BEGIN:
            flow_state = await self.flow.get_flow_state(self.context)
            if flow_state.flow_started:
                # Started by the flow directly; don't prompt again.
                handler.status = SignInStatus.SUCCESS
                handler.state = flow_state
                await self.storage.set(self.context, handler)
                return True
            self.flow.state = flow_state
            await self.flow.sign_out(self.context)
        elif handler.state is not None:
            await self.flow.set_flow_state(self.context, handler.state)
        return True

    # ── Steps ─────────────────────────────────────────────────

    async def get_token(self) -> Optional[TokenResponse]:
        if self.handler is None and not await self.load_handler():
            return None
        step = self._steps[self.handler.status]
        logger.debug("sign_in_step", handler_id=self.handler.id, status=self.handler.status.value)
        return await step()

    async def get_user_token(self) -> TokenResponse:
        return await self.flow.get_user_token(self.context)

    async def sign_out(self) -> None:
        await self.storage.delete(self.context, self.handler.id)
        await self.flow.sign_out(self.context)
        logger.info("sign_in_signed_out", handler_id=self.handler.id)

    async def _begin(self) -> Optional[TokenResponse]:
        token = await self.flow.begin_flow(self.context)
        if token is not None and token.token:
            return await self._succeed(token)

        self.handler.status = SignInStatus.CONTINUE
        self.handler.state = self.flow.state.model_copy()
        self.handler.continuation_activity = self.context.activity.model_copy(deep=True)
        await self.storage.set(self.context, self.handler)
        return None

    async def _continue(self) -> Optional[TokenResponse]:
        token = await self.flow.continue_flow(self.context)
        if token.token and token.token.strip():
            return await self._succeed(token)
        return await self._failure()

    async def _success(self) -> Optional[TokenResponse]:
        token = await self.get_user_token()
        if token.token:
            return token
        return await self._continue()

    async def _succeed(self, token: TokenResponse) -> TokenResponse:
        self.handler.status = SignInStatus.SUCCESS
        self.handler.state = self.flow.state.model_copy()
        await self.storage.set(self.context, self.handler)
        logger.info("sign_in_succeeded", handler_id=self.handler.id)
        if self._on_success is not None:
            await self._on_success(self.context, self.handler.id)
        return token

    async def _failure(self) -> None:
        reason, reset = self._classify_failure()

        self.handler.status = SignInStatus.FAILURE
        self.handler.state = self.flow.state.model_copy()
        if reset:
            await self.flow.sign_out(self.context)
            await self.storage.delete(self.context, self.handler.id)
        # Otherwise the stored record stays at continue so the next activity can still finish.

        message = f"Failed to complete OAuth flow due to {reason}."
        logger.warning("sign_in_failed", handler_id=self.handler.id, reason=reason, reset=reset)
        if self._on_failure is not None:
            await self._on_failure(self.context, self.handler.id, message)
        return None

    def _classify_failure(self) -> tuple[str, bool]:
        continuation = self.handler.continuation_activity
        flow_state = self.flow.state

        if flow_state.flow_expires != 0 and self._clock() > flow_state.flow_expires:
            return REASON_EXPIRED, True
        if continuation is None:
            return REASON_NO_CONTINUATION, True
        if continuation.conversation is None or self.context.activity.conversation is None:
            return REASON_CONVERSATION_MISSING, True
        if continuation.conversation.id != self.context.activity.conversation.id:
            return REASON_CONVERSATION_CHANGED, True
        if not flow_state.flow_started:
            return REASON_RESTARTED, True
        return REASON_NO_TOKEN, False
