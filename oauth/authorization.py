"""
Authorization — multi-handler sign-in manager.

Holds one AuthHandler (connection name + card text + OAuthFlow) per
configured handler id and routes each turn to the handler whose sign-in
is in progress.
"""
from __future__ import annotations

import structlog
from dataclasses import dataclass
from typing import Optional

from config.settings import OAuthConfig
from context.turn import TurnContext
from database.store_base import Storage
from models.schemas import TokenResponse
from oauth.errors import AuthConfigurationError
from oauth.flow import DEFAULT_FLOW_EXPIRY_MS, OAuthFlow
from oauth.sign_in_context import AuthHandler, FailureHandler, SignInContext, SuccessHandler
from oauth.sign_in_storage import SignInStorage
from oauth.token_client import UserTokenClient
from utils.clock import Clock, now_ms

logger = structlog.get_logger()


@dataclass
class SignInResult:
    token: Optional[TokenResponse]
    handler_id: Optional[str]


class Authorization:

    def __init__(
        self,
        storage: Storage,
        handlers: dict[str, AuthHandler],
        token_client: UserTokenClient,
        flow_expiry_ms: int = DEFAULT_FLOW_EXPIRY_MS,
        clock: Clock = now_ms,
    ):
        if storage is None:
            raise AuthConfigurationError("Storage is required for Authorization")
        if not handlers:
            raise AuthConfigurationError("The authorization does not have any auth handlers")

        self.storage = storage
        self.handlers = handlers
        self._clock = clock
        self._on_success: Optional[SuccessHandler] = None
        self._on_failure: Optional[FailureHandler] = None

        for handler_id, handler in handlers.items():
            if not handler.connection_name:
                raise AuthConfigurationError(
                    f"AuthHandler {handler_id} is missing a connection name"
                )
            handler.flow = OAuthFlow(
                storage, handler.connection_name, token_client,
                card_title=handler.title, card_text=handler.text,
                expiry_ms=flow_expiry_ms, clock=clock,
            )
        self.sign_in_storage = SignInStorage(storage, list(handlers))
        logger.info("authorization_configured", handlers=list(handlers))

    @classmethod
    def from_settings(cls, storage: Storage, config: OAuthConfig,
                      token_client: UserTokenClient, clock: Clock = now_ms) -> "Authorization":
        handlers = {
            handler_id: AuthHandler(h.connection_name, h.title, h.text)
            for handler_id, h in config.handlers.items()
        }
        return cls(storage, handlers, token_client, config.flow_expiry_ms, clock)

    def on_sign_in_success(self, handler: SuccessHandler) -> None:
        self._on_success = handler

    def on_sign_in_failure(self, handler: FailureHandler) -> None:
        self._on_failure = handler

    def _resolve(self, handler_id: str) -> AuthHandler:
        handler = self.handlers.get(handler_id)
        if handler is None:
            raise AuthConfigurationError(f"AuthHandler with ID {handler_id} not configured")
        return handler

    def _sign_in_context(self, context: TurnContext, handler_id: str = None) -> SignInContext:
        sign_in = SignInContext(self.sign_in_storage, self.handlers, context, handler_id, self._clock)
        if self._on_success is not None:
            sign_in.on_success(self._on_success)
        if self._on_failure is not None:
            sign_in.on_failure(self._on_failure)
        return sign_in

    # ── Public API ────────────────────────────────────────────

    async def get_token(self, context: TurnContext, handler_id: str) -> TokenResponse:
        """Cached token for `handler_id`, without starting a flow."""
        return await self._resolve(handler_id).flow.get_user_token(context)

    async def begin_or_continue_flow(self, context: TurnContext,
                                     handler_id: str = None) -> SignInResult:
        """
        Advance sign-in for `handler_id`, or for whichever handler has a
        flow in progress when no id is given.
        """
        if handler_id is not None:
            self._resolve(handler_id)
        sign_in = self._sign_in_context(context, handler_id)
        if not await sign_in.load_handler():
            return SignInResult(token=None, handler_id=None)
        token = await sign_in.get_token()
        return SignInResult(token=token, handler_id=sign_in.handler.id)

    async def sign_out(self, context: TurnContext, handler_id: str = None) -> None:
        """Sign out of one handler, or all of them."""
        handler_ids = [handler_id] if handler_id is not None else list(self.handlers)
        for hid in handler_ids:
            handler = self._resolve(hid)
            await self.sign_in_storage.delete(context, hid)
            await handler.flow.sign_out(context)
        logger.info("authorization_signed_out", handlers=handler_ids)
