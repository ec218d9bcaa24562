"""
OAuthPrompt — asks the user to sign in and ends with their token.

begin sends an OAuth card unless a token is already cached. While the
frame is waiting, any of these can complete it:

  tokens/response event       value is the token
  signin/verifyState invoke   value.state is a magic code
  signin/tokenExchange invoke SSO token exchanged for a connection token
  message                     a 6-digit magic code typed by the user

Every such activity arriving after the frame's expiry ends the prompt
with None. Invokes always get an invoke response.
"""
from __future__ import annotations

import structlog
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Union

from config.settings import get_settings
from context.turn import TurnContext
from dialogs.dialog import Dialog
from models.schemas import (
    Activity, DialogInstance, DialogReason, DialogTurnResult, InputHints, PromptOptions,
    PromptRecognizerResult, TokenExchangeInvokeRequest, TokenExchangeInvokeResponse,
    TokenExchangeRequest, TokenResponse,
)
from oauth.activities import SignInActivityKind, classify, extract_magic_code
from oauth.cards import oauth_card
from oauth.errors import AuthConfigurationError
from oauth.token_client import UserTokenClient
from prompts.prompt import ATTEMPT_COUNT_KEY, PromptValidator, PromptValidatorContext, as_activity
from utils.clock import Clock, now_ms

if TYPE_CHECKING:
    from dialogs.dialog_context import DialogContext

logger = structlog.get_logger()

_MISSING_EXCHANGE_REQUEST = (
    "The bot received an InvokeActivity that is missing a TokenExchangeInvokeRequest value. "
    "This is required to be sent with the InvokeActivity."
)
_EXCHANGE_FAILED = "The bot is unable to exchange token. Proceed with regular login."

# Activities that can complete a sign-in, and so are subject to expiry.
_SIGN_IN_KINDS = {
    SignInActivityKind.MESSAGE,
    SignInActivityKind.TOKEN_RESPONSE,
    SignInActivityKind.VERIFY_STATE,
    SignInActivityKind.TOKEN_EXCHANGE,
}


@dataclass
class OAuthPromptSettings:
    connection_name: str
    title: str = "Sign in"
    text: Optional[str] = None
    timeout: Optional[int] = None                  # ms; oauth.prompt_timeout_ms when unset
    end_on_invalid_message: bool = False
    show_sign_in_link: Optional[bool] = None


class OAuthPrompt(Dialog):

    def __init__(
        self,
        dialog_id: str,
        settings: OAuthPromptSettings,
        token_client: UserTokenClient,
        validator: PromptValidator = None,
        clock: Clock = now_ms,
    ):
        super().__init__(dialog_id)
        if settings is None:
            raise AuthConfigurationError("OAuthPrompt requires settings")
        self.settings = settings
        self._token_client = token_client
        self._validator = validator
        self._clock = clock

        self._recognizers = {
            SignInActivityKind.TOKEN_RESPONSE: self._from_token_response,
            SignInActivityKind.VERIFY_STATE: self._from_verify_state,
            SignInActivityKind.TOKEN_EXCHANGE: self._from_token_exchange,
            SignInActivityKind.MESSAGE: self._from_message,
        }

    @property
    def timeout_ms(self) -> int:
        if self.settings.timeout is not None:
            return self.settings.timeout
        return get_settings().oauth.prompt_timeout_ms

    # ── Lifecycle ─────────────────────────────────────────────

    async def begin_dialog(self, dc: "DialogContext", options: Any = None) -> DialogTurnResult:
        opts = self._coerce(options)
        state = dc.active_dialog.state
        state["state"] = {}
        state["options"] = opts.to_wire()
        state["expires"] = self._clock() + self.timeout_ms

        token = await self.get_user_token(dc.context)
        if token.token:
            logger.info("oauth_prompt_token_cached", dialog_id=self.id)
            return await dc.end_dialog(token)

        await self.send_oauth_card(dc.context, opts.prompt)
        return Dialog.END_OF_TURN

    async def continue_dialog(self, dc: "DialogContext") -> DialogTurnResult:
        instance = dc.active_dialog
        state = instance.state
        kind = classify(dc.context.activity)

        if kind in _SIGN_IN_KINDS and self._clock() > state.get("expires", 0):
            logger.info("oauth_prompt_timed_out", dialog_id=self.id)
            return await dc.end_dialog(None)

        if state.get("state") is None:
            state["state"] = {}
        inner = state["state"]
        options = PromptOptions.model_validate(state.get("options") or {})

        recognized = await self.recognize_token(dc.context)
        inner.setdefault(ATTEMPT_COUNT_KEY, 0)

        if self._validator is not None:
            inner[ATTEMPT_COUNT_KEY] += 1
            is_valid = await self._validator(
                PromptValidatorContext(dc.context, recognized, inner, options)
            )
        else:
            is_valid = recognized.succeeded

        if is_valid:
            logger.info("oauth_prompt_signed_in", dialog_id=self.id)
            return await dc.end_dialog(recognized.value)

        if kind == SignInActivityKind.MESSAGE and self.settings.end_on_invalid_message:
            return await dc.end_dialog(None)

        if (not dc.context.responded and kind == SignInActivityKind.MESSAGE
                and options.retry_prompt is not None):
            await dc.context.send_activity(as_activity(options.retry_prompt))
        return Dialog.END_OF_TURN

    async def resume_dialog(self, dc: "DialogContext", reason: DialogReason,
                            result: Any = None) -> DialogTurnResult:
        await self.reprompt_dialog(dc.context, dc.active_dialog)
        return Dialog.END_OF_TURN

    async def reprompt_dialog(self, context: TurnContext, instance: DialogInstance) -> None:
        options = PromptOptions.model_validate(instance.state.get("options") or {})
        await self.send_oauth_card(context, options.prompt)

    # ── Token access ──────────────────────────────────────────

    async def get_user_token(self, context: TurnContext, code: str = None) -> TokenResponse:
        channel_id, user_id = self._identity(context)
        return await self._token_client.get_user_token(
            user_id, self.settings.connection_name, channel_id, code,
        )

    async def sign_out_user(self, context: TurnContext) -> None:
        channel_id, user_id = self._identity(context)
        await self._token_client.sign_out(user_id, self.settings.connection_name, channel_id)

    async def send_oauth_card(self, context: TurnContext,
                              prompt: Union[str, Activity, None] = None) -> None:
        sign_in_resource = await self._token_client.get_sign_in_resource(
            self.settings.connection_name, context.activity,
        )
        card = oauth_card(
            self.settings.connection_name, self.settings.title, self.settings.text,
            sign_in_resource, include_link=self.settings.show_sign_in_link is not False,
        )
        activity = as_activity(prompt) or Activity.message()
        activity.attachments.append(card)
        activity.input_hint = activity.input_hint or InputHints.ACCEPTING_INPUT.value

        if context.login_timeout is None:
            context.login_timeout = self.timeout_ms
        await context.send_activity(activity)
        logger.info("oauth_card_sent", dialog_id=self.id, connection_name=self.settings.connection_name)

    # ── Recognition ───────────────────────────────────────────

    async def recognize_token(self, context: TurnContext) -> PromptRecognizerResult:
        recognizer = self._recognizers.get(classify(context.activity))
        token = await recognizer(context) if recognizer is not None else None
        if token is not None and token.token:
            return PromptRecognizerResult(succeeded=True, value=token)
        return PromptRecognizerResult(succeeded=False)

    async def _from_token_response(self, context: TurnContext) -> Optional[TokenResponse]:
        value = context.activity.value
        return TokenResponse.model_validate(value) if isinstance(value, dict) else None

    async def _from_verify_state(self, context: TurnContext) -> Optional[TokenResponse]:
        code = (context.activity.value or {}).get("state")
        try:
            token = await self.get_user_token(context, code)
        except Exception as e:
            logger.error("oauth_verify_state_failed", dialog_id=self.id, error=str(e))
            await context.send_activity(Activity.invoke_response(500))
            return None
        await context.send_activity(Activity.invoke_response(200 if token.token else 404))
        return token

    async def _from_token_exchange(self, context: TurnContext) -> Optional[TokenResponse]:
        value = context.activity.value
        request = TokenExchangeInvokeRequest.model_validate(value) if isinstance(value, dict) else None
        connection_name = self.settings.connection_name

        if request is None or "token" not in value:
            await self._exchange_response(context, 400, request, _MISSING_EXCHANGE_REQUEST)
            return None
        if request.connection_name != connection_name:
            await self._exchange_response(
                context, 400, request,
                "The bot received an InvokeActivity with a TokenExchangeInvokeRequest containing "
                "a ConnectionName that does not match the ConnectionName expected by the bot's "
                "active OAuthPrompt. Ensure these names match when sending the InvokeActivity.",
            )
            return None

        channel_id, user_id = self._identity(context)
        try:
            exchanged = await self._token_client.exchange_token(
                user_id, connection_name, channel_id, TokenExchangeRequest(token=request.token),
            )
        except Exception as e:
            logger.warning("oauth_token_exchange_failed", dialog_id=self.id, error=str(e))
            exchanged = None

        if exchanged is None or not exchanged.token:
            await self._exchange_response(context, 412, request, _EXCHANGE_FAILED)
            return None

        await self._exchange_response(context, 200, request, None)
        return TokenResponse(
            channel_id=channel_id,
            connection_name=connection_name,
            token=exchanged.token,
            expiration=None,
        )

    async def _from_message(self, context: TurnContext) -> Optional[TokenResponse]:
        code = extract_magic_code(context.activity.text)
        if code is None:
            return None
        return await self.get_user_token(context, code)

    async def _exchange_response(self, context: TurnContext, status: int,
                                 request: Optional[TokenExchangeInvokeRequest],
                                 failure_detail: Optional[str]) -> None:
        body = TokenExchangeInvokeResponse(
            id=request.id if request else None,
            connection_name=self.settings.connection_name,
            failure_detail=failure_detail,
        )
        await context.send_activity(Activity.invoke_response(status, body.model_dump(by_alias=True)))

    # ── Helpers ───────────────────────────────────────────────

    @staticmethod
    def _coerce(options: Any) -> PromptOptions:
        if options is None:
            return PromptOptions()
        if isinstance(options, PromptOptions):
            return options
        if isinstance(options, dict):
            return PromptOptions.model_validate(options)
        return PromptOptions(prompt=options)

    @staticmethod
    def _identity(context: TurnContext) -> tuple[str, str]:
        if not context.channel_id or not context.user_id:
            raise AuthConfigurationError("OAuthPrompt requires channelId and from.id to be set")
        return context.channel_id, context.user_id
