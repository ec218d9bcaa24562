"""
Core data models for the dialog engine.
These are the universal types shared across all modules.

Wire records (Activity, token-service payloads) serialize with camelCase
aliases so persisted state and HTTP bodies keep the channel's field names.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for records exchanged with channels, storage or the token service."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class ActivityTypes(str, Enum):
    MESSAGE = "message"
    EVENT = "event"
    INVOKE = "invoke"
    INVOKE_RESPONSE = "invokeResponse"
    CONVERSATION_UPDATE = "conversationUpdate"
    TYPING = "typing"
    TRACE = "trace"
    END_OF_CONVERSATION = "endOfConversation"


class InputHints(str, Enum):
    ACCEPTING_INPUT = "acceptingInput"
    IGNORING_INPUT = "ignoringInput"
    EXPECTING_INPUT = "expectingInput"


class ActionTypes(str, Enum):
    IM_BACK = "imBack"
    OPEN_URL = "openUrl"
    SIGNIN = "signin"


class DialogTurnStatus(str, Enum):
    EMPTY = "empty"
    WAITING = "waiting"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    COMPLETE_AND_WAIT = "completeAndWait"


class DialogReason(str, Enum):
    BEGIN_CALLED = "beginCalled"
    CONTINUE_CALLED = "continueCalled"
    END_CALLED = "endCalled"
    REPLACE_CALLED = "replaceCalled"
    CANCEL_CALLED = "cancelCalled"
    NEXT_CALLED = "nextCalled"


class DialogEvents:
    """Names of the events the framework itself emits."""
    BEGIN_DIALOG = "beginDialog"
    REPROMPT_DIALOG = "repromptDialog"
    CANCEL_DIALOG = "cancelDialog"
    ACTIVITY_RECEIVED = "activityReceived"
    VERSION_CHANGED = "versionChanged"
    ERROR = "error"


class ListStyle(str, Enum):
    NONE = "none"
    AUTO = "auto"
    INLINE = "inline"
    LIST = "list"


class SignInStatus(str, Enum):
    BEGIN = "begin"
    CONTINUE = "continue"
    SUCCESS = "success"
    FAILURE = "failure"


# ──────────────────────────────────────────────────────────────
#  Activity — one inbound or outbound conversational record
# ──────────────────────────────────────────────────────────────

class ChannelAccount(WireModel):
    id: str = ""
    name: Optional[str] = None


class ConversationAccount(WireModel):
    id: str = ""
    name: Optional[str] = None
    is_group: Optional[bool] = None


class ConversationReference(WireModel):
    activity_id: Optional[str] = None
    user: Optional[ChannelAccount] = None
    bot: Optional[ChannelAccount] = None
    conversation: Optional[ConversationAccount] = None
    channel_id: Optional[str] = None
    locale: Optional[str] = None
    service_url: Optional[str] = None


class Attachment(WireModel):
    content_type: str
    content: Any = None
    name: Optional[str] = None


class CardAction(WireModel):
    type: str = ActionTypes.IM_BACK.value
    title: Optional[str] = None
    value: Any = None
    text: Optional[str] = None


class InvokeResponse(WireModel):
    status: int
    body: Any = None


class Activity(WireModel):
    type: str = ActivityTypes.MESSAGE.value
    id: Optional[str] = None
    timestamp: Optional[str] = None
    channel_id: Optional[str] = None
    service_url: Optional[str] = None
    from_property: Optional[ChannelAccount] = Field(default=None, alias="from")
    recipient: Optional[ChannelAccount] = None
    conversation: Optional[ConversationAccount] = None
    reply_to_id: Optional[str] = None
    relates_to: Optional[ConversationReference] = None
    text: Optional[str] = None
    speak: Optional[str] = None
    locale: Optional[str] = None
    input_hint: Optional[str] = None
    name: Optional[str] = None
    value: Any = None
    attachments: list[Attachment] = Field(default_factory=list)

    @property
    def is_message(self) -> bool:
        return self.type == ActivityTypes.MESSAGE.value

    def get_conversation_reference(self) -> ConversationReference:
        return ConversationReference(
            activity_id=self.id,
            user=self.from_property,
            bot=self.recipient,
            conversation=self.conversation,
            channel_id=self.channel_id,
            locale=self.locale,
            service_url=self.service_url,
        )

    @classmethod
    def message(cls, text: str = None, input_hint: Union[InputHints, str] = None,
                **kwargs) -> "Activity":
        hint = input_hint.value if isinstance(input_hint, InputHints) else input_hint
        return cls(type=ActivityTypes.MESSAGE.value, text=text, input_hint=hint, **kwargs)

    @classmethod
    def invoke_response(cls, status: int, body: Any = None) -> "Activity":
        return cls(
            type=ActivityTypes.INVOKE_RESPONSE.value,
            value=InvokeResponse(status=status, body=body).to_wire(),
        )


# ──────────────────────────────────────────────────────────────
#  Dialog stack — persisted between turns
# ──────────────────────────────────────────────────────────────

class DialogInstance(WireModel):
    """One frame of a dialog stack. `state` is private to the owning dialog."""
    id: str
    state: dict[str, Any] = Field(default_factory=dict)
    version: Optional[str] = None


class DialogState(WireModel):
    """A whole dialog stack. Index 0 is the active (top) frame."""
    dialog_stack: list[DialogInstance] = Field(default_factory=list)


class DialogTurnResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: DialogTurnStatus
    result: Any = None
    parent_ended: bool = False


class DialogEvent(BaseModel):
    name: str
    value: Any = None
    bubble: bool = False


# ──────────────────────────────────────────────────────────────
#  Prompts
# ──────────────────────────────────────────────────────────────

class Choice(WireModel):
    value: str
    action: Optional[CardAction] = None
    synonyms: list[str] = Field(default_factory=list)


class ChoiceFactoryOptions(WireModel):
    inline_separator: str = ", "
    inline_or: str = " or "
    inline_or_more: str = ", or "
    include_numbers: Optional[bool] = True


class PromptOptions(WireModel):
    prompt: Optional[Union[str, Activity]] = None
    retry_prompt: Optional[Union[str, Activity]] = None
    choices: list[Choice] = Field(default_factory=list)
    style: Optional[ListStyle] = None
    validations: Any = None
    recognize_language: Optional[str] = None


class PromptRecognizerResult(BaseModel):
    succeeded: bool = False
    value: Any = None


# ──────────────────────────────────────────────────────────────
#  Token service payloads
# ──────────────────────────────────────────────────────────────

class TokenResponse(WireModel):
    token: Optional[str] = None
    connection_name: Optional[str] = None
    channel_id: Optional[str] = None
    expiration: Optional[str] = None


class TokenExchangeRequest(WireModel):
    uri: Optional[str] = None
    token: Optional[str] = None
    id: Optional[str] = None


class TokenExchangeInvokeRequest(WireModel):
    id: Optional[str] = None
    connection_name: Optional[str] = None
    token: Optional[str] = None


class TokenExchangeInvokeResponse(WireModel):
    id: Optional[str] = None
    connection_name: Optional[str] = None
    failure_detail: Optional[str] = None


class TokenExchangeResource(WireModel):
    id: Optional[str] = None
    uri: Optional[str] = None
    provider_id: Optional[str] = None


class TokenPostResource(WireModel):
    sas_url: Optional[str] = None


class SignInResource(WireModel):
    sign_in_link: Optional[str] = None
    token_exchange_resource: Optional[TokenExchangeResource] = None
    token_post_resource: Optional[TokenPostResource] = None


class TokenOrSignInResourceResponse(WireModel):
    token_response: Optional[TokenResponse] = None
    sign_in_resource: Optional[SignInResource] = None


class TokenStatus(WireModel):
    channel_id: Optional[str] = None
    connection_name: Optional[str] = None
    has_token: bool = False
    service_provider_display_name: Optional[str] = None


# ──────────────────────────────────────────────────────────────
#  Sign-in flow state — persisted per handler
# ──────────────────────────────────────────────────────────────

class FlowState(WireModel):
    flow_started: bool = False
    flow_expires: int = 0


class SignInHandlerState(WireModel):
    id: str
    status: SignInStatus = SignInStatus.BEGIN
    state: Optional[FlowState] = None
    continuation_activity: Optional[Activity] = None
