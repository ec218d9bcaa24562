"""
TurnContext — everything one turn knows about itself.

A turn is the processing of exactly one inbound Activity. Per-turn values
that other components need (the `turn` memory record, loaded agent state,
the login timeout advertised by an OAuth card, the invoke response) are
explicit attributes here rather than entries in a string-keyed bag.
"""
from __future__ import annotations

import structlog
from typing import TYPE_CHECKING, Any, Optional, Union

from models.schemas import (
    Activity, ActivityTypes, ChannelAccount, InputHints, InvokeResponse,
)

if TYPE_CHECKING:
    from channels.base import ChannelAdapter

logger = structlog.get_logger()


class TurnContext:
    """Context for a single inbound activity."""

    def __init__(self, adapter: "ChannelAdapter", activity: Activity):
        if activity is None:
            raise ValueError("TurnContext requires an activity")
        self.adapter = adapter
        self.activity = activity
        self.responded = False

        self.turn_memory: Optional[dict[str, Any]] = None
        self.state_cache: dict[str, Any] = {}
        self.login_timeout: Optional[int] = None
        self.invoke_response: Optional[InvokeResponse] = None

    # ── Identity shortcuts ────────────────────────────────────

    @property
    def channel_id(self) -> Optional[str]:
        return self.activity.channel_id

    @property
    def conversation_id(self) -> Optional[str]:
        return self.activity.conversation.id if self.activity.conversation else None

    @property
    def user_id(self) -> Optional[str]:
        return self.activity.from_property.id if self.activity.from_property else None

    # ── Sending ───────────────────────────────────────────────

    async def send_activity(
        self,
        activity_or_text: Union[Activity, str],
        speak: str = None,
        input_hint: Union[InputHints, str] = None,
    ) -> Optional[str]:
        if isinstance(activity_or_text, str):
            activity = Activity.message(activity_or_text, input_hint=input_hint, speak=speak)
        else:
            activity = activity_or_text
        ids = await self.send_activities([activity])
        return ids[0] if ids else None

    async def send_activities(self, activities: list[Activity]) -> list[str]:
        outbound: list[Activity] = []
        for activity in activities:
            out = self._apply_conversation_reference(activity.model_copy(deep=True))
            if out.type == ActivityTypes.MESSAGE.value and not out.input_hint:
                out.input_hint = InputHints.ACCEPTING_INPUT.value
            outbound.append(out)

        ids: list[str] = []
        to_adapter: list[Activity] = []
        for out in outbound:
            if out.type == ActivityTypes.INVOKE_RESPONSE.value:
                self.invoke_response = InvokeResponse.model_validate(out.value or {"status": 200})
            else:
                to_adapter.append(out)
            if out.type != ActivityTypes.TRACE.value:
                self.responded = True

        if to_adapter:
            ids = await self.adapter.send_activities(self, to_adapter)
        logger.debug("turn_activities_sent",
                     count=len(outbound),
                     conversation_id=self.conversation_id)
        return ids

    def _apply_conversation_reference(self, activity: Activity) -> Activity:
        inbound = self.activity
        activity.channel_id = activity.channel_id or inbound.channel_id
        activity.service_url = activity.service_url or inbound.service_url
        activity.conversation = activity.conversation or inbound.conversation
        if activity.from_property is None and inbound.recipient is not None:
            activity.from_property = ChannelAccount(id=inbound.recipient.id, name=inbound.recipient.name)
        if activity.recipient is None and inbound.from_property is not None:
            activity.recipient = ChannelAccount(id=inbound.from_property.id, name=inbound.from_property.name)
        if activity.reply_to_id is None:
            activity.reply_to_id = inbound.id
        return activity
