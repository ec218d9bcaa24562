"""
LoopbackAdapter — in-process transport for local runs and tests.

Inbound activities get channel/conversation/user defaults filled in so a
caller can drive turns with nothing but text; outbound activities are
recorded in order on `sent`.
"""
from __future__ import annotations

import uuid
import structlog
from datetime import datetime, timezone
from typing import Any, Optional

from channels.base import ChannelAdapter, TurnHandler
from context.turn import TurnContext
from models.schemas import (
    Activity, ActivityTypes, ChannelAccount, ConversationAccount, InvokeResponse,
)

logger = structlog.get_logger()


class LoopbackAdapter(ChannelAdapter):

    def __init__(
        self,
        channel_id: str = "test",
        conversation_id: str = "convo1",
        user_id: str = "user1",
        bot_id: str = "bot",
        locale: Optional[str] = None,
    ):
        self.channel_id = channel_id
        self.conversation = ConversationAccount(id=conversation_id)
        self.user = ChannelAccount(id=user_id, name="User")
        self.bot = ChannelAccount(id=bot_id, name="Bot")
        self.locale = locale
        self.sent: list[Activity] = []

    async def _do_send(self, context: TurnContext, activity: Activity) -> None:
        self.sent.append(activity)
        logger.debug("loopback_activity_recorded",
                     activity_type=activity.type, text=activity.text)

    def make_activity(self, text: str = None, type: str = ActivityTypes.MESSAGE.value,
                      **kwargs: Any) -> Activity:
        activity = Activity(type=type, text=text, **kwargs)
        return self._fill_defaults(activity)

    def _fill_defaults(self, activity: Activity) -> Activity:
        activity.id = activity.id or uuid.uuid4().hex[:16]
        activity.timestamp = activity.timestamp or datetime.now(timezone.utc).isoformat()
        activity.channel_id = activity.channel_id or self.channel_id
        activity.conversation = activity.conversation or self.conversation
        activity.from_property = activity.from_property or self.user
        activity.recipient = activity.recipient or self.bot
        activity.locale = activity.locale or self.locale
        return activity

    async def process_activity(self, activity: Activity, logic: TurnHandler) -> Optional[InvokeResponse]:
        return await super().process_activity(self._fill_defaults(activity), logic)

    async def send_text(self, text: str, logic: TurnHandler) -> Optional[InvokeResponse]:
        return await self.process_activity(self.make_activity(text), logic)

    def pop_sent(self) -> list[Activity]:
        sent, self.sent = self.sent, []
        return sent
