"""
Channel Adapters — the narrow transport interface the engine consumes.

Provides:
- ChannelError: structured error for transport failures
- ChannelAdapter: abstract base; delivers one Activity per turn and sends
  outbound activities on behalf of a TurnContext
"""
from __future__ import annotations

import abc
import uuid
import structlog
from typing import Awaitable, Callable, Optional

from context.turn import TurnContext
from models.schemas import Activity, InvokeResponse

logger = structlog.get_logger()

TurnHandler = Callable[[TurnContext], Awaitable[None]]


# ══════════════════════════════════════════════════════════════
#  ERRORS
# ══════════════════════════════════════════════════════════════

class ChannelError(Exception):
    """Base exception for all channel operations."""

    def __init__(self, message: str, channel: str = "", retryable: bool = False):
        self.channel = channel
        self.retryable = retryable
        super().__init__(message)


# ══════════════════════════════════════════════════════════════
#  ADAPTER BASE
# ══════════════════════════════════════════════════════════════

class ChannelAdapter(abc.ABC):
    """
    Base class for transport adapters.

    Subclasses implement _do_send. The base class assigns activity ids,
    logs deliveries and wraps transport failures in ChannelError.
    """

    channel_id: str = ""

    # ── Abstract hooks ────────────────────────────────────────

    @abc.abstractmethod
    async def _do_send(self, context: TurnContext, activity: Activity) -> None:
        ...

    # ── Public API ────────────────────────────────────────────

    async def send_activities(self, context: TurnContext, activities: list[Activity]) -> list[str]:
        ids: list[str] = []
        for activity in activities:
            activity.id = activity.id or uuid.uuid4().hex[:16]
            try:
                await self._do_send(context, activity)
            except ChannelError:
                raise
            except Exception as e:
                logger.error("channel_send_failed",
                             channel=self.channel_id, activity_type=activity.type, error=str(e))
                raise ChannelError(str(e), self.channel_id, retryable=True) from e
            ids.append(activity.id)
        return ids

    async def process_activity(self, activity: Activity, logic: TurnHandler) -> Optional[InvokeResponse]:
        """Run one turn for an inbound activity; returns the invoke response, if any."""
        context = TurnContext(self, activity)
        logger.debug("turn_started",
                     channel=activity.channel_id, activity_type=activity.type,
                     conversation_id=context.conversation_id)
        await logic(context)
        return context.invoke_response
