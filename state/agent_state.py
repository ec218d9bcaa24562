"""
Agent state — conversation- and user-scoped records persisted between turns.

Each AgentState owns one storage key per turn (derived from the inbound
activity) and caches the loaded record on the TurnContext. Properties are
read and written through StatePropertyAccessor; `save_changes` writes the
record back only when its content hash changed during the turn.

Writes always carry eTag "*": the last writer wins.
"""
from __future__ import annotations

import copy
import structlog
from dataclasses import dataclass
from typing import Any, Callable, Optional, Type

from pydantic import BaseModel

from context.turn import TurnContext
from database.store_base import Storage
from utils.hashing import compute_change_hash, to_jsonable

logger = structlog.get_logger()

StateKeyFactory = Callable[[TurnContext], str]


@dataclass
class CachedAgentState:
    state: dict[str, Any]
    hash: str

    def is_changed(self) -> bool:
        return compute_change_hash(self.state) != self.hash


class AgentState:
    """Base class for a state record bound to one storage key per turn."""

    def __init__(self, storage: Storage, state_key: StateKeyFactory, cache_name: str = None):
        if storage is None:
            raise ValueError("AgentState requires a storage backend")
        self.storage = storage
        self._state_key = state_key
        self.cache_name = cache_name or type(self).__name__

    def create_property(self, name: str, model: Type[BaseModel] = None) -> "StatePropertyAccessor":
        if not name:
            raise ValueError("AgentState.create_property(): property name missing")
        return StatePropertyAccessor(self, name, model)

    def get_cached(self, context: TurnContext) -> Optional[CachedAgentState]:
        return context.state_cache.get(self.cache_name)

    def get(self, context: TurnContext) -> Optional[dict[str, Any]]:
        """Return the loaded record for this turn, or None if not loaded."""
        cached = self.get_cached(context)
        return cached.state if cached else None

    # ── Lifecycle ─────────────────────────────────────────────

    async def load(self, context: TurnContext, force: bool = False) -> dict[str, Any]:
        cached = self.get_cached(context)
        if force or cached is None:
            key = self._state_key(context)
            items = await self.storage.read([key])
            state = items.get(key, {})
            cached = CachedAgentState(state=state, hash=compute_change_hash(state))
            context.state_cache[self.cache_name] = cached
            logger.debug("agent_state_loaded", state=self.cache_name, key=key, found=key in items)
        return cached.state

    async def save_changes(self, context: TurnContext, force: bool = False) -> bool:
        cached = self.get_cached(context)
        if cached is None or not (force or cached.is_changed()):
            return False
        key = self._state_key(context)
        record = to_jsonable(cached.state)
        record["eTag"] = "*"
        await self.storage.write({key: record})
        cached.hash = compute_change_hash(cached.state)
        logger.debug("agent_state_saved", state=self.cache_name, key=key)
        return True

    async def clear(self, context: TurnContext) -> None:
        # An empty hash guarantees the cleared record is written on save.
        context.state_cache[self.cache_name] = CachedAgentState(state={}, hash="")

    async def delete(self, context: TurnContext) -> None:
        context.state_cache.pop(self.cache_name, None)
        await self.storage.delete([self._state_key(context)])

    # ── Property access ───────────────────────────────────────

    async def get_property_value(self, context: TurnContext, name: str) -> Any:
        state = await self.load(context)
        return state.get(name)

    async def set_property_value(self, context: TurnContext, name: str, value: Any) -> None:
        state = await self.load(context)
        state[name] = value

    async def delete_property_value(self, context: TurnContext, name: str) -> None:
        state = await self.load(context)
        state.pop(name, None)


class StatePropertyAccessor:
    """
    Reads and writes one named property of an AgentState record.

    With `model` set, stored dicts are validated into that pydantic model
    and the live instance is kept in the cached record, so in-place
    mutations are persisted by the next save.
    """

    def __init__(self, state: AgentState, name: str, model: Type[BaseModel] = None):
        self.state = state
        self.name = name
        self.model = model

    async def get(self, context: TurnContext, default_value: Any = None) -> Any:
        value = await self.state.get_property_value(context, self.name)
        if value is None and default_value is not None:
            value = default_value() if callable(default_value) else copy.deepcopy(default_value)
            await self.state.set_property_value(context, self.name, value)
        if value is not None and self.model is not None and not isinstance(value, self.model):
            value = self.model.model_validate(value)
            await self.state.set_property_value(context, self.name, value)
        return value

    async def set(self, context: TurnContext, value: Any) -> None:
        await self.state.set_property_value(context, self.name, value)

    async def delete(self, context: TurnContext) -> None:
        await self.state.delete_property_value(context, self.name)


# ══════════════════════════════════════════════════════════════
#  Built-in scopes
# ══════════════════════════════════════════════════════════════

def _conversation_key(context: TurnContext) -> str:
    channel_id = context.channel_id
    conversation_id = context.conversation_id
    if not channel_id:
        raise ValueError("ConversationState: missing activity.channel_id")
    if not conversation_id:
        raise ValueError("ConversationState: missing activity.conversation.id")
    return f"{channel_id}/conversations/{conversation_id}"


def _user_key(context: TurnContext) -> str:
    channel_id = context.channel_id
    user_id = context.user_id
    if not channel_id:
        raise ValueError("UserState: missing activity.channel_id")
    if not user_id:
        raise ValueError("UserState: missing activity.from.id")
    return f"{channel_id}/users/{user_id}"


class ConversationState(AgentState):
    """State shared by everyone in one conversation."""

    def __init__(self, storage: Storage):
        super().__init__(storage, _conversation_key)


class UserState(AgentState):
    """State that follows one user across conversations on a channel."""

    def __init__(self, storage: Storage):
        super().__init__(storage, _user_key)
