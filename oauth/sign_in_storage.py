"""Per-user sign-in records, one per auth handler: auth/{channel}/{user}/{handler}."""
from __future__ import annotations

from typing import Optional

from context.turn import TurnContext
from database.store_base import Storage
from models.schemas import SignInHandlerState, SignInStatus
from oauth.errors import AuthConfigurationError


class SignInStorage:

    def __init__(self, storage: Storage, handler_ids: list[str]):
        self.storage = storage
        self.handler_ids = list(handler_ids)

    @staticmethod
    def base_key(context: TurnContext) -> str:
        if not context.channel_id or not context.user_id:
            raise AuthConfigurationError("Activity is missing channelId or from.id")
        return f"auth/{context.channel_id}/{context.user_id}"

    def key(self, context: TurnContext, handler_id: str) -> str:
        return f"{self.base_key(context)}/{handler_id}"

    async def get(self, context: TurnContext, handler_id: str) -> Optional[SignInHandlerState]:
        key = self.key(context, handler_id)
        item = (await self.storage.read([key])).get(key)
        return SignInHandlerState.model_validate(item) if item else None

    async def active(self, context: TurnContext) -> Optional[SignInHandlerState]:
        """First handler record whose sign-in has not yet succeeded."""
        if not self.handler_ids:
            return None
        keys = [self.key(context, handler_id) for handler_id in self.handler_ids]
        items = await self.storage.read(keys)
        for key in keys:
            item = items.get(key)
            if item and item.get("status") != SignInStatus.SUCCESS.value:
                return SignInHandlerState.model_validate(item)
        return None

    async def set(self, context: TurnContext, value: SignInHandlerState) -> None:
        item = value.to_wire()
        item["eTag"] = "*"
        await self.storage.write({self.key(context, value.id): item})

    async def delete(self, context: TurnContext, handler_id: str) -> None:
        await self.storage.delete([self.key(context, handler_id)])
