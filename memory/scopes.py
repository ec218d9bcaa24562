"""
Memory scopes — named views over conversational state.

A scope is a resolver from a DialogContext to a record, plus an optional
mutator. The built-in registry is fixed at import time and read-only.

  this           active frame's own state ({} when the stack is empty)
  turn           ephemeral record living on the TurnContext
  dialog         state of the active container frame (or the parent's)
  class          public fields of the active dialog object
  dialogclass    public fields of the nearest container dialog
  dialogcontext  {stack, activeDialog, parent} introspection snapshot
  conversation   loaded ConversationState record
  user           loaded UserState record
  settings       application settings
"""
from __future__ import annotations

import copy
import dataclasses
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from config.settings import get_settings
from dialogs.dialog import Dialog
from dialogs.dialog_container import DialogContainer
from dialogs.dialog_set import DialogSet
from dialogs.errors import DialogContextError

if TYPE_CHECKING:
    from dialogs.dialog_context import DialogContext


class ScopePath:
    USER = "user"
    CONVERSATION = "conversation"
    DIALOG = "dialog"
    DIALOG_CLASS = "dialogclass"
    DIALOG_CONTEXT = "dialogcontext"
    THIS = "this"
    CLASS = "class"
    SETTINGS = "settings"
    TURN = "turn"


class TurnPath:
    LAST_RESULT = "turn.lastresult"
    ACTIVITY = "turn.activity"
    RECOGNIZED = "turn.recognized"


# Frames with this id prefix are bookkeeping and hidden from introspection.
_INTERNAL_FRAME_PREFIX = "ActionScope["


@dataclass(frozen=True)
class MemoryScope:
    name: str
    get_memory: Callable[["DialogContext"], Any]
    setter: Optional[Callable[["DialogContext", Any], None]] = None

    @property
    def is_settable(self) -> bool:
        return self.setter is not None

    def set_memory(self, dc: "DialogContext", value: Any) -> None:
        if self.setter is None:
            raise DialogContextError(f"The '{self.name}' memory scope is read-only.", dc)
        self.setter(dc, value)


# ── this ──────────────────────────────────────────────────────

def _get_this(dc: "DialogContext") -> dict:
    instance = dc.active_dialog
    return instance.state if instance is not None else {}


def _set_this(dc: "DialogContext", value: Any) -> None:
    if value is None:
        raise DialogContextError("ThisMemoryScope.set_memory: undefined memory object passed in.", dc)
    instance = dc.active_dialog
    if instance is None:
        raise DialogContextError("ThisMemoryScope.set_memory: no active dialog found.", dc)
    instance.state = value


# ── turn ──────────────────────────────────────────────────────

def _get_turn(dc: "DialogContext") -> dict:
    if dc.context.turn_memory is None:
        dc.context.turn_memory = {}
    return dc.context.turn_memory


def _set_turn(dc: "DialogContext", value: Any) -> None:
    if value is None:
        raise DialogContextError("TurnMemoryScope.set_memory: undefined memory object passed in.", dc)
    dc.context.turn_memory = value


# ── dialog ────────────────────────────────────────────────────

def _dialog_target(dc: "DialogContext"):
    instance = dc.active_dialog
    if instance is not None and isinstance(dc.find_dialog(instance.id), DialogContainer):
        return instance
    parent = dc.parent
    if parent is not None and parent.active_dialog is not None:
        return parent.active_dialog
    return instance


def _get_dialog(dc: "DialogContext") -> Optional[dict]:
    target = _dialog_target(dc)
    return target.state if target is not None else None


def _set_dialog(dc: "DialogContext", value: Any) -> None:
    if value is None:
        raise DialogContextError("DialogMemoryScope.set_memory: undefined memory object passed in.", dc)
    target = _dialog_target(dc)
    if target is None:
        raise DialogContextError("DialogMemoryScope.set_memory: no active dialog found.", dc)
    target.state = value


# ── class / dialogclass ───────────────────────────────────────

def _clone_fields(dialog: Optional[Dialog], dc: "DialogContext") -> Optional[dict]:
    if dialog is None:
        return None
    clone: dict[str, Any] = {"id": dialog.id}
    for key, value in vars(dialog).items():
        if key.startswith("_") or callable(value) or isinstance(value, (Dialog, DialogSet)):
            continue
        if isinstance(value, (list, tuple)) and any(callable(v) for v in value):
            continue
        try_get_value = getattr(value, "try_get_value", None)
        if callable(try_get_value):
            resolved, _error = try_get_value(dc.state)
            clone[key] = resolved
        else:
            clone[key] = copy.deepcopy(value)
    return clone


def _get_class(dc: "DialogContext") -> Optional[dict]:
    instance = dc.active_dialog
    dialog = dc.find_dialog(instance.id) if instance is not None else None
    return _clone_fields(dialog, dc)


def _get_dialog_class(dc: "DialogContext") -> Optional[dict]:
    instance = dc.active_dialog
    if instance is None:
        return None
    dialog = dc.find_dialog(instance.id)
    if not isinstance(dialog, DialogContainer):
        parent = dc.parent
        if parent is not None and parent.active_dialog is not None:
            container = parent.find_dialog(parent.active_dialog.id)
            if container is not None:
                dialog = container
    return _clone_fields(dialog, dc)


# ── dialogcontext ─────────────────────────────────────────────

def _get_dialog_context(dc: "DialogContext") -> dict:
    leaf = dc
    while True:
        child = leaf.child
        if child is None:
            break
        leaf = child

    stack: list[str] = []
    current: Optional["DialogContext"] = leaf
    while current is not None:
        stack.extend(
            frame.id for frame in current.stack
            if not frame.id.startswith(_INTERNAL_FRAME_PREFIX)
        )
        current = current.parent

    active = dc.active_dialog
    parent = dc.parent
    parent_active = parent.active_dialog if parent is not None else None
    return {
        "stack": stack,
        "activeDialog": active.id if active else None,
        "parent": parent_active.id if parent_active else None,
    }


# ── agent state / settings ────────────────────────────────────

def _state_getter(cache_name: str) -> Callable[["DialogContext"], Optional[dict]]:
    def getter(dc: "DialogContext") -> Optional[dict]:
        cached = dc.context.state_cache.get(cache_name)
        return cached.state if cached is not None else None
    return getter


def _get_settings(dc: "DialogContext") -> dict:
    return dataclasses.asdict(get_settings())


BUILTIN_SCOPES: Mapping[str, MemoryScope] = MappingProxyType({
    scope.name: scope for scope in (
        MemoryScope(ScopePath.THIS, _get_this, _set_this),
        MemoryScope(ScopePath.TURN, _get_turn, _set_turn),
        MemoryScope(ScopePath.DIALOG, _get_dialog, _set_dialog),
        MemoryScope(ScopePath.CLASS, _get_class),
        MemoryScope(ScopePath.DIALOG_CLASS, _get_dialog_class),
        MemoryScope(ScopePath.DIALOG_CONTEXT, _get_dialog_context),
        MemoryScope(ScopePath.CONVERSATION, _state_getter("ConversationState")),
        MemoryScope(ScopePath.USER, _state_getter("UserState")),
        MemoryScope(ScopePath.SETTINGS, _get_settings),
    )
})


def get_scope(name: str) -> MemoryScope:
    try:
        return BUILTIN_SCOPES[name.lower()]
    except KeyError:
        raise KeyError(f"Unknown memory scope: {name!r}") from None
