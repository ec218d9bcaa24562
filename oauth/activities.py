"""
Sign-in activity kinds.

Inbound activities that can carry a sign-in completion are classified once
into a closed set of kinds; callers dispatch on the kind through a handler
table instead of comparing activity names inline.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Optional

from models.schemas import Activity, ActivityTypes

TOKEN_RESPONSE_EVENT = "tokens/response"
VERIFY_STATE_INVOKE = "signin/verifyState"
TOKEN_EXCHANGE_INVOKE = "signin/tokenExchange"

_MAGIC_CODE = re.compile(r"(?<!\d)(\d{6})(?!\d)")


class SignInActivityKind(str, Enum):
    TOKEN_RESPONSE = "tokenResponse"      # event carrying the token itself
    VERIFY_STATE = "verifyState"          # invoke carrying {state: magic code}
    TOKEN_EXCHANGE = "tokenExchange"      # invoke carrying {id, token, connectionName}
    MESSAGE = "message"                   # free text, may hold a magic code
    OTHER = "other"


def classify(activity: Activity) -> SignInActivityKind:
    if activity.type == ActivityTypes.EVENT.value and activity.name == TOKEN_RESPONSE_EVENT:
        return SignInActivityKind.TOKEN_RESPONSE
    if activity.type == ActivityTypes.INVOKE.value:
        if activity.name == VERIFY_STATE_INVOKE:
            return SignInActivityKind.VERIFY_STATE
        if activity.name == TOKEN_EXCHANGE_INVOKE:
            return SignInActivityKind.TOKEN_EXCHANGE
        return SignInActivityKind.OTHER
    if activity.type == ActivityTypes.MESSAGE.value:
        return SignInActivityKind.MESSAGE
    return SignInActivityKind.OTHER


def extract_magic_code(text: Optional[str]) -> Optional[str]:
    """Return the first standalone 6-digit sequence in `text`."""
    if not text:
        return None
    match = _MAGIC_CODE.search(text)
    return match.group(1) if match else None
