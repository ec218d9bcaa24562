"""OAuth sign-in card attachment."""
from __future__ import annotations

from typing import Optional

from models.schemas import ActionTypes, Attachment, SignInResource

OAUTH_CARD_CONTENT_TYPE = "application/vnd.microsoft.card.oauth"


def oauth_card(
    connection_name: str,
    title: str,
    text: Optional[str] = None,
    sign_in_resource: Optional[SignInResource] = None,
    include_link: bool = True,
) -> Attachment:
    link = sign_in_resource.sign_in_link if sign_in_resource and include_link else None
    content = {
        "text": text,
        "connectionName": connection_name,
        "buttons": [{"type": ActionTypes.SIGNIN.value, "title": title, "value": link}],
    }
    if sign_in_resource is not None:
        if sign_in_resource.token_exchange_resource is not None:
            content["tokenExchangeResource"] = sign_in_resource.token_exchange_resource.to_wire()
        if sign_in_resource.token_post_resource is not None:
            content["tokenPostResource"] = sign_in_resource.token_post_resource.to_wire()
    return Attachment(content_type=OAUTH_CARD_CONTENT_TYPE, content=content)
