"""
User token service client.

Talks to the hosted token service that brokers OAuth connections:
fetch a cached user token, redeem a magic code, build sign-in links,
exchange SSO tokens and sign users out.

Transport errors and 5xx responses are retried with exponential backoff;
404 on a token lookup means "no token" and is not an error.
"""
from __future__ import annotations

import base64
import json
import structlog
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from config.settings import TokenServiceConfig, get_settings
from models.schemas import (
    Activity, ConversationReference, SignInResource, TokenExchangeRequest,
    TokenOrSignInResourceResponse, TokenResponse, TokenStatus,
)
from oauth.errors import TokenServiceError

logger = structlog.get_logger()

_NOT_FOUND_IS_EMPTY = {400, 404, 412}


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return False


def encode_state(
    connection_name: str,
    conversation: ConversationReference,
    relates_to: Optional[ConversationReference] = None,
    app_id: str = "",
) -> str:
    """Base64 JSON blob the token service echoes back after sign-in."""
    state = {
        "connectionName": connection_name,
        "conversation": conversation.to_wire(),
        "relatesTo": relates_to.to_wire() if relates_to else None,
        "msAppId": app_id,
    }
    return base64.b64encode(json.dumps(state).encode("utf-8")).decode("ascii")


class UserTokenClient:

    def __init__(self, config: TokenServiceConfig = None,
                 transport: httpx.AsyncBaseTransport = None):
        self.config = config or get_settings().token_service
        self._transport = transport
        self.client: Optional[httpx.AsyncClient] = None
        self._request = retry(
            stop=stop_after_attempt(max(1, self.config.retry_attempts)),
            wait=wait_exponential(multiplier=self.config.retry_backoff, max=10),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )(self._send)

    async def _get_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            headers = {"Accept": "application/json"}
            if self.config.access_token:
                headers["Authorization"] = f"Bearer {self.config.access_token}"
            self.client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers=headers,
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            )
        return self.client

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        client = await self._get_client()
        if "params" in kwargs:
            kwargs["params"] = {k: v for k, v in kwargs["params"].items() if v is not None}
        response = await client.request(method, path, **kwargs)
        if response.status_code >= 500:
            response.raise_for_status()
        return response

    async def _call(self, operation: str, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._request(method, path, **kwargs)
        except httpx.HTTPError as e:
            status = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
            logger.error("token_service_request_failed",
                         operation=operation, status=status, error=str(e))
            raise TokenServiceError(str(e), status, operation) from e

    @staticmethod
    def _check(operation: str, response: httpx.Response) -> None:
        if response.status_code >= 400:
            logger.error("token_service_request_failed",
                         operation=operation, status=response.status_code)
            raise TokenServiceError(
                f"Token service {operation} failed with status {response.status_code}",
                response.status_code, operation,
            )

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        return response.json()

    # ── Tokens ────────────────────────────────────────────────

    async def get_user_token(self, user_id: str, connection_name: str,
                             channel_id: str, code: str = None) -> TokenResponse:
        """Cached token for the user, or redeem `code`. Empty response when none."""
        response = await self._call(
            "get_user_token", "GET", "/api/usertoken/GetToken",
            params={"userId": user_id, "connectionName": connection_name,
                    "channelId": channel_id, "code": code},
        )
        if response.status_code == 404:
            return TokenResponse()
        self._check("get_user_token", response)
        body = self._json(response)
        return TokenResponse.model_validate(body) if body else TokenResponse()

    async def sign_out(self, user_id: str, connection_name: str = None,
                       channel_id: str = None) -> None:
        response = await self._call(
            "sign_out", "DELETE", "/api/usertoken/SignOut",
            params={"userId": user_id, "connectionName": connection_name, "channelId": channel_id},
        )
        if response.status_code != 404:
            self._check("sign_out", response)
        logger.info("token_signed_out", user_id=user_id, connection_name=connection_name)

    async def get_token_status(self, user_id: str, channel_id: str,
                               include: str = None) -> list[TokenStatus]:
        response = await self._call(
            "get_token_status", "GET", "/api/usertoken/GetTokenStatus",
            params={"userId": user_id, "channelId": channel_id, "include": include},
        )
        self._check("get_token_status", response)
        return [TokenStatus.model_validate(item) for item in self._json(response) or []]

    async def exchange_token(self, user_id: str, connection_name: str, channel_id: str,
                             request: TokenExchangeRequest) -> TokenResponse:
        """Swap an SSO token for a connection token; empty response when refused."""
        response = await self._call(
            "exchange_token", "POST", "/api/usertoken/exchange",
            params={"userId": user_id, "connectionName": connection_name, "channelId": channel_id},
            json=request.to_wire(),
        )
        if response.status_code in _NOT_FOUND_IS_EMPTY:
            logger.info("token_exchange_refused", status=response.status_code,
                        connection_name=connection_name)
            return TokenResponse()
        self._check("exchange_token", response)
        body = self._json(response)
        return TokenResponse.model_validate(body) if body else TokenResponse()

    # ── Sign-in resources ─────────────────────────────────────

    async def get_sign_in_resource(self, connection_name: str, activity: Activity,
                                   final_redirect: str = None) -> SignInResource:
        state = encode_state(connection_name, activity.get_conversation_reference(),
                             activity.relates_to, self.config.app_id)
        response = await self._call(
            "get_sign_in_resource", "GET", "/api/botsignin/GetSignInResource",
            params={"state": state, "finalRedirect": final_redirect},
        )
        self._check("get_sign_in_resource", response)
        return SignInResource.model_validate(self._json(response) or {})

    async def get_token_or_sign_in_resource(
        self,
        user_id: str,
        connection_name: str,
        channel_id: str,
        activity: Activity,
        code: str = None,
        final_redirect: str = None,
        fwd_url: str = None,
    ) -> TokenOrSignInResourceResponse:
        state = encode_state(connection_name, activity.get_conversation_reference(),
                             activity.relates_to, self.config.app_id)
        response = await self._call(
            "get_token_or_sign_in_resource", "GET", "/api/usertoken/GetTokenOrSignInResource",
            params={"userId": user_id, "connectionName": connection_name,
                    "channelId": channel_id, "state": state, "code": code,
                    "finalRedirect": final_redirect, "fwdUrl": fwd_url},
        )
        self._check("get_token_or_sign_in_resource", response)
        return TokenOrSignInResourceResponse.model_validate(self._json(response) or {})

    async def close(self):
        if self.client:
            await self.client.aclose()
