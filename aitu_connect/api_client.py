"""
aitu-connect REST client

Async wrapper over the server's auth and chat endpoints. The session
cookie lives in the client's cookie jar and is forwarded on the
websocket upgrade.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from aitu_connect.chat_sync.models import Conversation, ConversationId, Message, User, UserId
from aitu_connect.config import ConnectSettings, get_settings
from aitu_connect.error_handler import ApiError, ErrorHandler, ErrorType

logger = logging.getLogger(__name__)


class ChatApiClient:
    """
    REST client for the chat endpoints.

    Usage:
        async with ChatApiClient() as api:
            await api.login("user@example.org", "secret")
            conversations = await api.list_conversations()
    """

    def __init__(
        self,
        settings: Optional[ConnectSettings] = None,
        session_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._client = httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.request_timeout,
            transport=transport,
        )

        token = session_token or self.settings.session_token
        if token:
            self._client.cookies.set(self.settings.session_cookie_name, token)

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ========== Transport ==========

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, params=params, json=json)
            response.raise_for_status()
            if not response.content:
                return None
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ErrorHandler.handle_http_error(e, path) from e

    async def _get_list(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Any]:
        data = await self._request("GET", path, params=params)
        if data is None:
            return []
        if not isinstance(data, list):
            raise ApiError(
                f"Expected a list from {path}",
                error_type=ErrorType.INVALID_RESPONSE,
                details={"endpoint": path, "kind": type(data).__name__},
            )
        return data

    # ========== Auth ==========

    async def login(self, email: str, password: str) -> None:
        """Sign in; the server answers with the session cookie"""
        await self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        logger.info(f"Signed in as {email}")

    async def logout(self) -> None:
        await self._request("POST", "/api/auth/logout")
        self._client.cookies.clear()
        logger.info("Signed out")

    def websocket_headers(self) -> Dict[str, str]:
        """Cookie header carrying the session for the websocket upgrade"""
        cookies = "; ".join(f"{name}={value}" for name, value in self._client.cookies.items())
        return {"Cookie": cookies} if cookies else {}

    # ========== Chat ==========

    async def get_me(self) -> User:
        data = await self._request("GET", "/api/me")
        try:
            return User.model_validate(data)
        except ValueError as e:
            raise ErrorHandler.handle_http_error(e, "/api/me") from e

    async def list_conversations(self) -> List[Conversation]:
        items = await self._get_list("/api/chat/conversations")
        try:
            return [Conversation.model_validate(item) for item in items]
        except ValueError as e:
            raise ErrorHandler.handle_http_error(e, "/api/chat/conversations") from e

    async def list_messages(self, conversation_id: ConversationId) -> List[Message]:
        items = await self._get_list("/api/chat/messages", params={"conversation_id": conversation_id})
        try:
            return [Message.model_validate(item) for item in items]
        except ValueError as e:
            raise ErrorHandler.handle_http_error(e, "/api/chat/messages") from e

    async def list_users(self) -> List[User]:
        items = await self._get_list("/api/chat/users")
        try:
            return [User.model_validate(item) for item in items]
        except ValueError as e:
            raise ErrorHandler.handle_http_error(e, "/api/chat/users") from e

    async def get_or_create_conversation(self, other_user_id: UserId) -> ConversationId:
        """Direct conversation with another user, created server-side if absent"""
        data = await self._request("GET", "/api/chat/conversation", params={"other_user_id": other_user_id})
        if not isinstance(data, dict) or data.get("conversation_id") in (None, ""):
            raise ApiError(
                "Missing conversation_id in response",
                error_type=ErrorType.INVALID_RESPONSE,
                details={"endpoint": "/api/chat/conversation"},
            )
        return data["conversation_id"]
