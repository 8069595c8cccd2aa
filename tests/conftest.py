"""
Shared pytest fixtures for aitu-connect tests.

Provides:
- FakeSocket / FakeConnector: in-memory stand-ins for the websocket
- FakeChatApi: scripted REST responses with failure injection
- settle(): let pending event loop callbacks run
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Set

import pytest

from aitu_connect.chat_sync import (
    ConnectionManager,
    Conversation,
    Message,
    SyncOrchestrator,
    User,
)
from aitu_connect.config import ConnectSettings, get_settings
from aitu_connect.error_handler import ApiError


_CLOSE = object()


async def settle(rounds: int = 10) -> None:
    """Give queued tasks and callbacks a chance to run"""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ============================================================================
# Live connection doubles
# ============================================================================

class FakeSocket:
    """Websocket double: records sends, yields pushed frames until closed"""

    def __init__(self):
        self.sent: List[str] = []
        self.closed = False
        self.fail_send = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.fail_send:
            raise ConnectionError("broken pipe")
        self.sent.append(data)

    @property
    def sent_frames(self) -> List[Dict[str, Any]]:
        return [json.loads(data) for data in self.sent]

    def push(self, frame: Any) -> None:
        """Deliver raw text, or a dict encoded as JSON"""
        self._inbox.put_nowait(frame if isinstance(frame, (str, bytes)) else json.dumps(frame))

    def drop(self) -> None:
        """Server closes the connection"""
        self._inbox.put_nowait(_CLOSE)

    def fail(self, error: Exception) -> None:
        """Connection breaks with an error while reading"""
        self._inbox.put_nowait(error)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(_CLOSE)


class FakeConnector:
    """Connector double handing out FakeSockets"""

    def __init__(self):
        self.sockets: List[FakeSocket] = []
        self.headers: List[Dict[str, str]] = []
        self.fail_next = 0

    async def __call__(self, url: str, headers: Dict[str, str]) -> FakeSocket:
        self.headers.append(headers)
        if self.fail_next:
            self.fail_next -= 1
            raise OSError("connection refused")
        socket = FakeSocket()
        self.sockets.append(socket)
        return socket

    @property
    def calls(self) -> int:
        return len(self.headers)

    @property
    def latest(self) -> Optional[FakeSocket]:
        return self.sockets[-1] if self.sockets else None


# ============================================================================
# REST double
# ============================================================================

class FakeChatApi:
    """Scripted ChatApiClient stand-in"""

    def __init__(self):
        self.me = User(id=7, first_name="Aida", last_name="Nurlan", email="aida@example.org", role="student")
        self.conversations: List[Conversation] = []
        self.messages: Dict[Any, List[Message]] = {}
        self.users: List[User] = []
        self.created: Dict[Any, Any] = {}
        self.fail: Set[str] = set()
        self.gates: Dict[Any, asyncio.Event] = {}
        self.message_calls: List[Any] = []
        self.conversation_calls = 0

    def _check(self, name: str) -> None:
        if name in self.fail:
            raise ApiError(f"{name} failed", status_code=500)

    async def get_me(self) -> User:
        self._check("me")
        return self.me

    async def list_conversations(self) -> List[Conversation]:
        self.conversation_calls += 1
        self._check("conversations")
        return list(self.conversations)

    async def list_messages(self, conversation_id) -> List[Message]:
        self.message_calls.append(conversation_id)
        gate = self.gates.get(conversation_id)
        if gate is not None:
            await gate.wait()
        self._check("messages")
        return list(self.messages.get(conversation_id, []))

    async def list_users(self) -> List[User]:
        self._check("users")
        return list(self.users)

    async def get_or_create_conversation(self, other_user_id):
        self._check("conversation")
        return self.created[other_user_id]

    def websocket_headers(self) -> Dict[str, str]:
        return {"Cookie": "sid=test-session"}


def make_message(conversation_id, content: str, user_id=7, **extra) -> Message:
    return Message(
        conversation_id=conversation_id,
        user_id=user_id,
        author_first_name="Aida",
        author_last_name="Nurlan",
        content=content,
        **extra,
    )


def push_frame(conversation_id, content: str, user_id=8) -> Dict[str, Any]:
    return {
        "type": "message",
        "conversation_id": conversation_id,
        "user_id": user_id,
        "author_first_name": "Timur",
        "author_last_name": "Sadykov",
        "content": content,
    }


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def reset_settings():
    """Reset the get_settings singleton between tests"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> ConnectSettings:
    return ConnectSettings(
        _env_file=None,
        base_url="http://testserver",
        reconnect_delay=0.2,
    )


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def connection(connector, settings) -> ConnectionManager:
    return ConnectionManager(
        settings.websocket_url,
        connector=connector,
        reconnect_delay=settings.reconnect_delay,
    )


@pytest.fixture
def api() -> FakeChatApi:
    return FakeChatApi()


@pytest.fixture
def direct_conversation() -> Conversation:
    return Conversation(
        id=1,
        is_group=False,
        other_user_id=8,
        other_user_first_name="Timur",
        other_user_last_name="Sadykov",
    )


@pytest.fixture
def orchestrator(api, settings, connection) -> SyncOrchestrator:
    return SyncOrchestrator(api, settings=settings, connection=connection)
