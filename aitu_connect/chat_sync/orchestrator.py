"""
Chat Sync Orchestrator

Top-level controller for the messaging screen. Merges REST snapshots with
live pushes into one view per conversation and runs the outbound send
pipeline.

Merge rules:
- A history fetch replaces the conversation's list outright, even if pushes
  arrived after the fetch was issued
- A push is appended to the active conversation in arrival order
  (or to its own conversation when route_pushes_by_conversation is set)
- No deduplication; a message delivered twice is shown twice
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, TYPE_CHECKING

from aitu_connect.chat_sync.connection import ConnectionManager
from aitu_connect.chat_sync.models import (
    Conversation,
    ConversationId,
    Message,
    MessageFrame,
    OutboundMessageFrame,
    User,
)
from aitu_connect.chat_sync.session import ConversationSession
from aitu_connect.chat_sync.store import ConversationStore, MessageHistoryCache
from aitu_connect.config import ConnectSettings, get_settings
from aitu_connect.error_handler import ConnectError

if TYPE_CHECKING:
    from aitu_connect.api_client import ChatApiClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatView:
    """Snapshot read by presentation code"""
    conversations: Tuple[Conversation, ...]
    active: Optional[Conversation]
    messages: Tuple[Message, ...]
    history_revision: int
    connected: bool
    compose: str
    users: Tuple[User, ...]
    loading: bool
    current_user: Optional[User]


ChangeListener = Callable[[ChatView], None]


def conversation_name(conversation: Conversation) -> str:
    """Group name, or the counterpart's name for direct chats"""
    return conversation.display_name


def initials(first_name: Optional[str], last_name: Optional[str]) -> str:
    letters = ((first_name or "")[:1] + (last_name or "")[:1]).upper()
    return letters or "??"


class SyncOrchestrator:
    """
    Unified conversation/message view over REST and the live connection.

    Network failures never escape the public operations: failed fetches
    leave an empty list, connection failures show up as connected=False.
    """

    def __init__(
        self,
        api: "ChatApiClient",
        settings: Optional[ConnectSettings] = None,
        connection: Optional[ConnectionManager] = None,
    ):
        self.settings = settings or get_settings()
        self.api = api
        self.store = ConversationStore()
        self.history = MessageHistoryCache()
        self.connection = connection or ConnectionManager(
            self.settings.websocket_url,
            reconnect_delay=self.settings.reconnect_delay,
            headers_provider=api.websocket_headers,
        )
        self.session = ConversationSession(self.connection, self._load_history)
        self.route_pushes_by_conversation = self.settings.route_pushes_by_conversation

        self.current_user: Optional[User] = None
        self.users: List[User] = []
        self.compose = ""
        self.loading = False

        self._listeners: List[ChangeListener] = []

        self.connection.on_frame(self._handle_push)
        self.connection.on_state_change(lambda _state: self._notify())

    # ========== Lifecycle ==========

    async def start(self) -> bool:
        """
        Load the signed-in user, their conversations, then go live.

        Returns:
            False if the current user could not be loaded (nothing else starts)
        """
        try:
            self.current_user = await self.api.get_me()
        except ConnectError as e:
            logger.error(f"Failed to load user: {e.message}")
            self.current_user = None
            self._notify()
            return False

        logger.info(f"Signed in as user {self.current_user.id!r}")
        await self.load_conversations()
        self.connection.connect()
        return True

    async def stop(self) -> None:
        """Release the live connection, its reconnect timer and pending fetches"""
        await self.connection.close()
        await self.session.cancel_pending()

    # ========== Conversations ==========

    async def load_conversations(self) -> None:
        self.loading = True
        self._notify()
        try:
            conversations = await self.api.list_conversations()
        except ConnectError as e:
            logger.error(f"Failed to load conversations: {e.message}")
            conversations = []
        finally:
            self.loading = False

        self.store.replace_all(conversations)
        logger.info(f"Loaded {len(self.store)} conversations")
        self._notify()

    async def select_conversation(self, conversation: Conversation) -> None:
        await self.session.select_conversation(conversation)
        self._notify()

    async def open_new_chat(self) -> List[User]:
        """Fetch the users a new direct chat can be started with"""
        try:
            self.users = await self.api.list_users()
        except ConnectError as e:
            logger.error(f"Failed to load users: {e.message}")
            self.users = []
        self._notify()
        return self.users

    async def start_chat(self, user: User) -> Optional[Conversation]:
        """
        Open (or create) the direct conversation with a user and select it.

        Returns:
            The selected conversation, or None if the server call failed
        """
        try:
            conversation_id = await self.api.get_or_create_conversation(user.id)
        except ConnectError as e:
            logger.error(f"Failed to start chat with {user.id!r}: {e.message}")
            return None

        await self.load_conversations()

        conversation = Conversation(
            id=conversation_id,
            is_group=False,
            other_user_id=user.id,
            other_user_first_name=user.first_name,
            other_user_last_name=user.last_name,
        )
        if conversation_id not in self.store:
            self.store.add(conversation)

        await self.select_conversation(conversation)
        return conversation

    # ========== Merge ==========

    async def _load_history(self, conversation_id: ConversationId) -> None:
        """Bulk fetch; the result replaces whatever the cache holds for this id"""
        try:
            messages = await self.api.list_messages(conversation_id)
        except ConnectError as e:
            logger.error(f"Failed to load messages for {conversation_id!r}: {e.message}")
            messages = []

        self.history.replace(conversation_id, messages)
        self._notify()

    def _handle_push(self, frame: MessageFrame) -> None:
        if self.route_pushes_by_conversation:
            target = frame.conversation_id
        else:
            target = self.session.active_id

        if target is None:
            logger.debug("Push received with no active conversation, dropped")
            return

        self.history.append(target, frame.to_message())
        self._notify()

    # ========== Send pipeline ==========

    async def send_message(self, text: Optional[str] = None) -> bool:
        """
        Send the compose text (or the given text) to the active conversation.

        Refused silently when the text is blank, nothing is selected or the
        connection is down; the compose text is then left untouched. On
        success the compose text is cleared before the server echoes the
        message back. There is no local echo.

        Returns:
            True if a message frame was emitted
        """
        content = (self.compose if text is None else text).strip()
        active = self.session.active
        if not content or active is None or not self.connection.is_connected:
            logger.debug("Send refused: empty text, no active conversation or not connected")
            return False

        self.compose = ""
        self._notify()

        await self.connection.send(OutboundMessageFrame(conversation_id=active.id, content=content))
        return True

    # ========== View ==========

    def is_own_message(self, message: Message) -> bool:
        return self.current_user is not None and message.user_id == self.current_user.id

    def view(self) -> ChatView:
        active = self.session.active
        return ChatView(
            conversations=tuple(self.store.list()),
            active=active,
            messages=self.history.get(active.id) if active is not None else (),
            history_revision=self.history.revision(active.id) if active is not None else 0,
            connected=self.connection.is_connected,
            compose=self.compose,
            users=tuple(self.users),
            loading=self.loading,
            current_user=self.current_user,
        )

    def on_change(self, listener: ChangeListener) -> None:
        """Register a listener called with a fresh view after every change"""
        self._listeners.append(listener)

    def _notify(self) -> None:
        if not self._listeners:
            return
        view = self.view()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception as e:
                logger.error(f"View listener error: {e}")
