"""
Chat Sync Stores

ConversationStore: known conversations keyed by id, in server order
MessageHistoryCache: per-conversation transcripts
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from aitu_connect.chat_sync.models import Conversation, ConversationId, Message

logger = logging.getLogger(__name__)


class ConversationStore:
    """
    Holds the conversations the client knows about.

    Conversations are never removed one at a time; a list fetch replaces
    the whole set and "start chat" adds to it.
    """

    def __init__(self):
        self._conversations: Dict[ConversationId, Conversation] = {}

    def replace_all(self, conversations: Iterable[Conversation]) -> None:
        """Replace the store contents with a freshly fetched list"""
        fresh: Dict[ConversationId, Conversation] = {}
        for conv in conversations:
            if conv.id in fresh:
                logger.warning(f"Duplicate conversation id {conv.id!r} in list, keeping first")
                continue
            fresh[conv.id] = conv
        self._conversations = fresh

    def add(self, conversation: Conversation) -> None:
        """Insert or update a single conversation"""
        self._conversations[conversation.id] = conversation

    def get(self, conversation_id: ConversationId) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def list(self) -> List[Conversation]:
        return list(self._conversations.values())

    def __contains__(self, conversation_id: ConversationId) -> bool:
        return conversation_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)


class MessageHistoryCache:
    """
    Per-conversation ordered message lists.

    A list only grows by append while live; a bulk fetch swaps it out
    wholesale. Order is arrival order, never sorted by timestamp.
    """

    def __init__(self):
        self._histories: Dict[ConversationId, List[Message]] = {}
        self._revisions: Dict[ConversationId, int] = {}

    def replace(self, conversation_id: ConversationId, messages: Iterable[Message]) -> None:
        """Replace a conversation's history with a bulk fetch result"""
        self._histories[conversation_id] = list(messages)
        self._revisions[conversation_id] = self._revisions.get(conversation_id, 0) + 1
        logger.debug(
            f"History for {conversation_id!r} replaced ({len(self._histories[conversation_id])} messages)"
        )

    def append(self, conversation_id: ConversationId, message: Message) -> None:
        self._histories.setdefault(conversation_id, []).append(message)

    def get(self, conversation_id: ConversationId) -> Tuple[Message, ...]:
        """Snapshot of a conversation's messages (empty if never loaded)"""
        return tuple(self._histories.get(conversation_id, ()))

    def count(self, conversation_id: ConversationId) -> int:
        return len(self._histories.get(conversation_id, ()))

    def revision(self, conversation_id: ConversationId) -> int:
        """Number of bulk replacements so far; appends leave it unchanged"""
        return self._revisions.get(conversation_id, 0)

    def __contains__(self, conversation_id: ConversationId) -> bool:
        return conversation_id in self._histories
