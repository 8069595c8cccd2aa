"""
Chat Sync Conversation Session

Single source of truth for the active conversation. Selecting a
conversation requests its history and joins it on the live connection.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from aitu_connect.chat_sync.connection import ConnectionManager
from aitu_connect.chat_sync.models import Conversation, ConversationId, JoinFrame

logger = logging.getLogger(__name__)


HistoryLoader = Callable[[ConversationId], Awaitable[None]]


class ConversationSession:
    """
    Binds the active conversation to the connection's join semantics.

    Joins are additive: switching conversations never sends a leave frame,
    so the server may keep pushing for conversations joined earlier on the
    same connection. A reconnect drops all joins; only the active
    conversation is re-joined.
    """

    def __init__(self, connection: ConnectionManager, history_loader: HistoryLoader):
        self._connection = connection
        self._history_loader = history_loader
        self._active: Optional[Conversation] = None
        self._pending_fetches: Set[asyncio.Task] = set()

        connection.on_open(self.rejoin)

    @property
    def active(self) -> Optional[Conversation]:
        return self._active

    @property
    def active_id(self) -> Optional[ConversationId]:
        return self._active.id if self._active is not None else None

    @property
    def pending_fetches(self) -> int:
        return len(self._pending_fetches)

    async def select_conversation(self, conversation: Conversation) -> asyncio.Task:
        """
        Make a conversation active.

        The history fetch runs in the background and is never cancelled by a
        later selection; the join is sent right away when connected, without
        waiting for the fetch.

        Returns:
            The history fetch task
        """
        self._active = conversation
        logger.info(f"Active conversation: {conversation.id!r}")

        task = asyncio.create_task(self._history_loader(conversation.id))
        self._pending_fetches.add(task)
        task.add_done_callback(self._pending_fetches.discard)

        if self._connection.is_connected:
            await self._connection.send(JoinFrame(conversation_id=conversation.id))

        return task

    async def rejoin(self) -> None:
        """Re-issue the join for the active conversation after a (re)open"""
        if self._active is None:
            return
        logger.debug(f"Re-joining conversation {self._active.id!r}")
        await self._connection.send(JoinFrame(conversation_id=self._active.id))

    async def cancel_pending(self) -> None:
        """Cancel outstanding history fetches (shutdown only)"""
        tasks = list(self._pending_fetches)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._pending_fetches.clear()
