"""
Chat Sync Package

Real-time conversation synchronization: reconciles REST-fetched history
with live websocket pushes into one ordered transcript per conversation.

Components:
- models.py: User, Conversation, Message and live connection frames
- store.py: ConversationStore, MessageHistoryCache
- connection.py: ConnectionManager state machine with fixed-delay reconnect
- session.py: ConversationSession (active conversation and joins)
- orchestrator.py: SyncOrchestrator and the ChatView snapshot
"""

# Data models and frames
from aitu_connect.chat_sync.models import (
    Conversation,
    ConversationId,
    InboundFrame,
    JoinFrame,
    Message,
    MessageFrame,
    OutboundMessageFrame,
    UnrecognizedFrame,
    User,
    parse_frame,
)

# Stores
from aitu_connect.chat_sync.store import ConversationStore, MessageHistoryCache

# Live connection
from aitu_connect.chat_sync.connection import (
    ConnectionHealth,
    ConnectionManager,
    ConnectionState,
    DEFAULT_RECONNECT_DELAY,
)

# Session and orchestrator
from aitu_connect.chat_sync.session import ConversationSession
from aitu_connect.chat_sync.orchestrator import (
    ChatView,
    SyncOrchestrator,
    conversation_name,
    initials,
)


__all__ = [
    # Models
    "User",
    "Conversation",
    "ConversationId",
    "Message",
    # Frames
    "JoinFrame",
    "OutboundMessageFrame",
    "MessageFrame",
    "UnrecognizedFrame",
    "InboundFrame",
    "parse_frame",
    # Stores
    "ConversationStore",
    "MessageHistoryCache",
    # Connection
    "ConnectionManager",
    "ConnectionState",
    "ConnectionHealth",
    "DEFAULT_RECONNECT_DELAY",
    # Session / orchestrator
    "ConversationSession",
    "SyncOrchestrator",
    "ChatView",
    "conversation_name",
    "initials",
]
