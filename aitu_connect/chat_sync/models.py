"""
Chat Sync Data Models

Pydantic models for users, conversations, messages and the frames
exchanged over the live connection.
"""

import json
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from aitu_connect.error_handler import FrameError


# Server issues UUID strings; ids are compared as given
ConversationId = Union[int, str]
UserId = Union[int, str]


# ===== Core Models =====

class User(BaseModel):
    """A platform user as returned by /api/me and /api/chat/users"""
    id: UserId
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    role: str = ""
    bio: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Conversation(BaseModel):
    """A direct or group conversation"""
    model_config = ConfigDict(frozen=True)

    id: ConversationId
    is_group: bool = False
    name: Optional[str] = None  # group chats only
    created_at: Optional[datetime] = None

    # For 1-on-1 chats
    other_user_id: Optional[UserId] = None
    other_user_first_name: Optional[str] = None
    other_user_last_name: Optional[str] = None

    last_message: Optional[str] = None
    last_message_time: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        if self.is_group:
            return self.name or ""
        return f"{self.other_user_first_name or ''} {self.other_user_last_name or ''}".strip()


class Message(BaseModel):
    """A chat message; immutable once created"""
    model_config = ConfigDict(frozen=True)

    id: Optional[Union[int, str]] = None
    conversation_id: ConversationId
    user_id: UserId
    author_first_name: str = ""
    author_last_name: str = ""
    content: str
    created_at: Optional[datetime] = None


# ===== Outbound Frames =====

class JoinFrame(BaseModel):
    """Ask the server to start pushing a conversation's messages"""
    type: Literal["join"] = "join"
    conversation_id: ConversationId

    def encode(self) -> str:
        return self.model_dump_json()


class OutboundMessageFrame(BaseModel):
    """Post a message to a conversation"""
    type: Literal["message"] = "message"
    conversation_id: ConversationId
    content: str

    def encode(self) -> str:
        return self.model_dump_json()


OutboundFrame = Union[JoinFrame, OutboundMessageFrame]


# ===== Inbound Frames =====

class MessageFrame(BaseModel):
    """Server push carrying a new message"""
    type: Literal["message"]
    id: Optional[Union[int, str]] = None
    conversation_id: ConversationId
    user_id: UserId
    author_first_name: str
    author_last_name: str
    content: str
    created_at: Optional[datetime] = None

    def to_message(self) -> Message:
        return Message(**self.model_dump(exclude={"type"}))


class UnrecognizedFrame(BaseModel):
    """Well-formed frame of a type this client does not handle"""
    type: Optional[str] = None
    payload: Dict[str, Any]


InboundFrame = Union[MessageFrame, UnrecognizedFrame]


def parse_frame(raw: Union[str, bytes]) -> InboundFrame:
    """
    Validate raw inbound data into a frame.

    Args:
        raw: Text or binary websocket payload

    Returns:
        MessageFrame for "message" pushes, UnrecognizedFrame for any other type

    Raises:
        FrameError: If the payload is not a JSON object or a "message"
            frame is missing required fields
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError, RecursionError) as e:
        raise FrameError(f"Frame is not valid JSON: {e}")

    if not isinstance(data, dict):
        raise FrameError("Frame is not a JSON object", details={"kind": type(data).__name__})

    frame_type = data.get("type")
    if frame_type != "message":
        return UnrecognizedFrame(
            type=frame_type if isinstance(frame_type, str) else None,
            payload=data,
        )

    try:
        return MessageFrame.model_validate(data)
    except ValidationError as e:
        raise FrameError(
            "Message frame failed validation",
            details={"errors": e.errors(include_url=False)},
        )
