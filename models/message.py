"""Chat transcript models."""

import time
import uuid
from typing import Optional

from pydantic import Field

from models.base import Record
from models.enums import MessageRole


class ChatMessage(Record):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: MessageRole = MessageRole.USER
    content: str = ""
    step: Optional[str] = None
    timestamp: float = Field(default_factory=time.time)


class ChatThread(Record):
    thread_id: str
    project_id: str = ""
    title: str = ""
    created_at: str = ""
    updated_at: str = ""
    message_count: int = 0
