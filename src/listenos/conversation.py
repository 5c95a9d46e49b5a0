"""Append-only conversation log with a bounded short-term window."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import threading
from typing import Any, Dict, List, Optional
import uuid


MAX_SHORT_TERM_MESSAGES = 10


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class ConversationMessage:
    role: Role
    content: str
    action_taken: Optional[str] = None
    action_success: Optional[bool] = None
    voice_session_id: Optional[int] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "action_taken": self.action_taken,
            "action_success": self.action_success,
            "voice_session_id": self.voice_session_id,
        }


class ConversationLog:
    def __init__(self, session_id: Optional[str] = None) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self._messages: List[ConversationMessage] = []
        self._last_action: Optional[str] = None
        self._last_action_payload: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()

    def append(self, message: ConversationMessage) -> None:
        with self._lock:
            self._messages.append(message)
            if message.role == Role.ASSISTANT and message.action_taken:
                self._last_action = message.action_taken
            if len(self._messages) > MAX_SHORT_TERM_MESSAGES * 2:
                del self._messages[: len(self._messages) - MAX_SHORT_TERM_MESSAGES]

    def add_user_message(
        self,
        content: str,
        action_taken: Optional[str] = None,
        action_success: Optional[bool] = None,
        voice_session_id: Optional[int] = None,
    ) -> ConversationMessage:
        message = ConversationMessage(Role.USER, content, action_taken, action_success, voice_session_id)
        self.append(message)
        return message

    def add_assistant_message(
        self,
        content: str,
        action_taken: Optional[str] = None,
        action_success: Optional[bool] = None,
        payload: Optional[Dict[str, Any]] = None,
        voice_session_id: Optional[int] = None,
    ) -> ConversationMessage:
        message = ConversationMessage(
            Role.ASSISTANT, content, action_taken, action_success, voice_session_id
        )
        self.append(message)
        if action_taken:
            with self._lock:
                self._last_action_payload = dict(payload) if payload else None
        return message

    def messages(self) -> List[ConversationMessage]:
        with self._lock:
            return list(self._messages)

    def context_messages(self) -> List[ConversationMessage]:
        with self._lock:
            return self._messages[-MAX_SHORT_TERM_MESSAGES:]

    def format_for_llm(self) -> str:
        messages = self.context_messages()
        if not messages:
            return "No previous conversation."

        lines = []
        for message in messages:
            if message.action_taken and message.action_success is True:
                action_info = f" [Executed: {message.action_taken}]"
            elif message.action_taken and message.action_success is False:
                action_info = f" [Failed: {message.action_taken}]"
            elif message.action_taken:
                action_info = f" [Action: {message.action_taken}]"
            else:
                action_info = ""
            stamp = message.timestamp.strftime("%H:%M:%S")
            lines.append(f"[{stamp}] {message.role.value}: {message.content}{action_info}")
        return "\n".join(lines) + "\n"

    def last_action_context(self) -> Optional[str]:
        with self._lock:
            if self._last_action is None:
                return None
            if self._last_action_payload:
                return f"{self._last_action} with {self._last_action_payload}"
            return self._last_action

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()
            self._last_action = None
            self._last_action_payload = None
