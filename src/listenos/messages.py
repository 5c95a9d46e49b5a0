from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
import platform
from typing import Any, Dict, List, Optional


class ActionType(str, Enum):
    TYPE_TEXT = "TypeText"
    OPEN_APP = "OpenApp"
    OPEN_URL = "OpenUrl"
    WEB_SEARCH = "WebSearch"
    VOLUME_CONTROL = "VolumeControl"
    SYSTEM_CONTROL = "SystemControl"
    SPOTIFY_CONTROL = "SpotifyControl"
    DISCORD_CONTROL = "DiscordControl"
    SEND_EMAIL = "SendEmail"
    CLIPBOARD_FORMAT = "ClipboardFormat"
    CLIPBOARD_TRANSLATE = "ClipboardTranslate"
    CLIPBOARD_SUMMARIZE = "ClipboardSummarize"
    RESPOND = "Respond"
    CLARIFY = "Clarify"
    NO_ACTION = "NoAction"


CONVERSATIONAL_TYPES = frozenset({ActionType.RESPOND, ActionType.CLARIFY})


class VoiceMode(str, Enum):
    DICTATION = "dictation"
    COMMAND = "command"


@dataclass(frozen=True)
class ActionEnvelope:
    """Normalized outcome of intent resolution.

    Dictation carries ``refined_text``, commands carry a ``payload`` shaped by
    their ``action_type``, conversational types carry ``response_text``.
    ``NoAction`` carries only ``payload["reason"]`` (plus optional detail keys).
    """

    action_type: ActionType
    payload: Dict[str, Any] = field(default_factory=dict)
    refined_text: Optional[str] = None
    response_text: Optional[str] = None
    requires_confirmation: bool = False

    @classmethod
    def type_text(cls, text: str) -> "ActionEnvelope":
        return cls(action_type=ActionType.TYPE_TEXT, refined_text=text)

    @classmethod
    def command(cls, action_type: ActionType, **payload: Any) -> "ActionEnvelope":
        return cls(action_type=action_type, payload=dict(payload))

    @classmethod
    def respond(cls, text: str, clarify: bool = False) -> "ActionEnvelope":
        action_type = ActionType.CLARIFY if clarify else ActionType.RESPOND
        return cls(action_type=action_type, response_text=text)

    @classmethod
    def no_action(
        cls,
        reason: str,
        response_text: Optional[str] = None,
        **detail: Any,
    ) -> "ActionEnvelope":
        payload: Dict[str, Any] = dict(detail)
        payload["reason"] = reason
        return cls(
            action_type=ActionType.NO_ACTION,
            payload=payload,
            response_text=response_text,
        )

    @property
    def is_conversational(self) -> bool:
        return self.action_type in CONVERSATIONAL_TYPES

    def with_payload(self, **fields: Any) -> "ActionEnvelope":
        payload = dict(self.payload)
        payload.update(fields)
        return replace(self, payload=payload)

    def with_response(self, text: Optional[str]) -> "ActionEnvelope":
        return replace(self, response_text=text)

    def with_confirmation(self, required: bool) -> "ActionEnvelope":
        return replace(self, requires_confirmation=required)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_type": self.action_type.value,
            "payload": dict(self.payload),
            "refined_text": self.refined_text,
            "response_text": self.response_text,
            "requires_confirmation": self.requires_confirmation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionEnvelope":
        raw_type = str(data.get("action_type") or ActionType.TYPE_TEXT.value)
        try:
            action_type = ActionType(raw_type)
        except ValueError:
            action_type = ActionType.TYPE_TEXT
        payload = data.get("payload")
        return cls(
            action_type=action_type,
            payload=dict(payload) if isinstance(payload, dict) else {},
            refined_text=data.get("refined_text"),
            response_text=data.get("response_text"),
            requires_confirmation=bool(data.get("requires_confirmation", False)),
        )


@dataclass(frozen=True)
class PendingAction:
    id: str
    envelope: ActionEnvelope
    summary: str
    transcript: str
    created_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "action_type": self.envelope.action_type.value,
            "payload": dict(self.envelope.payload),
            "transcription": self.transcript,
            "summary": self.summary,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class CustomCommand:
    trigger: str
    name: str
    id: str

    def to_dict(self) -> Dict[str, str]:
        return {"trigger": self.trigger, "name": self.name, "id": self.id}


def _default_os() -> str:
    name = platform.system().lower()
    return {"darwin": "macos"}.get(name, name or "unknown")


@dataclass(frozen=True)
class VoiceContext:
    active_app: Optional[str] = None
    selected_text: Optional[str] = None
    os: str = field(default_factory=_default_os)
    mode: VoiceMode = VoiceMode.COMMAND

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active_app": self.active_app,
            "selected_text": self.selected_text,
            "os": self.os,
            "mode": self.mode.value,
        }


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    confidence: float = 1.0
    duration_ms: int = 0
    is_final: bool = True


@dataclass(frozen=True)
class ExecutionResult:
    executed: bool
    execution_message: Optional[str] = None
    execution_error: Optional[str] = None

    @classmethod
    def ok(cls, message: str) -> "ExecutionResult":
        return cls(executed=True, execution_message=message)

    @classmethod
    def failed(cls, error: str) -> "ExecutionResult":
        return cls(executed=False, execution_error=error)


def custom_commands_payload(commands: Optional[List[CustomCommand]]) -> List[Dict[str, str]]:
    return [command.to_dict() for command in commands or []]
