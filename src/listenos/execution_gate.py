"""Confirmation gate between intent resolution and action execution."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
import time
from typing import Callable, Dict, Optional, Protocol
import uuid

from listenos.conversation import ConversationLog
from listenos.errors import NoPendingAction, PendingActionExists
from listenos.messages import ActionEnvelope, ActionType, PendingAction


logger = logging.getLogger(__name__)

DEFAULT_CONFIRMATION_TIMEOUT_S = 25.0

ALWAYS_CONFIRM = frozenset({ActionType.SEND_EMAIL})
CONFIRM_SYSTEM_ACTIONS = frozenset({
    "shutdown",
    "restart",
    "sleep",
    "recycle_bin",
    "factory_reset",
    "sign_out",
    "organize_downloads",
})

_SYSTEM_SUMMARIES: Dict[str, str] = {
    "organize_downloads": "Organize Downloads folder",
    "downloads_count": "Count items in Downloads folder",
    "screenshot": "Take a screenshot",
    "open_screenshots_folder": "Open screenshots folder",
}

SUMMARY_PREVIEW_CHARS = 48


def requires_confirmation(envelope: ActionEnvelope) -> bool:
    if envelope.requires_confirmation or envelope.action_type in ALWAYS_CONFIRM:
        return True
    if envelope.action_type == ActionType.SYSTEM_CONTROL:
        action = str(envelope.payload.get("action") or "").lower()
        return action in CONFIRM_SYSTEM_ACTIONS
    return False


def summarize_action(envelope: ActionEnvelope) -> str:
    payload = envelope.payload
    action_type = envelope.action_type
    if action_type == ActionType.OPEN_APP:
        return f"Open {payload.get('app') or 'application'}"
    if action_type == ActionType.OPEN_URL:
        return f"Open {payload.get('url') or 'URL'}"
    if action_type == ActionType.WEB_SEARCH:
        return f'Search web for "{payload.get("query") or "query"}"'
    if action_type == ActionType.SYSTEM_CONTROL:
        system_action = str(payload.get("action") or "system action")
        return _SYSTEM_SUMMARIES.get(system_action, f"System action: {system_action}")
    if action_type == ActionType.SEND_EMAIL:
        return "Send email"
    if action_type == ActionType.VOLUME_CONTROL:
        return f"Volume {payload.get('direction') or 'change'}"
    if action_type == ActionType.TYPE_TEXT:
        text = envelope.refined_text or "text"
        if len(text) > SUMMARY_PREVIEW_CHARS:
            return f"Type text: {text[:SUMMARY_PREVIEW_CHARS]}..."
        return f"Type text: {text}"
    return action_type.value


class PendingStore(Protocol):
    def get(self, key: str) -> Optional[PendingAction]:
        ...

    def put(self, key: str, pending: PendingAction) -> None:
        ...

    def pop(self, key: str) -> Optional[PendingAction]:
        ...


class InMemoryPendingStore:
    def __init__(self) -> None:
        self._slots: Dict[str, PendingAction] = {}

    def get(self, key: str) -> Optional[PendingAction]:
        return self._slots.get(key)

    def put(self, key: str, pending: PendingAction) -> None:
        self._slots[key] = pending

    def pop(self, key: str) -> Optional[PendingAction]:
        return self._slots.pop(key, None)


@dataclass(frozen=True)
class GateDecision:
    execute_now: Optional[ActionEnvelope] = None
    pending: Optional[PendingAction] = None


class ExecutionGate:
    """Owns the single pending-confirmation slot for one session key.

    A second ``submit`` while the slot is occupied raises
    ``PendingActionExists`` instead of overwriting it. Pending actions older
    than ``confirmation_timeout_s`` are discarded on the next access.
    """

    def __init__(
        self,
        store: Optional[PendingStore] = None,
        conversation: Optional[ConversationLog] = None,
        confirmation_timeout_s: float = DEFAULT_CONFIRMATION_TIMEOUT_S,
        session_key: str = "default",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store if store is not None else InMemoryPendingStore()
        self.conversation = conversation
        self.confirmation_timeout_s = confirmation_timeout_s
        self.session_key = session_key
        self._clock = clock
        self._lock = threading.Lock()

    def submit(self, envelope: ActionEnvelope, transcript: str = "") -> GateDecision:
        if not envelope.requires_confirmation:
            return GateDecision(execute_now=envelope)

        with self._lock:
            existing = self._current()
            if existing is not None:
                raise PendingActionExists(
                    f"Action {existing.id} is still awaiting confirmation: {existing.summary}"
                )
            summary = summarize_action(envelope)
            if envelope.response_text is None:
                envelope = envelope.with_response(f"Confirmation required: {summary}")
            pending = PendingAction(
                id=uuid.uuid4().hex,
                envelope=envelope,
                summary=summary,
                transcript=transcript,
                created_at=self._clock(),
            )
            self.store.put(self.session_key, pending)

        logger.info("Pending confirmation %s: %s", pending.id, summary)
        return GateDecision(pending=pending)

    def pending(self) -> Optional[PendingAction]:
        with self._lock:
            return self._current()

    def confirm(self) -> ActionEnvelope:
        with self._lock:
            pending = self._current()
            if pending is None:
                raise NoPendingAction("No pending action to confirm")
            self.store.pop(self.session_key)
        logger.info("Pending action %s confirmed", pending.id)
        return pending.envelope

    def cancel(self) -> bool:
        with self._lock:
            pending = self.store.pop(self.session_key)
        if pending is not None:
            logger.info("Pending action %s cancelled", pending.id)
        return pending is not None

    def record(
        self,
        transcript: str,
        envelope: ActionEnvelope,
        executed: Optional[bool],
        voice_session_id: Optional[int] = None,
    ) -> None:
        """Append the transcript and, for non-dictation actions, the assistant outcome."""
        if self.conversation is None:
            return
        action_taken = envelope.action_type.value
        self.conversation.add_user_message(
            transcript, action_taken, executed, voice_session_id=voice_session_id
        )
        if envelope.action_type != ActionType.TYPE_TEXT:
            self.record_outcome(
                _assistant_content(envelope), envelope, executed, voice_session_id=voice_session_id
            )

    def record_outcome(
        self,
        content: str,
        envelope: ActionEnvelope,
        executed: Optional[bool],
        voice_session_id: Optional[int] = None,
    ) -> None:
        if self.conversation is None:
            return
        self.conversation.add_assistant_message(
            content,
            envelope.action_type.value,
            executed,
            payload=envelope.payload,
            voice_session_id=voice_session_id,
        )

    def _current(self) -> Optional[PendingAction]:
        pending = self.store.get(self.session_key)
        if pending is None:
            return None
        if self._clock() - pending.created_at > self.confirmation_timeout_s:
            self.store.pop(self.session_key)
            logger.info("Pending action %s expired unconfirmed", pending.id)
            return None
        return pending


def _assistant_content(envelope: ActionEnvelope) -> str:
    return (
        envelope.response_text
        or envelope.refined_text
        or f"Executed: {envelope.action_type.value}"
    )
