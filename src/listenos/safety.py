"""Policy filter applied to every classified action before execution."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol

from listenos.local_commands import normalize_input
from listenos.messages import ActionEnvelope, ActionType


logger = logging.getLogger(__name__)

FAREWELL_PHRASES = frozenset({
    "bye",
    "goodbye",
    "good bye",
    "see you",
    "see ya",
    "talk to you later",
    "catch you later",
    "ok bye",
    "okay bye",
    "thanks bye",
})

POWER_ACTIONS = frozenset({"shutdown", "restart", "sleep"})

FAREWELL_BLOCK_MESSAGE = (
    "Ignoring shutdown/restart because this sounded like a goodbye phrase."
)


def is_farewell_phrase(text: str) -> bool:
    return normalize_input(text) in FAREWELL_PHRASES


def is_power_control(envelope: ActionEnvelope) -> bool:
    if envelope.action_type != ActionType.SYSTEM_CONTROL:
        return False
    action = str(envelope.payload.get("action") or "").lower()
    return action in POWER_ACTIONS


class SafetyRule(Protocol):
    name: str

    def apply(self, raw_text: str, envelope: ActionEnvelope) -> Optional[ActionEnvelope]:
        ...


class FarewellPowerRule:
    name = "farewell_power"

    def apply(self, raw_text: str, envelope: ActionEnvelope) -> Optional[ActionEnvelope]:
        if not (is_farewell_phrase(raw_text) and is_power_control(envelope)):
            return None
        return ActionEnvelope.no_action(
            "farewell_phrase",
            response_text=FAREWELL_BLOCK_MESSAGE,
            blocked_action="power_control",
        )


class SafetyGuard:
    """Run each rule in order; the first rule that rewrites wins."""

    def __init__(self, rules: Optional[Iterable[SafetyRule]] = None) -> None:
        self.rules: List[SafetyRule] = list(rules) if rules is not None else [FarewellPowerRule()]

    def guard(self, raw_text: str, envelope: ActionEnvelope) -> ActionEnvelope:
        for rule in self.rules:
            rewritten = rule.apply(raw_text, envelope)
            if rewritten is not None:
                logger.info(
                    "Safety rule %s blocked %s %s",
                    rule.name,
                    envelope.action_type.value,
                    envelope.payload.get("action"),
                )
                return rewritten
        return envelope
