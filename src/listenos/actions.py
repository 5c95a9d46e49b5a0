from __future__ import annotations

import logging
from typing import Callable, Dict, List

from listenos.errors import ExecutionFailed
from listenos.execution_gate import summarize_action
from listenos.messages import ActionEnvelope, ActionType, ExecutionResult


logger = logging.getLogger(__name__)

ActionHandler = Callable[[ActionEnvelope], ExecutionResult]


class ActionRegistry:
    """Dispatch envelopes to the OS-level handler registered for their action type."""

    def __init__(self) -> None:
        self._handlers: Dict[ActionType, ActionHandler] = {}

    def register(self, action_type: ActionType, handler: ActionHandler) -> None:
        self._handlers[action_type] = handler

    def names(self) -> List[str]:
        return [action_type.value for action_type in self._handlers]

    def execute(self, envelope: ActionEnvelope) -> ExecutionResult:
        handler = self._handlers.get(envelope.action_type)
        if handler is None:
            return ExecutionResult.failed(f"Unsupported action type: {envelope.action_type.value}")
        try:
            return handler(envelope)
        except ExecutionFailed as exc:
            return ExecutionResult.failed(str(exc))


def _dry_run(envelope: ActionEnvelope) -> ExecutionResult:
    summary = summarize_action(envelope)
    logger.info("Dry run: %s payload=%s", summary, envelope.payload)
    return ExecutionResult.ok(f"Would {summary[0].lower()}{summary[1:]}")


def dry_run_registry() -> ActionRegistry:
    """Registry that only logs what it would do, for the text console."""
    registry = ActionRegistry()
    for action_type in ActionType:
        if action_type in {ActionType.NO_ACTION, ActionType.RESPOND, ActionType.CLARIFY}:
            continue
        registry.register(action_type, _dry_run)
    return registry
