from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol

from listenos.local_commands import LocalCommandDetector
from listenos.messages import ActionEnvelope, CustomCommand, VoiceContext
from listenos.safety import SafetyGuard


logger = logging.getLogger(__name__)


class IntentClassifier(Protocol):
    def classify(
        self,
        text: str,
        context: Optional[VoiceContext] = None,
        history: Optional[str] = None,
        custom_commands: Optional[Iterable[CustomCommand]] = None,
        dictation_style: Optional[str] = None,
    ) -> ActionEnvelope:
        ...


class IntentResolver:
    """Local fast path first, remote classifier otherwise; the safety guard runs on both."""

    def __init__(
        self,
        classifier: IntentClassifier,
        detector: Optional[LocalCommandDetector] = None,
        guard: Optional[SafetyGuard] = None,
    ) -> None:
        self.classifier = classifier
        self.detector = detector or LocalCommandDetector()
        self.guard = guard or SafetyGuard()

    def resolve(
        self,
        text: str,
        context: Optional[VoiceContext] = None,
        history: Optional[str] = None,
        custom_commands: Optional[Iterable[CustomCommand]] = None,
        dictation_style: Optional[str] = None,
    ) -> ActionEnvelope:
        local = self.detector.detect(text)
        if local is not None:
            return self.guard.guard(text, local)

        logger.debug("No local match, asking remote classifier")
        remote = self.classifier.classify(
            text,
            context=context,
            history=history,
            custom_commands=custom_commands,
            dictation_style=dictation_style,
        )
        return self.guard.guard(text, remote)
