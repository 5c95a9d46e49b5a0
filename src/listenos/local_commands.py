"""Fast, network-free matcher for short imperative voice commands."""

from __future__ import annotations

import logging
import re
from typing import Dict, Optional

from listenos.messages import ActionEnvelope, ActionType


logger = logging.getLogger(__name__)

MAX_LOCAL_WORDS = 6

WEB_APPS: Dict[str, str] = {
    "youtube": "https://youtube.com",
    "gmail": "https://gmail.com",
    "twitter": "https://twitter.com",
    "github": "https://github.com",
    "netflix": "https://netflix.com",
}

MEDIA_PHRASES: Dict[str, str] = {
    "play": "play_pause",
    "pause": "play_pause",
    "resume": "play_pause",
    "next": "next",
    "skip": "next",
    "next song": "next",
    "previous": "previous",
    "previous song": "previous",
}

NEGATION_MARKERS = ("don't", "dont", "do not", "not ", "never", "cancel")
SLEEP_PREFIXES = ("sleep ", "put computer to sleep", "put pc to sleep")

_TRAILING_PUNCTUATION = re.compile(r"[.,!?]$")
_WHITESPACE = re.compile(r"\s+")
_OPEN_PATTERN = re.compile(r"^(?:open|launch|start)\s+(.+)$")
_SEARCH_PATTERN = re.compile(r"^(?:search|google|look up)\s+(?:for\s+)?(.+)$")


def normalize_input(text: str) -> str:
    """Trim, lowercase, drop one trailing punctuation mark and collapse spacing."""
    t = text.strip().lower()
    t = _TRAILING_PUNCTUATION.sub("", t, count=1)
    t = t.replace(", ", " ")
    return _WHITESPACE.sub(" ", t)


def has_negation(normalized: str) -> bool:
    return any(marker in normalized for marker in NEGATION_MARKERS)


class LocalCommandDetector:
    """Match a fixed phrase table in priority order; ``None`` means no match."""

    def __init__(self, web_apps: Optional[Dict[str, str]] = None) -> None:
        self.web_apps = dict(WEB_APPS if web_apps is None else web_apps)

    def detect(self, raw_text: str) -> Optional[ActionEnvelope]:
        t = normalize_input(raw_text)
        if not t or len(t.split()) > MAX_LOCAL_WORDS:
            return None

        envelope = (
            self._volume(t)
            or self._media(t)
            or self._system(t)
            or self._open(t)
            or self._search(t)
        )
        if envelope is not None:
            logger.debug("Local command match %s for %r", envelope.action_type.value, t)
        return envelope

    def _volume(self, t: str) -> Optional[ActionEnvelope]:
        if "volume" not in t and t not in {"mute", "unmute"}:
            return None
        if "up" in t or "louder" in t:
            direction = "up"
        elif "down" in t or "quieter" in t:
            direction = "down"
        else:
            direction = "mute"
        return ActionEnvelope.command(ActionType.VOLUME_CONTROL, direction=direction)

    def _media(self, t: str) -> Optional[ActionEnvelope]:
        action = MEDIA_PHRASES.get(t)
        if action is None:
            return None
        return ActionEnvelope.command(ActionType.SPOTIFY_CONTROL, action=action)

    def _system(self, t: str) -> Optional[ActionEnvelope]:
        if "lock" in t and ("computer" in t or "screen" in t or t == "lock"):
            return ActionEnvelope.command(ActionType.SYSTEM_CONTROL, action="lock")
        if "screenshot" in t:
            return ActionEnvelope.command(ActionType.SYSTEM_CONTROL, action="screenshot")
        if has_negation(t):
            return None
        if t == "sleep" or t.startswith(SLEEP_PREFIXES):
            return ActionEnvelope.command(ActionType.SYSTEM_CONTROL, action="sleep")
        return None

    def _open(self, t: str) -> Optional[ActionEnvelope]:
        match = _OPEN_PATTERN.match(t)
        if match is None:
            return None
        app = match.group(1)
        url = self.web_apps.get(app)
        if url is not None:
            return ActionEnvelope.command(ActionType.OPEN_URL, url=url)
        return ActionEnvelope.command(ActionType.OPEN_APP, app=app)

    def _search(self, t: str) -> Optional[ActionEnvelope]:
        match = _SEARCH_PATTERN.match(t)
        if match is None:
            return None
        return ActionEnvelope.command(ActionType.WEB_SEARCH, query=match.group(1))
