"""Action schema table and the classifier instruction document rendered from it.

The same table drives both the prompt (what the model is told it may answer)
and the response parser (which keys map to which action and payload fields).
"""

from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Dict, Iterable, Optional, Tuple

from listenos.messages import ActionType, CustomCommand, VoiceContext


@dataclass(frozen=True)
class PayloadField:
    name: str
    aliases: Tuple[str, ...]
    default: Optional[str] = None
    required: bool = False


@dataclass(frozen=True)
class ActionSchema:
    action_type: ActionType
    key: str
    title: str
    example: Dict[str, str]
    usage: str
    fields: Tuple[PayloadField, ...] = ()

    def render(self, index: int) -> str:
        example = json.dumps({"action": self.key, **self.example})
        return f"{index}. {self.action_type.value} - {self.title}\n   {example}\n   {self.usage}"


ACTION_SCHEMAS: Tuple[ActionSchema, ...] = (
    ActionSchema(
        action_type=ActionType.TYPE_TEXT,
        key="type_text",
        title="Type/dictate text into active window",
        example={"refined_text": "text to type"},
        usage="USE FOR: messages, sentences, greetings being typed (not commands)",
    ),
    ActionSchema(
        action_type=ActionType.OPEN_APP,
        key="open_app",
        title="Open an application",
        example={"app": "app_name"},
        usage='TRIGGERS: "open [app]", "launch [app]", "start [app]"',
        fields=(PayloadField("app", ("app", "application"), required=True),),
    ),
    ActionSchema(
        action_type=ActionType.OPEN_URL,
        key="open_url",
        title="Open URL in browser",
        example={"url": "https://..."},
        usage='TRIGGERS: "open youtube", "go to gmail", "open netflix"',
        fields=(PayloadField("url", ("url",), required=True),),
    ),
    ActionSchema(
        action_type=ActionType.WEB_SEARCH,
        key="web_search",
        title="Search the web",
        example={"query": "search terms"},
        usage='TRIGGERS: "search for [x]", "google [x]", "look up [x]"',
        fields=(PayloadField("query", ("query", "search_query"), required=True),),
    ),
    ActionSchema(
        action_type=ActionType.VOLUME_CONTROL,
        key="volume_control",
        title="System volume",
        example={"direction": "up|down|mute"},
        usage='TRIGGERS: "volume up/down", "mute", "louder", "quieter"',
        fields=(PayloadField("direction", ("direction",), default="up"),),
    ),
    ActionSchema(
        action_type=ActionType.SYSTEM_CONTROL,
        key="system_control",
        title="System actions",
        example={"system_action": "lock|sleep|screenshot"},
        usage='TRIGGERS: "lock computer", "take screenshot", "sleep"',
        fields=(PayloadField("action", ("system_action", "action_type"), required=True),),
    ),
    ActionSchema(
        action_type=ActionType.SPOTIFY_CONTROL,
        key="spotify_control",
        title="Media control",
        example={"media_action": "play_pause|next|previous"},
        usage='TRIGGERS: "play", "pause", "next song", "previous"',
        fields=(PayloadField("action", ("media_action",), default="play_pause"),),
    ),
)

SCHEMAS_BY_KEY: Dict[str, ActionSchema] = {schema.key: schema for schema in ACTION_SCHEMAS}
SCHEMAS_BY_TYPE: Dict[ActionType, ActionSchema] = {
    schema.action_type: schema for schema in ACTION_SCHEMAS
}

# Keys the model may emit that are not schema keys of their own.
ACTION_KEY_ALIASES: Dict[str, ActionType] = {"no_action": ActionType.TYPE_TEXT}


def action_type_for_key(key: object) -> ActionType:
    """Map a response ``action`` key to an ActionType; unknown keys mean dictation."""
    name = str(key or "").strip().lower()
    schema = SCHEMAS_BY_KEY.get(name)
    if schema is not None:
        return schema.action_type
    return ACTION_KEY_ALIASES.get(name, ActionType.TYPE_TEXT)


DICTATION_STYLES: Dict[str, str] = {
    "formal": "Use complete sentences, proper capitalization and punctuation.",
    "casual": "Keep a relaxed tone with light punctuation.",
    "very_casual": "Keep it loose: lowercase is fine and punctuation is minimal.",
}

RULES: Tuple[str, ...] = (
    '"open youtube/gmail/netflix" = OpenUrl (web apps)',
    '"open chrome/notepad/vscode" = OpenApp (desktop apps)',
    '"hello", "how are you", sentences = TypeText (dictation)',
    "Explicit commands with trigger words = appropriate action",
    "When in doubt, TypeText",
    "Always respond with valid JSON",
)

_HEADER = """You are ListenOS, a voice assistant. Determine if the user wants to execute a COMMAND or just TYPE text.

CONTEXT:
- OS: {os}
- Mode: {mode}
- Active App: {active_app}

ACTIONS (respond with JSON):

{actions}
"""


def render_custom_commands(commands: Iterable[CustomCommand]) -> str:
    lines = [f'- "{cmd.trigger}" -> command "{cmd.name}" (id: {cmd.id})' for cmd in commands]
    if not lines:
        return ""
    return "\nCUSTOM COMMANDS:\n" + "\n".join(lines) + "\n"


def build_system_prompt(
    context: Optional[VoiceContext] = None,
    custom_commands: Optional[Iterable[CustomCommand]] = None,
    dictation_style: Optional[str] = None,
    history: Optional[str] = None,
) -> str:
    context = context or VoiceContext()
    prompt = _HEADER.format(
        os=context.os or "unknown",
        mode=context.mode.value,
        active_app=context.active_app or "unknown",
        actions="\n\n".join(
            schema.render(index) for index, schema in enumerate(ACTION_SCHEMAS, start=1)
        ),
    )

    prompt += render_custom_commands(custom_commands or ())

    style = DICTATION_STYLES.get(dictation_style or "")
    if style:
        prompt += f"\nDICTATION STYLE ({dictation_style}): {style}\n"

    if history and history.strip():
        prompt += f"\nRECENT CONVERSATION:\n{history.strip()}\n"

    rules = "\n".join(f"{number}. {rule}" for number, rule in enumerate(RULES, start=1))
    prompt += f"\nRULES:\n{rules}"
    return prompt


def build_user_message(text: str) -> str:
    return f'User request: "{text}"\n\nAnalyze and respond with the appropriate action.'
