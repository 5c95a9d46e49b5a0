from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Optional

import requests

from listenos.config import ListenConfig
from listenos.errors import ClassificationUnavailable, MalformedClassifierResponse
from listenos.messages import ActionEnvelope, ActionType, CustomCommand, VoiceContext
from listenos.prompts import (
    SCHEMAS_BY_TYPE,
    action_type_for_key,
    build_system_prompt,
    build_user_message,
)


logger = logging.getLogger(__name__)


class RemoteIntentClassifier:
    """Fallback classifier backed by an OpenAI-compatible chat-completion endpoint.

    Any transport or parsing failure fails open: the original utterance is
    returned as dictation instead of raising.
    """

    def __init__(
        self,
        api_base: str,
        api_key: str,
        model: str,
        temperature: float = 0.2,
        max_tokens: int = 1024,
        timeout_s: float = 10.0,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_s = timeout_s

    @classmethod
    def from_config(cls, config: ListenConfig) -> "RemoteIntentClassifier":
        return cls(
            api_base=config.llm_api_base,
            api_key=config.llm_api_key(),
            model=config.llm_model,
            temperature=config.llm_temperature,
            max_tokens=config.llm_max_tokens,
            timeout_s=config.llm_timeout_s,
        )

    def classify(
        self,
        text: str,
        context: Optional[VoiceContext] = None,
        history: Optional[str] = None,
        custom_commands: Optional[Iterable[CustomCommand]] = None,
        dictation_style: Optional[str] = None,
    ) -> ActionEnvelope:
        system_prompt = build_system_prompt(
            context=context,
            custom_commands=custom_commands,
            dictation_style=dictation_style,
            history=history,
        )
        logger.debug("Classifier system prompt:\n%s", system_prompt)
        try:
            content = self._complete(system_prompt, build_user_message(text))
            return parse_classifier_response(content, text)
        except ClassificationUnavailable as exc:
            logger.warning("Classifier unavailable, falling back to dictation: %s", exc)
        except MalformedClassifierResponse as exc:
            logger.warning("Classifier response unusable, falling back to dictation: %s", exc)
        return ActionEnvelope.type_text(text)

    def _complete(self, system_prompt: str, user_message: str) -> str:
        if not self.api_key:
            raise ClassificationUnavailable("Missing classifier API key")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }

        try:
            response = requests.post(
                f"{self.api_base}/chat/completions",
                headers=headers,
                json=payload,
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise ClassificationUnavailable(f"LLM request failed: {exc}") from exc

        if not response.ok:
            raise ClassificationUnavailable(
                f"LLM request failed: {response.status_code} {response.text}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedClassifierResponse("LLM response body is not JSON") from exc
        return _extract_message_content(data)


def _extract_message_content(data: Any) -> str:
    choices = data.get("choices") if isinstance(data, dict) else None
    if isinstance(choices, list) and choices:
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str) and content.strip():
            return content

    raise MalformedClassifierResponse("LLM response missing choices[0].message.content")


def _first_value(parsed: Dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = parsed.get(key)
        if value is not None and value != "":
            return value
    return None


def parse_classifier_response(content: str, original_text: str) -> ActionEnvelope:
    """Turn the model's JSON object into an ActionEnvelope."""
    try:
        parsed = json.loads(content)
    except ValueError as exc:
        raise MalformedClassifierResponse(f"Classifier content is not JSON: {content[:80]!r}") from exc
    if not isinstance(parsed, dict):
        raise MalformedClassifierResponse("Classifier content is not a JSON object")

    action_type = action_type_for_key(parsed.get("action") or "type_text")
    if action_type == ActionType.TYPE_TEXT:
        refined = _first_value(parsed, ("refined_text", "text"))
        return ActionEnvelope.type_text(str(refined) if refined is not None else original_text)

    schema = SCHEMAS_BY_TYPE[action_type]
    payload: Dict[str, Any] = {}
    for payload_field in schema.fields:
        value = _first_value(parsed, payload_field.aliases)
        if value is None:
            value = payload_field.default
        if value is None and payload_field.required:
            raise MalformedClassifierResponse(f"{schema.key} response missing '{payload_field.name}'")
        payload[payload_field.name] = value
    return ActionEnvelope(action_type=action_type, payload=payload)
