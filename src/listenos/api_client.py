from typing import Any, Dict, Iterable, Optional

import requests

from listenos.errors import IntentApiError
from listenos.messages import ActionEnvelope, CustomCommand, VoiceContext


class IntentApiClient:
    """Desktop-side client for a remote ``POST /intent/process`` server."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        intent_path: str = "/intent/process",
        timeout_s: float = 20,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.intent_path = intent_path
        self.timeout_s = timeout_s

    def resolve(
        self,
        text: str,
        context: Optional[VoiceContext] = None,
        history: Optional[str] = None,
        custom_commands: Optional[Iterable[CustomCommand]] = None,
        dictation_style: Optional[str] = None,
    ) -> ActionEnvelope:
        payload: Dict[str, Any] = {"text": text}
        if context is not None:
            payload["context"] = context.to_dict()
        if history:
            payload["conversation_history"] = history
        commands = [command.to_dict() for command in custom_commands or ()]
        if commands:
            payload["custom_commands"] = commands
        if dictation_style:
            payload["dictation_style"] = dictation_style

        headers = {}
        if self.api_key:
            headers["X-API-Key"] = self.api_key

        try:
            response = requests.post(
                f"{self.base_url}{self.intent_path}",
                headers=headers,
                json=payload,
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise IntentApiError(f"Intent request failed: {exc}") from exc

        if not response.ok:
            raise IntentApiError(
                f"Intent request failed: {response.status_code} {response.text}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise IntentApiError(f"Intent response is not JSON: {response.text[:200]}") from exc
        if not isinstance(body, dict):
            raise IntentApiError("Intent response is not a JSON object")
        return ActionEnvelope.from_dict(body)
