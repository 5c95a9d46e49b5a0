"""Request/response models for the intent HTTP boundary."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from listenos.messages import CustomCommand, VoiceContext, VoiceMode


class IntentContext(BaseModel):
    active_app: Optional[str] = Field(None, description="Foreground application name")
    selected_text: Optional[str] = Field(None, description="Text selected in the foreground app")
    os: Optional[str] = Field(None, description="Client operating system")
    mode: VoiceMode = Field(VoiceMode.COMMAND, description="dictation or command")

    def to_voice_context(self) -> VoiceContext:
        if self.os:
            return VoiceContext(
                active_app=self.active_app,
                selected_text=self.selected_text,
                os=self.os,
                mode=self.mode,
            )
        return VoiceContext(
            active_app=self.active_app,
            selected_text=self.selected_text,
            mode=self.mode,
        )


class CustomCommandModel(BaseModel):
    trigger: str
    name: str
    id: str

    def to_command(self) -> CustomCommand:
        return CustomCommand(trigger=self.trigger, name=self.name, id=self.id)


class IntentRequest(BaseModel):
    text: str = Field("", description="Transcribed utterance")
    context: IntentContext = Field(default_factory=IntentContext)
    conversation_history: Optional[str] = None
    custom_commands: List[CustomCommandModel] = Field(default_factory=list)
    dictation_style: Optional[str] = None


class ActionEnvelopeResponse(BaseModel):
    action_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    refined_text: Optional[str] = None
    response_text: Optional[str] = None
    requires_confirmation: bool = False


class HealthResponse(BaseModel):
    status: str
    auth: str
