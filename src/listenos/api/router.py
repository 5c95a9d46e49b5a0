"""
Intent resolution endpoint.

Callers authorize with ``X-API-Key`` (desktop client) or through a pluggable
session validator. When neither an API key nor a validator is configured the
endpoint is open, which is meant for loopback use only.
"""

from dataclasses import dataclass
import hmac
import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, status

from listenos.config import ListenConfig
from listenos.llm_client import RemoteIntentClassifier
from listenos.resolver import IntentResolver
from listenos.api.schemas import ActionEnvelopeResponse, HealthResponse, IntentRequest


logger = logging.getLogger(__name__)

SessionValidator = Callable[[Request], bool]


@dataclass
class AuthResult:
    """Result of authorization check."""
    authenticated: bool
    method: str


def _auth_mode(api_key: Optional[str], session_validator: Optional[SessionValidator]) -> str:
    if api_key and session_validator is not None:
        return "api_key+session"
    if api_key:
        return "api_key"
    if session_validator is not None:
        return "session"
    return "open"


def build_router(
    resolver: IntentResolver,
    api_key: Optional[str] = None,
    session_validator: Optional[SessionValidator] = None,
) -> APIRouter:
    router = APIRouter(prefix="/intent", tags=["intent"])

    def require_authorization(
        request: Request,
        x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    ) -> AuthResult:
        if api_key and x_api_key and hmac.compare_digest(x_api_key, api_key):
            return AuthResult(authenticated=True, method="api_key")
        if session_validator is not None and session_validator(request):
            return AuthResult(authenticated=True, method="session")
        if not api_key and session_validator is None:
            return AuthResult(authenticated=True, method="open")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    @router.post("/process", response_model=ActionEnvelopeResponse)
    def process_intent(
        body: IntentRequest,
        auth: AuthResult = Depends(require_authorization),
    ) -> ActionEnvelopeResponse:
        """Resolve one utterance into an action envelope."""
        text = body.text.strip()
        if not text:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Text is required",
            )

        envelope = resolver.resolve(
            text,
            context=body.context.to_voice_context(),
            history=body.conversation_history,
            custom_commands=[command.to_command() for command in body.custom_commands],
            dictation_style=body.dictation_style,
        )
        logger.info(
            "Resolved intent via %s: %s (%d chars)",
            auth.method,
            envelope.action_type.value,
            len(text),
        )
        return ActionEnvelopeResponse(**envelope.to_dict())

    return router


def create_app(
    config: Optional[ListenConfig] = None,
    resolver: Optional[IntentResolver] = None,
    session_validator: Optional[SessionValidator] = None,
) -> FastAPI:
    config = config or ListenConfig.from_env()
    if resolver is None:
        resolver = IntentResolver(RemoteIntentClassifier.from_config(config))

    api_key = config.api_key or None
    auth_mode = _auth_mode(api_key, session_validator)
    if auth_mode == "open":
        logger.warning("LISTENOS_API_KEY is not set; intent endpoint accepts unauthenticated calls")

    app = FastAPI(title="ListenOS intent service")
    app.include_router(build_router(resolver, api_key=api_key, session_validator=session_validator))

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok", auth=auth_mode)

    return app
