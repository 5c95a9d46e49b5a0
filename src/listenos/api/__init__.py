from listenos.api.router import AuthResult, build_router, create_app
from listenos.api.schemas import ActionEnvelopeResponse, HealthResponse, IntentRequest

__all__ = [
    "ActionEnvelopeResponse",
    "AuthResult",
    "HealthResponse",
    "IntentRequest",
    "build_router",
    "create_app",
]
