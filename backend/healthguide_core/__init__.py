from .context import build_context, calendar_age
from .conversation import (
    ChatMessage,
    ChatSession,
    ConversationLifecycle,
    ConversationStateError,
    add_message,
    asks_who_made,
    get_summary,
    new_session,
    refresh_insights,
    update_session,
)
from .gateway import ModelGateway, recover_assessment
from .heuristics import assess_heuristically
from .hooks import GuidanceEvent, HookRunner
from .models import Assessment, Symptom, UserContext
from .providers import ModelUnavailableError, ProviderChain
from .rate_limiter import RateLimiter, RateWindowStore
from .safety import KeywordSafetyPolicy, ResponseValidator, SafetyPolicy, SafetyVerdict, ValidationResult
from .service import ChatTurn, GuidanceService, SessionNotFoundError

__all__ = [
    "Assessment",
    "ChatMessage",
    "ChatSession",
    "ChatTurn",
    "ConversationLifecycle",
    "ConversationStateError",
    "GuidanceEvent",
    "GuidanceService",
    "HookRunner",
    "KeywordSafetyPolicy",
    "ModelGateway",
    "ModelUnavailableError",
    "ProviderChain",
    "RateLimiter",
    "RateWindowStore",
    "ResponseValidator",
    "SafetyPolicy",
    "SafetyVerdict",
    "SessionNotFoundError",
    "Symptom",
    "UserContext",
    "ValidationResult",
    "add_message",
    "asks_who_made",
    "assess_heuristically",
    "build_context",
    "calendar_age",
    "get_summary",
    "new_session",
    "recover_assessment",
    "refresh_insights",
    "update_session",
]
