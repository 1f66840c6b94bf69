from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from .hooks import GuidanceEvent, HookRunner


SAFE_REDIRECT = "I recommend consulting with a healthcare professional for proper evaluation of your symptoms."


@dataclass(frozen=True)
class SafetyVerdict:
    safe: bool
    matched: tuple[str, ...] = ()


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    sanitized: Any


class SafetyPolicy(Protocol):
    def classify(self, text: str) -> SafetyVerdict: ...


class KeywordSafetyPolicy:
    DENYLIST = (
        "self-diagnose",
        "self-treat",
        "ignore symptoms",
        "delay treatment",
        "alternative medicine only",
        "avoid doctors",
        "natural cure",
    )

    def __init__(self, denylist: tuple[str, ...] | None = None) -> None:
        self.denylist = tuple(phrase.lower() for phrase in (denylist or self.DENYLIST))

    def classify(self, text: str) -> SafetyVerdict:
        lowered = text.lower()
        matched = tuple(phrase for phrase in self.denylist if phrase in lowered)
        return SafetyVerdict(safe=not matched, matched=matched)


class ResponseValidator:
    def __init__(self, policy: SafetyPolicy | None = None, hooks: HookRunner | None = None) -> None:
        self.policy = policy or KeywordSafetyPolicy()
        self.hooks = hooks or HookRunner()

    def validate(
        self,
        text: Any,
        *,
        source: str = "model",
        user_id: str | None = None,
        session_key: str | None = None,
    ) -> ValidationResult:
        if not isinstance(text, str):
            return ValidationResult(is_valid=True, sanitized=text)
        verdict = self.policy.classify(text)
        if verdict.safe:
            return ValidationResult(is_valid=True, sanitized=text)
        self.hooks.emit(
            GuidanceEvent(
                event_type="unsafe_content_replaced",
                details={"source": source, "matched": list(verdict.matched), "excerpt": text[:256]},
                user_id=user_id,
                session_key=session_key,
            )
        )
        return ValidationResult(is_valid=False, sanitized=SAFE_REDIRECT)

    def sanitize(
        self,
        text: str,
        *,
        source: str = "model",
        user_id: str | None = None,
        session_key: str | None = None,
    ) -> str:
        return self.validate(text, source=source, user_id=user_id, session_key=session_key).sanitized
