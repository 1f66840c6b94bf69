from __future__ import annotations

import json
from typing import Any, Callable, Optional, Sequence

from .heuristics import assess_heuristically, risk_level_for
from .hooks import GuidanceEvent, HookRunner
from .models import (
    PRIORITIES,
    RECOMMENDATION_TYPES,
    RISK_LEVELS,
    Assessment,
    FollowUp,
    PossibleCondition,
    Recommendation,
    Symptom,
    UserContext,
)
from .prompts import (
    appointment_prompt,
    assessment_system_prompt,
    chat_system_prompt,
    health_tip_prompt,
    recent_history,
)
from .providers import ModelProvider, ProviderChain, model_timeout_from_env, provider_candidates_from_env
from .safety import ResponseValidator


CHAT_APOLOGY = (
    "I apologize, but I'm having trouble processing your request right now. "
    "Please try again in a moment, or contact our support team if the issue persists."
)
FALLBACK_HEALTH_TIP = "Stay hydrated and aim for 7-9 hours of quality sleep each night for optimal health."
FALLBACK_APPOINTMENT = (
    "Based on your symptoms, I recommend scheduling a consultation with your primary care physician "
    "to discuss your concerns and determine the best course of action."
)
DEFAULT_ADVICE = "Please consult with a healthcare professional for proper evaluation."
DEFAULT_SEEK_HELP = "If symptoms persist or worsen, seek medical attention promptly."

_ASSESSMENT_KEYS = {"possibleConditions", "recommendations", "generalAdvice", "whenToSeekHelp", "followUp"}

RecoveryStrategy = Callable[[str], Optional[Assessment]]


def _clamp_score(value: Any, default: int) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:
        return default
    return int(round(max(0.0, min(100.0, number))))


def _text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def placeholder_condition() -> PossibleCondition:
    return PossibleCondition(
        condition="General symptoms",
        probability=30,
        confidence=30,
        description="Based on the symptoms provided",
        symptoms=["Various symptoms"],
        risk_level="low",
    )


def consult_recommendation() -> Recommendation:
    return Recommendation(
        type="consultation",
        title="Consult Healthcare Provider",
        description="Schedule an appointment with your doctor to discuss these symptoms",
        priority="medium",
        timeframe="Within a week",
    )


def _coerce_condition(row: Any) -> PossibleCondition | None:
    if not isinstance(row, dict):
        return None
    probability = _clamp_score(row.get("probability"), 30)
    risk_level = str(row.get("riskLevel") or "").strip().lower()
    return PossibleCondition(
        condition=_text(row.get("condition"), "Unspecified condition"),
        probability=probability,
        confidence=_clamp_score(row.get("confidence"), 30),
        description=_text(row.get("description"), "Based on the symptoms provided"),
        symptoms=_string_list(row.get("symptoms")),
        risk_level=risk_level if risk_level in RISK_LEVELS else risk_level_for(probability),
    )


def _coerce_recommendation(row: Any) -> Recommendation | None:
    if not isinstance(row, dict):
        return None
    rec_type = str(row.get("type") or "").strip().lower()
    priority = str(row.get("priority") or "").strip().lower()
    return Recommendation(
        type=rec_type if rec_type in RECOMMENDATION_TYPES else "consultation",
        title=_text(row.get("title"), "Consult Healthcare Provider"),
        description=_text(row.get("description"), "Discuss these symptoms with your healthcare provider."),
        priority=priority if priority in PRIORITIES else "medium",
        timeframe=_text(row.get("timeframe"), "Within a week"),
    )


def coerce_assessment(payload: Any, source: str = "model") -> Assessment | None:
    """Map a parsed model payload onto a complete Assessment.

    Returns None when the payload is not an object or carries none of the
    assessment keys, so the next recovery strategy gets a chance.
    """
    if not isinstance(payload, dict) or not (_ASSESSMENT_KEYS & set(payload)):
        return None
    raw_conditions = payload.get("possibleConditions")
    conditions = [
        condition
        for condition in (_coerce_condition(row) for row in (raw_conditions if isinstance(raw_conditions, list) else []))
        if condition is not None
    ]
    raw_recommendations = payload.get("recommendations")
    recommendations = [
        rec
        for rec in (
            _coerce_recommendation(row) for row in (raw_recommendations if isinstance(raw_recommendations, list) else [])
        )
        if rec is not None
    ]
    follow_up_raw = payload.get("followUp") if isinstance(payload.get("followUp"), dict) else {}
    return Assessment(
        possible_conditions=conditions or [placeholder_condition()],
        recommendations=recommendations or [consult_recommendation()],
        general_advice=_text(payload.get("generalAdvice"), DEFAULT_ADVICE),
        when_to_seek_help=_text(payload.get("whenToSeekHelp"), DEFAULT_SEEK_HELP),
        follow_up=FollowUp(
            timeframe=_text(follow_up_raw.get("timeframe"), "1-2 weeks"),
            actions=_string_list(follow_up_raw.get("actions")) or ["Monitor symptoms", "Schedule doctor appointment"],
        ),
        source=source,
    )


def parse_direct_json(text: str) -> Assessment | None:
    try:
        payload = json.loads(text.strip())
    except (json.JSONDecodeError, ValueError):
        return None
    return coerce_assessment(payload)


def parse_brace_slice(text: str) -> Assessment | None:
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last <= first:
        return None
    try:
        payload = json.loads(text[first : last + 1])
    except (json.JSONDecodeError, ValueError):
        return None
    return coerce_assessment(payload)


def raw_text_fallback(text: str) -> Assessment:
    return Assessment(
        possible_conditions=[placeholder_condition()],
        recommendations=[consult_recommendation()],
        general_advice=text if text and text.strip() else DEFAULT_ADVICE,
        when_to_seek_help=DEFAULT_SEEK_HELP,
        follow_up=FollowUp(timeframe="1-2 weeks", actions=["Monitor symptoms", "Schedule doctor appointment"]),
        source="model_text",
    )


RECOVERY_STRATEGIES: tuple[RecoveryStrategy, ...] = (parse_direct_json, parse_brace_slice, raw_text_fallback)


def recover_assessment(text: str, strategies: Sequence[RecoveryStrategy] = RECOVERY_STRATEGIES) -> Assessment:
    for strategy in strategies:
        assessment = strategy(text)
        if assessment is not None:
            return assessment
    return raw_text_fallback(text)


class ModelGateway:
    def __init__(
        self,
        provider: ProviderChain | ModelProvider | None = None,
        *,
        validator: ResponseValidator | None = None,
        hooks: HookRunner | None = None,
        strategies: Sequence[RecoveryStrategy] = RECOVERY_STRATEGIES,
    ) -> None:
        if provider is None:
            provider = ProviderChain(provider_candidates_from_env(), deadline_seconds=model_timeout_from_env())
        elif not isinstance(provider, ProviderChain):
            provider = ProviderChain([provider])
        self.provider = provider
        self.hooks = hooks or HookRunner()
        self.validator = validator or ResponseValidator(hooks=self.hooks)
        self.strategies = tuple(strategies)

    @property
    def available(self) -> bool:
        return self.provider.configured

    def _fallback(
        self,
        operation: str,
        exc: Exception,
        user_id: str | None = None,
        session_key: str | None = None,
    ) -> None:
        print(f"model {operation} fell back: {exc}")  # noqa: T201
        self.hooks.emit(
            GuidanceEvent(
                event_type="model_fallback",
                details={"operation": operation, "error": str(exc)[:256]},
                user_id=user_id,
                session_key=session_key,
            )
        )

    def assess(
        self,
        symptoms: Sequence[Symptom],
        context: UserContext | None = None,
        *,
        user_id: str | None = None,
    ) -> Assessment:
        context = context or UserContext()
        if not self.available:
            return assess_heuristically(symptoms, context)
        try:
            raw = self.provider.complete(
                assessment_system_prompt(symptoms, context),
                [{"role": "user", "content": "Please analyze these symptoms and provide guidance."}],
                temperature=0.3,
                max_tokens=1500,
            )
            assessment = recover_assessment(raw, self.strategies)
            assessment.general_advice = self.validator.sanitize(
                assessment.general_advice, source="assessment", user_id=user_id
            )
            return assessment
        except Exception as exc:
            self._fallback("assess", exc, user_id=user_id)
            return assess_heuristically(symptoms, context)

    def chat(
        self,
        message: str,
        history: Sequence[Any] | None = None,
        context: UserContext | None = None,
        *,
        user_id: str | None = None,
        session_key: str | None = None,
    ) -> str:
        if not self.available:
            return CHAT_APOLOGY
        context = context or UserContext()
        turns = recent_history(history or [], limit=10)
        try:
            text = self.provider.complete(
                chat_system_prompt(context, turns, message),
                [*turns, {"role": "user", "content": message.strip()[:2000]}],
                temperature=0.7,
                max_tokens=800,
            )
        except Exception as exc:
            self._fallback("chat", exc, user_id=user_id, session_key=session_key)
            return CHAT_APOLOGY
        text = (text or "").strip()
        if not text:
            return CHAT_APOLOGY
        return self.validator.sanitize(text, source="chat", user_id=user_id, session_key=session_key)

    def health_tip(self, context: UserContext | None = None, *, user_id: str | None = None) -> str:
        if not self.available:
            return FALLBACK_HEALTH_TIP
        try:
            text = self.provider.complete(
                health_tip_prompt(context or UserContext()),
                [{"role": "user", "content": "Please provide a personalized daily health tip."}],
                temperature=0.8,
                max_tokens=100,
            )
        except Exception as exc:
            self._fallback("health_tip", exc, user_id=user_id)
            return FALLBACK_HEALTH_TIP
        text = (text or "").strip()
        if not text:
            return FALLBACK_HEALTH_TIP
        return self.validator.sanitize(text, source="health_tip", user_id=user_id)

    def suggest_appointment(
        self,
        symptom_names: Sequence[str],
        context: UserContext | None = None,
        *,
        user_id: str | None = None,
    ) -> str:
        if not self.available:
            return FALLBACK_APPOINTMENT
        try:
            text = self.provider.complete(
                appointment_prompt(symptom_names, context or UserContext()),
                [{"role": "user", "content": "What type of appointment should I schedule for these symptoms?"}],
                temperature=0.5,
                max_tokens=300,
            )
        except Exception as exc:
            self._fallback("suggest_appointment", exc, user_id=user_id)
            return FALLBACK_APPOINTMENT
        text = (text or "").strip()
        if not text:
            return FALLBACK_APPOINTMENT
        return self.validator.sanitize(text, source="appointment", user_id=user_id)
