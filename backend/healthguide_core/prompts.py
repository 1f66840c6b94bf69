from __future__ import annotations

from typing import Any, Sequence

from .models import Symptom, UserContext


SYMPTOM_CHECKER_PROMPT = (
    "You are a medical AI assistant designed to help users understand their symptoms and provide general "
    "health guidance.\n\n"
    "IMPORTANT DISCLAIMERS:\n"
    "- You are NOT a doctor and cannot provide medical diagnosis\n"
    "- Always recommend consulting healthcare professionals for serious symptoms\n"
    "- Focus on general wellness advice and symptom understanding\n"
    "- Encourage professional medical evaluation when appropriate\n\n"
    "Always maintain a caring, professional tone and prioritize user safety."
)

HEALTH_CHAT_PROMPT = (
    "You are a compassionate AI healthcare assistant designed to provide general health information, "
    "wellness advice, and support to users.\n\n"
    "IMPORTANT LIMITATIONS:\n"
    "- You cannot diagnose medical conditions\n"
    "- You cannot prescribe medications\n"
    "- You cannot replace professional medical advice\n"
    "- Always recommend consulting healthcare providers for medical concerns\n\n"
    "Maintain a warm, supportive, and professional tone while being clear about your limitations."
)

APPOINTMENT_PROMPT = (
    "You are an AI assistant that helps users schedule and manage healthcare appointments. "
    "Help users understand what type of appointment they need, whether virtual or in-person care fits, "
    "and how to prepare. Stay helpful and informative while keeping appropriate boundaries."
)

ASSESSMENT_JSON_SHAPE = """{
  "possibleConditions": [
    {
      "condition": "string",
      "probability": number (0-100),
      "confidence": number (0-100),
      "description": "string",
      "symptoms": ["string"],
      "riskLevel": "low|medium|high|critical"
    }
  ],
  "recommendations": [
    {
      "type": "lifestyle|medication|consultation|emergency|monitoring",
      "title": "string",
      "description": "string",
      "priority": "low|medium|high|urgent",
      "timeframe": "string"
    }
  ],
  "generalAdvice": "string",
  "whenToSeekHelp": "string",
  "followUp": {
    "timeframe": "string",
    "actions": ["string"]
  }
}"""


def _joined(values: Sequence[str], empty: str) -> str:
    return ", ".join(values) if values else empty


def profile_lines(context: UserContext) -> list[str]:
    return [
        f"- Age: {context.age if context.age is not None else 'Not specified'}",
        f"- Gender: {context.gender or 'Not specified'}",
        f"- Existing Conditions: {_joined(context.existing_conditions, 'None reported')}",
        f"- Current Medications: {_joined(context.medications, 'None reported')}",
        f"- Allergies: {_joined(context.allergies, 'None reported')}",
    ]


def _symptom_line(symptom: Symptom) -> str:
    value = symptom.duration_value if symptom.duration_value is not None else "unknown"
    unit = symptom.duration_unit or "duration"
    description = symptom.description or "no description"
    return f"- {symptom.name}: {symptom.severity} severity, {value} {unit}, {description}"


def assessment_system_prompt(symptoms: Sequence[Symptom], context: UserContext) -> str:
    lines = [
        SYMPTOM_CHECKER_PROMPT,
        "",
        "User Profile:",
        *profile_lines(context),
        "",
        "Reported Symptoms:",
        *[_symptom_line(symptom) for symptom in symptoms],
        "",
        "Provide possible explanations with confidence levels, when to seek medical attention, "
        "general wellness advice, and follow-up actions.",
        "Return JSON only, with exactly this structure:",
        ASSESSMENT_JSON_SHAPE,
    ]
    return "\n".join(lines)


def chat_system_prompt(context: UserContext, recent_turns: Sequence[dict[str, str]], message: str) -> str:
    lines = [
        HEALTH_CHAT_PROMPT,
        "",
        "User Context:",
        *profile_lines(context),
        "",
        "Recent Conversation:",
        *[f"{turn['role']}: {turn['content']}" for turn in recent_turns],
        "",
        f"Current Message: {message}",
        "",
        "Address the user's concern with accurate, supportive health information, keep medical boundaries, "
        "and suggest when professional help might be needed. Keep the reply conversational.",
    ]
    return "\n".join(lines)


def health_tip_prompt(context: UserContext) -> str:
    return "\n".join(
        [
            "You are a health and wellness expert. Generate a personalized daily health tip.",
            "",
            "User Context:",
            *profile_lines(context),
            "",
            "The tip must be practical, evidence-based and encouraging. Reply with at most 2 sentences.",
        ]
    )


def appointment_prompt(symptom_names: Sequence[str], context: UserContext) -> str:
    return "\n".join(
        [
            APPOINTMENT_PROMPT,
            "",
            "User Context:",
            *profile_lines(context),
            f"- Symptoms: {_joined(symptom_names, 'None reported')}",
            "",
            "Consider urgency, the type of provider needed, virtual versus in-person care, and preparation.",
        ]
    )


def recent_history(history: Sequence[Any], limit: int = 10) -> list[dict[str, str]]:
    # Only non-empty user/assistant turns count toward ``limit``.
    turns: list[dict[str, str]] = []
    for turn in history or []:
        if not isinstance(turn, dict):
            continue
        role = str(turn.get("role") or "").strip().lower()
        content = str(turn.get("content") or "").strip()
        if role in {"user", "assistant"} and content:
            turns.append({"role": role, "content": content[:1200]})
    return turns[-limit:] if limit > 0 else []
