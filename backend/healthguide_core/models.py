from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


SEVERITY_LEVELS = {"mild", "moderate", "severe"}
DURATION_UNITS = {"hours", "days", "weeks", "months"}
RISK_LEVELS = ("low", "medium", "high", "critical")
RECOMMENDATION_TYPES = {"lifestyle", "medication", "consultation", "emergency", "monitoring"}
PRIORITIES = {"low", "medium", "high", "urgent"}


@dataclass(frozen=True)
class UserContext:
    age: int | None = None
    gender: str | None = None
    existing_conditions: tuple[str, ...] = ()
    medications: tuple[str, ...] = ()
    allergies: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "age": self.age,
            "gender": self.gender,
            "existingConditions": list(self.existing_conditions),
            "medications": list(self.medications),
            "allergies": list(self.allergies),
        }


@dataclass(frozen=True)
class Symptom:
    name: str
    severity: str = "mild"
    duration_value: float | None = None
    duration_unit: str | None = None
    description: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Symptom":
        duration = payload.get("duration") if isinstance(payload.get("duration"), dict) else {}
        return cls(
            name=str(payload.get("name") or ""),
            severity=str(payload.get("severity") or "mild"),
            duration_value=duration.get("value"),
            duration_unit=duration.get("unit"),
            description=payload.get("description"),
        )


@dataclass
class PossibleCondition:
    condition: str
    probability: int
    confidence: int
    description: str
    symptoms: list[str] = field(default_factory=list)
    risk_level: str = "low"

    def as_dict(self) -> dict[str, Any]:
        return {
            "condition": self.condition,
            "probability": self.probability,
            "confidence": self.confidence,
            "description": self.description,
            "symptoms": list(self.symptoms),
            "riskLevel": self.risk_level,
        }


@dataclass
class Recommendation:
    type: str
    title: str
    description: str
    priority: str
    timeframe: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "timeframe": self.timeframe,
        }


@dataclass
class FollowUp:
    timeframe: str
    actions: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {"timeframe": self.timeframe, "actions": list(self.actions)}


@dataclass
class Assessment:
    possible_conditions: list[PossibleCondition]
    recommendations: list[Recommendation]
    general_advice: str
    when_to_seek_help: str
    follow_up: FollowUp
    source: str = "heuristic"

    def as_dict(self) -> dict[str, Any]:
        return {
            "possibleConditions": [row.as_dict() for row in self.possible_conditions],
            "recommendations": [row.as_dict() for row in self.recommendations],
            "generalAdvice": self.general_advice,
            "whenToSeekHelp": self.when_to_seek_help,
            "followUp": self.follow_up.as_dict(),
            "source": self.source,
        }
