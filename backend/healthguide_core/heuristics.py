from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .models import Assessment, FollowUp, PossibleCondition, Recommendation, Symptom, UserContext


SEVERITY_SCORE = {"mild": 1, "moderate": 2, "severe": 3}

HEURISTIC_DISCLAIMER = (
    "This is educational guidance only and not a diagnosis. "
    "Monitor symptom changes and seek professional care as appropriate."
)
SEEK_HELP_IF_WORSENING = (
    "If symptoms worsen, new severe symptoms develop, or you are concerned, seek medical attention promptly."
)
URGENT_SYMPTOM_NAMES = {"chest pain", "shortness of breath"}


@dataclass(frozen=True)
class ConditionRule:
    match: frozenset[str]
    condition: str
    risk_base: int


CONDITION_RULES: tuple[ConditionRule, ...] = (
    ConditionRule(frozenset({"fever", "cough"}), "Viral respiratory infection", 30),
    ConditionRule(frozenset({"headache", "nausea"}), "Migraine", 25),
    ConditionRule(frozenset({"chest pain"}), "Cardiac or musculoskeletal cause", 50),
    ConditionRule(frozenset({"fatigue"}), "Fatigue (multifactorial)", 20),
    ConditionRule(frozenset({"abdominal pain"}), "Gastrointestinal upset", 30),
    ConditionRule(frozenset({"shortness of breath"}), "Respiratory issue", 40),
)
NON_SPECIFIC_RULE = ConditionRule(frozenset(), "Non-specific presentation", 15)


def risk_level_for(probability: int) -> str:
    if probability >= 70:
        return "high"
    if probability >= 45:
        return "medium"
    return "low"


def _severity(symptom: Symptom) -> int:
    return SEVERITY_SCORE.get((symptom.severity or "mild").strip().lower(), 1)


def assess_heuristically(symptoms: Sequence[Symptom], context: UserContext | None = None) -> Assessment:
    """Rule-based assessment used whenever the model path is unavailable.

    Output depends only on the reported symptoms. ``context`` is accepted so the
    signature matches the model path; the rules do not currently weight it.
    """
    reported = list(symptoms or [])
    total_severity = sum(_severity(symptom) for symptom in reported)
    max_severity = max([_severity(symptom) for symptom in reported], default=1)
    names = [(symptom.name or "").strip().lower() for symptom in reported]
    name_set = set(names)

    matched = [rule for rule in CONDITION_RULES if rule.match & name_set]
    rules = matched or [NON_SPECIFIC_RULE]

    possible_conditions: list[PossibleCondition] = []
    for idx, rule in enumerate(rules[:3]):
        probability = min(90, rule.risk_base + max_severity * 10 + idx * 5)
        confidence = min(90, 40 + total_severity * 8 - idx * 5)
        possible_conditions.append(
            PossibleCondition(
                condition=rule.condition,
                probability=probability,
                confidence=max(0, confidence),
                description="Estimated from reported symptoms using heuristic rules.",
                symptoms=list(names),
                risk_level=risk_level_for(probability),
            )
        )

    recommendations: list[Recommendation] = []
    if max_severity >= 3 or name_set & URGENT_SYMPTOM_NAMES:
        recommendations.append(
            Recommendation(
                type="emergency",
                title="Seek urgent medical care if symptoms are severe",
                description=(
                    "If chest pain, severe shortness of breath, fainting, or confusion occur, "
                    "seek immediate medical attention."
                ),
                priority="urgent",
                timeframe="Immediately",
            )
        )
    recommendations.append(
        Recommendation(
            type="consultation",
            title="Consult a healthcare professional",
            description="Discuss these symptoms with your healthcare provider for appropriate evaluation.",
            priority="high" if max_severity >= 2 else "medium",
            timeframe="Within 1-3 days" if max_severity >= 2 else "Within 1-2 weeks",
        )
    )
    recommendations.append(
        Recommendation(
            type="lifestyle",
            title="Supportive care",
            description="Hydration, balanced diet, rest, and monitoring of symptom changes.",
            priority="medium",
            timeframe="Ongoing",
        )
    )

    return Assessment(
        possible_conditions=possible_conditions,
        recommendations=recommendations,
        general_advice=HEURISTIC_DISCLAIMER,
        when_to_seek_help=SEEK_HELP_IF_WORSENING,
        follow_up=FollowUp(
            timeframe="1-2 weeks",
            actions=["Monitor symptoms daily", "Track temperature and severity", "Consult provider if persistent"],
        ),
        source="heuristic",
    )
