from __future__ import annotations

from datetime import date, datetime
from typing import Any

from .models import UserContext


def _coerce_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def calendar_age(date_of_birth: Any, today: date | None = None) -> int | None:
    born = _coerce_date(date_of_birth)
    if born is None:
        return None
    today = today or date.today()
    if born > today:
        return None
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


def _flatten_names(rows: Any, *keys: str) -> tuple[str, ...]:
    if not isinstance(rows, (list, tuple)):
        return ()
    names: list[str] = []
    for row in rows:
        value: Any = row
        if isinstance(row, dict):
            value = next((row.get(key) for key in keys if row.get(key)), None)
        if isinstance(value, str) and value.strip():
            names.append(value.strip())
    return tuple(names)


def build_context(profile: dict[str, Any] | None, today: date | None = None) -> UserContext:
    if not isinstance(profile, dict):
        return UserContext()
    gender = profile.get("gender")
    return UserContext(
        age=calendar_age(profile.get("dateOfBirth"), today),
        gender=gender.strip() if isinstance(gender, str) and gender.strip() else None,
        existing_conditions=_flatten_names(profile.get("conditions"), "name", "condition"),
        medications=_flatten_names(profile.get("medications"), "name"),
        allergies=_flatten_names(profile.get("allergies"), "name", "substance"),
    )
