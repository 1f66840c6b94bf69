from __future__ import annotations

import hashlib
import os
import re
from pathlib import Path
from typing import Any, Literal

from fastapi import FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from healthguide_core import (
    ConversationStateError,
    GuidanceEvent,
    GuidanceService,
    HookRunner,
    SessionNotFoundError,
    Symptom,
    get_summary,
)
from healthguide_core.time_utils import to_iso, utc_now
from records import PolicyEventLog, ProfileStore, SessionStore, SQLiteRecordsDB

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _load_local_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not _ENV_KEY_RE.fullmatch(key):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def _bootstrap_local_env() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    for candidate in [repo_root / ".env", repo_root / "backend/.env"]:
        if candidate.exists():
            _load_local_env_file(candidate)


_bootstrap_local_env()


class SymptomDuration(BaseModel):
    value: float | None = None
    unit: Literal["hours", "days", "weeks", "months"] | None = None


class SymptomEntry(BaseModel):
    name: str = Field(min_length=1)
    severity: Literal["mild", "moderate", "severe"]
    duration: SymptomDuration | None = None
    description: str | None = None

    def to_symptom(self) -> Symptom:
        return Symptom(
            name=self.name.strip(),
            severity=self.severity,
            duration_value=self.duration.value if self.duration else None,
            duration_unit=self.duration.unit if self.duration else None,
            description=self.description,
        )


class SymptomCheckRequest(BaseModel):
    symptoms: list[SymptomEntry] = Field(min_length=1)


class AppointmentSuggestionRequest(BaseModel):
    symptoms: list[str] = Field(min_length=1)


class ProfilePayload(BaseModel):
    dateOfBirth: str | None = None
    gender: Literal["male", "female", "other"] | None = None
    conditions: list[str] = Field(default_factory=list)
    medications: list[str] = Field(default_factory=list)
    allergies: list[str] = Field(default_factory=list)


class ChatStartRequest(BaseModel):
    category: Literal["general", "symptoms", "medication", "lifestyle", "emergency", "appointment"] = "general"
    title: str | None = Field(default=None, max_length=100)


class ChatMessageRequest(BaseModel):
    content: str = Field(min_length=1, max_length=1000)


class ChatUpdateRequest(BaseModel):
    status: Literal["active", "paused", "completed", "archived"] | None = None
    title: str | None = Field(default=None, max_length=100)
    urgencyLevel: Literal["low", "medium", "high", "critical"] | None = None


class HealthGuideApp:
    def __init__(self) -> None:
        db_path = os.getenv(
            "HEALTHGUIDE_DB_PATH",
            str((Path(__file__).resolve().parent / "healthguide.sqlite")),
        )
        self.db = SQLiteRecordsDB(db_path)
        self.profiles = ProfileStore(self.db)
        self.sessions = SessionStore(self.db)
        self.events = PolicyEventLog(self.db)

        self.hooks = HookRunner()
        self.hooks.add(self._record_event)
        self.service = GuidanceService(
            profiles=self.profiles,
            sessions=self.sessions,
            hooks=self.hooks,
        )

    def _record_event(self, event: GuidanceEvent) -> None:
        self.events.append_policy_event(
            user_id=event.user_id,
            session_key=event.session_key,
            event_type=event.event_type,
            details=event.details,
        )


container = HealthGuideApp()
app = FastAPI(title="HealthGuide Backend")

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in allowed_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


_TRUSTED_USER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:@-]{1,63}$")


def _validated_trusted_user_id(x_user_id: str) -> str:
    candidate = x_user_id.strip()
    if not candidate or not _TRUSTED_USER_ID_RE.fullmatch(candidate):
        raise HTTPException(status_code=400, detail="Invalid X-User-Id")
    return candidate


def get_user_id(auth_header: str | None) -> str:
    raw = (auth_header or "").replace("Bearer", "", 1).strip()
    if not raw:
        if os.getenv("ALLOW_ANON", "false").lower() == "true":
            return "demo-user"
        raise HTTPException(status_code=401, detail="Missing Authorization")
    # Bearer tokens are opaque here; identity is verified upstream.
    if len(raw) > 96:
        return f"token_{hashlib.sha256(raw.encode('utf-8')).hexdigest()[:24]}"
    return raw


def resolve_user_id(authorization: str | None, x_user_id: str | None) -> str:
    if x_user_id is not None:
        return _validated_trusted_user_id(x_user_id)
    return get_user_id(authorization)


def optional_user_id(authorization: str | None, x_user_id: str | None) -> str | None:
    try:
        return resolve_user_id(authorization, x_user_id)
    except HTTPException:
        return None


def _enforce_rate_limit(user_id: str, action_kind: str) -> None:
    if not container.service.allow_action(user_id, action_kind):
        raise HTTPException(status_code=429, detail="Too many actions. Please wait before trying again.")


@app.get("/healthz")
def healthz() -> dict[str, Any]:
    return {"ok": True, "model_available": container.service.gateway.available}


@app.get("/profile")
def get_profile(authorization: str | None = Header(default=None), x_user_id: str | None = Header(default=None)):
    user_id = resolve_user_id(authorization, x_user_id)
    profile = container.profiles.get_profile(user_id)
    if not profile:
        return {}
    return {"user_id": user_id, **profile, "context": container.service.context_for(user_id).as_dict()}


@app.post("/profile")
def upsert_profile(
    payload: ProfilePayload,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    container.profiles.upsert_profile(user_id, payload.model_dump())
    return {"ok": True}


@app.post("/symptoms/check", status_code=201)
def check_symptoms(
    payload: SymptomCheckRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    _enforce_rate_limit(user_id, "symptom_check")
    assessment = container.service.check_symptoms(user_id, [entry.to_symptom() for entry in payload.symptoms])
    return {
        "message": "Symptoms analyzed successfully",
        "assessment": assessment.as_dict(),
        "checked_at": to_iso(utc_now()),
    }


@app.post("/appointments/suggest")
def suggest_appointment(
    payload: AppointmentSuggestionRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    return {"suggestion": container.service.suggest_appointment(user_id, payload.symptoms)}


@app.get("/health-tips/daily")
def daily_health_tip(authorization: str | None = Header(default=None), x_user_id: str | None = Header(default=None)):
    user_id = optional_user_id(authorization, x_user_id)
    return {
        "tip": container.service.health_tip(user_id),
        "date": to_iso(utc_now()),
        "personalized": user_id is not None,
    }


@app.post("/chat/start", status_code=201)
def chat_start(
    payload: ChatStartRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    session = container.service.start_session(user_id, category=payload.category, title=payload.title)
    return {"message": "Chat session started successfully", "chat": get_summary(session)}


@app.get("/chat/history")
def chat_history(
    page: int = 1,
    limit: int = 10,
    category: str | None = None,
    status: str | None = None,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    page = max(1, page)
    limit = max(1, min(50, limit))
    sessions, total = container.sessions.list_sessions(
        user_id,
        category=category,
        status=status,
        limit=limit,
        offset=(page - 1) * limit,
    )
    total_pages = (total + limit - 1) // limit
    return {
        "chats": [get_summary(session) for session in sessions],
        "pagination": {
            "currentPage": page,
            "totalPages": total_pages,
            "totalItems": total,
            "hasNext": page < total_pages,
            "hasPrev": page > 1,
        },
    }


@app.post("/chat/{session_id}/message")
def chat_message(
    session_id: str,
    payload: ChatMessageRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    _enforce_rate_limit(user_id, "chat_message")
    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=422, detail="Message content is required")
    try:
        turn = container.service.send_message(session_id, user_id, content)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        "message": "Message sent successfully",
        "response": turn.response,
        "chat": get_summary(turn.session),
    }


@app.get("/chat/{session_id}")
def chat_get(session_id: str, authorization: str | None = Header(default=None), x_user_id: str | None = Header(default=None)):
    user_id = resolve_user_id(authorization, x_user_id)
    try:
        session = container.service.get_session(session_id, user_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"chat": session.as_dict()}


@app.put("/chat/{session_id}")
def chat_update(
    session_id: str,
    payload: ChatUpdateRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    try:
        session = container.service.update_session(
            session_id,
            user_id,
            status=payload.status,
            title=payload.title,
            urgency_level=payload.urgencyLevel,
        )
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ConversationStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"message": "Chat session updated successfully", "chat": get_summary(session)}
