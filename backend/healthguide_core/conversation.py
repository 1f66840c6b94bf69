from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .models import RISK_LEVELS
from .time_utils import parse_iso, to_iso, utc_now


SESSION_STATUSES = {"active", "paused", "completed", "archived"}
TERMINAL_STATUSES = {"completed", "archived"}
SESSION_CATEGORIES = {"general", "symptoms", "medication", "lifestyle", "emergency", "appointment"}
MESSAGE_ROLES = {"user", "assistant", "system"}
EMOTIONAL_STATES = {"calm", "anxious", "concerned", "urgent", "relaxed"}

EMERGENCY_KEYWORDS = ("emergency", "urgent", "immediate", "severe", "critical")
PAIN_KEYWORDS = ("pain", "hurt", "ache", "sore", "discomfort")
WHO_MADE_PHRASES = ("who made", "who built", "who created")
DEVELOPER_TARGETS = ("site", "app", "application", "website")


class ConversationStateError(Exception):
    pass


@dataclass
class ChatMessage:
    role: str
    content: str
    timestamp: datetime

    def as_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content, "timestamp": to_iso(self.timestamp)}


@dataclass
class ChatSession:
    id: str
    user_id: str
    title: str = "Health Consultation"
    category: str = "general"
    status: str = "active"
    messages: list[ChatMessage] = field(default_factory=list)
    urgency_level: str = "low"
    emotional_state: str = "calm"
    user_profile: dict[str, Any] = field(default_factory=dict)
    primary_concern: str = "general"
    risk_level: str = "low"
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def history(self) -> list[dict[str, str]]:
        return [{"role": message.role, "content": message.content} for message in self.messages]

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "category": self.category,
            "status": self.status,
            "messages": [message.as_dict() for message in self.messages],
            "context": {
                "urgencyLevel": self.urgency_level,
                "emotionalState": self.emotional_state,
                "userProfile": dict(self.user_profile),
            },
            "insights": {
                "primaryConcern": self.primary_concern,
                "riskAssessment": {"level": self.risk_level},
            },
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ChatSession":
        context = payload.get("context") or {}
        insights = payload.get("insights") or {}
        messages = [
            ChatMessage(
                role=row["role"],
                content=row["content"],
                timestamp=parse_iso(row.get("timestamp")) or utc_now(),
            )
            for row in payload.get("messages") or []
        ]
        return cls(
            id=payload["id"],
            user_id=payload["userId"],
            title=payload.get("title") or "Health Consultation",
            category=payload.get("category") or "general",
            status=payload.get("status") or "active",
            messages=messages,
            urgency_level=context.get("urgencyLevel") or "low",
            emotional_state=context.get("emotionalState") or "calm",
            user_profile=dict(context.get("userProfile") or {}),
            primary_concern=insights.get("primaryConcern") or "general",
            risk_level=(insights.get("riskAssessment") or {}).get("level") or "low",
            created_at=parse_iso(payload.get("createdAt")) or utc_now(),
            updated_at=parse_iso(payload.get("updatedAt")) or utc_now(),
        )


def new_session_id(now: datetime | None = None) -> str:
    stamp = int((now or utc_now()).timestamp() * 1000)
    return f"chat_{stamp}_{uuid.uuid4().hex[:9]}"


def new_session(
    user_id: str,
    *,
    category: str = "general",
    title: str | None = None,
    user_profile: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> ChatSession:
    now = now or utc_now()
    return ChatSession(
        id=new_session_id(now),
        user_id=user_id,
        title=title or f"Health Consultation - {now.date().isoformat()}",
        category=category if category in SESSION_CATEGORIES else "general",
        user_profile=dict(user_profile or {}),
        created_at=now,
        updated_at=now,
    )


class ConversationLifecycle:
    """Status transitions for a chat session.

    ``completed`` and ``archived`` are terminal; ``paused`` can resume.
    """

    _TRANSITIONS = {
        "active": {"paused", "completed", "archived"},
        "paused": {"active", "completed", "archived"},
        "completed": set(),
        "archived": set(),
    }

    @classmethod
    def can_transition(cls, current: str, next_status: str) -> bool:
        return next_status in cls._TRANSITIONS.get(current, set())

    @classmethod
    def transition(cls, session: ChatSession, next_status: str, now: datetime | None = None) -> ChatSession:
        if next_status not in SESSION_STATUSES:
            raise ConversationStateError(f"Unknown session status: {next_status}")
        if next_status == session.status:
            return session
        if not cls.can_transition(session.status, next_status):
            raise ConversationStateError(f"Invalid transition: {session.status} -> {next_status}")
        session.status = next_status
        session.updated_at = now or utc_now()
        return session


def _urgency_rank(level: str) -> int:
    return RISK_LEVELS.index(level) if level in RISK_LEVELS else 0


def _escalate(session: ChatSession, level: str) -> None:
    if _urgency_rank(level) > _urgency_rank(session.urgency_level):
        session.urgency_level = level


def _last_user_message(messages: list[ChatMessage]) -> ChatMessage | None:
    for message in reversed(messages):
        if message.role == "user":
            return message
    return None


def update_context(session: ChatSession) -> None:
    # Only the 5 most recent messages are scanned; urgency never drops here.
    last_user = _last_user_message(session.messages[-5:])
    if last_user is None:
        return
    lowered = last_user.content.lower()
    if any(keyword in lowered for keyword in EMERGENCY_KEYWORDS):
        _escalate(session, "high")
        session.emotional_state = "urgent"
    elif any(keyword in lowered for keyword in PAIN_KEYWORDS):
        _escalate(session, "medium")


def add_message(
    session: ChatSession,
    role: str,
    content: str,
    *,
    timestamp: datetime | None = None,
) -> ChatMessage:
    if session.is_terminal:
        raise ConversationStateError(f"Session {session.id} is {session.status}; no further messages accepted.")
    if role not in MESSAGE_ROLES:
        raise ConversationStateError(f"Unknown message role: {role}")
    message = ChatMessage(role=role, content=content, timestamp=timestamp or utc_now())
    session.messages.append(message)
    session.updated_at = message.timestamp
    update_context(session)
    return message


def refresh_insights(session: ChatSession) -> None:
    if len(session.messages) < 2:
        return
    last_user = _last_user_message(session.messages)
    if last_user is None:
        return
    lowered = last_user.content.lower()
    if any(keyword in lowered for keyword in EMERGENCY_KEYWORDS):
        session.primary_concern, session.risk_level = "emergency", "high"
    elif any(keyword in lowered for keyword in PAIN_KEYWORDS):
        session.primary_concern, session.risk_level = "symptoms", "medium"
    else:
        session.primary_concern, session.risk_level = "general", "low"


def asks_who_made(text: str) -> bool:
    lowered = (text or "").lower()
    if any(phrase in lowered for phrase in WHO_MADE_PHRASES):
        return True
    return "developer" in lowered and any(target in lowered for target in DEVELOPER_TARGETS)


def update_session(
    session: ChatSession,
    *,
    status: str | None = None,
    title: str | None = None,
    urgency_level: str | None = None,
    now: datetime | None = None,
) -> ChatSession:
    if urgency_level is not None and urgency_level not in RISK_LEVELS:
        raise ConversationStateError(f"Unknown urgency level: {urgency_level}")
    if status is not None:
        ConversationLifecycle.transition(session, status, now=now)
    if title:
        session.title = title
    if urgency_level is not None:
        session.urgency_level = urgency_level
        if urgency_level == "low" and session.emotional_state == "urgent":
            session.emotional_state = "calm"
    session.updated_at = now or utc_now()
    return session


def get_summary(session: ChatSession) -> dict[str, Any]:
    duration = 0
    if len(session.messages) >= 2:
        elapsed = (session.messages[-1].timestamp - session.messages[0].timestamp).total_seconds()
        duration = int(elapsed / 60 + 0.5) if elapsed > 0 else 0
    return {
        "id": session.id,
        "title": session.title,
        "category": session.category,
        "status": session.status,
        "messageCount": len(session.messages),
        "duration": duration,
        "urgencyLevel": session.urgency_level,
        "lastMessage": session.messages[-1].as_dict() if session.messages else None,
        "createdAt": to_iso(session.created_at),
        "updatedAt": to_iso(session.updated_at),
    }
