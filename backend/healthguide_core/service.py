from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from .context import build_context
from .conversation import (
    ChatSession,
    add_message,
    asks_who_made,
    new_session,
    refresh_insights,
    update_session,
)
from .gateway import CHAT_APOLOGY, ModelGateway
from .heuristics import assess_heuristically
from .hooks import HookRunner
from .models import Assessment, Symptom, UserContext
from .rate_limiter import ACTION_LIMITS, RateLimiter


DEFAULT_ATTRIBUTION = "This application was made by the HealthGuide team."


class ProfileSource(Protocol):
    def get_profile(self, user_id: str) -> dict[str, Any] | None: ...


class SessionRepository(Protocol):
    def load_session(self, session_id: str) -> ChatSession | None: ...

    def save_session(self, session: ChatSession) -> None: ...


class SessionNotFoundError(Exception):
    pass


@dataclass
class ChatTurn:
    response: str
    session: ChatSession
    used_model: bool


def _limit_from_env(action_kind: str) -> tuple[int, int]:
    max_count, window_ms = ACTION_LIMITS[action_kind]
    raw = os.getenv(f"HEALTHGUIDE_{action_kind.upper()}_LIMIT")
    if raw and raw.strip().isdigit():
        max_count = int(raw.strip())
    return max_count, window_ms


class GuidanceService:
    def __init__(
        self,
        *,
        profiles: ProfileSource,
        sessions: SessionRepository,
        gateway: ModelGateway | None = None,
        limiter: RateLimiter | None = None,
        hooks: HookRunner | None = None,
        attribution: str | None = None,
    ) -> None:
        self.hooks = hooks or HookRunner()
        self.profiles = profiles
        self.sessions = sessions
        self.gateway = gateway or ModelGateway(hooks=self.hooks)
        self.limiter = limiter or RateLimiter()
        self.attribution = attribution or os.getenv("HEALTHGUIDE_ATTRIBUTION") or DEFAULT_ATTRIBUTION
        self._session_locks: dict[str, threading.Lock] = {}

    def _session_lock(self, session_id: str) -> threading.Lock:
        # Writes to one session are serialized from load through save.
        return self._session_locks.setdefault(session_id, threading.Lock())

    def allow(self, user_id: str, action_kind: str, max_count: int, window_ms: float) -> bool:
        return self.limiter.allow(user_id, action_kind, max_count, window_ms)

    def allow_action(self, user_id: str, action_kind: str) -> bool:
        max_count, window_ms = _limit_from_env(action_kind)
        return self.limiter.allow(user_id, action_kind, max_count, window_ms)

    def context_for(self, user_id: str) -> UserContext:
        return build_context(self.profiles.get_profile(user_id))

    def assess(
        self,
        symptoms: Sequence[Symptom],
        context: UserContext | None = None,
        *,
        user_id: str | None = None,
    ) -> Assessment:
        try:
            return self.gateway.assess(symptoms, context, user_id=user_id)
        except Exception as exc:
            print(f"assessment pipeline error: {exc}")  # noqa: T201
            return assess_heuristically(symptoms, context)

    def respond(
        self,
        message: str,
        history: Sequence[Any] | None = None,
        context: UserContext | None = None,
        *,
        user_id: str | None = None,
        session_key: str | None = None,
    ) -> str:
        try:
            reply = self.gateway.chat(message, history or [], context, user_id=user_id, session_key=session_key)
        except Exception as exc:
            print(f"chat pipeline error: {exc}")  # noqa: T201
            return CHAT_APOLOGY
        return reply if reply and reply.strip() else CHAT_APOLOGY

    def check_symptoms(self, user_id: str, symptoms: Sequence[Symptom]) -> Assessment:
        return self.assess(symptoms, self.context_for(user_id), user_id=user_id)

    def start_session(self, user_id: str, *, category: str = "general", title: str | None = None) -> ChatSession:
        session = new_session(
            user_id,
            category=category,
            title=title,
            user_profile=self.context_for(user_id).as_dict(),
        )
        self.sessions.save_session(session)
        return session

    def get_session(self, session_id: str, user_id: str) -> ChatSession:
        session = self.sessions.load_session(session_id)
        if session is None or session.user_id != user_id:
            raise SessionNotFoundError("Chat session not found")
        return session

    def send_message(self, session_id: str, user_id: str, content: str) -> ChatTurn:
        with self._session_lock(session_id):
            session = self.get_session(session_id, user_id)
            if session.is_terminal:
                raise SessionNotFoundError("Chat session not found or inactive")

            prior_history = session.history()
            add_message(session, "user", content)

            used_model = False
            if asks_who_made(content):
                reply = self.attribution
            else:
                reply = self.respond(
                    content,
                    prior_history,
                    self.context_for(user_id),
                    user_id=user_id,
                    session_key=session.id,
                )
                used_model = True

            add_message(session, "assistant", reply)
            refresh_insights(session)
            self.sessions.save_session(session)
        return ChatTurn(response=reply, session=session, used_model=used_model)

    def update_session(
        self,
        session_id: str,
        user_id: str,
        *,
        status: str | None = None,
        title: str | None = None,
        urgency_level: str | None = None,
    ) -> ChatSession:
        with self._session_lock(session_id):
            session = self.get_session(session_id, user_id)
            update_session(session, status=status, title=title, urgency_level=urgency_level)
            self.sessions.save_session(session)
        return session

    def health_tip(self, user_id: str | None = None) -> str:
        context = self.context_for(user_id) if user_id else UserContext()
        return self.gateway.health_tip(context, user_id=user_id)

    def suggest_appointment(self, user_id: str, symptom_names: Sequence[str]) -> str:
        return self.gateway.suggest_appointment(symptom_names, self.context_for(user_id), user_id=user_id)
