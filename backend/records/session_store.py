from __future__ import annotations

import json
from typing import Any

from healthguide_core.conversation import ChatSession
from healthguide_core.time_utils import to_iso

from .database import SQLiteRecordsDB


class SessionStore:
    def __init__(self, db: SQLiteRecordsDB) -> None:
        self._db = db

    def load_session(self, session_id: str) -> ChatSession | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT session_json FROM chat_sessions WHERE id = ?",
                (session_id,),
            ).fetchone()
        if not row:
            return None
        return ChatSession.from_dict(json.loads(row["session_json"]))

    def save_session(self, session: ChatSession) -> None:
        payload = session.as_dict()
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO chat_sessions (
                  id, user_id, category, status, urgency_level, session_json, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  category = excluded.category,
                  status = excluded.status,
                  urgency_level = excluded.urgency_level,
                  session_json = excluded.session_json,
                  updated_at = excluded.updated_at
                """,
                (
                    session.id,
                    session.user_id,
                    session.category,
                    session.status,
                    session.urgency_level,
                    json.dumps(payload, separators=(",", ":")),
                    to_iso(session.created_at),
                    to_iso(session.updated_at),
                ),
            )

    def list_sessions(
        self,
        user_id: str,
        *,
        category: str | None = None,
        status: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[ChatSession], int]:
        where = "WHERE user_id = ?"
        params: list[Any] = [user_id]
        if category:
            where += " AND category = ?"
            params.append(category)
        if status:
            where += " AND status = ?"
            params.append(status)
        with self._db.connection() as conn:
            total = conn.execute(f"SELECT COUNT(*) AS n FROM chat_sessions {where}", tuple(params)).fetchone()["n"]
            rows = conn.execute(
                f"SELECT session_json FROM chat_sessions {where} ORDER BY updated_at DESC LIMIT ? OFFSET ?",
                (*params, max(1, limit), max(0, offset)),
            ).fetchall()
        return [ChatSession.from_dict(json.loads(row["session_json"])) for row in rows], int(total)
