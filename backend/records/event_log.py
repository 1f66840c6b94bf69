from __future__ import annotations

import json
import uuid
from typing import Any

from healthguide_core.time_utils import to_iso, utc_now

from .database import SQLiteRecordsDB


class PolicyEventLog:
    def __init__(self, db: SQLiteRecordsDB) -> None:
        self._db = db

    def append_policy_event(
        self,
        *,
        user_id: str | None,
        session_key: str | None,
        event_type: str,
        details: dict[str, Any],
    ) -> None:
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO policy_events (id, user_id, session_key, event_type, details_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    uuid.uuid4().hex,
                    user_id,
                    session_key,
                    event_type,
                    json.dumps(details, sort_keys=True, separators=(",", ":")),
                    to_iso(utc_now()),
                ),
            )

    def list_events(self, event_type: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        sql = "SELECT user_id, session_key, event_type, details_json, created_at FROM policy_events"
        params: list[Any] = []
        if event_type:
            sql += " WHERE event_type = ?"
            params.append(event_type)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(max(1, limit))
        with self._db.connection() as conn:
            rows = conn.execute(sql, tuple(params)).fetchall()
        return [
            {
                "user_id": row["user_id"],
                "session_key": row["session_key"],
                "event_type": row["event_type"],
                "details": json.loads(row["details_json"]),
                "created_at": row["created_at"],
            }
            for row in rows
        ]
