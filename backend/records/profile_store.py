from __future__ import annotations

import json
from typing import Any

from healthguide_core.time_utils import to_iso, utc_now

from .database import SQLiteRecordsDB


_PROFILE_FIELDS = ("dateOfBirth", "gender", "conditions", "medications", "allergies")


def _json_dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class ProfileStore:
    def __init__(self, db: SQLiteRecordsDB) -> None:
        self._db = db

    def get_profile(self, user_id: str) -> dict[str, Any] | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT profile_json FROM user_profiles WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if not row:
            return None
        return json.loads(row["profile_json"])

    def upsert_profile(self, user_id: str, profile: dict[str, Any]) -> dict[str, Any]:
        now = to_iso(utc_now())
        stored = {key: profile.get(key) for key in _PROFILE_FIELDS if profile.get(key) is not None}
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO user_profiles (user_id, profile_json, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                  profile_json = excluded.profile_json,
                  updated_at = excluded.updated_at
                """,
                (user_id, _json_dumps(stored), now, now),
            )
        return stored
