from .database import SQLiteRecordsDB
from .event_log import PolicyEventLog
from .profile_store import ProfileStore
from .session_store import SessionStore

__all__ = [
    "SQLiteRecordsDB",
    "PolicyEventLog",
    "ProfileStore",
    "SessionStore",
]
