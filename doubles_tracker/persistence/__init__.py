"""
Persistence layer for match records and player profiles.
No business logic and no scoring, only read/write interfaces.
"""
from .db import get_connection, init_db, set_db_path
from .repositories import MatchRecordRepository, PlayerProfileRepository

__all__ = [
    "get_connection",
    "init_db",
    "set_db_path",
    "MatchRecordRepository",
    "PlayerProfileRepository",
]
