"""
Service layer: live-match orchestration over the scoring machine and repositories.
"""
from .match_service import LiveMatch, MatchService

__all__ = [
    "LiveMatch",
    "MatchService",
]
