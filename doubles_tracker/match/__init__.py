"""
Doubles match tracking: scoring state machine, undo history, event-log statistics
and the tabular (CSV) codec.
"""
from .events import (
    Player,
    PointEvent,
    RallyOutcome,
    RallyRecord,
    ServerRecord,
    ServeShortcut,
    describe_point,
    partner_of,
    team_of,
)
from .stats import PlayerStats, apply_event, recompute, recompute_by_seat, stats_by_profile, team_totals
from .state import InteractionMode, MatchRules, MatchState, Team
from .history import HistoryManager, StateSnapshot
from .commands import (
    AttributeRally,
    AwardRallyStart,
    CancelPoint,
    Command,
    ConfirmSecondServer,
    FirstServeFault,
    QuickAttributePoint,
    ResetState,
    ResumeMatch,
    SelectFirstServer,
    StartMatch,
    UndoLastPoint,
)
from .machine import ScoreMachine, game_won, set_won, sets_won, point_score_label
from .records import MatchRecord, PlayerProfile, build_match_record, new_profile, update_profiles_on_match_end
from .codec import decode_match, encode_events, encode_record

__all__ = [
    "Player",
    "PointEvent",
    "RallyOutcome",
    "RallyRecord",
    "ServerRecord",
    "ServeShortcut",
    "describe_point",
    "partner_of",
    "team_of",
    "PlayerStats",
    "apply_event",
    "recompute",
    "recompute_by_seat",
    "stats_by_profile",
    "team_totals",
    "InteractionMode",
    "MatchRules",
    "MatchState",
    "Team",
    "HistoryManager",
    "StateSnapshot",
    "AttributeRally",
    "AwardRallyStart",
    "CancelPoint",
    "Command",
    "ConfirmSecondServer",
    "FirstServeFault",
    "QuickAttributePoint",
    "ResetState",
    "ResumeMatch",
    "SelectFirstServer",
    "StartMatch",
    "UndoLastPoint",
    "ScoreMachine",
    "game_won",
    "set_won",
    "sets_won",
    "point_score_label",
    "MatchRecord",
    "PlayerProfile",
    "build_match_record",
    "new_profile",
    "update_profiles_on_match_end",
    "decode_match",
    "encode_events",
    "encode_record",
]
