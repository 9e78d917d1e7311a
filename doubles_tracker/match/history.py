"""
Undo history: a stack of field-level snapshots of the mutable match state.

Players and rules never change during a match, and the event log is append-only, so a
snapshot stores only scalar fields, the per-set game tallies, a copy of the stats table
and the log length. Restoring truncates the log back to that length.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from .events import RallyOutcome
from .state import InteractionMode, MatchState
from .stats import PlayerStats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateSnapshot:
    games1: tuple[int, ...]
    games2: tuple[int, ...]
    points1: int
    points2: int
    serving1: bool
    serving2: bool
    current_set: int
    server_seat: int
    serve_order: tuple[int, ...]
    serve_order_index: int
    is_tiebreak: bool
    match_over: bool
    winner: int | None
    stats: tuple[PlayerStats, ...]
    event_count: int
    mode: InteractionMode
    pending_reason: RallyOutcome | None
    pending_timestamp: float | None
    first_serve_faulted: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "games1": list(self.games1),
            "games2": list(self.games2),
            "points1": self.points1,
            "points2": self.points2,
            "serving1": self.serving1,
            "serving2": self.serving2,
            "current_set": self.current_set,
            "server_seat": self.server_seat,
            "serve_order": list(self.serve_order),
            "serve_order_index": self.serve_order_index,
            "is_tiebreak": self.is_tiebreak,
            "match_over": self.match_over,
            "winner": self.winner,
            "stats": [s.to_dict() for s in self.stats],
            "event_count": self.event_count,
            "mode": self.mode.value,
            "pending_reason": self.pending_reason.value if self.pending_reason else None,
            "pending_timestamp": self.pending_timestamp,
            "first_serve_faulted": self.first_serve_faulted,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> StateSnapshot:
        reason = d.get("pending_reason")
        return cls(
            games1=tuple(d["games1"]),
            games2=tuple(d["games2"]),
            points1=int(d["points1"]),
            points2=int(d["points2"]),
            serving1=bool(d["serving1"]),
            serving2=bool(d["serving2"]),
            current_set=int(d["current_set"]),
            server_seat=int(d["server_seat"]),
            serve_order=tuple(d["serve_order"]),
            serve_order_index=int(d["serve_order_index"]),
            is_tiebreak=bool(d["is_tiebreak"]),
            match_over=bool(d["match_over"]),
            winner=d.get("winner"),
            stats=tuple(PlayerStats.from_dict(s) for s in d["stats"]),
            event_count=int(d["event_count"]),
            mode=InteractionMode(d["mode"]),
            pending_reason=RallyOutcome(reason) if reason else None,
            pending_timestamp=d.get("pending_timestamp"),
            first_serve_faulted=bool(d["first_serve_faulted"]),
        )


def capture(state: MatchState, mode: InteractionMode | None = None) -> StateSnapshot:
    """
    Snapshot the mutable fields of `state`.
    Passing `mode` records the state as it was before the point was entered: the mode is
    replaced and the pending rally fields and the first-serve fault are cleared.
    """
    rewind = mode is not None
    return StateSnapshot(
        games1=tuple(state.team1.games),
        games2=tuple(state.team2.games),
        points1=state.team1.points,
        points2=state.team2.points,
        serving1=state.team1.is_serving,
        serving2=state.team2.is_serving,
        current_set=state.current_set,
        server_seat=state.server_seat,
        serve_order=tuple(state.serve_order),
        serve_order_index=state.serve_order_index,
        is_tiebreak=state.is_tiebreak,
        match_over=state.match_over,
        winner=state.winner,
        stats=tuple(state.stats[seat].copy() for seat in sorted(state.stats)),
        event_count=len(state.events),
        mode=mode if rewind else state.mode,
        pending_reason=None if rewind else state.pending_reason,
        pending_timestamp=None if rewind else state.pending_timestamp,
        first_serve_faulted=False if rewind else state.first_serve_faulted,
    )


def restore(state: MatchState, snap: StateSnapshot) -> None:
    """Put `state` back exactly as captured (history is left to the caller)."""
    state.team1.games = list(snap.games1)
    state.team2.games = list(snap.games2)
    state.team1.points = snap.points1
    state.team2.points = snap.points2
    state.team1.is_serving = snap.serving1
    state.team2.is_serving = snap.serving2
    state.current_set = snap.current_set
    state.server_seat = snap.server_seat
    state.serve_order = list(snap.serve_order)
    state.serve_order_index = snap.serve_order_index
    state.is_tiebreak = snap.is_tiebreak
    state.match_over = snap.match_over
    state.winner = snap.winner
    state.stats = {seat: s.copy() for seat, s in enumerate(snap.stats)}
    del state.events[snap.event_count:]
    state.mode = snap.mode
    state.pending_reason = snap.pending_reason
    state.pending_timestamp = snap.pending_timestamp
    state.first_serve_faulted = snap.first_serve_faulted


class HistoryManager:
    """Snapshot stack kept on `state.history`; push before every score-mutating command."""

    def __init__(self, state: MatchState) -> None:
        self.state = state

    @property
    def depth(self) -> int:
        return len(self.state.history)

    def push(self, mode: InteractionMode | None = None) -> None:
        self.state.history.append(capture(self.state, mode))

    def undo(self) -> bool:
        """Pop one snapshot and restore it. Returns False when there is nothing to undo."""
        if not self.state.history:
            return False
        snap = self.state.history.pop()
        restore(self.state, snap)
        logger.info("Undo: restored snapshot (log length %d, %d left)", snap.event_count, self.depth)
        return True
