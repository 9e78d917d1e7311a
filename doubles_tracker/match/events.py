"""
Event model: players, seats and the immutable point-event record.
The point-event log is the sole source of truth for statistics.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from doubles_tracker.errors import ValidationError

SEATS = (0, 1, 2, 3)
TEAM_SEATS = {1: (0, 1), 2: (2, 3)}


class RallyOutcome(str, Enum):
    """How a rally ended, from the point of view of the ending player."""
    WINNER = "Winner"
    FORCED_ERROR = "Forced Error"
    UNFORCED_ERROR = "Unforced Error"


class ServeShortcut(str, Enum):
    """Points resolved by the serve alone."""
    ACE = "Ace"
    DOUBLE_FAULT = "Double Fault"


def team_of(seat: int) -> int:
    """Team id (1 or 2) owning a seat."""
    if seat not in SEATS:
        raise ValidationError(f"Seat id must be 0-3, got {seat!r}")
    return 1 if seat < 2 else 2


def partner_of(seat: int) -> int:
    team_of(seat)
    return seat ^ 1


def other_team(team_id: int) -> int:
    return 2 if team_id == 1 else 1


@dataclass(frozen=True)
class Player:
    """One of the four match positions. Immutable for the match duration."""
    seat: int
    profile_id: str
    name: str

    @property
    def team_id(self) -> int:
        return team_of(self.seat)

    def to_dict(self) -> dict[str, Any]:
        return {"seat": self.seat, "profile_id": self.profile_id, "name": self.name}

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> Player:
        return cls(seat=int(d["seat"]), profile_id=str(d["profile_id"]), name=str(d["name"]))


@dataclass(frozen=True)
class ServerRecord:
    """Serve side of a point."""
    seat: int
    is_first_serve_in: bool
    is_ace: bool = False
    is_double_fault: bool = False


@dataclass(frozen=True)
class RallyRecord:
    """Rally side of a point; absent for aces and double faults."""
    ending_seat: int
    outcome: RallyOutcome
    is_at_net: bool = False
    is_return_event: bool = False


@dataclass(frozen=True)
class PointEvent:
    """
    One completed point. Created once, never mutated.
    `score` is the label as of this point (after it was won).
    """
    id: int
    score: str
    description: str
    set_index: int
    winner_team: int
    server: ServerRecord
    rally: RallyRecord | None = None
    timestamp: float | None = None

    def __post_init__(self) -> None:
        if self.winner_team not in (1, 2):
            raise ValidationError(f"winner_team must be 1 or 2, got {self.winner_team!r}")
        team_of(self.server.seat)
        serve_ended = self.server.is_ace or self.server.is_double_fault
        if serve_ended == (self.rally is not None):
            raise ValidationError("rally record must be absent exactly for aces and double faults")
        if self.rally is not None:
            team_of(self.rally.ending_seat)

    @property
    def serve_outcome_label(self) -> str:
        if self.server.is_ace:
            return ServeShortcut.ACE.value
        if self.server.is_double_fault:
            return ServeShortcut.DOUBLE_FAULT.value
        return "1st Serve In" if self.server.is_first_serve_in else "2nd Serve In"

    def to_dict(self) -> dict[str, Any]:
        """PointEvent to JSON-serializable dict."""
        return {
            "id": self.id,
            "score": self.score,
            "description": self.description,
            "set_index": self.set_index,
            "timestamp": self.timestamp,
            "winner_team": self.winner_team,
            "server": {
                "seat": self.server.seat,
                "is_first_serve_in": self.server.is_first_serve_in,
                "is_ace": self.server.is_ace,
                "is_double_fault": self.server.is_double_fault,
            },
            "rally": None if self.rally is None else {
                "ending_seat": self.rally.ending_seat,
                "outcome": self.rally.outcome.value,
                "is_at_net": self.rally.is_at_net,
                "is_return_event": self.rally.is_return_event,
            },
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> PointEvent:
        s = d["server"]
        r = d.get("rally")
        ts = d.get("timestamp")
        return cls(
            id=int(d["id"]),
            score=str(d["score"]),
            description=str(d.get("description", "")),
            set_index=int(d["set_index"]),
            timestamp=None if ts is None else float(ts),
            winner_team=int(d["winner_team"]),
            server=ServerRecord(
                seat=int(s["seat"]),
                is_first_serve_in=bool(s["is_first_serve_in"]),
                is_ace=bool(s.get("is_ace", False)),
                is_double_fault=bool(s.get("is_double_fault", False)),
            ),
            rally=None if r is None else RallyRecord(
                ending_seat=int(r["ending_seat"]),
                outcome=RallyOutcome(r["outcome"]),
                is_at_net=bool(r.get("is_at_net", False)),
                is_return_event=bool(r.get("is_return_event", False)),
            ),
        )


def rally_winner(rally: RallyRecord) -> int:
    """Team that won a rally: the ending player's team on a winner, the other team on an error."""
    ending_team = team_of(rally.ending_seat)
    return ending_team if rally.outcome == RallyOutcome.WINNER else other_team(ending_team)


def describe_point(server: ServerRecord, rally: RallyRecord | None, names: Mapping[int, str]) -> str:
    """Human-readable description shared by live scoring and tabular import."""
    server_name = names.get(server.seat, "Unknown")
    if server.is_ace:
        return f"Ace by {server_name}"
    if server.is_double_fault:
        return f"Double Fault by {server_name}"
    if rally is None:
        return ""
    name = names.get(rally.ending_seat, "Unknown")
    if rally.outcome == RallyOutcome.WINNER:
        text = f"Return Winner by {name}" if rally.is_return_event else f"Winner by {name}"
    elif rally.outcome == RallyOutcome.UNFORCED_ERROR:
        text = f"Return Unforced Error by {name}" if rally.is_return_event else f"Unforced Error by {name}"
    else:
        text = f"Unreturned Serve (forced by {server_name})" if rally.is_return_event else f"Forced Error by {name}"
    if rally.is_at_net:
        text += " (at net)"
    return text
