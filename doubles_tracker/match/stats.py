"""
Stats aggregation from point events.

The same per-event rule (`apply_event`) drives both the incremental update made by the
live machine after every point and the one-pass `recompute` over a stored log, so
recomputing a full log always equals folding it one event at a time.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Iterable, Mapping

from doubles_tracker.errors import ValidationError

from .events import SEATS, Player, PointEvent, RallyOutcome, other_team, team_of


@dataclass
class PlayerStats:
    """Per-player counters. Derived from the event log; never hand-edited."""
    # Point ending
    winners: int = 0
    aces: int = 0
    unforced_errors: int = 0
    forced_errors: int = 0
    double_faults: int = 0
    # Serve
    first_serves_in: int = 0
    first_serves_total: int = 0
    second_serves_won: int = 0
    second_serves_total: int = 0
    serves_unreturned: int = 0
    # Return
    return_points_won: int = 0
    return_points_total: int = 0
    return_winners: int = 0
    return_unforced_errors: int = 0
    # Net
    net_points_approached: int = 0
    net_points_won: int = 0
    # Overall
    points_won: int = 0
    points_lost: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> PlayerStats:
        known = {f.name for f in fields(cls)}
        unknown = set(d) - known
        if unknown:
            raise ValidationError(f"Unknown stat key(s): {sorted(unknown)}")
        return cls(**{k: int(v) for k, v in d.items()})

    def copy(self) -> PlayerStats:
        return PlayerStats(**asdict(self))

    def __add__(self, other: PlayerStats) -> PlayerStats:
        return PlayerStats(**{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)})

    @property
    def first_serve_pct(self) -> float:
        return _pct(self.first_serves_in, self.first_serves_total)

    @property
    def second_serve_won_pct(self) -> float:
        return _pct(self.second_serves_won, self.second_serves_total)

    @property
    def return_won_pct(self) -> float:
        return _pct(self.return_points_won, self.return_points_total)

    @property
    def net_won_pct(self) -> float:
        return _pct(self.net_points_won, self.net_points_approached)


def _pct(num: int, den: int) -> float:
    return round(100.0 * num / den, 1) if den else 0.0


def empty_table() -> dict[int, PlayerStats]:
    """Fresh per-seat stats table."""
    return {seat: PlayerStats() for seat in SEATS}


def apply_event(table: dict[int, PlayerStats], event: PointEvent) -> None:
    """
    Fold one point event into a per-seat stats table (in place).
    Used incrementally by the live machine and in batch by `recompute_by_seat`.
    """
    winning_team = event.winner_team
    server_seat = event.server.seat
    server_team = team_of(server_seat)
    receiving_team = other_team(server_team)
    server = table[server_seat]

    for seat, stats in table.items():
        if team_of(seat) == winning_team:
            stats.points_won += 1
        else:
            stats.points_lost += 1

    server.first_serves_total += 1
    if event.server.is_ace:
        server.aces += 1
        server.winners += 1
        server.first_serves_in += 1
    if event.server.is_double_fault:
        server.double_faults += 1
        server.unforced_errors += 1
        server.second_serves_total += 1

    rally = event.rally
    if rally is None:
        return

    if event.server.is_first_serve_in:
        server.first_serves_in += 1
    else:
        server.second_serves_total += 1
        if winning_team == server_team:
            server.second_serves_won += 1

    for seat, stats in table.items():
        if team_of(seat) == receiving_team:
            stats.return_points_total += 1
            if winning_team == receiving_team:
                stats.return_points_won += 1

    ender = table[rally.ending_seat]
    if rally.outcome == RallyOutcome.WINNER:
        ender.winners += 1
        if rally.is_return_event:
            ender.return_winners += 1
    elif rally.outcome == RallyOutcome.FORCED_ERROR:
        ender.forced_errors += 1
        if rally.is_return_event:
            server.serves_unreturned += 1
    else:
        ender.unforced_errors += 1
        if rally.is_return_event:
            ender.return_unforced_errors += 1

    if rally.is_at_net:
        ender.net_points_approached += 1
        if winning_team == team_of(rally.ending_seat):
            ender.net_points_won += 1


def recompute_by_seat(events: Iterable[PointEvent]) -> dict[int, PlayerStats]:
    """One-pass recomputation keyed by seat id."""
    table = empty_table()
    for event in events:
        apply_event(table, event)
    return table


def stats_by_profile(table: Mapping[int, PlayerStats], players: Iterable[Player]) -> dict[str, PlayerStats]:
    """Re-key a per-seat table by profile id."""
    return {p.profile_id: table[p.seat].copy() for p in players}


def recompute(events: Iterable[PointEvent], players: Iterable[Player]) -> dict[str, PlayerStats]:
    """Stats keyed by profile id, recomputed from the event log alone."""
    return stats_by_profile(recompute_by_seat(events), players)


def team_totals(table: Mapping[int, PlayerStats], team_id: int) -> PlayerStats:
    """Sum of both players' counters for one team."""
    total = PlayerStats()
    for seat, stats in table.items():
        if team_of(seat) == team_id:
            total = total + stats
    return total
