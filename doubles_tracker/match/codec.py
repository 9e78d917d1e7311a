"""
Tabular codec: one CSV row per point event, and best-effort reconstruction of a match
from such rows when no authoritative MatchState is available.

Reconstruction is lossy. Rosters are inferred from who hit winners or made errors, and
game tallies from set changes and score labels. Every guess is reported as a
ReconstructionWarning and marks the result approximate.
"""
from __future__ import annotations

import csv
import io
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Sequence

from doubles_tracker.config import CSV_HEADER
from doubles_tracker.errors import ReconstructionWarning, ValidationError

from .events import (
    Player,
    PointEvent,
    RallyOutcome,
    RallyRecord,
    ServerRecord,
    ServeShortcut,
    describe_point,
)
from .records import MatchRecord, PlayerProfile, new_profile
from .state import MatchRules
from .stats import recompute

logger = logging.getLogger(__name__)

FIRST_SERVE_IN = "1st Serve In"
SECOND_SERVE_IN = "2nd Serve In"
GAME_LABEL = "Game"
SET_SUFFIX = "(Set)"


# ---------- Encode ----------

def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def encode_row(event: PointEvent, names: dict[int, str], index: int) -> list[str]:
    server_name = names.get(event.server.seat, "Unknown")
    rally = event.rally
    return [
        str(index + 1),
        str(event.set_index + 1),
        event.score,
        f"Team {event.winner_team}",
        server_name,
        event.serve_outcome_label,
        rally.outcome.value if rally else "",
        names.get(rally.ending_seat, "Unknown") if rally else server_name,
        _yes_no(rally.is_at_net) if rally else "",
        _yes_no(rally.is_return_event) if rally else "",
        "" if event.timestamp is None else repr(float(event.timestamp)),
    ]


def encode_events(events: Iterable[PointEvent], players: Iterable[Player]) -> str:
    """CSV text: bare header row, then every value double-quoted."""
    names = {p.seat: p.name for p in players}
    buf = io.StringIO()
    buf.write(",".join(CSV_HEADER) + "\n")
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for i, event in enumerate(events):
        writer.writerow(encode_row(event, names, i))
    return buf.getvalue()


def encode_record(record: MatchRecord) -> str:
    return encode_events(record.events, record.players)


# ---------- Decode ----------

@dataclass
class _Row:
    set_index: int
    score: str
    winner_team: int
    server: str
    serve_outcome: str
    point_outcome: str
    responsible: str
    at_net: bool
    on_return: bool
    timestamp: float | None


@dataclass
class _Inference:
    warnings: list[ReconstructionWarning] = field(default_factory=list)

    def warn(self, code: str, message: str) -> None:
        logger.warning("CSV reconstruction: %s", message)
        self.warnings.append(ReconstructionWarning(code=code, message=message))


_WINNER_LABELS = {"Team 1": 1, "Team 2": 2}


def parse_rows(text: str) -> list[_Row]:
    """Parse CSV text into typed rows. Requires the exact export header."""
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        raise ValidationError("CSV is empty")
    records = list(csv.reader(lines))
    if tuple(h.strip() for h in records[0]) != CSV_HEADER:
        raise ValidationError(f"Unexpected CSV header; expected {','.join(CSV_HEADER)}")
    rows: list[_Row] = []
    for n, rec in enumerate(records[1:], start=2):
        if len(rec) != len(CSV_HEADER):
            raise ValidationError(f"Line {n}: expected {len(CSV_HEADER)} columns, got {len(rec)}")
        try:
            set_number = int(rec[1])
            timestamp = float(rec[10]) if rec[10].strip() else None
        except ValueError as e:
            raise ValidationError(f"Line {n}: {e}") from e
        if set_number < 1:
            raise ValidationError(f"Line {n}: set number must be >= 1")
        winner_team = _WINNER_LABELS.get(rec[3].strip())
        if winner_team is None:
            raise ValidationError(f"Line {n}: unknown point winner {rec[3]!r}")
        rows.append(_Row(
            set_index=set_number - 1,
            score=rec[2],
            winner_team=winner_team,
            server=rec[4].strip(),
            serve_outcome=rec[5].strip(),
            point_outcome=rec[6].strip(),
            responsible=rec[7].strip(),
            at_net=rec[8].strip() == "Yes",
            on_return=rec[9].strip() == "Yes",
            timestamp=timestamp,
        ))
    return rows


def infer_rosters(rows: Sequence[_Row], inference: _Inference) -> tuple[list[str], list[str]]:
    """
    Names credited with aces or winners belong to the point-winning team; names charged with
    errors belong to the other one. Double-fault servers fill remaining gaps.
    """
    sides: tuple[dict[str, None], dict[str, None]] = ({}, {})

    def add(team: int, name: str) -> None:
        if name:
            sides[team - 1].setdefault(name, None)

    for r in rows:
        losers = 2 if r.winner_team == 1 else 1
        if r.serve_outcome == ServeShortcut.ACE.value:
            add(r.winner_team, r.server)
        if r.point_outcome == RallyOutcome.WINNER.value:
            add(r.winner_team, r.responsible)
        if r.point_outcome in (RallyOutcome.FORCED_ERROR.value, RallyOutcome.UNFORCED_ERROR.value):
            add(losers, r.responsible)
    for r in rows:
        if r.serve_outcome == ServeShortcut.DOUBLE_FAULT.value:
            add(2 if r.winner_team == 1 else 1, r.server)

    both = [n for n in sides[0] if n in sides[1]]
    for name in both:
        inference.warn("ambiguous_team", f"{name!r} appears on both teams; kept on team 1")
        del sides[1][name]

    names: list[list[str]] = []
    for team, side in ((1, sides[0]), (2, sides[1])):
        found = list(side)
        if len(found) > 2:
            inference.warn("extra_players", f"Team {team}: more than two names {found}; kept the first two")
            found = found[:2]
        while len(found) < 2:
            placeholder = f"Unknown T{team}-{len(found) + 1}"
            inference.warn("placeholder_player", f"Team {team}: could not find two players; added {placeholder!r}")
            found.append(placeholder)
        names.append(found)
    return names[0], names[1]


def rebuild_event(index: int, row: _Row, seats: dict[str, int], names: dict[int, str]) -> PointEvent:
    is_ace = row.serve_outcome == ServeShortcut.ACE.value
    is_df = row.serve_outcome == ServeShortcut.DOUBLE_FAULT.value
    server = ServerRecord(
        seat=seats.get(row.server, 0),
        is_first_serve_in=is_ace or row.serve_outcome == FIRST_SERVE_IN,
        is_ace=is_ace,
        is_double_fault=is_df,
    )
    rally = None
    if not (is_ace or is_df):
        try:
            outcome = RallyOutcome(row.point_outcome)
        except ValueError as e:
            raise ValidationError(f"Point {index + 1}: unknown point outcome {row.point_outcome!r}") from e
        rally = RallyRecord(
            ending_seat=seats.get(row.responsible, 0),
            outcome=outcome,
            is_at_net=row.at_net,
            is_return_event=row.on_return,
        )
    return PointEvent(
        id=index,
        score=row.score,
        description=describe_point(server, rally, names),
        set_index=row.set_index,
        winner_team=row.winner_team,
        server=server,
        rally=rally,
        timestamp=row.timestamp,
    )


def _ends_game(label: str) -> bool:
    return label == GAME_LABEL or label.endswith(SET_SUFFIX)


def infer_game_tally(rows: Sequence[_Row], inference: _Inference) -> tuple[list[int], list[int]]:
    """
    Games per set. A row labelled `Game` or `... (Set)` ended a game. Without that label,
    a set change or a following `0-0` row marks the previous row as game-ending, and the
    last row is assumed to end a game. Those guesses are flagged; a match exported
    mid-game can be overcounted by one game.
    """
    n_sets = max((r.set_index for r in rows), default=0) + 1
    games = ([0] * n_sets, [0] * n_sets)
    credited: set[int] = set()

    def credit(i: int) -> None:
        if i in credited:
            return
        credited.add(i)
        games[rows[i].winner_team - 1][rows[i].set_index] += 1

    guessed = 0
    for i, row in enumerate(rows):
        if _ends_game(row.score):
            credit(i)
        if i == 0:
            continue
        prev = rows[i - 1]
        if i - 1 in credited:
            continue
        if row.set_index > prev.set_index or (row.set_index == prev.set_index and row.score == "0-0"):
            credit(i - 1)
            guessed += 1
    if rows and len(rows) - 1 not in credited:
        credit(len(rows) - 1)
        guessed += 1
    if guessed:
        inference.warn("inferred_games", f"{guessed} game(s) inferred without an explicit game label")
    return games


def infer_winner(games1: list[int], games2: list[int], rules: MatchRules | None = None) -> int | None:
    """
    Team with more sets. A set counts when its leader reached the games-per-set target;
    the deciding super-tiebreak is tallied as a single game and counts on any lead.
    """
    rules = rules or MatchRules()
    a = b = 0
    for i, (g1, g2) in enumerate(zip(games1, games2)):
        decider = i == rules.deciding_set_index
        if g1 > g2 and (decider or g1 >= rules.games_to_win_set):
            a += 1
        elif g2 > g1 and (decider or g2 >= rules.games_to_win_set):
            b += 1
    if a == b:
        return None
    return 1 if a > b else 2


def decode_match(
    text: str,
    players: Sequence[Player] | None = None,
    profiles: Iterable[PlayerProfile] = (),
    resolve_profile: Callable[[str], PlayerProfile] = new_profile,
) -> tuple[MatchRecord, list[PlayerProfile]]:
    """
    Rebuild a MatchRecord from CSV text.

    With `players`, names map to seats exactly. Otherwise rosters are inferred and names
    are resolved to `profiles` case-insensitively, creating missing ones with
    `resolve_profile`. Returns the record and any profiles created.
    """
    rows = parse_rows(text)
    inference = _Inference()
    created: list[PlayerProfile] = []

    if players is None:
        t1_names, t2_names = infer_rosters(rows, inference)
        by_name = {p.name.lower(): p for p in profiles}
        roster: list[Player] = []
        for seat, name in enumerate([*t1_names, *t2_names]):
            profile = by_name.get(name.lower())
            if profile is None:
                profile = resolve_profile(name)
                by_name[name.lower()] = profile
                created.append(profile)
            roster.append(Player(seat=seat, profile_id=profile.id, name=name))
    else:
        roster = sorted(players, key=lambda p: p.seat)

    names = {p.seat: p.name for p in roster}
    seats = {p.name: p.seat for p in roster}
    unknown = sorted({n for r in rows for n in (r.server, r.responsible) if n and n not in seats})
    if unknown:
        inference.warn("unknown_player", f"Names not in roster mapped to seat 0: {unknown}")

    events = [rebuild_event(i, row, seats, names) for i, row in enumerate(rows)]
    games1, games2 = infer_game_tally(rows, inference)

    winner = infer_winner(games1, games2)

    record = MatchRecord(
        id=f"imported-{uuid.uuid4()}",
        date=date.today().isoformat(),
        team1=(roster[0], roster[1]),
        team2=(roster[2], roster[3]),
        score1=games1,
        score2=games2,
        winner=winner,
        player_stats=recompute(events, roster),
        events=events,
        last_state=None,
        reconstructed=True,
        approximate=bool(inference.warnings),
        warnings=inference.warnings,
    )
    return record, created
