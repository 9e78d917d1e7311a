"""
Score state machine: advances points -> games -> sets -> match and the doubles serve
rotation, appends one PointEvent per resolved point and folds it into the live stats.
"""
from __future__ import annotations

import logging
from typing import Callable

from doubles_tracker.errors import UsageError, ValidationError

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
from .events import (
    PointEvent,
    RallyOutcome,
    RallyRecord,
    ServerRecord,
    ServeShortcut,
    describe_point,
    other_team,
    partner_of,
    rally_winner,
    team_of,
)
from .history import HistoryManager
from .state import InteractionMode, MatchRules, MatchState
from .stats import PlayerStats, apply_event, stats_by_profile

logger = logging.getLogger(__name__)

_POINT_NAMES = ("0", "15", "30", "40")


# ---------- Boundary arithmetic ----------

def game_won(points: int, opponent_points: int, target: int, win_by: int = 2) -> bool:
    """True if a side on `points` has won a game (or tiebreak) played to `target`."""
    return points >= target and points - opponent_points >= win_by


def set_won(games: int, opponent_games: int, to_win: int = 6, win_by: int = 2) -> bool:
    return games >= to_win and games - opponent_games >= win_by


def sets_won(games1: list[int], games2: list[int]) -> tuple[int, int]:
    """Sets won by each team from the per-set game tallies."""
    a = sum(1 for g1, g2 in zip(games1, games2) if g1 > g2)
    b = sum(1 for g1, g2 in zip(games1, games2) if g2 > g1)
    return a, b


def point_score_label(state: MatchState) -> str:
    """Label for the current points, team 1 first. Ad-In/Ad-Out is relative to the server."""
    p1, p2 = state.team1.points, state.team2.points
    if state.is_tiebreak:
        return f"{p1}-{p2}"
    if p1 >= 3 and p1 == p2:
        return "Deuce"
    if p1 > 3 or p2 > 3:
        leader = 1 if p1 > p2 else 2
        return "Ad-In" if leader == state.serving_team_id else "Ad-Out"
    return f"{_POINT_NAMES[p1]}-{_POINT_NAMES[p2]}"


class ScoreMachine:
    """
    Owns one MatchState and applies commands to it, one at a time.
    Every command fully resolves before `handle` returns.
    """

    def __init__(self, state: MatchState | None = None, rules: MatchRules | None = None) -> None:
        self.state = state or MatchState.initial(rules)
        self._handlers: dict[type, Callable[[Command], PointEvent | None]] = {
            StartMatch: self._start_match,
            SelectFirstServer: self._select_first_server,
            ConfirmSecondServer: self._confirm_second_server,
            FirstServeFault: self._first_serve_fault,
            QuickAttributePoint: self._quick_attribute_point,
            AwardRallyStart: self._award_rally_start,
            AttributeRally: self._attribute_rally,
            CancelPoint: self._cancel_point,
            UndoLastPoint: self._undo,
            ResetState: self._reset,
            ResumeMatch: self._resume,
        }

    @property
    def mode(self) -> InteractionMode:
        return self.state.mode

    @property
    def history(self) -> HistoryManager:
        return HistoryManager(self.state)

    @property
    def events(self) -> list[PointEvent]:
        return self.state.events

    def stats_by_profile(self) -> dict[str, PlayerStats]:
        return stats_by_profile(self.state.stats, self.state.players)

    def handle(self, command: Command) -> PointEvent | None:
        """Apply one command. Returns the PointEvent when the command resolved a point."""
        handler = self._handlers.get(type(command))
        if handler is None:
            raise ValidationError(f"Unknown command: {command!r}")
        return handler(command)

    # ---------- Guards ----------

    def _require(self, command: Command, *modes: InteractionMode) -> None:
        if self.state.mode not in modes:
            logger.warning("Rejected %s in mode %s", type(command).__name__, self.state.mode.value)
            raise UsageError(type(command).__name__, self.state.mode.value)

    # ---------- Lifecycle ----------

    def _start_match(self, cmd: StartMatch) -> None:
        self.state = MatchState.for_teams(cmd.team1, cmd.team2, self.state.rules)
        logger.info(
            "Match started: %s & %s vs %s & %s",
            *(p.name for p in self.state.players),
        )

    def _reset(self, cmd: ResetState) -> None:
        self.state = MatchState.initial(self.state.rules)

    def _resume(self, cmd: ResumeMatch) -> None:
        self.state = cmd.state
        logger.info("Match resumed at %d points, mode %s", len(self.state.events), self.state.mode.value)

    # ---------- Server selection ----------

    def _select_first_server(self, cmd: SelectFirstServer) -> None:
        self._require(cmd, InteractionMode.SELECTING_FIRST_SERVER)
        seat = cmd.seat
        team_of(seat)
        state = self.state
        state.serve_order = [seat]
        state.serve_order_index = 0
        state.server_seat = seat
        state.sync_serving_flags()
        # No game-1 pause in a tiebreak: the full order is needed before the first point.
        state.mode = InteractionMode.SELECTING_SECOND_SERVER if state.is_tiebreak else InteractionMode.SCORING

    def _confirm_second_server(self, cmd: ConfirmSecondServer) -> None:
        self._require(cmd, InteractionMode.SELECTING_SECOND_SERVER)
        state = self.state
        first = state.serve_order[0]
        second = cmd.seat
        if team_of(second) == team_of(first):
            raise ValidationError(f"Second server must come from the receiving team, got seat {second}")
        state.serve_order = [first, second, partner_of(first), partner_of(second)]
        state.serve_order_index = 0 if state.is_tiebreak else 1
        state.server_seat = state.serve_order[state.serve_order_index]
        state.sync_serving_flags()
        state.mode = InteractionMode.SCORING

    # ---------- Point entry ----------

    def _first_serve_fault(self, cmd: FirstServeFault) -> None:
        self._require(cmd, InteractionMode.SCORING)
        self.state.first_serve_faulted = True

    def _quick_attribute_point(self, cmd: QuickAttributePoint) -> PointEvent:
        self._require(cmd, InteractionMode.SCORING)
        reason = ServeShortcut(cmd.reason)
        state = self.state
        self.history.push(mode=InteractionMode.SCORING)
        is_ace = reason == ServeShortcut.ACE
        server = ServerRecord(
            seat=state.server_seat,
            is_first_serve_in=is_ace,
            is_ace=is_ace,
            is_double_fault=not is_ace,
        )
        winning_team = state.serving_team_id if is_ace else other_team(state.serving_team_id)
        return self._apply_point(winning_team, server, None, cmd.timestamp)

    def _award_rally_start(self, cmd: AwardRallyStart) -> None:
        self._require(cmd, InteractionMode.SCORING)
        self.state.pending_reason = RallyOutcome(cmd.reason)
        self.state.pending_timestamp = cmd.timestamp
        self.state.mode = InteractionMode.ATTRIBUTING_RALLY

    def _cancel_point(self, cmd: CancelPoint) -> None:
        self._require(cmd, InteractionMode.ATTRIBUTING_RALLY)
        self.state.pending_reason = None
        self.state.pending_timestamp = None
        self.state.mode = InteractionMode.SCORING

    def _attribute_rally(self, cmd: AttributeRally) -> PointEvent:
        self._require(cmd, InteractionMode.ATTRIBUTING_RALLY)
        state = self.state
        if state.pending_reason is None:
            raise UsageError("AttributeRally", state.mode.value, "no pending point reason")
        if cmd.ending_seat is None:
            raise UsageError("AttributeRally", state.mode.value, "no responsible player chosen")
        team_of(cmd.ending_seat)
        # Undo lands back in Scoring, before the fault or the rally was entered.
        self.history.push(mode=InteractionMode.SCORING)
        rally = RallyRecord(
            ending_seat=cmd.ending_seat,
            outcome=state.pending_reason,
            is_at_net=cmd.at_net,
            is_return_event=cmd.is_return_event,
        )
        server = ServerRecord(seat=state.server_seat, is_first_serve_in=not state.first_serve_faulted)
        return self._apply_point(rally_winner(rally), server, rally, state.pending_timestamp)

    def _undo(self, cmd: UndoLastPoint) -> None:
        mode = self.state.mode
        if mode in (InteractionMode.ATTRIBUTING_RALLY, InteractionMode.MATCH_OVER):
            logger.warning("Rejected UndoLastPoint in mode %s", mode.value)
            raise UsageError("UndoLastPoint", mode.value)
        self.history.undo()

    # ---------- Point application ----------

    def _apply_point(
        self,
        winning_team: int,
        server: ServerRecord,
        rally: RallyRecord | None,
        timestamp: float | None,
    ) -> PointEvent:
        state = self.state
        rules = state.rules
        win = state.team(winning_team)
        lose = state.opponents(winning_team)
        cs = state.current_set

        win.points += 1

        if state.is_tiebreak:
            target = rules.tiebreak_target(cs)
            game_over = game_won(win.points, lose.points, target, rules.win_by)
            label = point_score_label(state) + (" (Set)" if game_over else "")
        else:
            game_over = game_won(win.points, lose.points, rules.points_to_win_game, rules.win_by)
            label = "Game" if game_over else point_score_label(state)

        event = PointEvent(
            id=len(state.events),
            score=label,
            description=describe_point(server, rally, state.names),
            set_index=cs,
            winner_team=winning_team,
            server=server,
            rally=rally,
            timestamp=timestamp,
        )
        state.events.append(event)
        apply_event(state.stats, event)
        logger.debug("Point %d: %s (%s)", event.id, event.description, label)

        selecting = False
        if state.is_tiebreak:
            if game_over:
                win.games[cs] += 1
                self._end_match(winning_team)
            else:
                played = win.points + lose.points
                if played == 1 or (played - 1) % 2 == 0:
                    self._rotate_server()
        elif game_over:
            win.games[cs] += 1
            win.points = 0
            lose.points = 0
            logger.info("Game to team %d (%d-%d in set %d)", winning_team,
                        state.team1.games[cs], state.team2.games[cs], cs + 1)
            if set_won(win.games[cs], lose.games[cs], rules.games_to_win_set, rules.win_by):
                selecting = self._finish_set(winning_team)
            elif win.games[cs] + lose.games[cs] == 1:
                state.mode = InteractionMode.SELECTING_SECOND_SERVER
                selecting = True
            else:
                self._rotate_server()

        state.first_serve_faulted = False
        state.pending_reason = None
        state.pending_timestamp = None
        if state.match_over:
            state.mode = InteractionMode.MATCH_OVER
        elif not selecting:
            state.mode = InteractionMode.SCORING
        return event

    def _finish_set(self, winning_team: int) -> bool:
        """Close the current set. Returns True when a server-selection phase was entered."""
        state = self.state
        rules = state.rules
        a, b = sets_won(state.team1.games, state.team2.games)
        logger.info("Set %d to team %d (sets %d-%d)", state.current_set + 1, winning_team, a, b)
        if max(a, b) >= rules.sets_to_win_match:
            self._end_match(winning_team)
            return False
        state.current_set += 1
        state.team1.games.append(0)
        state.team2.games.append(0)
        if a == b == rules.sets_to_win_match - 1:
            state.is_tiebreak = True
            logger.info("Sets level: deciding super-tiebreak")
        # A new set always needs a fresh choice of who serves its first game.
        state.mode = InteractionMode.SELECTING_FIRST_SERVER
        return True

    def _rotate_server(self) -> None:
        state = self.state
        state.serve_order_index = (state.serve_order_index + 1) % len(state.serve_order)
        state.server_seat = state.serve_order[state.serve_order_index]
        state.sync_serving_flags()

    def _end_match(self, winning_team: int) -> None:
        self.state.match_over = True
        self.state.winner = winning_team
        logger.info("Match over: team %d wins (%s vs %s)", winning_team,
                    self.state.team1.games, self.state.team2.games)
