"""
Command surface consumed by the scoring state machine.
Producers (UI widgets, the HTTP layer) build these; the machine validates them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .events import Player, RallyOutcome, ServeShortcut
from .state import MatchState


@dataclass(frozen=True)
class StartMatch:
    team1: tuple[Player, Player]
    team2: tuple[Player, Player]


@dataclass(frozen=True)
class SelectFirstServer:
    seat: int


@dataclass(frozen=True)
class ConfirmSecondServer:
    seat: int


@dataclass(frozen=True)
class FirstServeFault:
    pass


@dataclass(frozen=True)
class QuickAttributePoint:
    reason: ServeShortcut
    timestamp: float | None = None


@dataclass(frozen=True)
class AwardRallyStart:
    reason: RallyOutcome
    timestamp: float | None = None


@dataclass(frozen=True)
class AttributeRally:
    ending_seat: int | None
    at_net: bool = False
    is_return_event: bool = False


@dataclass(frozen=True)
class CancelPoint:
    pass


@dataclass(frozen=True)
class UndoLastPoint:
    pass


@dataclass(frozen=True)
class ResetState:
    pass


@dataclass(frozen=True)
class ResumeMatch:
    state: MatchState


Command = Union[
    StartMatch,
    SelectFirstServer,
    ConfirmSecondServer,
    FirstServeFault,
    QuickAttributePoint,
    AwardRallyStart,
    AttributeRally,
    CancelPoint,
    UndoLastPoint,
    ResetState,
    ResumeMatch,
]
