"""
REST API for the doubles tracker.
Thin wrappers around the match service and persistence.
"""
from __future__ import annotations

from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncGenerator, Generator, Literal

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from doubles_tracker.config import configure_logging
from doubles_tracker.errors import RecordNotFoundError, UsageError, ValidationError
from doubles_tracker.match import (
    AttributeRally,
    AwardRallyStart,
    CancelPoint,
    Command,
    ConfirmSecondServer,
    FirstServeFault,
    QuickAttributePoint,
    RallyOutcome,
    SelectFirstServer,
    ServeShortcut,
    UndoLastPoint,
)
from doubles_tracker.persistence import get_connection, init_db
from doubles_tracker.persistence.db import get_db_path
from doubles_tracker.persistence.repositories import MatchRecordRepository, PlayerProfileRepository
from doubles_tracker.services import MatchService


@contextmanager
def db_conn() -> Generator:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def service_errors() -> Generator:
    """Map domain errors to HTTP status codes."""
    try:
        yield
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except UsageError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    configure_logging()
    init_db(get_db_path())
    yield


app = FastAPI(
    title="Doubles Tracker API",
    description="Live doubles-tennis scoring, statistics and match history",
    version="0.1.0",
    lifespan=lifespan,
)

service = MatchService()


# ---------- Request models ----------


class ProfileCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class StartMatchRequest(BaseModel):
    team1: list[str] = Field(..., min_length=2, max_length=2, description="Profile ids for seats 0 and 1")
    team2: list[str] = Field(..., min_length=2, max_length=2, description="Profile ids for seats 2 and 3")
    video_file_name: str | None = None


class CommandRequest(BaseModel):
    type: Literal[
        "select_first_server",
        "confirm_second_server",
        "first_serve_fault",
        "quick_attribute_point",
        "award_rally_start",
        "attribute_rally",
        "cancel_point",
        "undo",
    ]
    seat: int | None = Field(None, ge=0, le=3)
    reason: str | None = None
    timestamp: float | None = None
    ending_seat: int | None = Field(None, ge=0, le=3)
    at_net: bool = False
    is_return_event: bool = False


class ImportRequest(BaseModel):
    csv: str = Field(..., min_length=1)


def _to_command(req: CommandRequest) -> Command:
    try:
        if req.type == "select_first_server":
            return SelectFirstServer(seat=_require_seat(req.seat))
        if req.type == "confirm_second_server":
            return ConfirmSecondServer(seat=_require_seat(req.seat))
        if req.type == "first_serve_fault":
            return FirstServeFault()
        if req.type == "quick_attribute_point":
            return QuickAttributePoint(reason=ServeShortcut(req.reason), timestamp=req.timestamp)
        if req.type == "award_rally_start":
            return AwardRallyStart(reason=RallyOutcome(req.reason), timestamp=req.timestamp)
        if req.type == "attribute_rally":
            return AttributeRally(
                ending_seat=req.ending_seat, at_net=req.at_net, is_return_event=req.is_return_event
            )
        if req.type == "cancel_point":
            return CancelPoint()
        return UndoLastPoint()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Invalid reason: {req.reason!r}") from e


def _require_seat(seat: int | None) -> int:
    if seat is None:
        raise HTTPException(status_code=422, detail="seat is required")
    return seat


# ---------- Profiles ----------


@app.get("/profiles")
def list_profiles() -> dict[str, Any]:
    with db_conn() as conn:
        profiles = PlayerProfileRepository().list_all(conn)
    return {"profiles": [p.to_dict() for p in profiles]}


@app.post("/profiles")
def create_profile(req: ProfileCreateRequest) -> dict[str, Any]:
    with db_conn() as conn:
        return PlayerProfileRepository().create(conn, req.name).to_dict()


# ---------- Live matches ----------


@app.post("/matches")
def start_match(req: StartMatchRequest) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        live = service.start_match(conn, req.team1, req.team2, req.video_file_name)
        return service.snapshot_view(live.id)


@app.get("/matches/{match_id}")
def get_match(match_id: str) -> dict[str, Any]:
    with service_errors():
        return service.snapshot_view(match_id)


@app.post("/matches/{match_id}/commands")
def post_command(match_id: str, req: CommandRequest) -> dict[str, Any]:
    command = _to_command(req)
    with service_errors():
        view, event = service.handle(match_id, command)
    view["event"] = event.to_dict() if event else None
    return view


@app.post("/matches/{match_id}/save")
def save_match(match_id: str) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        return service.save_in_progress(conn, match_id).to_dict()


@app.post("/matches/{match_id}/finish")
def finish_match(match_id: str) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        return service.finish_match(conn, match_id).to_dict()


# ---------- Stored records ----------


@app.get("/records")
def list_records(limit: int = 50) -> dict[str, Any]:
    with db_conn() as conn:
        records = MatchRecordRepository().list_recent(conn, limit=limit)
    return {
        "records": [
            {
                "id": r.id,
                "date": r.date,
                "teams": [[p.name for p in r.team1], [p.name for p in r.team2]],
                "score": [r.score1, r.score2],
                "winner": r.winner,
                "resumable": r.last_state is not None and r.winner is None,
                "reconstructed": r.reconstructed,
                "approximate": r.approximate,
            }
            for r in records
        ]
    }


@app.get("/records/{record_id}")
def get_record(record_id: str) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        return MatchRecordRepository().require(conn, record_id).to_dict()


@app.post("/records/{record_id}/resume")
def resume_record(record_id: str) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        live = service.resume_match(conn, record_id)
        return service.snapshot_view(live.id)


@app.get("/records/{record_id}/csv", response_class=PlainTextResponse)
def export_record(record_id: str) -> str:
    with db_conn() as conn, service_errors():
        return service.export_csv(conn, record_id)


@app.post("/records/import")
def import_record(req: ImportRequest) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        return service.import_csv(conn, req.csv).to_dict()


# ---------- Run with: uvicorn doubles_tracker.api:app --reload ----------
