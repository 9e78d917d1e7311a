"""
Tests for match records, player profiles, the SQLite repositories and the match service.
"""
from __future__ import annotations

import random
import threading

import pytest

from doubles_tracker.errors import RecordNotFoundError, UsageError, ValidationError
from doubles_tracker.match import (
    AwardRallyStart,
    CancelPoint,
    InteractionMode,
    MatchRecord,
    QuickAttributePoint,
    RallyOutcome,
    SelectFirstServer,
    ServeShortcut,
    build_match_record,
    encode_record,
    update_profiles_on_match_end,
)
from doubles_tracker.match.records import PlayerProfile
from doubles_tracker.persistence import get_connection, init_db
from doubles_tracker.persistence.repositories import MatchRecordRepository, PlayerProfileRepository
from doubles_tracker.services import MatchService

from match_driver import ROSTER, play_random, resolve_selection, started_machine, win_set


@pytest.fixture
def conn(tmp_path):
    db_path = tmp_path / "doubles.db"
    init_db(db_path)
    c = get_connection(db_path)
    yield c
    c.close()


@pytest.fixture
def four_profiles(conn):
    repo = PlayerProfileRepository()
    return [repo.create(conn, name) for name in ("Ann", "Bea", "Cam", "Dee")]


def _finished_machine():
    m = started_machine()
    win_set(m, 1)
    win_set(m, 1)
    return m


class TestMatchRecord:
    def test_build_from_finished_match(self):
        m = _finished_machine()
        record = build_match_record(m.state, video_file_name="court1.mp4", record_id="r1")
        assert record.id == "r1"
        assert record.winner == 1
        assert (record.score1, record.score2) == ([6, 6], [0, 0])
        assert set(record.player_stats) == {p.profile_id for p in ROSTER}
        assert record.player_stats["p-ann"] == m.state.stats[0]
        assert record.last_state == m.state
        assert record.last_state is not m.state
        assert not record.reconstructed

    def test_record_round_trips_through_dict(self):
        m = started_machine()
        play_random(m, random.Random(6), 50)
        record = build_match_record(m.state, record_id="r2")
        assert MatchRecord.from_dict(record.to_dict()) == record

    def test_profiles_updated_on_match_end(self):
        m = _finished_machine()
        record = build_match_record(m.state)
        profiles = {p.profile_id: PlayerProfile(id=p.profile_id, name=p.name) for p in ROSTER}
        profiles["p-cam"].losses = 2
        profiles["p-cam"].matches_played = 2

        updated = update_profiles_on_match_end(profiles, record)
        assert set(updated) == {"p-ann", "p-bea", "p-cam", "p-dee"}
        assert (updated["p-ann"].wins, updated["p-ann"].losses, updated["p-ann"].matches_played) == (1, 0, 1)
        assert (updated["p-cam"].wins, updated["p-cam"].losses, updated["p-cam"].matches_played) == (0, 3, 3)
        assert updated["p-ann"].stats.aces == record.player_stats["p-ann"].aces
        assert profiles["p-ann"].wins == 0

    def test_no_winner_no_profile_change(self):
        m = started_machine()
        play_random(m, random.Random(2), 10)
        record = build_match_record(m.state)
        profiles = {p.profile_id: PlayerProfile(id=p.profile_id, name=p.name) for p in ROSTER}
        assert update_profiles_on_match_end(profiles, record) == {}

    def test_missing_profile_is_skipped(self):
        record = build_match_record(_finished_machine().state)
        profiles = {"p-ann": PlayerProfile(id="p-ann", name="Ann")}
        assert set(update_profiles_on_match_end(profiles, record)) == {"p-ann"}


class TestRepositories:
    def test_match_record_save_get_and_overwrite(self, conn):
        repo = MatchRecordRepository()
        m = started_machine()
        play_random(m, random.Random(1), 20)
        record = build_match_record(m.state, record_id="rec-1")
        repo.save(conn, record)
        assert repo.get(conn, "rec-1") == record

        play_random(m, random.Random(2), 20)
        newer = build_match_record(m.state, record_id="rec-1")
        repo.save(conn, newer)
        assert len(repo.get(conn, "rec-1").events) == len(newer.events)
        assert len(repo.list_recent(conn)) == 1

    def test_require_missing_raises(self, conn):
        with pytest.raises(RecordNotFoundError):
            MatchRecordRepository().require(conn, "nope")
        assert MatchRecordRepository().get(conn, "nope") is None

    def test_delete(self, conn):
        repo = MatchRecordRepository()
        repo.save(conn, build_match_record(started_machine().state, record_id="gone"))
        assert repo.delete(conn, "gone")
        assert not repo.delete(conn, "gone")

    def test_profiles(self, conn, four_profiles):
        repo = PlayerProfileRepository()
        assert [p.name for p in repo.list_all(conn)] == ["Ann", "Bea", "Cam", "Dee"]
        assert repo.get_by_name(conn, "  cam ").id == four_profiles[2].id
        assert repo.get_by_name(conn, "Zed") is None
        got = repo.get_many(conn, [four_profiles[0].id, "missing"])
        assert list(got) == [four_profiles[0].id]


class TestMatchService:
    def _start(self, service, conn, profiles):
        ids = [p.id for p in profiles]
        return service.start_match(conn, ids[:2], ids[2:], video_file_name="court.mp4")

    def _play_to_end(self, service, match_id):
        live = service.get_live(match_id)
        live.machine.handle(SelectFirstServer(seat=0))
        win_set(live.machine, 2)
        win_set(live.machine, 2)

    def test_start_requires_known_profiles(self, conn, four_profiles):
        service = MatchService()
        with pytest.raises(RecordNotFoundError):
            service.start_match(conn, [four_profiles[0].id, "ghost"], [four_profiles[2].id, four_profiles[3].id])
        with pytest.raises(ValidationError):
            service.start_match(conn, [four_profiles[0].id], [four_profiles[2].id, four_profiles[3].id])

    def test_finish_updates_profiles(self, conn, four_profiles):
        service = MatchService()
        live = self._start(service, conn, four_profiles)
        with pytest.raises(UsageError):
            service.finish_match(conn, live.id)
        self._play_to_end(service, live.id)

        record = service.finish_match(conn, live.id)
        assert record.winner == 2
        assert record.video_file_name == "court.mp4"
        repo = PlayerProfileRepository()
        cam = repo.get(conn, four_profiles[2].id)
        ann = repo.get(conn, four_profiles[0].id)
        assert (cam.wins, cam.losses, cam.matches_played) == (1, 0, 1)
        assert (ann.wins, ann.losses, ann.matches_played) == (0, 1, 1)
        assert cam.stats.aces == record.player_stats[cam.id].aces
        with pytest.raises(RecordNotFoundError):
            service.get_live(live.id)

    def test_save_and_resume(self, conn, four_profiles):
        service = MatchService()
        live = self._start(service, conn, four_profiles)
        service.handle(live.id, SelectFirstServer(seat=0))
        play_random(live.machine, random.Random(8), 30)
        resolve_selection(live.machine)
        depth = live.machine.history.depth
        n_events = len(live.machine.events)

        service.handle(live.id, AwardRallyStart(reason=RallyOutcome.WINNER))
        with pytest.raises(UsageError):
            service.save_in_progress(conn, live.id)
        service.handle(live.id, CancelPoint())

        record = service.save_in_progress(conn, live.id)
        assert record.winner is None
        assert len(record.events) == n_events

        resumed = service.resume_match(conn, record.id)
        assert resumed.id == record.id
        assert resumed.machine.history.depth == depth
        assert len(resumed.machine.events) == n_events
        assert resumed.machine.mode != InteractionMode.NOT_STARTED

    def test_resume_imported_record_is_rejected(self, conn, four_profiles):
        service = MatchService()
        m = _finished_machine()
        imported = service.import_csv(conn, encode_record(build_match_record(m.state)))
        with pytest.raises(ValidationError):
            service.resume_match(conn, imported.id)

    def test_resume_finished_record_is_rejected(self, conn, four_profiles):
        service = MatchService()
        live = self._start(service, conn, four_profiles)
        self._play_to_end(service, live.id)
        record = service.finish_match(conn, live.id)

        with pytest.raises(ValidationError, match="already finished"):
            service.resume_match(conn, record.id)
        with pytest.raises(RecordNotFoundError):
            service.get_live(record.id)
        cam = PlayerProfileRepository().get(conn, four_profiles[2].id)
        assert (cam.wins, cam.matches_played) == (1, 1)

    def test_views_are_taken_between_commands(self, conn, four_profiles):
        service = MatchService()
        live = self._start(service, conn, four_profiles)
        view, event = service.handle(live.id, SelectFirstServer(seat=0))
        assert event is None
        assert view["mode"] == "scoring"
        assert "history" not in view

        views = []
        threads = [
            threading.Thread(
                target=lambda: views.append(
                    service.handle(live.id, QuickAttributePoint(reason=ServeShortcut.ACE))[0]
                )
            )
            for _ in range(3)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(v["undo_depth"] for v in views) == [1, 2, 3]
        assert all(len(v["events"]) == v["undo_depth"] for v in views)
        assert service.snapshot_view(live.id)["match_id"] == live.id

    def test_export_then_import(self, conn, four_profiles):
        service = MatchService()
        live = self._start(service, conn, four_profiles)
        self._play_to_end(service, live.id)
        record = service.finish_match(conn, live.id)

        text = service.export_csv(conn, record.id)
        imported = service.import_csv(conn, text)
        assert imported.reconstructed
        assert imported.winner == 2
        assert {p.profile_id for p in imported.players} == {p.id for p in four_profiles}
        assert imported.player_stats == record.player_stats
        assert len(PlayerProfileRepository().list_all(conn)) == 4
        assert MatchRecordRepository().get(conn, imported.id) is not None
