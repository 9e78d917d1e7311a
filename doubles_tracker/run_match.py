"""
Command-line helpers around the tabular codec and stored records.

  python -m doubles_tracker.run_match summary match.csv
  python -m doubles_tracker.run_match export <record-id> [--out match.csv]
  python -m doubles_tracker.run_match import match.csv [--db doubles.db]
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from doubles_tracker.config import configure_logging
from doubles_tracker.errors import TrackerError
from doubles_tracker.match import MatchRecord, decode_match, encode_record, recompute_by_seat, team_totals
from doubles_tracker.match.stats import PlayerStats
from doubles_tracker.persistence import get_connection, init_db, set_db_path
from doubles_tracker.persistence.repositories import MatchRecordRepository
from doubles_tracker.services import MatchService

_COLUMNS = (
    ("W", "winners"),
    ("Ace", "aces"),
    ("DF", "double_faults"),
    ("UE", "unforced_errors"),
    ("FE", "forced_errors"),
    ("Won", "points_won"),
    ("Lost", "points_lost"),
)


def _stat_line(name: str, stats: PlayerStats) -> str:
    counters = "  ".join(f"{label}:{getattr(stats, key):>3}" for label, key in _COLUMNS)
    return f"  {name:<20} {counters}  1st%:{stats.first_serve_pct:>5}  Ret%:{stats.return_won_pct:>5}"


def print_summary(record: MatchRecord) -> None:
    t1 = " & ".join(p.name for p in record.team1)
    t2 = " & ".join(p.name for p in record.team2)
    sets = ", ".join(f"{a}-{b}" for a, b in zip(record.score1, record.score2))
    print(f"{t1}  vs  {t2}")
    print(f"Games per set: {sets}")
    print(f"Winner: {'Team ' + str(record.winner) if record.winner else 'undecided'}")
    print(f"Points: {len(record.events)}")
    if record.reconstructed:
        print(f"Reconstructed from CSV (approximate={record.approximate})")
        for w in record.warnings:
            print(f"  ! {w.message}")
    print("Player stats:")
    for p in record.players:
        print(_stat_line(p.name, record.player_stats[p.profile_id]))
    by_seat = recompute_by_seat(record.events)
    print("Team totals:")
    for team_id, team in ((1, record.team1), (2, record.team2)):
        print(_stat_line(" & ".join(p.name for p in team), team_totals(by_seat, team_id)))


def _cmd_summary(args: argparse.Namespace) -> int:
    text = Path(args.csv).read_text(encoding="utf-8")
    record, _ = decode_match(text)
    print_summary(record)
    return 0


def _open_db(args: argparse.Namespace):
    if args.db:
        set_db_path(args.db)
    init_db()
    return get_connection()


def _cmd_export(args: argparse.Namespace) -> int:
    conn = _open_db(args)
    try:
        record = MatchRecordRepository().require(conn, args.record_id)
    finally:
        conn.close()
    text = encode_record(record)
    if args.out:
        Path(args.out).write_text(text, encoding="utf-8")
        print(f"Wrote {len(record.events)} points to {args.out}")
    else:
        sys.stdout.write(text)
    return 0


def _cmd_import(args: argparse.Namespace) -> int:
    text = Path(args.csv).read_text(encoding="utf-8")
    conn = _open_db(args)
    try:
        record = MatchService().import_csv(conn, text)
    finally:
        conn.close()
    print(f"Imported {record.id} ({len(record.events)} points, approximate={record.approximate})")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Doubles tracker match tools")
    parser.add_argument("--log-level", default=None, help="Logging level (default from env or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_summary = sub.add_parser("summary", help="Reconstruct a match from a CSV export and print it")
    p_summary.add_argument("csv", help="Path to the CSV export")
    p_summary.set_defaults(func=_cmd_summary)

    p_export = sub.add_parser("export", help="Write a stored match as CSV")
    p_export.add_argument("record_id")
    p_export.add_argument("--out", default=None, help="Output file (default: stdout)")
    p_export.add_argument("--db", default=None, help="SQLite database path")
    p_export.set_defaults(func=_cmd_export)

    p_import = sub.add_parser("import", help="Store a match reconstructed from a CSV export")
    p_import.add_argument("csv", help="Path to the CSV export")
    p_import.add_argument("--db", default=None, help="SQLite database path")
    p_import.set_defaults(func=_cmd_import)

    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    try:
        return args.func(args)
    except TrackerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
