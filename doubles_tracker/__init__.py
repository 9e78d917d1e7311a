"""
Live doubles-tennis match tracker: scoring, serve rotation, per-player statistics and an
append-only point-event log.
"""
__version__ = "0.1.0"
