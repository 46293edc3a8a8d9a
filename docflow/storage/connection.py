"""Database connection management."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from docflow import FORMAT_VERSION, __version__

from .metadata import get_metadata, set_metadata
from .schema import SCHEMA_SQL


def init_db(path: str | Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """
    Initialize or open a docflow database.

    Creates all required tables if they don't exist and the parent
    directory if needed. ":memory:" opens a throwaway database.

    Args:
        path: Path to the SQLite file
        check_same_thread: Passed to sqlite3.connect; the web server opens
            connections shared with worker threads

    Returns:
        Configured sqlite3.Connection ready for use
    """
    path = str(path)
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path, check_same_thread=check_same_thread)
    conn.row_factory = sqlite3.Row

    # Performance and safety settings
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute("PRAGMA synchronous=NORMAL")

    # Create tables
    conn.executescript(SCHEMA_SQL)
    conn.commit()

    if get_metadata(conn, "format_version") is None:
        set_metadata(conn, "format_version", FORMAT_VERSION)
        set_metadata(conn, "docflow_version", __version__)

    return conn
