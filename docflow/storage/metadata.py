"""Store metadata (format version, tool version) and summary counts."""

from __future__ import annotations

import sqlite3


def set_metadata(conn: sqlite3.Connection, key: str, value: str) -> None:
    """Insert or update a metadata key-value pair."""
    conn.execute(
        """
        INSERT INTO metadata (key, value) VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """,
        (key, value),
    )
    conn.commit()


def get_metadata(conn: sqlite3.Connection, key: str) -> str | None:
    row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else None


def get_all_metadata(conn: sqlite3.Connection) -> dict[str, str]:
    """Retrieve all metadata, sorted by key."""
    rows = conn.execute("SELECT key, value FROM metadata ORDER BY key").fetchall()
    return {row["key"]: row["value"] for row in rows}


def get_stats(conn: sqlite3.Connection) -> dict[str, int]:
    """Count the agents, model configs and artifacts in the store."""
    row = conn.execute(
        """
        SELECT
            (SELECT COUNT(*) FROM agents) AS agents,
            (SELECT COUNT(*) FROM agents WHERE kind = 'core') AS core_agents,
            (SELECT COUNT(*) FROM model_configs) AS model_configs,
            (SELECT COUNT(*) FROM artifacts) AS artifacts
        """
    ).fetchone()
    return dict(row)
