"""Artifact storage - final documents produced by runs."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone

from .schema import NotFoundError, StorageError


@dataclass
class Artifact:
    """A generated document."""

    id: int
    run_id: str | None
    name: str
    content_type: str | None
    content: str
    created_at: str


def save_artifact(
    conn: sqlite3.Connection,
    name: str,
    content: str,
    *,
    content_type: str | None = "text/markdown",
    run_id: str | None = None,
) -> Artifact:
    """
    Save a generated artifact.

    Args:
        conn: Database connection
        name: Name of the artifact (usually the source file name)
        content: The artifact content
        content_type: MIME type
        run_id: Run that produced it

    Returns:
        The created Artifact
    """
    now = datetime.now(timezone.utc).isoformat()

    cursor = conn.execute(
        """
        INSERT INTO artifacts (run_id, name, content_type, content, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (run_id, name, content_type, content, now),
    )
    conn.commit()
    if cursor.lastrowid is None:
        raise StorageError("Failed to insert artifact: lastrowid is None")

    return Artifact(
        id=cursor.lastrowid,
        run_id=run_id,
        name=name,
        content_type=content_type,
        content=content,
        created_at=now,
    )


def get_artifact(conn: sqlite3.Connection, artifact_id: int) -> Artifact:
    """
    Get an artifact by ID.

    Raises:
        NotFoundError: If no artifact has this ID
    """
    cursor = conn.execute(
        """
        SELECT id, run_id, name, content_type, content, created_at
        FROM artifacts WHERE id = ?
        """,
        (artifact_id,),
    )
    row = cursor.fetchone()
    if row is None:
        raise NotFoundError(f"Artifact {artifact_id} not found")
    return Artifact(**dict(row))


def get_all_artifacts(conn: sqlite3.Connection) -> list[Artifact]:
    """Get all artifacts, newest first."""
    cursor = conn.execute(
        """
        SELECT id, run_id, name, content_type, content, created_at
        FROM artifacts ORDER BY created_at DESC, id DESC
        """
    )
    return [Artifact(**dict(row)) for row in cursor.fetchall()]
