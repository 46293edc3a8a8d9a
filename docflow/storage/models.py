"""Model configuration operations."""

from __future__ import annotations

import sqlite3
import uuid

from docflow.workflow.agents import ModelTarget

from .schema import IntegrityError, NotFoundError


def _row_to_target(row: sqlite3.Row) -> ModelTarget:
    return ModelTarget(
        id=row["id"],
        display_name=row["display_name"],
        provider=row["provider"],
        model=row["model_name"],
        api_key=row["api_key"],
    )


def insert_model_config(
    conn: sqlite3.Connection,
    provider: str,
    model_name: str,
    api_key: str = "",
    *,
    display_name: str | None = None,
    config_id: str | None = None,
) -> ModelTarget:
    """
    Save a model configuration.

    Args:
        conn: Database connection
        provider: Provider name ("google", "openrouter", "ollama")
        model_name: Model identifier as the provider expects it
        api_key: Credential for the provider
        display_name: Friendly name (default: "provider:model")
        config_id: Explicit ID (default: random)

    Returns:
        The stored ModelTarget

    Raises:
        IntegrityError: If a config with this ID already exists
    """
    config_id = config_id or uuid.uuid4().hex[:12]
    display_name = display_name or f"{provider}:{model_name}"

    try:
        conn.execute(
            """
            INSERT INTO model_configs (id, display_name, provider, model_name, api_key)
            VALUES (?, ?, ?, ?, ?)
            """,
            (config_id, display_name, provider, model_name, api_key),
        )
        conn.commit()
    except sqlite3.IntegrityError as e:
        conn.rollback()
        if "UNIQUE constraint" in str(e):
            raise IntegrityError(f"Model config '{config_id}' already exists") from e
        raise IntegrityError(str(e)) from e

    return get_model_config(conn, config_id)


def get_model_config(conn: sqlite3.Connection, config_id: str) -> ModelTarget:
    """
    Retrieve a model configuration by ID.

    Raises:
        NotFoundError: If no config has this ID
    """
    cursor = conn.execute(
        """
        SELECT id, display_name, provider, model_name, api_key
        FROM model_configs WHERE id = ?
        """,
        (config_id,),
    )
    row = cursor.fetchone()
    if row is None:
        raise NotFoundError(f"Model config '{config_id}' not found")
    return _row_to_target(row)


def get_all_model_configs(conn: sqlite3.Connection) -> list[ModelTarget]:
    """Retrieve all model configurations, oldest first."""
    cursor = conn.execute(
        """
        SELECT id, display_name, provider, model_name, api_key
        FROM model_configs ORDER BY created_at, id
        """
    )
    return [_row_to_target(row) for row in cursor.fetchall()]


def delete_model_config(conn: sqlite3.Connection, config_id: str) -> bool:
    """Delete a model configuration. Returns True if it existed."""
    cursor = conn.execute("DELETE FROM model_configs WHERE id = ?", (config_id,))
    conn.commit()
    return cursor.rowcount > 0
