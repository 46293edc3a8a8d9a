"""Schema definition and exceptions for docflow storage."""

from __future__ import annotations


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class StorageError(Exception):
    """Base exception for storage operations."""

    pass


class IntegrityError(StorageError):
    """Raised when a database constraint is violated."""

    pass


class NotFoundError(StorageError):
    """Raised when a requested record doesn't exist."""

    pass


# -----------------------------------------------------------------------------
# Schema
# -----------------------------------------------------------------------------

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS model_configs (
    id TEXT PRIMARY KEY,
    display_name TEXT NOT NULL,
    provider TEXT NOT NULL,
    model_name TEXT NOT NULL,
    api_key TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS agents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    kind TEXT NOT NULL CHECK (kind IN ('core', 'optional')),
    description TEXT NOT NULL DEFAULT '',
    temperature REAL NOT NULL CHECK (temperature >= 0 AND temperature <= 1),
    prompt_template TEXT NOT NULL,
    sort_order INTEGER NOT NULL DEFAULT 0
);

-- Final Markdown documents produced by completed runs
CREATE TABLE IF NOT EXISTS artifacts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT,
    name TEXT NOT NULL,
    content_type TEXT,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE INDEX IF NOT EXISTS idx_agents_sort ON agents(sort_order);
CREATE INDEX IF NOT EXISTS idx_artifacts_run ON artifacts(run_id);
"""
