"""Agent catalog operations."""

from __future__ import annotations

import sqlite3
from typing import Any, Iterable

from docflow.workflow.agents import DEFAULT_AGENTS, Agent, AgentKind

from .schema import IntegrityError, NotFoundError, StorageError

_AGENT_COLUMNS = "id, name, kind, description, temperature, prompt_template, sort_order"

# Columns update_agent() may change
_UPDATABLE = frozenset({"name", "kind", "description", "temperature", "prompt_template", "sort_order"})


def _row_to_agent(row: sqlite3.Row) -> Agent:
    return Agent.from_dict(dict(row))


def insert_agent(
    conn: sqlite3.Connection,
    name: str,
    prompt_template: str,
    *,
    kind: AgentKind | str = AgentKind.OPTIONAL,
    description: str = "",
    temperature: float = 0.2,
    sort_order: int | None = None,
) -> Agent:
    """
    Insert an agent into the catalog.

    Args:
        conn: Database connection
        name: Display name
        prompt_template: System prompt sent with every chunk
        kind: "core" to run in the workflow, "optional" to keep in the catalog
        description: Short description for the settings screen
        temperature: Sampling temperature in [0, 1]
        sort_order: Position in the workflow (default: after the last agent)

    Returns:
        The created Agent

    Raises:
        IntegrityError: If a constraint (kind, temperature range) is violated
    """
    if sort_order is None:
        row = conn.execute("SELECT COALESCE(MAX(sort_order), 0) AS m FROM agents").fetchone()
        sort_order = row["m"] + 1

    try:
        cursor = conn.execute(
            """
            INSERT INTO agents (name, kind, description, temperature, prompt_template, sort_order)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (name, AgentKind(kind).value, description, temperature, prompt_template, sort_order),
        )
        conn.commit()
    except sqlite3.IntegrityError as e:
        conn.rollback()
        raise IntegrityError(str(e)) from e

    if cursor.lastrowid is None:
        raise StorageError("Failed to insert agent: lastrowid is None")
    return get_agent(conn, cursor.lastrowid)


def get_agent(conn: sqlite3.Connection, agent_id: int) -> Agent:
    """
    Retrieve an agent by ID.

    Raises:
        NotFoundError: If no agent has this ID
    """
    cursor = conn.execute(f"SELECT {_AGENT_COLUMNS} FROM agents WHERE id = ?", (agent_id,))
    row = cursor.fetchone()
    if row is None:
        raise NotFoundError(f"Agent {agent_id} not found")
    return _row_to_agent(row)


def get_all_agents(conn: sqlite3.Connection) -> list[Agent]:
    """Retrieve every agent in workflow order."""
    cursor = conn.execute(f"SELECT {_AGENT_COLUMNS} FROM agents ORDER BY sort_order, id")
    return [_row_to_agent(row) for row in cursor.fetchall()]


def get_core_agents(conn: sqlite3.Connection) -> list[Agent]:
    """Retrieve the agents that take part in a run, in workflow order."""
    cursor = conn.execute(
        f"SELECT {_AGENT_COLUMNS} FROM agents WHERE kind = 'core' ORDER BY sort_order, id"
    )
    return [_row_to_agent(row) for row in cursor.fetchall()]


def update_agent(conn: sqlite3.Connection, agent_id: int, **fields: Any) -> Agent:
    """
    Update selected fields of an agent.

    Raises:
        ValueError: If an unknown field is given
        NotFoundError: If no agent has this ID
        IntegrityError: If a constraint is violated
    """
    unknown = set(fields) - _UPDATABLE
    if unknown:
        raise ValueError(f"Unknown agent field(s): {', '.join(sorted(unknown))}")

    if "kind" in fields:
        fields["kind"] = AgentKind(fields["kind"]).value

    if fields:
        assignments = ", ".join(f"{column} = ?" for column in fields)
        try:
            cursor = conn.execute(
                f"UPDATE agents SET {assignments} WHERE id = ?",
                (*fields.values(), agent_id),
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise IntegrityError(str(e)) from e
        if cursor.rowcount == 0:
            raise NotFoundError(f"Agent {agent_id} not found")

    return get_agent(conn, agent_id)


def delete_agent(conn: sqlite3.Connection, agent_id: int) -> bool:
    """Delete an agent. Returns True if it existed."""
    cursor = conn.execute("DELETE FROM agents WHERE id = ?", (agent_id,))
    conn.commit()
    return cursor.rowcount > 0


def reorder_agents(conn: sqlite3.Connection, agent_ids: Iterable[int]) -> list[Agent]:
    """
    Set the workflow order: the given IDs get sort_order 1, 2, 3, ...

    Raises:
        NotFoundError: If an ID does not exist (nothing is changed)
    """
    ids = list(agent_ids)
    existing = {row["id"] for row in conn.execute("SELECT id FROM agents").fetchall()}
    missing = [agent_id for agent_id in ids if agent_id not in existing]
    if missing:
        raise NotFoundError(f"Agent(s) not found: {', '.join(map(str, missing))}")

    with conn:
        for position, agent_id in enumerate(ids, start=1):
            conn.execute("UPDATE agents SET sort_order = ? WHERE id = ?", (position, agent_id))

    return get_all_agents(conn)


def seed_default_agents(conn: sqlite3.Connection) -> int:
    """
    Populate an empty catalog with the default agents.

    Returns:
        Number of agents inserted (0 if the catalog was not empty)
    """
    row = conn.execute("SELECT COUNT(*) AS count FROM agents").fetchone()
    if row["count"] > 0:
        return 0

    for agent in DEFAULT_AGENTS:
        insert_agent(
            conn,
            agent.name,
            agent.prompt_template,
            kind=agent.kind,
            description=agent.description,
            temperature=agent.temperature,
            sort_order=agent.sort_order,
        )
    return len(DEFAULT_AGENTS)
