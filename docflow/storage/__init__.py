"""
Docflow storage layer.

All SQL operations are encapsulated here. No other module should
contain SQL strings or direct database operations.

The store holds the configuration a run reads (agents, model configs)
and the artifacts completed runs produce. The workflow engine never
writes configuration.

Usage:
    from docflow.storage import init_db, seed_default_agents, get_core_agents

    conn = init_db("~/.docflow/docflow.db")
    seed_default_agents(conn)
    agents = get_core_agents(conn)
    target = get_model_config(conn, "gemini-flash")
"""

from .agents import (
    delete_agent,
    get_agent,
    get_all_agents,
    get_core_agents,
    insert_agent,
    reorder_agents,
    seed_default_agents,
    update_agent,
)
from .artifacts import Artifact, get_all_artifacts, get_artifact, save_artifact
from .connection import init_db
from .metadata import get_all_metadata, get_metadata, get_stats, set_metadata
from .models import (
    delete_model_config,
    get_all_model_configs,
    get_model_config,
    insert_model_config,
)
from .schema import IntegrityError, NotFoundError, StorageError

__all__ = [
    # Connection
    "init_db",
    # Agents
    "insert_agent",
    "get_agent",
    "get_all_agents",
    "get_core_agents",
    "update_agent",
    "delete_agent",
    "reorder_agents",
    "seed_default_agents",
    # Model configs
    "insert_model_config",
    "get_model_config",
    "get_all_model_configs",
    "delete_model_config",
    # Artifacts
    "Artifact",
    "save_artifact",
    "get_artifact",
    "get_all_artifacts",
    # Metadata
    "set_metadata",
    "get_metadata",
    "get_all_metadata",
    "get_stats",
    # Exceptions
    "StorageError",
    "IntegrityError",
    "NotFoundError",
]
