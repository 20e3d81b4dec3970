from __future__ import annotations

from src.clinic.infra.db.inmemory import create_inmemory_repositories
from src.clinic.infra.db.repositories import RepositoryRegistry

# Process-wide repository set. Starts in-memory; init_sql_repositories swaps
# in the SQL-backed set at startup when configured.
_registry: RepositoryRegistry = create_inmemory_repositories()


def get_repositories() -> RepositoryRegistry:
    return _registry


def set_repositories(registry: RepositoryRegistry) -> None:
    global _registry
    _registry = registry


def reset_repositories() -> RepositoryRegistry:
    """Replace the active set with a fresh, empty in-memory set."""

    set_repositories(create_inmemory_repositories())
    return _registry
