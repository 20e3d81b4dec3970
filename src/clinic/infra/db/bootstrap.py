from __future__ import annotations

import logging
from typing import Optional

from src.clinic.config import settings
from src.clinic.infra.db.models import Base
from src.clinic.infra.db.registry import set_repositories
from src.clinic.infra.db.repositories import RepositoryRegistry
from src.clinic.infra.db.session import create_engine_for, create_sqlalchemy_session_factory
from src.clinic.infra.db.sql_access import (
    SqlClinicRepository,
    SqlInvitationRepository,
    SqlMembershipRepository,
    SqlPermissionRepository,
    SqlRoleRepository,
    SqlUserRepository,
)
from src.clinic.infra.db.sql_availability import SqlAvailabilityRepository

logger = logging.getLogger("db")


def create_sql_repositories(database_url: str) -> RepositoryRegistry:
    """Build a SQL-backed repository set, creating tables if they are missing."""

    engine = create_engine_for(database_url)

    # Create tables if they do not exist. In a real deployment this should be
    # handled by migrations.
    Base.metadata.create_all(engine)

    session_factory = create_sqlalchemy_session_factory(engine)
    return RepositoryRegistry(
        permissions=SqlPermissionRepository(session_factory),
        roles=SqlRoleRepository(session_factory),
        memberships=SqlMembershipRepository(session_factory),
        clinics=SqlClinicRepository(session_factory),
        users=SqlUserRepository(session_factory),
        availability=SqlAvailabilityRepository(session_factory),
        invitations=SqlInvitationRepository(session_factory),
    )


def init_sql_repositories(database_url: Optional[str] = None) -> bool:
    """Optionally switch the in-memory repositories to SQL-backed implementations.

    If USE_SQL_REPOS is not enabled or DATABASE_URL is not configured, this is
    a no-op and the in-memory repositories remain active. Returns whether the
    SQL repositories were installed.
    """

    if not settings.use_sql_repos:
        return False

    db_url = database_url or settings.database_url
    if not db_url:
        logger.warning("USE_SQL_REPOS is enabled but DATABASE_URL is not set; keeping in-memory repositories")
        return False

    set_repositories(create_sql_repositories(db_url))
    logger.info("SQL repositories initialized")
    return True
