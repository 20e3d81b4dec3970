from __future__ import annotations

import hashlib
from typing import Optional
from uuid import UUID, uuid4

from src.clinic.domain.models.user import PlatformRole, User
from src.clinic.errors import NotFoundError, PermissionDeniedError, ValidationError
from src.clinic.infra.db.registry import get_repositories
from src.clinic.infra.db.repositories import RepositoryRegistry
from src.clinic.services.audit.service import audit_service


def subject_for_api_key(api_key: str) -> str:
    """Derive a non-reversible, stable subject identifier from an API key."""

    return "api-key:" + hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]


class UserService:
    """Registers users and maps authenticated subjects to them."""

    def __init__(self, repositories: Optional[RepositoryRegistry] = None) -> None:
        self._repositories = repositories

    @property
    def _repos(self) -> RepositoryRegistry:
        return self._repositories or get_repositories()

    def register_user(
        self,
        *,
        email: str,
        name: Optional[str] = None,
        platform_role: PlatformRole = PlatformRole.USER,
    ) -> User:
        if self._repos.users.get_by_email(email) is not None:
            raise ValidationError("A user with this email already exists")

        user = User(id=uuid4(), email=email, name=name, platform_role=platform_role)
        self._repos.users.save(user)
        return user

    def get_user(self, user_id: UUID) -> Optional[User]:
        return self._repos.users.get(user_id)

    def get_user_by_subject(self, subject: str) -> Optional[User]:
        return self._repos.users.get_by_subject(subject)

    def bind_api_key(self, user_id: UUID, api_key: str) -> User:
        """Associate an API key with a user so authenticated requests resolve to it.

        A key identifies exactly one user; binding a key held by someone else
        is rejected.
        """

        user = self._repos.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")

        holder = self._repos.users.get_by_subject(subject_for_api_key(api_key))
        if holder is not None and holder.id != user_id:
            raise ValidationError("API key is already bound to another user")

        user.subject = subject_for_api_key(api_key)
        self._repos.users.save(user)
        return user

    def assign_api_key(self, actor: User, user_id: UUID, api_key: str) -> User:
        """Bind ``api_key`` to ``user_id`` on behalf of ``actor``.

        Users may bind keys to themselves; binding for someone else requires a
        platform administrator.
        """

        if actor.id != user_id and not actor.is_platform_admin:
            audit_service.log_event(
                action="assign_api_key",
                resource_type="user",
                resource_id=str(user_id),
                subject=str(actor.id),
                outcome="denied",
            )
            raise PermissionDeniedError("Only platform administrators can bind keys for other users")

        user = self.bind_api_key(user_id, api_key)
        audit_service.log_event(
            action="assign_api_key",
            resource_type="user",
            resource_id=str(user_id),
            subject=str(actor.id),
        )
        return user


user_service = UserService()
