"""
User repository.

Extends BaseRepository with lookups by the natural keys (username, email) and
the login-timestamp bookkeeping used by authentication flows.
"""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
import logging

from library_store.core.clock import AuditClock
from library_store.exceptions import db_error_handler
from library_store.models.user import User
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """
    Repository for User entity operations.

    Failures on write map to the typed errors of `library_store.exceptions`:
    a taken username or email is `DuplicateKey("username")` /
    `DuplicateKey("email")`, a role or status outside the allowed set is
    `CheckViolation("role" | "status", "allowed_values")`, a missing username
    is `NotNullViolation("username")` and an over-long one
    `LengthViolation("username")`.
    """

    mutable_fields = ("username", "email", "full_name", "phone", "role", "status", "last_login")

    def __init__(self, db: AsyncSession, clock: AuditClock | None = None):
        super().__init__(User, db, clock)

    # =================================================================================================================
    # Read Operations
    # =================================================================================================================

    async def find_by_username(self, username: str) -> User | None:
        return await self._find_one_by(User.username, username, "find_by_username")

    async def find_by_email(self, email: str) -> User | None:
        return await self._find_one_by(User.email, email, "find_by_email")

    # =================================================================================================================
    # Update Operations
    # =================================================================================================================

    async def update_last_login(self, user_id: int, when: datetime | None = None) -> bool:
        """
        Record a login: set `last_login` (default: now) and advance `updated_at`.

        Other columns are left untouched. Returns False if the user does not exist.
        """
        values = {"last_login": when or self.clock.tick()}
        async with db_error_handler(self.db, self.table, "update_last_login", self.model_name, values):
            stamped = await self._write_by_id(user_id, values)

        if stamped is None:
            logger.info(
                "repo.user.last_login.not_found",
                extra={"model": self.model_name, "id": user_id},
            )
            return False

        await self._refresh_cached(user_id)
        logger.info("repo.user.last_login.success", extra={"model": self.model_name, "id": user_id})
        return True
