"""
User sessions.

Credential storage is absent: registering or logging in by email returns a
bearer token, and every protected endpoint resolves that token back to a user.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, replace

from roomcast.core import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from roomcast.core.db import queries_users
from roomcast.core.db.models import UserRow
from roomcast.core.store import RoomDb

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Session:
    """A registered user plus the bearer token issued for them."""

    user: UserRow
    token: str


class UserService:
    """Registers users, issues tokens and resolves them back to users."""

    def __init__(self, db: RoomDb) -> None:
        self._db = db

    async def register(
        self,
        *,
        name: str,
        email: str,
        plan: str,
        image_data: str | None = None,
    ) -> Session:
        name = name.strip()
        email = email.strip().lower()
        if len(name) < 3:
            raise ValidationError("Name must be at least 3 characters")
        if "@" not in email:
            raise ValidationError("Invalid email address")

        token = secrets.token_urlsafe(32)
        async with self._db.transaction() as conn:
            if await queries_users.get_user_by_email(conn, email) is not None:
                raise ValidationError("Email already registered")
            user = await queries_users.insert_user(
                conn, name=name, email=email, plan=plan, image_data=image_data
            )
            await queries_users.insert_token(conn, user_id=user.id, value=token)

        logger.info("Registered user %s (%s plan)", user.id, user.plan)
        return Session(user=user, token=token)

    async def login(self, *, email: str) -> Session:
        """
        Issue a fresh token for an existing account.

        Tokens from earlier logins stay valid until `logout`.
        """
        email = email.strip().lower()
        token = secrets.token_urlsafe(32)
        async with self._db.transaction() as conn:
            user = await queries_users.get_user_by_email(conn, email)
            if user is None:
                raise AuthenticationError("Unknown email")
            await queries_users.insert_token(conn, user_id=user.id, value=token)

        logger.info("User %s logged in", user.id)
        return Session(user=user, token=token)

    async def authenticate(self, token: str | None) -> UserRow:
        if not token:
            raise AuthenticationError("Missing bearer token")
        user = await self._db.get_user_by_token(token)
        if user is None:
            raise AuthenticationError("Unknown bearer token")
        return user

    async def get_user(self, user_id: str) -> UserRow:
        user = await self._db.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def update(
        self,
        user: UserRow,
        *,
        user_id: str | None = None,
        name: str | None = None,
        email: str | None = None,
        plan: str | None = None,
        image_data: str | None = None,
    ) -> UserRow:
        """
        Change the caller's own profile.

        Empty or missing fields keep their stored value. A changed `plan`
        only affects rooms created afterwards.
        """
        if user_id is not None and user_id != user.id:
            raise AuthorizationError("Users can only update their own profile")

        changes: dict[str, str] = {}
        if name and name.strip():
            name = name.strip()
            if len(name) < 3:
                raise ValidationError("Name must be at least 3 characters")
            changes["name"] = name
        if email and email.strip():
            email = email.strip().lower()
            if "@" not in email:
                raise ValidationError("Invalid email address")
            changes["email"] = email
        if plan and plan.strip():
            changes["plan"] = plan.strip()
        if image_data:
            changes["image_data"] = image_data

        async with self._db.transaction() as conn:
            current = await queries_users.get_user(conn, user.id)
            if current is None:
                raise NotFoundError("User not found")
            new_email = changes.get("email")
            if new_email is not None and new_email != current.email:
                if await queries_users.get_user_by_email(conn, new_email) is not None:
                    raise ValidationError("Email already registered")
            updated = replace(current, **changes)
            await queries_users.update_user(conn, updated)

        logger.info("User %s updated (%s)", user.id, ", ".join(sorted(changes)) or "no changes")
        return updated

    async def logout(self, user: UserRow) -> int:
        async with self._db.transaction() as conn:
            removed = await queries_users.delete_tokens_for_user(conn, user.id)
        logger.info("User %s logged out (%d tokens revoked)", user.id, removed)
        return removed
