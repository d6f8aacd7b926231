"""
User Routes for Roomcast.

- POST /users/register: create a user and issue a bearer token
- POST /users/login: issue another bearer token for an existing email
- POST /users/userById: look a user up by id
- GET /users/profile: the caller's own record
- POST /users/update: change the caller's name, email, plan or image
- POST /users/logout: revoke every token of the caller
"""

import logging
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import APIRouter, Depends, FastAPI

from roomcast.core.db.models import UserRow
from roomcast.web.auth import current_user_dependency
from roomcast.web.schemas import (
    IdRequest,
    LoginRequest,
    RegisterRequest,
    StatusMessage,
    UpdateUserRequest,
)

if TYPE_CHECKING:
    from roomcast.core.users import UserService

logger = logging.getLogger(__name__)


def register_user_routes(app: FastAPI, users: "UserService") -> None:
    """
    Register user routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        users: UserService for registration and token lookup
    """
    router = APIRouter(prefix="/users", tags=["users"])
    CurrentUser = Annotated[UserRow, Depends(current_user_dependency(users))]

    @router.post("/register")
    async def register(body: RegisterRequest) -> dict[str, Any]:
        session = await users.register(
            name=body.name,
            email=body.email,
            plan=body.plan,
            image_data=body.image_data,
        )
        return {**session.user.to_dict(), "token": session.token}

    @router.post("/login")
    async def login(body: LoginRequest) -> dict[str, Any]:
        session = await users.login(email=body.email)
        return {**session.user.to_dict(), "token": session.token}

    @router.post("/userById")
    async def user_by_id(body: IdRequest) -> dict[str, Any]:
        return (await users.get_user(body.id)).to_dict()

    @router.get("/profile")
    async def profile(user: CurrentUser) -> dict[str, Any]:
        return user.to_dict()

    @router.post("/update")
    async def update(body: UpdateUserRequest, user: CurrentUser) -> dict[str, Any]:
        updated = await users.update(
            user,
            user_id=body.id,
            name=body.name,
            email=body.email,
            plan=body.plan,
            image_data=body.image_data,
        )
        return updated.to_dict()

    @router.post("/logout")
    async def logout(user: CurrentUser) -> StatusMessage:
        await users.logout(user)
        return StatusMessage(message="Logged out")

    app.include_router(router)
