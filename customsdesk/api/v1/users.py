"""Users CRUD — scoped to what the caller administers."""

import uuid

from fastapi import APIRouter, status

from customsdesk.api.deps import Auth, Session
from customsdesk.models.user import UserCreate, UserRead, UserUpdate
from customsdesk.services import users as user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(body: UserCreate, auth: Auth, session: Session) -> UserRead:
    user = await user_service.create_user(session, auth, body)
    return UserRead.model_validate(user)


@router.get("", response_model=list[UserRead])
async def list_users(
    auth: Auth,
    session: Session,
    company_id: uuid.UUID | None = None,
) -> list[UserRead]:
    users = await user_service.list_users(session, auth, company_id=company_id)
    return [UserRead.model_validate(u) for u in users]


@router.get("/{user_id}", response_model=UserRead)
async def get_user(user_id: uuid.UUID, auth: Auth, session: Session) -> UserRead:
    user = await user_service.get_user(session, auth, user_id)
    return UserRead.model_validate(user)


@router.patch("/{user_id}", response_model=UserRead)
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    auth: Auth,
    session: Session,
) -> UserRead:
    user = await user_service.update_user(session, auth, user_id, body)
    return UserRead.model_validate(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_user(user_id: uuid.UUID, auth: Auth, session: Session) -> None:
    await user_service.deactivate_user(session, auth, user_id)
