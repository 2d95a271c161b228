"""One-time bootstrap of the first super admin."""

from fastapi import APIRouter, status
from pydantic import BaseModel, EmailStr, Field

from customsdesk.api.deps import Session
from customsdesk.models.user import UserRead
from customsdesk.services import users as user_service

router = APIRouter(prefix="/setup", tags=["setup"])


class SetupRequest(BaseModel):
    """Credentials for the platform's first super admin."""
    email: EmailStr
    username: str = Field(min_length=3, max_length=100)
    password: str = Field(min_length=8, max_length=128)
    display_name: str = Field(default="", max_length=255)


@router.post(
    "",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create the first super admin (bootstrap)",
)
async def bootstrap(body: SetupRequest, session: Session) -> UserRead:
    """The only unauthenticated write endpoint. Refused once setup is done."""
    user = await user_service.bootstrap_super_admin(
        session,
        email=body.email,
        username=body.username,
        password=body.password,
        display_name=body.display_name,
    )
    return UserRead.model_validate(user)
