"""Login and identity endpoints."""

import logging

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, EmailStr
from sqlmodel import select

from customsdesk.api.deps import Auth, Session
from customsdesk.core.errors import ValidationError
from customsdesk.core.security import issue_access_token, verify_password
from customsdesk.models.company import Company, CompanyRead
from customsdesk.models.user import User, UserRead
from customsdesk.services.hierarchy import Principal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class Credentials(BaseModel):
    email: EmailStr
    password: str


class Identity(BaseModel):
    user: UserRead
    company: CompanyRead | None = None
    broker_id: str | None = None


class TokenResponse(Identity):
    access_token: str
    token_type: str = "bearer"


def _identity(user: User, company: Company | None, principal: Principal) -> Identity:
    return Identity(
        user=UserRead.model_validate(user),
        company=CompanyRead.model_validate(company) if company else None,
        broker_id=str(principal.broker_id) if principal.broker_id else None,
    )


@router.post("/login", response_model=TokenResponse)
async def login(body: Credentials, session: Session) -> TokenResponse:
    """Exchange email + password for a bearer token scoped to the user's company."""
    user = (await session.execute(select(User).where(User.email == body.email))).scalar_one_or_none()
    if user is None or not verify_password(body.password, user.password_hash):
        logger.info("Failed login for %s", body.email)
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    company = await session.get(Company, user.company_id) if user.company_id else None
    if company is not None and not company.is_active:
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail="Company is disabled")
    try:
        principal = Principal.from_user(user, company)
    except ValidationError as exc:
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail=exc.detail) from exc

    token = issue_access_token(
        user_id=principal.user_id,
        role=principal.role,
        company_id=principal.company_id,
        broker_id=principal.broker_id,
    )
    logger.info("Login: %s as %s", principal.email, principal.role)
    return TokenResponse(access_token=token, **_identity(user, company, principal).model_dump())


@router.get("/me", response_model=Identity)
async def get_me(auth: Auth, session: Session) -> Identity:
    """The acting user, their company and the broker that owns it."""
    user = await session.get(User, auth.user_id)
    if user is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="User not found")
    company = await session.get(Company, auth.company_id) if auth.company_id else None
    return _identity(user, company, auth)
