"""FastAPI dependencies: bearer token -> acting Principal."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from customsdesk.core.database import get_session
from customsdesk.core.errors import ValidationError
from customsdesk.core.security import AccessClaims, read_access_token
from customsdesk.models.company import Company
from customsdesk.models.user import User
from customsdesk.services.hierarchy import Principal

bearer_scheme = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _claims_of(token: str) -> AccessClaims:
    try:
        return read_access_token(token)
    except JWTError as exc:
        raise _unauthorized("Invalid or expired token") from exc


async def get_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Principal:
    """Resolve a bearer token to the acting Principal.

    The user and company are re-read on every request, so deactivation takes
    effect immediately. A token whose role or company no longer matches the
    account is refused; the holder must log in again.
    """
    claims = _claims_of(credentials.credentials)
    user = await session.get(User, claims.user_id)
    if user is None or not user.is_active:
        raise _unauthorized("Account is disabled or no longer exists")

    company = await session.get(Company, user.company_id) if user.company_id else None
    if company is not None and not company.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Company is disabled")

    try:
        principal = Principal.from_user(user, company)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.detail) from exc

    if claims.role != principal.role or claims.company_id != principal.company_id:
        raise _unauthorized("Token no longer matches the account")
    return principal


# Typed shorthand for use in route signatures
Auth = Annotated[Principal, Depends(get_principal)]
Session = Annotated[AsyncSession, Depends(get_session)]
