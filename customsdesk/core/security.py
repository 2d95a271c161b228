"""Credentials: Argon2 password hashes and signed access tokens."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from customsdesk.core.config import get_settings

settings = get_settings()

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


# ── Access tokens ────────────────────────────────────────────

@dataclass(frozen=True)
class AccessClaims:
    """What a token asserted about its holder at login time."""

    user_id: uuid.UUID
    role: str
    company_id: uuid.UUID | None
    broker_id: uuid.UUID | None


def _opt_uuid(value: str | None) -> uuid.UUID | None:
    return uuid.UUID(value) if value else None


def issue_access_token(
    user_id: uuid.UUID,
    role: str,
    company_id: uuid.UUID | None,
    broker_id: uuid.UUID | None,
    ttl: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": str(role),
        "cid": str(company_id) if company_id else None,
        "bid": str(broker_id) if broker_id else None,
        "iat": now,
        "exp": now + (ttl or timedelta(minutes=settings.jwt_expire_minutes)),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def read_access_token(token: str) -> AccessClaims:
    """Verify signature and expiry. Raises jose.JWTError on any defect."""
    payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    try:
        return AccessClaims(
            user_id=uuid.UUID(payload["sub"]),
            role=payload["role"],
            company_id=_opt_uuid(payload.get("cid")),
            broker_id=_opt_uuid(payload.get("bid")),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise JWTError("Malformed token claims") from exc
