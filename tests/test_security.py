"""Tests for password hashing, access tokens and stale-token rejection."""

import uuid
from datetime import timedelta

import pytest
from httpx import AsyncClient
from jose import JWTError, jwt

from customsdesk.core.config import get_settings
from customsdesk.core.security import (
    hash_password,
    issue_access_token,
    read_access_token,
    verify_password,
)
from customsdesk.models.user import Role


def test_password_hash_verifies_only_the_original():
    hashed = hash_password("correct horse")
    assert hashed.startswith("$argon2")
    assert verify_password("correct horse", hashed)
    assert not verify_password("battery staple", hashed)


def test_token_carries_company_and_broker():
    user_id, company_id, broker_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    claims = read_access_token(
        issue_access_token(user_id, Role.CLIENT_USER, company_id, broker_id)
    )
    assert claims.user_id == user_id
    assert claims.role == "CLIENT_USER"
    assert claims.company_id == company_id
    assert claims.broker_id == broker_id


def test_super_admin_token_has_no_company():
    claims = read_access_token(issue_access_token(uuid.uuid4(), Role.SUPER_ADMIN, None, None))
    assert claims.company_id is None
    assert claims.broker_id is None


def test_expired_token_is_rejected():
    token = issue_access_token(uuid.uuid4(), Role.BROKER_USER, uuid.uuid4(), uuid.uuid4(),
                               ttl=timedelta(seconds=-1))
    with pytest.raises(JWTError):
        read_access_token(token)


def test_token_without_role_is_malformed():
    settings = get_settings()
    token = jwt.encode({"sub": str(uuid.uuid4())}, settings.jwt_secret_key,
                       algorithm=settings.jwt_algorithm)
    with pytest.raises(JWTError):
        read_access_token(token)


@pytest.mark.asyncio
async def test_token_claiming_another_role_is_refused(client: AsyncClient, tenant):
    """A validly signed token whose claims disagree with the account gets 401."""
    staff = tenant.staff
    forged = issue_access_token(staff.user_id, Role.BROKER_ADMIN, staff.company_id, staff.broker_id)
    resp = await client.get("/v1/auth/me", headers={"Authorization": f"Bearer {forged}"})
    assert resp.status_code == 401

    genuine = issue_access_token(staff.user_id, staff.role, staff.company_id, staff.broker_id)
    resp = await client.get("/v1/auth/me", headers={"Authorization": f"Bearer {genuine}"})
    assert resp.status_code == 200
    assert resp.json()["broker_id"] == str(tenant.broker_id)


@pytest.mark.asyncio
async def test_token_for_another_company_is_refused(client: AsyncClient, tenant, rival):
    staff = tenant.staff
    token = issue_access_token(staff.user_id, staff.role, rival.broker_id, rival.broker_id)
    resp = await client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
