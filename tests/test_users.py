"""Tests for the user service and its staff-quota bookkeeping."""

import pytest

from customsdesk.core.errors import Conflict, LimitExceeded, NotFound, Unauthorized, ValidationError
from customsdesk.core.security import verify_password
from customsdesk.models.user import Role, UserCreate, UserUpdate
from customsdesk.services import quota, users


async def _staff_count(session, broker_id) -> int:
    return (await quota.ensure_usage_row(session, broker_id)).current_staff


@pytest.mark.asyncio
async def test_staff_creation_consumes_quota(session, tenant, make_user):
    assert await _staff_count(session, tenant.broker_id) == 2
    await make_user("third@acme.com", Role.BROKER_USER, tenant.broker_id, actor=tenant.admin)
    assert await _staff_count(session, tenant.broker_id) == 3


@pytest.mark.asyncio
async def test_client_users_do_not_consume_staff_quota(session, tenant, make_client, make_user):
    client_id = await make_client("Hooli Freight", tenant.broker_id, actor=tenant.admin)
    await make_user("buyer@hooli.com", Role.CLIENT_USER, client_id, actor=tenant.admin)
    assert await _staff_count(session, tenant.broker_id) == 2


@pytest.mark.asyncio
async def test_deactivate_and_reactivate_moves_quota(session, tenant):
    staff_id = tenant.staff.user_id
    user = await users.deactivate_user(session, tenant.admin, staff_id)
    assert user.is_active is False
    assert await _staff_count(session, tenant.broker_id) == 1

    # Idempotent: a second deactivation releases nothing
    await users.deactivate_user(session, tenant.admin, staff_id)
    assert await _staff_count(session, tenant.broker_id) == 1

    user = await users.update_user(session, tenant.admin, staff_id, UserUpdate(is_active=True))
    assert user.is_active is True
    assert await _staff_count(session, tenant.broker_id) == 2


@pytest.mark.asyncio
async def test_reactivation_respects_the_cap(session, tenant, make_user):
    staff_id = tenant.staff.user_id
    await users.deactivate_user(session, tenant.admin, staff_id)
    await make_user("replacement@acme.com", Role.BROKER_USER, tenant.broker_id, actor=tenant.admin)
    await make_user("another@acme.com", Role.BROKER_USER, tenant.broker_id, actor=tenant.admin)

    with pytest.raises(LimitExceeded):
        await users.update_user(session, tenant.admin, staff_id, UserUpdate(is_active=True))

    user = await users.get_user(session, tenant.admin, staff_id)
    assert user.is_active is False
    assert await _staff_count(session, tenant.broker_id) == 3


@pytest.mark.asyncio
async def test_one_active_user_per_client(session, tenant, make_user):
    with pytest.raises(Conflict):
        await make_user("second@globex.com", Role.CLIENT_USER, tenant.client_id, actor=tenant.admin)

    await users.deactivate_user(session, tenant.admin, tenant.client_user.user_id)
    replacement = await make_user(
        "second@globex.com", Role.CLIENT_USER, tenant.client_id, actor=tenant.admin,
    )
    assert replacement.company_id == tenant.client_id

    with pytest.raises(Conflict):
        await users.update_user(
            session, tenant.admin, tenant.client_user.user_id, UserUpdate(is_active=True),
        )


@pytest.mark.asyncio
async def test_broker_admin_cannot_create_admins(session, tenant, rival, make_user):
    with pytest.raises(Unauthorized):
        await make_user("boss@acme.com", Role.BROKER_ADMIN, tenant.broker_id, actor=tenant.admin)
    with pytest.raises(Unauthorized):
        await make_user("spy@initech.com", Role.BROKER_USER, rival.broker_id, actor=tenant.admin)
    with pytest.raises(Unauthorized):
        await make_user("intern@acme.com", Role.BROKER_USER, tenant.broker_id, actor=tenant.staff)
    assert await _staff_count(session, tenant.broker_id) == 2


@pytest.mark.asyncio
async def test_role_company_mismatch_is_rejected(session, super_admin, tenant):
    with pytest.raises(ValidationError):
        await users.create_user(session, super_admin, UserCreate(
            email="odd@globex.com", username="odd", password="password123",
            role=Role.BROKER_USER, company_id=tenant.client_id,
        ))
    with pytest.raises(ValidationError):
        await users.create_user(session, super_admin, UserCreate(
            email="odd@acme.com", username="odd", password="password123",
            role=Role.SUPER_ADMIN, company_id=tenant.broker_id,
        ))


@pytest.mark.asyncio
async def test_duplicate_email_is_a_conflict(session, tenant, make_user):
    with pytest.raises(Conflict):
        await make_user("staff@acme.com", Role.BROKER_USER, tenant.broker_id, actor=tenant.admin)
    assert await _staff_count(session, tenant.broker_id) == 2


@pytest.mark.asyncio
async def test_self_edit_but_no_self_deactivation(session, tenant):
    staff_id = tenant.staff.user_id
    user = await users.update_user(session, tenant.staff, staff_id, UserUpdate(
        display_name="Sam Staff", password="new-password-1",
    ))
    assert user.display_name == "Sam Staff"
    assert verify_password("new-password-1", user.password_hash)

    with pytest.raises(Unauthorized):
        await users.update_user(session, tenant.staff, staff_id, UserUpdate(is_active=False))
    with pytest.raises(NotFound):
        await users.update_user(
            session, tenant.staff, tenant.admin.user_id, UserUpdate(display_name="Boss"),
        )


@pytest.mark.asyncio
async def test_other_tenant_users_are_invisible(session, tenant, rival):
    with pytest.raises(NotFound):
        await users.get_user(session, rival.admin, tenant.staff.user_id)
    with pytest.raises(NotFound):
        await users.deactivate_user(session, rival.admin, tenant.staff.user_id)


@pytest.mark.asyncio
async def test_list_users_is_scoped(session, super_admin, tenant, rival):
    emails = {u.email for u in await users.list_users(session, tenant.admin)}
    assert emails == {"admin@acme.com", "staff@acme.com", "buyer@globex.com"}

    own = await users.list_users(session, tenant.client_user)
    assert [u.email for u in own] == ["buyer@globex.com"]

    everyone = await users.list_users(session, super_admin)
    assert len(everyone) == 5


@pytest.mark.asyncio
async def test_setup_runs_once(session, super_admin):
    with pytest.raises(Conflict):
        await users.bootstrap_super_admin(
            session, email="second@customsdesk.com", username="second", password="password123",
        )
