"""User service — staff and client accounts, kept in step with the staff quota.

Every change to an active staff user's existence reserves or releases one
staff slot of its broker in the same unit of work. A client company has at
most one active user.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from customsdesk.core.database import unit_of_work
from customsdesk.core.errors import Conflict, NotFound, ValidationError
from customsdesk.core.security import hash_password
from customsdesk.models.company import Company
from customsdesk.models.user import STAFF_ROLES, Role, User, UserCreate, UserUpdate
from customsdesk.services import quota
from customsdesk.services.access import (
    NewUser,
    Operation,
    UserTarget,
    require,
    require_visible,
)
from customsdesk.services.hierarchy import Principal, broker_of

logger = logging.getLogger(__name__)


async def _email_or_username_taken(
    session: AsyncSession, email: str | None, username: str | None,
    exclude_id: uuid.UUID | None = None,
) -> str | None:
    for column, value, label in (
        (User.email, email, "email"),
        (User.username, username, "username"),
    ):
        if value is None:
            continue
        stmt = select(User.id).where(column == value)
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        if (await session.execute(stmt)).first() is not None:
            return label
    return None


async def _client_has_active_user(
    session: AsyncSession, company_id: uuid.UUID, exclude_id: uuid.UUID | None = None
) -> bool:
    stmt = select(func.count()).select_from(User).where(
        User.company_id == company_id,
        User.is_active == True,  # noqa: E712
    )
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    return (await session.execute(stmt)).scalar_one() > 0


def _check_role_company(role: Role, company: Company | None) -> None:
    if role == Role.SUPER_ADMIN:
        if company is not None:
            raise ValidationError("A super admin cannot belong to a company")
        return
    if company is None:
        raise ValidationError(f"A {role} must belong to a company")
    if role in STAFF_ROLES and not company.is_broker:
        raise ValidationError("Broker staff must belong to a customs broker")
    if role == Role.CLIENT_USER and not company.is_client:
        raise ValidationError("Client users must belong to a client company")


async def _load_for(
    session: AsyncSession, principal: Principal, user_id: uuid.UUID, operation: Operation
) -> tuple[User, UserTarget]:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    company = await session.get(Company, user.company_id) if user.company_id else None
    target = UserTarget(user_id=user.id, role=user.role, company=company)
    require_visible(principal, Operation.USER_VIEW, target, "User not found")
    if operation != Operation.USER_VIEW:
        require(principal, operation, target)
    return user, target


# ── Create ───────────────────────────────────────────────────

async def create_user(session: AsyncSession, principal: Principal, data: UserCreate) -> User:
    async with unit_of_work(session, conflict_detail="Email or username already exists"):
        company = None
        if data.company_id is not None:
            company = await session.get(Company, data.company_id)
            if company is None:
                raise NotFound("Company not found")
        _check_role_company(data.role, company)

        require(principal, Operation.USER_CREATE, NewUser(role=data.role, company=company),
                detail=f"Not allowed to create a {data.role} user here")

        taken = await _email_or_username_taken(session, data.email, data.username)
        if taken is not None:
            raise Conflict(f"A user with this {taken} already exists")

        if data.role in STAFF_ROLES:
            await quota.on_staff_added(session, broker_of(company))
        elif data.role == Role.CLIENT_USER and await _client_has_active_user(session, company.id):
            raise Conflict("This client company already has an active user")

        user = User(
            email=data.email,
            username=data.username,
            password_hash=hash_password(data.password),
            display_name=data.display_name,
            role=data.role,
            company_id=data.company_id,
        )
        session.add(user)

    logger.info("User created: %s role=%s by %s", user.email, user.role, principal.email)
    return user


async def bootstrap_super_admin(
    session: AsyncSession, email: str, username: str, password: str, display_name: str = ""
) -> User:
    """Create the first super admin. Refused once any super admin exists."""
    async with unit_of_work(session):
        stmt = select(User.id).where(User.role == Role.SUPER_ADMIN)
        if (await session.execute(stmt)).first() is not None:
            raise Conflict("Setup has already been completed")
        user = User(
            email=email,
            username=username,
            password_hash=hash_password(password),
            display_name=display_name,
            role=Role.SUPER_ADMIN,
        )
        session.add(user)

    logger.info("Super admin bootstrapped: %s", email)
    return user


# ── Update / delete ──────────────────────────────────────────

async def update_user(
    session: AsyncSession, principal: Principal, user_id: uuid.UUID, data: UserUpdate
) -> User:
    async with unit_of_work(session, conflict_detail="Email or username already exists"):
        user, target = await _load_for(session, principal, user_id, Operation.USER_EDIT)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        taken = await _email_or_username_taken(
            session, changes.get("email"), changes.get("username"), exclude_id=user.id
        )
        if taken is not None:
            raise Conflict(f"A user with this {taken} already exists")

        activation = changes.pop("is_active", None)
        if activation is not None and activation != user.is_active:
            require(principal, Operation.USER_DELETE, target,
                    detail="Not allowed to change this user's activation")
            await _apply_activation(session, user, target, activation)

        if "password" in changes:
            user.password_hash = hash_password(changes.pop("password"))
        for field, value in changes.items():
            setattr(user, field, value)
        user.touch()
        session.add(user)

    logger.info("User updated: %s by %s", user.email, principal.email)
    return user


async def _apply_activation(
    session: AsyncSession, user: User, target: UserTarget, active: bool
) -> None:
    broker_id = broker_of(target.company)
    if active:
        if user.role in STAFF_ROLES:
            await quota.on_staff_added(session, broker_id)
        elif user.role == Role.CLIENT_USER and await _client_has_active_user(
            session, user.company_id, exclude_id=user.id
        ):
            raise Conflict("This client company already has an active user")
    elif user.role in STAFF_ROLES:
        await quota.on_staff_removed(session, broker_id)
    user.is_active = active


async def deactivate_user(
    session: AsyncSession, principal: Principal, user_id: uuid.UUID
) -> User:
    """Soft-delete a user; a staff user gives its slot back to the broker."""
    async with unit_of_work(session):
        user, target = await _load_for(session, principal, user_id, Operation.USER_DELETE)
        if user.is_active:
            await _apply_activation(session, user, target, False)
            user.touch()
            session.add(user)

    logger.info("User deactivated: %s by %s", user.email, principal.email)
    return user


# ── Read ─────────────────────────────────────────────────────

async def get_user(session: AsyncSession, principal: Principal, user_id: uuid.UUID) -> User:
    user, _ = await _load_for(session, principal, user_id, Operation.USER_VIEW)
    return user


async def list_users(
    session: AsyncSession, principal: Principal, company_id: uuid.UUID | None = None
) -> list[User]:
    stmt = select(User)
    if principal.role == Role.BROKER_ADMIN:
        stmt = stmt.where(
            or_(
                User.company_id == principal.broker_id,
                User.company_id.in_(  # type: ignore[union-attr]
                    select(Company.id).where(Company.parent_broker_id == principal.broker_id)
                ),
            )
        )
    elif principal.role != Role.SUPER_ADMIN:
        stmt = stmt.where(User.id == principal.user_id)

    if company_id is not None:
        stmt = stmt.where(User.company_id == company_id)

    stmt = stmt.order_by(User.email.asc())  # type: ignore[attr-defined]
    users = list((await session.execute(stmt)).scalars().all())
    logger.debug("Listed %d users for %s", len(users), principal.email)
    return users
