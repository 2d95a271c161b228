"""Company service: broker onboarding, clients under quota, soft delete, reactivation."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from customsdesk.core.database import unit_of_work
from customsdesk.core.errors import Conflict, NotFound, ValidationError
from customsdesk.models.base import utcnow
from customsdesk.models.company import (
    BrokerCompanyCreate,
    ClientCompanyCreate,
    Company,
    CompanyType,
    CompanyUpdate,
)
from customsdesk.models.subscription import BrokerSubscription, SubscriptionPlan
from customsdesk.models.user import Role
from customsdesk.services import agreements, quota
from customsdesk.services.access import Operation, require, require_visible
from customsdesk.services.hierarchy import Principal, validate_company_shape

logger = logging.getLogger(__name__)

_DUPLICATE_NAME = "A company with this name already exists"


async def _name_taken(
    session: AsyncSession, name: str, exclude_id: uuid.UUID | None = None
) -> bool:
    stmt = select(Company.id).where(Company.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Company.id != exclude_id)
    return (await session.execute(stmt)).first() is not None


async def _load_for(
    session: AsyncSession, principal: Principal, company_id: uuid.UUID, operation: Operation
) -> Company:
    company = await session.get(Company, company_id)
    if company is None:
        raise NotFound("Company not found")
    require_visible(principal, Operation.COMPANY_VIEW, company, "Company not found")
    if operation != Operation.COMPANY_VIEW:
        require(principal, operation, company)
    return company


# ── Create ───────────────────────────────────────────────────

async def create_broker(
    session: AsyncSession, principal: Principal, data: BrokerCompanyCreate
) -> Company:
    """Onboard a broker with its first subscription and an empty usage row."""
    async with unit_of_work(session, conflict_detail=_DUPLICATE_NAME):
        require(principal, Operation.COMPANY_CREATE_BROKER,
                detail="Only a super admin can create customs brokers")
        validate_company_shape(CompanyType.CUSTOMS_BROKER, None)

        if await _name_taken(session, data.name):
            raise Conflict(_DUPLICATE_NAME)
        plan = await session.get(SubscriptionPlan, data.plan_id)
        if plan is None:
            raise NotFound("Subscription plan not found")
        if not plan.is_active:
            raise ValidationError(f"Subscription plan '{plan.name}' is not active")
        if data.subscription_end is not None and data.subscription_end <= utcnow():
            raise ValidationError("Subscription end date must be in the future")

        broker = Company(
            name=data.name,
            description=data.description,
            company_type=CompanyType.CUSTOMS_BROKER,
        )
        session.add(broker)
        await session.flush()

        session.add(BrokerSubscription(
            broker_company_id=broker.id,
            plan_id=plan.id,
            end_date=data.subscription_end,
            custom_max_staff=data.custom_max_staff,
            custom_max_clients=data.custom_max_clients,
            created_by_id=principal.user_id,
        ))
        await quota.ensure_usage_row(session, broker.id)

    logger.info("Broker company created: %s on plan %s by %s",
                broker.name, data.plan_id, principal.email)
    return broker


async def create_client(
    session: AsyncSession, principal: Principal, data: ClientCompanyCreate
) -> Company:
    """Create a client under a broker, consuming one client slot of its quota."""
    async with unit_of_work(session, conflict_detail=_DUPLICATE_NAME):
        parent = await session.get(Company, data.parent_broker_id)
        if parent is None:
            raise NotFound("Parent broker not found")
        validate_company_shape(CompanyType.CLIENT, parent)
        require(principal, Operation.COMPANY_CREATE_CLIENT, parent,
                detail="Not allowed to create clients for this broker")

        if await _name_taken(session, data.name):
            raise Conflict(_DUPLICATE_NAME)

        await quota.on_client_added(session, parent.id)
        client = Company(
            name=data.name,
            description=data.description,
            company_type=CompanyType.CLIENT,
            parent_broker_id=parent.id,
        )
        session.add(client)

    logger.info("Client company created: %s under broker %s by %s",
                client.name, parent.id, principal.email)
    return client


# ── Update / delete ──────────────────────────────────────────

async def update_company(
    session: AsyncSession, principal: Principal, company_id: uuid.UUID, data: CompanyUpdate
) -> Company:
    async with unit_of_work(session, conflict_detail=_DUPLICATE_NAME):
        company = await _load_for(session, principal, company_id, Operation.COMPANY_UPDATE)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "name" in changes and await _name_taken(session, changes["name"], company.id):
            raise Conflict(_DUPLICATE_NAME)
        for field, value in changes.items():
            setattr(company, field, value)
        company.touch()
        session.add(company)

    logger.info("Company updated: %s by %s", company.name, principal.email)
    return company


async def deactivate_company(
    session: AsyncSession, principal: Principal, company_id: uuid.UUID
) -> Company:
    """Soft-delete a company.

    A client gives its slot back to its broker. Every ACTIVE agreement the
    company is party to is suspended, so no transaction can be recorded
    against it until it is reactivated.
    """
    async with unit_of_work(session):
        company = await _load_for(session, principal, company_id, Operation.COMPANY_DELETE)
        if not company.is_active:
            return company
        company.is_active = False
        company.touch()
        session.add(company)
        await agreements.suspend_for_company(session, company.id, reason="Company deactivated")
        if company.is_client and company.parent_broker_id is not None:
            await quota.on_client_removed(session, company.parent_broker_id)

    logger.info("Company soft deleted: %s by %s", company.name, principal.email)
    return company


async def reactivate_company(
    session: AsyncSession, principal: Principal, company_id: uuid.UUID
) -> Company:
    """Undo a soft delete. A client takes a slot of its broker's quota again.

    Suspended agreements stay suspended; a broker admin resumes them one by one.
    """
    async with unit_of_work(session):
        require(principal, Operation.COMPANY_REACTIVATE,
                detail="Only a super admin can reactivate companies")
        company = await session.get(Company, company_id)
        if company is None:
            raise NotFound("Company not found")
        if company.is_active:
            return company

        if company.is_client and company.parent_broker_id is not None:
            parent = await session.get(Company, company.parent_broker_id)
            if parent is None or not parent.is_active:
                raise ValidationError("Cannot reactivate a client of a deactivated broker")
            await quota.on_client_added(session, parent.id)
        company.is_active = True
        company.touch()
        session.add(company)

    logger.info("Company reactivated: %s by %s", company.name, principal.email)
    return company


# ── Read ─────────────────────────────────────────────────────

async def get_company(
    session: AsyncSession, principal: Principal, company_id: uuid.UUID
) -> Company:
    return await _load_for(session, principal, company_id, Operation.COMPANY_VIEW)


async def list_companies(
    session: AsyncSession,
    principal: Principal,
    company_type: CompanyType | None = None,
    include_inactive: bool = False,
) -> list[Company]:
    stmt = select(Company)
    if principal.role in (Role.BROKER_ADMIN, Role.BROKER_USER):
        stmt = stmt.where(
            or_(Company.id == principal.broker_id, Company.parent_broker_id == principal.broker_id)
        )
    elif principal.role == Role.CLIENT_USER:
        stmt = stmt.where(Company.id == principal.company_id)

    if company_type is not None:
        stmt = stmt.where(Company.company_type == company_type)
    if not include_inactive:
        stmt = stmt.where(Company.is_active == True)  # noqa: E712

    stmt = stmt.order_by(Company.name.asc())  # type: ignore[attr-defined]
    return list((await session.execute(stmt)).scalars().all())
