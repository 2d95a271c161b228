"""Agency agreement lifecycle.

ACTIVE <-> SUSPENDED, either -> TERMINATED (terminal). Only an ACTIVE agreement
lets its broker record transactions for its client.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from customsdesk.core.config import get_settings
from customsdesk.core.database import unit_of_work
from customsdesk.core.errors import (
    Conflict,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from customsdesk.models.agreement import (
    AgencyAgreement,
    AgreementStatus,
    BrokerAgreementStats,
    ClientAgreementStats,
)
from customsdesk.models.base import utcnow
from customsdesk.models.company import Company
from customsdesk.models.user import Role
from customsdesk.services.access import Operation, PartyPair, require, require_visible
from customsdesk.services.hierarchy import Principal

logger = logging.getLogger(__name__)

_DUPLICATE = "An active agreement already exists for this broker and client"


def generate_agreement_number(now: datetime | None = None) -> str:
    """``AGR-YYYYMMDD-XXXXXXXX``: date stamp plus eight hex chars of a random UUID."""
    stamp = (now or utcnow()).strftime("%Y%m%d")
    suffix = uuid.uuid4().hex[:8].upper()
    return f"{get_settings().agreement_number_prefix}-{stamp}-{suffix}"


async def has_active_agreement(
    session: AsyncSession, broker_id: uuid.UUID, client_id: uuid.UUID
) -> bool:
    stmt = select(AgencyAgreement.id).where(
        AgencyAgreement.broker_company_id == broker_id,
        AgencyAgreement.client_company_id == client_id,
        AgencyAgreement.status == AgreementStatus.ACTIVE,
    )
    return (await session.execute(stmt)).first() is not None


# ── Create ───────────────────────────────────────────────────

async def create_agreement(
    session: AsyncSession,
    principal: Principal,
    broker_id: uuid.UUID,
    client_id: uuid.UUID,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    notes: str | None = None,
) -> AgencyAgreement:
    async with unit_of_work(session, conflict_detail=_DUPLICATE):
        broker = await session.get(Company, broker_id)
        if broker is None:
            raise NotFound("Broker company not found")
        client = await session.get(Company, client_id)
        if client is None:
            raise NotFound("Client company not found")
        if not broker.is_broker:
            raise ValidationError("Agreement broker must be a customs broker")
        if not client.is_client:
            raise ValidationError("Agreement client must be a client company")
        if not broker.is_active or not client.is_active:
            raise ValidationError("Agreements require an active broker and an active client")

        require(
            principal,
            Operation.AGREEMENT_CREATE,
            PartyPair(broker.id, client.id, client.parent_broker_id),
            detail="Only an admin of the broker can create its agreements",
        )

        if await has_active_agreement(session, broker_id, client_id):
            raise Conflict(_DUPLICATE)

        start = start_date or utcnow()
        if end_date is not None and end_date <= start:
            raise ValidationError("Agreement end date must be after its start date")

        agreement = AgencyAgreement(
            agreement_number=generate_agreement_number(),
            broker_company_id=broker_id,
            client_company_id=client_id,
            created_by_id=principal.user_id,
            status=AgreementStatus.ACTIVE,
            start_date=start,
            end_date=end_date,
            notes=notes,
        )
        session.add(agreement)

    logger.info(
        "Agreement %s created: broker=%s client=%s by %s",
        agreement.agreement_number, broker_id, client_id, principal.email,
    )
    return agreement


# ── Transitions ──────────────────────────────────────────────

async def _load_for(
    session: AsyncSession, principal: Principal, agreement_id: uuid.UUID, operation: Operation
) -> AgencyAgreement:
    agreement = await session.get(AgencyAgreement, agreement_id)
    if agreement is None:
        raise NotFound("Agreement not found")
    pair = await _pair_of(session, agreement)
    require_visible(principal, Operation.AGREEMENT_VIEW, pair, "Agreement not found")
    if operation != Operation.AGREEMENT_VIEW:
        require(principal, operation, pair)
    return agreement


async def suspend_agreement(
    session: AsyncSession, principal: Principal, agreement_id: uuid.UUID, reason: str = ""
) -> AgencyAgreement:
    async with unit_of_work(session):
        agreement = await _load_for(session, principal, agreement_id, Operation.AGREEMENT_SUSPEND)
        if agreement.status != AgreementStatus.ACTIVE:
            raise InvalidStateTransition(
                f"Only an active agreement can be suspended (is {agreement.status})"
            )
        agreement.status = AgreementStatus.SUSPENDED
        agreement.notes = reason or None
        agreement.touch()
        session.add(agreement)

    logger.info("Agreement %s suspended by %s", agreement.agreement_number, principal.email)
    return agreement


async def reactivate_agreement(
    session: AsyncSession, principal: Principal, agreement_id: uuid.UUID
) -> AgencyAgreement:
    async with unit_of_work(session, conflict_detail=_DUPLICATE):
        agreement = await _load_for(
            session, principal, agreement_id, Operation.AGREEMENT_REACTIVATE
        )
        if agreement.status != AgreementStatus.SUSPENDED:
            raise InvalidStateTransition(
                f"Only a suspended agreement can be reactivated (is {agreement.status})"
            )
        if agreement.is_expired(utcnow()):
            raise InvalidStateTransition("Cannot reactivate an agreement past its end date")
        if not await _parties_active(session, agreement):
            raise InvalidStateTransition(
                "Cannot reactivate an agreement while its broker or client is deactivated"
            )
        if await has_active_agreement(
            session, agreement.broker_company_id, agreement.client_company_id
        ):
            raise Conflict(_DUPLICATE)

        agreement.status = AgreementStatus.ACTIVE
        agreement.touch()
        session.add(agreement)

    logger.info("Agreement %s reactivated by %s", agreement.agreement_number, principal.email)
    return agreement


async def terminate_agreement(
    session: AsyncSession, principal: Principal, agreement_id: uuid.UUID, reason: str = ""
) -> AgencyAgreement:
    async with unit_of_work(session):
        agreement = await _load_for(
            session, principal, agreement_id, Operation.AGREEMENT_TERMINATE
        )
        if agreement.status == AgreementStatus.TERMINATED:
            raise InvalidStateTransition("Agreement is already terminated")
        agreement.status = AgreementStatus.TERMINATED
        agreement.end_date = utcnow()
        agreement.notes = reason or None
        agreement.touch()
        session.add(agreement)

    logger.info("Agreement %s terminated by %s", agreement.agreement_number, principal.email)
    return agreement


async def suspend_for_company(session: AsyncSession, company_id: uuid.UUID, reason: str) -> int:
    """Suspend every ACTIVE agreement the company is a party to.

    Runs inside the caller's unit of work; returns how many were suspended.
    """
    stmt = select(AgencyAgreement).where(
        or_(
            AgencyAgreement.broker_company_id == company_id,
            AgencyAgreement.client_company_id == company_id,
        ),
        AgencyAgreement.status == AgreementStatus.ACTIVE,
    )
    agreements = (await session.execute(stmt)).scalars().all()
    for agreement in agreements:
        agreement.status = AgreementStatus.SUSPENDED
        agreement.notes = reason
        agreement.touch()
        session.add(agreement)
    if agreements:
        logger.info("Suspended %d agreement(s) of company %s", len(agreements), company_id)
    return len(agreements)


# ── Read ─────────────────────────────────────────────────────

async def get_agreement(
    session: AsyncSession, principal: Principal, agreement_id: uuid.UUID
) -> AgencyAgreement:
    return await _load_for(session, principal, agreement_id, Operation.AGREEMENT_VIEW)


async def list_agreements(
    session: AsyncSession,
    principal: Principal,
    broker_id: uuid.UUID | None = None,
    client_id: uuid.UUID | None = None,
    status: AgreementStatus | None = None,
) -> list[AgencyAgreement]:
    stmt = select(AgencyAgreement)
    if principal.role == Role.BROKER_ADMIN:
        stmt = stmt.where(
            or_(
                AgencyAgreement.broker_company_id == principal.broker_id,
                AgencyAgreement.client_company_id.in_(  # type: ignore[attr-defined]
                    select(Company.id).where(Company.parent_broker_id == principal.broker_id)
                ),
            )
        )
    elif principal.role == Role.BROKER_USER:
        stmt = stmt.where(AgencyAgreement.broker_company_id == principal.broker_id)
    elif principal.role == Role.CLIENT_USER:
        stmt = stmt.where(AgencyAgreement.client_company_id == principal.company_id)

    if broker_id is not None:
        stmt = stmt.where(AgencyAgreement.broker_company_id == broker_id)
    if client_id is not None:
        stmt = stmt.where(AgencyAgreement.client_company_id == client_id)
    if status is not None:
        stmt = stmt.where(AgencyAgreement.status == status)

    stmt = stmt.order_by(AgencyAgreement.created_at.desc())  # type: ignore[attr-defined]
    return list((await session.execute(stmt)).scalars().all())


async def get_agreement_by_number(
    session: AsyncSession, principal: Principal, agreement_number: str
) -> AgencyAgreement:
    stmt = select(AgencyAgreement.id).where(AgencyAgreement.agreement_number == agreement_number)
    agreement_id = (await session.execute(stmt)).scalar_one_or_none()
    if agreement_id is None:
        raise NotFound("Agreement not found")
    return await _load_for(session, principal, agreement_id, Operation.AGREEMENT_VIEW)


async def _stats_target(
    session: AsyncSession, principal: Principal, company_id: uuid.UUID, client: bool
) -> Company:
    company = await session.get(Company, company_id)
    if company is None or company.is_client != client:
        raise NotFound("Client company not found" if client else "Broker company not found")
    require(principal, Operation.AGREEMENT_STATS, company,
            detail="Only an admin of this company can view its agreement stats")
    return company


async def _count(session: AsyncSession, stmt) -> int:
    return (await session.execute(stmt)).scalar_one()


async def broker_agreement_stats(
    session: AsyncSession, principal: Principal, broker_id: uuid.UUID
) -> BrokerAgreementStats:
    await _stats_target(session, principal, broker_id, client=False)
    of_broker = AgencyAgreement.broker_company_id == broker_id
    active = AgencyAgreement.status == AgreementStatus.ACTIVE

    total = await _count(session, select(func.count()).select_from(AgencyAgreement).where(of_broker))
    active_count = await _count(
        session, select(func.count()).select_from(AgencyAgreement).where(of_broker, active)
    )
    clients = await _count(session, select(
        func.count(func.distinct(AgencyAgreement.client_company_id))
    ).where(of_broker, active))
    return BrokerAgreementStats(
        broker_company_id=broker_id,
        total_agreements=total,
        active_agreements=active_count,
        inactive_agreements=total - active_count,
        active_client_count=clients,
    )


async def client_agreement_stats(
    session: AsyncSession, principal: Principal, client_id: uuid.UUID
) -> ClientAgreementStats:
    await _stats_target(session, principal, client_id, client=True)
    of_client = AgencyAgreement.client_company_id == client_id
    active = AgencyAgreement.status == AgreementStatus.ACTIVE

    total = await _count(session, select(func.count()).select_from(AgencyAgreement).where(of_client))
    active_count = await _count(
        session, select(func.count()).select_from(AgencyAgreement).where(of_client, active)
    )
    brokers = await _count(session, select(
        func.count(func.distinct(AgencyAgreement.broker_company_id))
    ).where(of_client, active))
    return ClientAgreementStats(
        client_company_id=client_id,
        total_agreements=total,
        active_agreements=active_count,
        active_broker_count=brokers,
    )


async def _parties_active(session: AsyncSession, agreement: AgencyAgreement) -> bool:
    stmt = select(func.count()).select_from(Company).where(
        Company.id.in_(  # type: ignore[attr-defined]
            [agreement.broker_company_id, agreement.client_company_id]
        ),
        Company.is_active == True,  # noqa: E712
    )
    return await _count(session, stmt) == 2


async def _pair_of(session: AsyncSession, agreement: AgencyAgreement) -> PartyPair:
    client = await session.get(Company, agreement.client_company_id)
    return PartyPair(
        broker_company_id=agreement.broker_company_id,
        client_company_id=agreement.client_company_id,
        client_parent_id=client.parent_broker_id if client is not None else None,
    )
