"""Quota tracker — per-broker staff / client counters bounded by the active subscription.

Reservations are a single conditional UPDATE (``current < max``) so concurrent
requests can never push a counter past its cap; the broker's usage row is the
only lock scope. Releases are plain decrements floored at zero.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
import weakref
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import func, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from customsdesk.core.database import unit_of_work
from customsdesk.core.errors import LimitExceeded, SubscriptionMissingOrExpired
from customsdesk.models.base import utcnow
from customsdesk.models.company import Company, CompanyType
from customsdesk.models.subscription import (
    BrokerSubscription,
    QuotaSnapshot,
    SubscriptionPlan,
    UsageTracking,
)
from customsdesk.models.user import STAFF_ROLES, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Counter:
    label: str
    column: str
    limit: Callable[[BrokerSubscription, SubscriptionPlan], int]


STAFF = _Counter("staff", "current_staff", BrokerSubscription.effective_max_staff)
CLIENTS = _Counter("client", "current_clients", BrokerSubscription.effective_max_clients)

# In-process exclusion for reconciliation; PostgreSQL adds an advisory lock on top.
# Entries vanish once no coroutine holds or awaits the lock.
_reconcile_locks: weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock] = (
    weakref.WeakValueDictionary()
)


def _reconcile_lock(broker_id: uuid.UUID) -> asyncio.Lock:
    lock = _reconcile_locks.get(broker_id)
    if lock is None:
        lock = _reconcile_locks[broker_id] = asyncio.Lock()
    return lock


# ── Subscription lookup ──────────────────────────────────────

async def get_active_subscription(
    session: AsyncSession, broker_id: uuid.UUID
) -> tuple[BrokerSubscription, SubscriptionPlan]:
    """Return the broker's current subscription and its plan.

    Raises ``SubscriptionMissingOrExpired`` when there is none, or when the
    flagged subscription has run past its end date.
    """
    stmt = (
        select(BrokerSubscription, SubscriptionPlan)
        .join(SubscriptionPlan, SubscriptionPlan.id == BrokerSubscription.plan_id)
        .where(
            BrokerSubscription.broker_company_id == broker_id,
            BrokerSubscription.is_active == True,  # noqa: E712
        )
        .order_by(BrokerSubscription.start_date.desc())  # type: ignore[attr-defined]
    )
    row = (await session.execute(stmt)).first()
    if row is None:
        raise SubscriptionMissingOrExpired(f"Broker {broker_id} has no active subscription")

    subscription, plan = row
    if not subscription.is_current(utcnow()):
        raise SubscriptionMissingOrExpired(f"Subscription for broker {broker_id} has expired")
    return subscription, plan


# ── Usage row ────────────────────────────────────────────────

async def _find_usage_row(session: AsyncSession, broker_id: uuid.UUID) -> UsageTracking | None:
    stmt = (
        select(UsageTracking)
        .where(UsageTracking.broker_company_id == broker_id)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def ensure_usage_row(session: AsyncSession, broker_id: uuid.UUID) -> UsageTracking:
    """Fetch the broker's usage row, creating an empty one if missing.

    The insert runs in a savepoint: when a concurrent request creates the row
    first, the unique violation only rolls back the savepoint and the winner's
    row is returned.
    """
    usage = await _find_usage_row(session, broker_id)
    if usage is not None:
        return usage

    usage = UsageTracking(broker_company_id=broker_id)
    try:
        async with session.begin_nested():
            session.add(usage)
    except IntegrityError:
        logger.info("Usage row for broker %s created concurrently, reusing it", broker_id)
        existing = await _find_usage_row(session, broker_id)
        if existing is None:
            raise
        return existing

    logger.info("Created usage row for broker %s", broker_id)
    return usage


async def _current(session: AsyncSession, broker_id: uuid.UUID, counter: _Counter) -> int | None:
    column = getattr(UsageTracking, counter.column)
    stmt = select(column).where(UsageTracking.broker_company_id == broker_id)
    return (await session.execute(stmt)).scalar_one_or_none()


# ── Read side ────────────────────────────────────────────────

async def _remaining(session: AsyncSession, broker_id: uuid.UUID, counter: _Counter) -> int:
    subscription, plan = await get_active_subscription(session, broker_id)
    current = await _current(session, broker_id, counter) or 0
    return max(0, counter.limit(subscription, plan) - current)


async def remaining_staff_quota(session: AsyncSession, broker_id: uuid.UUID) -> int:
    return await _remaining(session, broker_id, STAFF)


async def remaining_client_quota(session: AsyncSession, broker_id: uuid.UUID) -> int:
    return await _remaining(session, broker_id, CLIENTS)


async def can_add_staff(session: AsyncSession, broker_id: uuid.UUID) -> bool:
    return await remaining_staff_quota(session, broker_id) > 0


async def can_add_client(session: AsyncSession, broker_id: uuid.UUID) -> bool:
    return await remaining_client_quota(session, broker_id) > 0


async def quota_snapshot(session: AsyncSession, broker_id: uuid.UUID) -> QuotaSnapshot:
    subscription, plan = await get_active_subscription(session, broker_id)
    max_staff = subscription.effective_max_staff(plan)
    max_clients = subscription.effective_max_clients(plan)
    current_staff = await _current(session, broker_id, STAFF) or 0
    current_clients = await _current(session, broker_id, CLIENTS) or 0
    return QuotaSnapshot(
        broker_company_id=broker_id,
        max_staff=max_staff,
        current_staff=current_staff,
        max_clients=max_clients,
        current_clients=current_clients,
        remaining_staff=max(0, max_staff - current_staff),
        remaining_clients=max(0, max_clients - current_clients),
        days_until_expiry=subscription.days_until_expiry(utcnow()),
    )


# ── Write side ───────────────────────────────────────────────

async def _reserve(session: AsyncSession, broker_id: uuid.UUID, counter: _Counter) -> None:
    subscription, plan = await get_active_subscription(session, broker_id)
    limit = counter.limit(subscription, plan)
    column = getattr(UsageTracking, counter.column)
    stmt = (
        update(UsageTracking)
        .where(UsageTracking.broker_company_id == broker_id, column < limit)
        .values({counter.column: column + 1, "last_updated": utcnow()})
        .execution_options(synchronize_session=False)
    )

    result = await session.execute(stmt)
    if result.rowcount == 0 and await _current(session, broker_id, counter) is None:
        await ensure_usage_row(session, broker_id)
        result = await session.execute(stmt)

    if result.rowcount == 0:
        current = await _current(session, broker_id, counter) or 0
        remaining = max(0, limit - current)
        logger.warning(
            "Quota exceeded - broker=%s %s=%d max=%d", broker_id, counter.label, current, limit,
        )
        raise LimitExceeded(
            f"{counter.label.capitalize()} limit reached ({limit}) for broker {broker_id}",
            remaining=remaining,
        )
    logger.debug("Reserved one %s slot for broker %s", counter.label, broker_id)


async def _release(session: AsyncSession, broker_id: uuid.UUID, counter: _Counter) -> None:
    column = getattr(UsageTracking, counter.column)
    stmt = (
        update(UsageTracking)
        .where(UsageTracking.broker_company_id == broker_id, column > 0)
        .values({counter.column: column - 1, "last_updated": utcnow()})
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount == 0:
        logger.warning("Release of %s slot for broker %s ignored: counter already at zero",
                       counter.label, broker_id)


async def on_staff_added(session: AsyncSession, broker_id: uuid.UUID) -> None:
    await _reserve(session, broker_id, STAFF)


async def on_staff_removed(session: AsyncSession, broker_id: uuid.UUID) -> None:
    await _release(session, broker_id, STAFF)


async def on_client_added(session: AsyncSession, broker_id: uuid.UUID) -> None:
    await _reserve(session, broker_id, CLIENTS)


async def on_client_removed(session: AsyncSession, broker_id: uuid.UUID) -> None:
    await _release(session, broker_id, CLIENTS)


# ── Reconciliation ───────────────────────────────────────────

def _advisory_key(broker_id: uuid.UUID) -> int:
    # pg_advisory_xact_lock takes a signed bigint
    return broker_id.int & 0x7FFF_FFFF_FFFF_FFFF


async def reconcile_usage(session: AsyncSession, broker_id: uuid.UUID) -> UsageTracking:
    """Recompute both counters from the authoritative rows and commit.

    Mutually exclusive per broker: an in-process lock, plus a transaction
    scoped advisory lock when running on PostgreSQL.
    """
    async with _reconcile_lock(broker_id):
        async with unit_of_work(session):
            if session.get_bind().dialect.name == "postgresql":
                await session.execute(
                    text("SELECT pg_advisory_xact_lock(:key)"), {"key": _advisory_key(broker_id)}
                )

            staff_stmt = select(func.count()).select_from(User).where(
                User.company_id == broker_id,
                User.role.in_(STAFF_ROLES),  # type: ignore[attr-defined]
                User.is_active == True,  # noqa: E712
            )
            client_stmt = select(func.count()).select_from(Company).where(
                Company.parent_broker_id == broker_id,
                Company.company_type == CompanyType.CLIENT,
                Company.is_active == True,  # noqa: E712
            )
            staff = (await session.execute(staff_stmt)).scalar_one()
            clients = (await session.execute(client_stmt)).scalar_one()

            usage = await ensure_usage_row(session, broker_id)
            if usage.current_staff != staff or usage.current_clients != clients:
                logger.info(
                    "Reconciled broker %s: staff %d -> %d, clients %d -> %d",
                    broker_id, usage.current_staff, staff, usage.current_clients, clients,
                )
            usage.current_staff = staff
            usage.current_clients = clients
            usage.last_updated = utcnow()
            session.add(usage)
    return usage
