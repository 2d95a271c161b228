"""Subscription service — plan catalog and broker subscriptions.

A broker holds at most one active subscription. Subscribing a broker to a new
plan deactivates whatever it held before in the same unit of work.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import timedelta

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from customsdesk.core.database import unit_of_work
from customsdesk.core.errors import InvalidStateTransition, NotFound, ValidationError
from customsdesk.models.base import utcnow
from customsdesk.models.company import Company
from customsdesk.models.subscription import (
    BrokerSubscription,
    BrokerSubscriptionCreate,
    BrokerSubscriptionUpdate,
    QuotaSnapshot,
    SubscriptionPlan,
    SubscriptionPlanCreate,
    SubscriptionPlanUpdate,
)
from customsdesk.services import quota
from customsdesk.services.access import Operation, require
from customsdesk.services.hierarchy import Principal

logger = logging.getLogger(__name__)


# ── Plans ────────────────────────────────────────────────────

async def create_plan(
    session: AsyncSession, principal: Principal, data: SubscriptionPlanCreate
) -> SubscriptionPlan:
    async with unit_of_work(session):
        require(principal, Operation.PLAN_MANAGE, detail="Only a super admin can manage plans")
        plan = SubscriptionPlan(
            **data.model_dump(exclude={"features"}),
            features=json.dumps(data.features),
        )
        session.add(plan)

    logger.info("Subscription plan created: %s (staff=%d clients=%d)",
                plan.name, plan.max_staff, plan.max_clients)
    return plan


async def update_plan(
    session: AsyncSession, principal: Principal, plan_id: uuid.UUID, data: SubscriptionPlanUpdate
) -> SubscriptionPlan:
    async with unit_of_work(session):
        require(principal, Operation.PLAN_MANAGE, detail="Only a super admin can manage plans")
        plan = await session.get(SubscriptionPlan, plan_id)
        if plan is None:
            raise NotFound("Subscription plan not found")

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "features" in changes:
            changes["features"] = json.dumps(changes["features"])
        for field, value in changes.items():
            setattr(plan, field, value)
        plan.touch()
        session.add(plan)

    logger.info("Subscription plan updated: %s", plan.name)
    return plan


async def list_plans(session: AsyncSession, include_inactive: bool = False) -> list[SubscriptionPlan]:
    stmt = select(SubscriptionPlan)
    if not include_inactive:
        stmt = stmt.where(SubscriptionPlan.is_active == True)  # noqa: E712
    stmt = stmt.order_by(SubscriptionPlan.max_staff.asc())  # type: ignore[attr-defined]
    return list((await session.execute(stmt)).scalars().all())


async def get_plan(session: AsyncSession, plan_id: uuid.UUID) -> SubscriptionPlan:
    plan = await session.get(SubscriptionPlan, plan_id)
    if plan is None:
        raise NotFound("Subscription plan not found")
    return plan


# ── Broker subscriptions ─────────────────────────────────────

async def subscribe_broker(
    session: AsyncSession,
    principal: Principal,
    broker_id: uuid.UUID,
    data: BrokerSubscriptionCreate,
) -> BrokerSubscription:
    """Put a broker on a plan, superseding its current subscription."""
    async with unit_of_work(session):
        require(principal, Operation.SUBSCRIPTION_MANAGE,
                detail="Only a super admin can manage subscriptions")
        broker = await session.get(Company, broker_id)
        if broker is None:
            raise NotFound("Broker company not found")
        if not broker.is_broker:
            raise ValidationError("Only customs brokers hold subscriptions")
        plan = await session.get(SubscriptionPlan, data.plan_id)
        if plan is None:
            raise NotFound("Subscription plan not found")
        if not plan.is_active:
            raise ValidationError(f"Subscription plan '{plan.name}' is not active")

        start = data.start_date or utcnow()
        if data.end_date is not None and data.end_date <= start:
            raise ValidationError("Subscription end date must be after its start date")

        superseded = await session.execute(
            update(BrokerSubscription)
            .where(
                BrokerSubscription.broker_company_id == broker_id,
                BrokerSubscription.is_active == True,  # noqa: E712
            )
            .values(is_active=False, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )

        subscription = BrokerSubscription(
            broker_company_id=broker_id,
            plan_id=plan.id,
            start_date=start,
            end_date=data.end_date,
            custom_max_staff=data.custom_max_staff,
            custom_max_clients=data.custom_max_clients,
            notes=data.notes,
            created_by_id=principal.user_id,
        )
        session.add(subscription)
        await quota.ensure_usage_row(session, broker_id)

    logger.info("Broker %s subscribed to plan %s (superseded %d) by %s",
                broker_id, plan.name, superseded.rowcount, principal.email)
    return subscription


async def _load_subscription(
    session: AsyncSession, principal: Principal, subscription_id: uuid.UUID
) -> BrokerSubscription:
    require(principal, Operation.SUBSCRIPTION_MANAGE,
            detail="Only a super admin can manage subscriptions")
    subscription = await session.get(BrokerSubscription, subscription_id)
    if subscription is None:
        raise NotFound("Subscription not found")
    return subscription


async def update_subscription(
    session: AsyncSession,
    principal: Principal,
    subscription_id: uuid.UUID,
    data: BrokerSubscriptionUpdate,
) -> BrokerSubscription:
    async with unit_of_work(session):
        subscription = await _load_subscription(session, principal, subscription_id)
        changes = data.model_dump(exclude_unset=True)
        end_date = changes.get("end_date", subscription.end_date)
        if end_date is not None and end_date <= subscription.start_date:
            raise ValidationError("Subscription end date must be after its start date")
        for field, value in changes.items():
            setattr(subscription, field, value)
        subscription.touch()
        session.add(subscription)

    logger.info("Subscription %s updated by %s", subscription.id, principal.email)
    return subscription


async def cancel_subscription(
    session: AsyncSession, principal: Principal, subscription_id: uuid.UUID
) -> BrokerSubscription:
    async with unit_of_work(session):
        subscription = await _load_subscription(session, principal, subscription_id)
        if not subscription.is_active:
            raise InvalidStateTransition("Subscription is already inactive")
        now = utcnow()
        subscription.is_active = False
        if subscription.end_date is None or subscription.end_date > now:
            subscription.end_date = now
        subscription.touch()
        session.add(subscription)

    logger.info("Subscription %s for broker %s cancelled by %s",
                subscription.id, subscription.broker_company_id, principal.email)
    return subscription


async def list_broker_subscriptions(
    session: AsyncSession, principal: Principal, broker_id: uuid.UUID
) -> list[BrokerSubscription]:
    """Subscription history of one broker, newest first."""
    require(principal, Operation.QUOTA_VIEW, broker_id)
    stmt = (
        select(BrokerSubscription)
        .where(BrokerSubscription.broker_company_id == broker_id)
        .order_by(BrokerSubscription.start_date.desc())  # type: ignore[attr-defined]
    )
    return list((await session.execute(stmt)).scalars().all())


async def list_expiring(
    session: AsyncSession, principal: Principal, within_days: int = 7
) -> list[BrokerSubscription]:
    require(principal, Operation.SUBSCRIPTION_MANAGE)
    now = utcnow()
    stmt = (
        select(BrokerSubscription)
        .where(
            BrokerSubscription.is_active == True,  # noqa: E712
            BrokerSubscription.end_date.is_not(None),  # type: ignore[union-attr]
            BrokerSubscription.end_date > now,  # type: ignore[operator]
            BrokerSubscription.end_date <= now + timedelta(days=within_days),  # type: ignore[operator]
        )
        .order_by(BrokerSubscription.end_date.asc())  # type: ignore[union-attr]
    )
    return list((await session.execute(stmt)).scalars().all())


async def list_expired(session: AsyncSession, principal: Principal) -> list[BrokerSubscription]:
    """Subscriptions still flagged active whose end date has passed."""
    require(principal, Operation.SUBSCRIPTION_MANAGE)
    stmt = (
        select(BrokerSubscription)
        .where(
            BrokerSubscription.is_active == True,  # noqa: E712
            BrokerSubscription.end_date.is_not(None),  # type: ignore[union-attr]
            BrokerSubscription.end_date <= utcnow(),  # type: ignore[operator]
        )
        .order_by(BrokerSubscription.end_date.asc())  # type: ignore[union-attr]
    )
    return list((await session.execute(stmt)).scalars().all())


async def view_quota(
    session: AsyncSession, principal: Principal, broker_id: uuid.UUID
) -> QuotaSnapshot:
    require(principal, Operation.QUOTA_VIEW, broker_id,
            detail="Not allowed to view this broker's quota")
    return await quota.quota_snapshot(session, broker_id)
