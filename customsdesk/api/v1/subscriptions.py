"""Subscription plans, broker subscriptions and quota snapshots."""

import json
import uuid

from fastapi import APIRouter, Query, status

from customsdesk.api.deps import Auth, Session
from customsdesk.models.subscription import (
    BrokerSubscriptionCreate,
    BrokerSubscriptionRead,
    BrokerSubscriptionUpdate,
    QuotaSnapshot,
    SubscriptionPlan,
    SubscriptionPlanCreate,
    SubscriptionPlanRead,
    SubscriptionPlanUpdate,
)
from customsdesk.services import subscriptions as subscription_service

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])
quota_router = APIRouter(prefix="/quota", tags=["subscriptions"])


def _to_read(plan: SubscriptionPlan) -> SubscriptionPlanRead:
    """Convert a DB plan to a read schema, parsing the features JSON."""
    features = json.loads(plan.features) if isinstance(plan.features, str) else plan.features
    return SubscriptionPlanRead(
        id=plan.id,
        name=plan.name,
        description=plan.description,
        max_staff=plan.max_staff,
        max_clients=plan.max_clients,
        monthly_price=plan.monthly_price,
        yearly_price=plan.yearly_price,
        features=features,
        is_active=plan.is_active,
    )


# ── Plans ────────────────────────────────────────────────────

@router.get("/plans", response_model=list[SubscriptionPlanRead])
async def list_plans(
    _auth: Auth,
    session: Session,
    include_inactive: bool = False,
) -> list[SubscriptionPlanRead]:
    plans = await subscription_service.list_plans(session, include_inactive=include_inactive)
    return [_to_read(p) for p in plans]


@router.post("/plans", response_model=SubscriptionPlanRead, status_code=status.HTTP_201_CREATED)
async def create_plan(
    body: SubscriptionPlanCreate, auth: Auth, session: Session
) -> SubscriptionPlanRead:
    plan = await subscription_service.create_plan(session, auth, body)
    return _to_read(plan)


@router.patch("/plans/{plan_id}", response_model=SubscriptionPlanRead)
async def update_plan(
    plan_id: uuid.UUID,
    body: SubscriptionPlanUpdate,
    auth: Auth,
    session: Session,
) -> SubscriptionPlanRead:
    plan = await subscription_service.update_plan(session, auth, plan_id, body)
    return _to_read(plan)


# ── Broker subscriptions ─────────────────────────────────────

@router.get("/expiring", response_model=list[BrokerSubscriptionRead])
async def list_expiring(
    auth: Auth,
    session: Session,
    days: int = Query(default=7, ge=1, le=365),
) -> list[BrokerSubscriptionRead]:
    subs = await subscription_service.list_expiring(session, auth, within_days=days)
    return [BrokerSubscriptionRead.model_validate(s) for s in subs]


@router.get("/expired", response_model=list[BrokerSubscriptionRead])
async def list_expired(auth: Auth, session: Session) -> list[BrokerSubscriptionRead]:
    subs = await subscription_service.list_expired(session, auth)
    return [BrokerSubscriptionRead.model_validate(s) for s in subs]


@router.post(
    "/brokers/{broker_id}",
    response_model=BrokerSubscriptionRead,
    status_code=status.HTTP_201_CREATED,
)
async def subscribe_broker(
    broker_id: uuid.UUID,
    body: BrokerSubscriptionCreate,
    auth: Auth,
    session: Session,
) -> BrokerSubscriptionRead:
    """Put a broker on a plan; its previous subscription is deactivated."""
    sub = await subscription_service.subscribe_broker(session, auth, broker_id, body)
    return BrokerSubscriptionRead.model_validate(sub)


@router.get("/brokers/{broker_id}", response_model=list[BrokerSubscriptionRead])
async def list_broker_subscriptions(
    broker_id: uuid.UUID, auth: Auth, session: Session
) -> list[BrokerSubscriptionRead]:
    subs = await subscription_service.list_broker_subscriptions(session, auth, broker_id)
    return [BrokerSubscriptionRead.model_validate(s) for s in subs]


@router.patch("/{subscription_id}", response_model=BrokerSubscriptionRead)
async def update_subscription(
    subscription_id: uuid.UUID,
    body: BrokerSubscriptionUpdate,
    auth: Auth,
    session: Session,
) -> BrokerSubscriptionRead:
    sub = await subscription_service.update_subscription(session, auth, subscription_id, body)
    return BrokerSubscriptionRead.model_validate(sub)


@router.post("/{subscription_id}/cancel", response_model=BrokerSubscriptionRead)
async def cancel_subscription(
    subscription_id: uuid.UUID, auth: Auth, session: Session
) -> BrokerSubscriptionRead:
    sub = await subscription_service.cancel_subscription(session, auth, subscription_id)
    return BrokerSubscriptionRead.model_validate(sub)


# ── Quota ────────────────────────────────────────────────────

@quota_router.get("/{broker_id}", response_model=QuotaSnapshot)
async def get_quota(broker_id: uuid.UUID, auth: Auth, session: Session) -> QuotaSnapshot:
    """Current usage against the broker's effective limits."""
    return await subscription_service.view_quota(session, auth, broker_id)
