"""Operational health: database, the reconcile queue and tenancy counters."""

import time
from datetime import timedelta
from urllib.parse import urlparse

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import func, text
from sqlmodel import select

from customsdesk.api.deps import Auth, Session
from customsdesk.core.config import get_settings
from customsdesk.models.base import utcnow
from customsdesk.models.company import Company, CompanyType
from customsdesk.models.subscription import BrokerSubscription
from customsdesk.services.access import Operation, require

router = APIRouter(prefix="/system", tags=["system"])

settings = get_settings()
_started = time.monotonic()

# Default queue key used by arq when enqueueing reconcile jobs
_ARQ_QUEUE = "arq:queue"


class ServiceHealth(BaseModel):
    status: str  # "ok" or "error"
    detail: str | None = None
    latency_ms: int | None = None


class HealthResponse(BaseModel):
    status: str
    database: ServiceHealth
    redis: ServiceHealth


class TenancyStats(BaseModel):
    active_brokers: int
    active_clients: int
    active_subscriptions: int
    expiring_within_7_days: int
    expired_but_flagged: int


class DetailedHealthResponse(HealthResponse):
    uptime_seconds: int
    queued_reconcile_jobs: int | None
    tenancy: TenancyStats
    config: dict


@router.get("/health", response_model=HealthResponse)
async def system_health(session: Session) -> HealthResponse:
    """Database round trip plus a ping of the Redis backing the reconcile worker."""
    db = await _ping_database(session)
    rd = await _ping_redis()
    return HealthResponse(status=_overall(db, rd), database=db, redis=rd)


@router.get("/health/detailed", response_model=DetailedHealthResponse)
async def system_health_detailed(auth: Auth, session: Session) -> DetailedHealthResponse:
    """Platform-wide view for super admins: queue depth and subscription counts."""
    require(auth, Operation.SUBSCRIPTION_MANAGE, detail="Only a super admin can view platform health")

    db = await _ping_database(session)
    rd = await _ping_redis()
    return DetailedHealthResponse(
        status=_overall(db, rd),
        database=db,
        redis=rd,
        uptime_seconds=int(time.monotonic() - _started),
        queued_reconcile_jobs=await _queue_depth() if rd.status == "ok" else None,
        tenancy=await _tenancy_stats(session),
        config={
            "database": _without_credentials(settings.database_url),
            "redis": _without_credentials(settings.redis_url),
            "jwt_expire_minutes": settings.jwt_expire_minutes,
            "agreement_number_prefix": settings.agreement_number_prefix,
            "reconcile_max_tries": settings.reconcile_max_tries,
        },
    )


def _overall(*checks: ServiceHealth) -> str:
    return "ok" if all(c.status == "ok" for c in checks) else "degraded"


def _without_credentials(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.hostname:
        return url
    host = parsed.hostname + (f":{parsed.port}" if parsed.port else "")
    return f"{parsed.scheme}://{host}{parsed.path}"


async def _ping_database(session) -> ServiceHealth:
    try:
        t0 = time.monotonic()
        await session.execute(text("SELECT 1"))
        return ServiceHealth(status="ok", latency_ms=int((time.monotonic() - t0) * 1000))
    except Exception as exc:
        return ServiceHealth(status="error", detail=str(exc)[:200])


async def _ping_redis() -> ServiceHealth:
    try:
        from redis.asyncio import from_url
        t0 = time.monotonic()
        redis = from_url(settings.redis_url, decode_responses=True)
        try:
            pong = await redis.ping()
        finally:
            await redis.aclose()
        return ServiceHealth(
            status="ok" if pong else "error",
            latency_ms=int((time.monotonic() - t0) * 1000),
        )
    except Exception as exc:
        return ServiceHealth(status="error", detail=str(exc)[:200])


async def _queue_depth() -> int | None:
    try:
        from redis.asyncio import from_url
        redis = from_url(settings.redis_url, decode_responses=True)
        try:
            return await redis.zcard(_ARQ_QUEUE)
        finally:
            await redis.aclose()
    except Exception:
        return None


async def _tenancy_stats(session) -> TenancyStats:
    now = utcnow()

    async def count(stmt) -> int:
        return (await session.execute(stmt)).scalar_one()

    def companies(kind: CompanyType):
        return select(func.count()).select_from(Company).where(
            Company.company_type == kind,
            Company.is_active == True,  # noqa: E712
        )

    flagged = select(func.count()).select_from(BrokerSubscription).where(
        BrokerSubscription.is_active == True,  # noqa: E712
    )
    dated = flagged.where(BrokerSubscription.end_date.is_not(None))  # type: ignore[union-attr]

    return TenancyStats(
        active_brokers=await count(companies(CompanyType.CUSTOMS_BROKER)),
        active_clients=await count(companies(CompanyType.CLIENT)),
        active_subscriptions=await count(flagged),
        expiring_within_7_days=await count(dated.where(
            BrokerSubscription.end_date > now,  # type: ignore[operator]
            BrokerSubscription.end_date <= now + timedelta(days=7),  # type: ignore[operator]
        )),
        expired_but_flagged=await count(
            dated.where(BrokerSubscription.end_date <= now)  # type: ignore[operator]
        ),
    )
