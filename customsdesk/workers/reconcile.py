"""Usage reconciliation jobs — recompute per-broker counters from authoritative rows."""

from __future__ import annotations

import logging
import uuid

from arq import Retry
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from customsdesk.core.config import get_settings
from customsdesk.core.database import async_session_factory
from customsdesk.models.company import Company, CompanyType
from customsdesk.services.quota import reconcile_usage

logger = logging.getLogger(__name__)


async def reconcile_broker_usage(ctx: dict, broker_id: str) -> dict:
    """Reconcile one broker's usage row.

    Transient storage failures are retried with a linear back-off until the
    configured number of tries is spent.
    """
    settings = get_settings()
    job_try = ctx.get("job_try", 1)

    try:
        async with async_session_factory() as session:
            usage = await reconcile_usage(session, uuid.UUID(broker_id))
    except OperationalError as exc:
        if job_try >= settings.reconcile_max_tries:
            logger.error("Reconcile for broker %s failed after %d tries", broker_id, job_try)
            raise
        logger.warning("Reconcile for broker %s failed (try %d), retrying: %s",
                       broker_id, job_try, exc)
        raise Retry(defer=job_try * settings.reconcile_retry_delay) from exc

    logger.info("Reconciled broker %s: staff=%d clients=%d",
                broker_id, usage.current_staff, usage.current_clients)
    return {
        "broker_id": broker_id,
        "current_staff": usage.current_staff,
        "current_clients": usage.current_clients,
    }


async def reconcile_all_usage(ctx: dict) -> dict:
    """Hourly fan-out: one ``reconcile_broker_usage`` job per active broker.

    Jobs go through the ArqRedis pool the worker places in ``ctx["redis"]``.
    """
    async with async_session_factory() as session:
        stmt = select(Company.id).where(
            Company.company_type == CompanyType.CUSTOMS_BROKER,
            Company.is_active == True,  # noqa: E712
        )
        broker_ids = list((await session.execute(stmt)).scalars().all())

    if not broker_ids:
        logger.info("Usage reconciliation: no active brokers")
        return {"enqueued": 0}

    redis = ctx["redis"]
    for broker_id in broker_ids:
        await redis.enqueue_job("reconcile_broker_usage", broker_id=str(broker_id))

    logger.info("Usage reconciliation: enqueued %d brokers", len(broker_ids))
    return {"enqueued": len(broker_ids)}
