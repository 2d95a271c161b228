"""Tests for the usage reconciliation jobs."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import pytest
from arq import Retry
from sqlalchemy.exc import OperationalError

from customsdesk.services import quota
from customsdesk.workers.reconcile import reconcile_all_usage, reconcile_broker_usage


def _failing_session_factory():
    """A session factory whose sessions fail like a dropped connection."""

    @asynccontextmanager
    async def _factory():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))
        yield  # pragma: no cover

    return _factory


@pytest.mark.asyncio
async def test_reconcile_broker_repairs_counters(session, tenant, test_session_factory):
    usage = await quota.ensure_usage_row(session, tenant.broker_id)
    usage.current_staff = 7
    usage.current_clients = 0
    session.add(usage)
    await session.commit()

    with patch("customsdesk.workers.reconcile.async_session_factory", test_session_factory):
        result = await reconcile_broker_usage({}, broker_id=str(tenant.broker_id))

    assert result == {
        "broker_id": str(tenant.broker_id),
        "current_staff": 2,
        "current_clients": 1,
    }
    refreshed = await quota.ensure_usage_row(session, tenant.broker_id)
    assert (refreshed.current_staff, refreshed.current_clients) == (2, 1)


@pytest.mark.asyncio
async def test_reconcile_all_enqueues_active_brokers(session, tenant, rival, test_session_factory):
    redis = AsyncMock()
    with patch("customsdesk.workers.reconcile.async_session_factory", test_session_factory):
        result = await reconcile_all_usage({"redis": redis})

    assert result == {"enqueued": 2}
    enqueued = {call.kwargs["broker_id"] for call in redis.enqueue_job.await_args_list}
    assert enqueued == {str(tenant.broker_id), str(rival.broker_id)}
    for call in redis.enqueue_job.await_args_list:
        assert call.args == ("reconcile_broker_usage",)


@pytest.mark.asyncio
async def test_reconcile_all_without_brokers(session, test_session_factory):
    redis = AsyncMock()
    with patch("customsdesk.workers.reconcile.async_session_factory", test_session_factory):
        result = await reconcile_all_usage({"redis": redis})

    assert result == {"enqueued": 0}
    redis.enqueue_job.assert_not_awaited()


@pytest.mark.asyncio
async def test_transient_failure_is_retried(tenant):
    with patch("customsdesk.workers.reconcile.async_session_factory", _failing_session_factory()):
        with pytest.raises(Retry) as exc_info:
            await reconcile_broker_usage({"job_try": 2}, broker_id=str(tenant.broker_id))

    assert exc_info.value.defer_score == 20_000


@pytest.mark.asyncio
async def test_failure_propagates_after_last_try(tenant):
    with patch("customsdesk.workers.reconcile.async_session_factory", _failing_session_factory()):
        with pytest.raises(OperationalError):
            await reconcile_broker_usage({"job_try": 5}, broker_id=str(tenant.broker_id))


def test_worker_settings_schedule_hourly_fan_out():
    from customsdesk.core.config import get_settings
    from customsdesk.workers.main import WorkerSettings

    assert reconcile_broker_usage in WorkerSettings.functions
    (job,) = WorkerSettings.cron_jobs
    assert job.coroutine is reconcile_all_usage
    assert job.minute == 0
    assert WorkerSettings.max_tries == get_settings().reconcile_max_tries
