"""ARQ worker for usage reconciliation: ``python -m customsdesk.workers.main``."""

import logging

from arq import cron
from arq.connections import RedisSettings

from customsdesk.core.config import get_settings
from customsdesk.workers.reconcile import reconcile_all_usage, reconcile_broker_usage

settings = get_settings()
logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:
    from customsdesk.core.database import init_db

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    await init_db()
    logger.info("Reconcile worker up (max %d tries, %ds back-off step)",
                settings.reconcile_max_tries, settings.reconcile_retry_delay)


async def shutdown(ctx: dict) -> None:
    """Release pooled database connections."""
    from customsdesk.core.database import engine

    await engine.dispose()


class WorkerSettings:
    functions = [reconcile_broker_usage, reconcile_all_usage]
    # Top of every hour; the fan-out only enqueues, so it never runs long
    cron_jobs = [cron(reconcile_all_usage, minute=0, run_at_startup=True)]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    max_jobs = 10
    max_tries = settings.reconcile_max_tries
    job_timeout = 120


if __name__ == "__main__":
    from arq import run_worker
    run_worker(WorkerSettings)  # type: ignore[arg-type]
