"""
Expired-request sweep.

Moves Waiting requests past their ``expires_at`` to Cancelled and notifies
their requesters. Runs on the scheduler when ``EXPIRY_SWEEP_ENABLED`` is set,
and on demand through ``POST /admin/service-requests/expire``.
"""
import asyncio
from typing import Optional

from skillconnect.jobs.scheduler import SchedulerManager
from skillconnect.lib.db import get_db_context
from skillconnect.lib.logging import get_logger
from skillconnect.lib.realtime import get_broker
from skillconnect.lib.settings import settings
from skillconnect.services.service_request_service import ServiceRequestService


logger = get_logger(__name__)

JOB_ID = "expiry_sweep"


def run_expiry_sweep(loop: Optional[asyncio.AbstractEventLoop] = None) -> int:
    """
    Expire stale requests in one transaction.

    Real-time events are handed to ``loop`` (the API's event loop) once the
    transaction has committed; without a loop only the persisted
    notifications are written.

    Returns:
        Number of requests expired
    """
    with get_db_context() as db:
        expired, events = ServiceRequestService(db).expire_stale_requests()

    if events and loop is not None and loop.is_running():
        asyncio.run_coroutine_threadsafe(get_broker().dispatch(events), loop)

    logger.info("Expiry sweep finished", extra={"expired_count": expired})
    return expired


def schedule_expiry_sweep(
    scheduler: SchedulerManager,
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> None:
    scheduler.add_interval_job(
        run_expiry_sweep,
        job_id=JOB_ID,
        minutes=settings.expiry_sweep_minutes,
        kwargs={"loop": loop},
    )
