"""
Tests for the scheduler manager and the expired-request sweep job.
"""
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from skillconnect.jobs.expiry_sweeper import JOB_ID, run_expiry_sweep, schedule_expiry_sweep
from skillconnect.jobs.scheduler import SchedulerManager, get_scheduler
from skillconnect.lib.db import get_db_context
from skillconnect.models.notifications import Notification, NotificationType
from skillconnect.models.service_requests import ServiceRequest, ServiceRequestStatus
from skillconnect.services.service_request_service import EXPIRED_REASON


@pytest.mark.unit
def test_scheduler_manager_initialization():
    manager = SchedulerManager()

    assert manager.scheduler is not None
    assert not manager.running


@pytest.mark.unit
def test_scheduler_manager_start_stop():
    manager = SchedulerManager()

    manager.start()
    assert manager.running

    manager.shutdown(wait=False)
    assert not manager.running


@pytest.mark.unit
def test_scheduler_manager_add_interval_job():
    manager = SchedulerManager()

    def test_job():
        pass

    manager.add_interval_job(test_job, job_id="test_interval", minutes=5)

    jobs = manager.get_jobs()
    assert len(jobs) == 1
    assert jobs[0].id == "test_interval"
    assert isinstance(jobs[0].trigger, IntervalTrigger)


@pytest.mark.unit
def test_scheduler_manager_interval_required():
    manager = SchedulerManager()

    with pytest.raises(ValueError):
        manager.add_interval_job(lambda: None, job_id="no_interval")


@pytest.mark.unit
def test_scheduler_manager_remove_job():
    manager = SchedulerManager()
    manager.add_interval_job(lambda: None, job_id="test_remove", minutes=5)

    assert len(manager.get_jobs()) == 1

    manager.remove_job("test_remove")

    assert len(manager.get_jobs()) == 0


@pytest.mark.unit
def test_get_scheduler_singleton():
    assert get_scheduler() is get_scheduler()


@pytest.mark.unit
def test_scheduler_manager_event_listeners():
    manager = SchedulerManager()

    assert len(manager.scheduler._listeners) > 0


@pytest.mark.unit
def test_schedule_expiry_sweep_registers_job():
    manager = SchedulerManager()

    schedule_expiry_sweep(manager)

    jobs = manager.get_jobs()
    assert [job.id for job in jobs] == [JOB_ID]
    assert jobs[0].kwargs == {"loop": None}


@pytest.mark.integration
def test_run_expiry_sweep_cancels_only_stale_requests(member, make_request):
    stale = make_request(member, expires_in=timedelta(hours=-1))
    fresh = make_request(member, expires_in=timedelta(hours=5))

    assert run_expiry_sweep() == 1

    with get_db_context() as db:
        stale_row = db.get(ServiceRequest, stale.id)
        assert stale_row.status == ServiceRequestStatus.CANCELLED
        assert stale_row.cancellation_reason == EXPIRED_REASON
        assert db.get(ServiceRequest, fresh.id).status == ServiceRequestStatus.WAITING
        notes = db.query(Notification).filter(Notification.user_id == member.id).all()
        assert [n.type for n in notes] == [NotificationType.SERVICE_EXPIRED]


@pytest.mark.integration
def test_run_expiry_sweep_hands_events_to_running_loop(member, make_request):
    make_request(member, expires_in=timedelta(minutes=-5))
    loop = MagicMock()
    loop.is_running.return_value = True

    with patch("skillconnect.jobs.expiry_sweeper.asyncio.run_coroutine_threadsafe") as submit:
        submit.side_effect = lambda coro, _loop: coro.close()
        run_expiry_sweep(loop=loop)

    submit.assert_called_once()
    assert submit.call_args.args[1] is loop


@pytest.mark.integration
def test_run_expiry_sweep_without_stale_requests_dispatches_nothing(member, make_request):
    make_request(member)
    loop = MagicMock()
    loop.is_running.return_value = True

    with patch("skillconnect.jobs.expiry_sweeper.asyncio.run_coroutine_threadsafe") as submit:
        assert run_expiry_sweep(loop=loop) == 0

    submit.assert_not_called()
