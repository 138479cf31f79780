# File: src/newsbeacon/worker.py
"""
Worker process: periodic jobs (alert scan, schedule dispatch, calendar sync,
retention) on an AsyncIOScheduler, plus the optional health/metrics API.

Exits with status 1 when the queue broker cannot be reached at startup.
"""

import asyncio
import logging
import signal
import sys
from datetime import timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from redis.exceptions import RedisError

from newsbeacon.boot import build_services
from newsbeacon.config import Settings, get_settings
from newsbeacon.infrastructure.db.uow import create_tables
from newsbeacon.infrastructure.sched.periodic import (
    INGESTION_TIMER,
    RETENTION_TIMER,
    SCAN_TIMER,
    SCHEDULE_TIMER,
    InFlightJobs,
    add_periodic_job,
)
from newsbeacon.interfaces.api.main import create_app
from newsbeacon.logging_conf import setup_logging

log = logging.getLogger(__name__)

SHUTDOWN_GRACE_SECONDS = 30.0


def _guarded(name: str, job: Callable[[], Awaitable[Any]]) -> Callable[[], Awaitable[None]]:
    async def runner() -> None:
        try:
            await job()
        except Exception:
            log.exception("%s job failed.", name)
    runner.__name__ = f"{name}_job"
    return runner


def build_scheduler(services: Dict[str, Any], jobs: Optional[InFlightJobs] = None) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    # scan ticks may overlap; the dedup registry keeps them from double-sending
    add_periodic_job(scheduler, services["alert_scanner"].run_once, SCAN_TIMER, "alert_scan",
                     max_instances=3, jobs=jobs)
    add_periodic_job(scheduler, services["schedule_dispatcher"].run_once, SCHEDULE_TIMER, "schedule_dispatch",
                     max_instances=3, jobs=jobs)
    add_periodic_job(scheduler, _guarded("ingestion", services["ingestion_service"].run), INGESTION_TIMER,
                     "calendar_sync", jobs=jobs)
    add_periodic_job(scheduler, _guarded("retention", services["retention_service"].run), RETENTION_TIMER,
                     "retention", jobs=jobs)
    return scheduler


async def stop_scheduler(scheduler: AsyncIOScheduler, jobs: InFlightJobs,
                         grace: float = SHUTDOWN_GRACE_SECONDS) -> None:
    """Stops new runs, lets running ones finish, then shuts the scheduler down."""
    scheduler.pause()
    await jobs.drain(timeout=grace)
    scheduler.shutdown(wait=False)


async def run_worker(settings: Optional[Settings] = None) -> int:
    settings = settings or get_settings()
    services = build_services(settings)
    create_tables(services["engine"])

    broker = services["broker"]
    try:
        await broker.connect()
    except (RedisError, OSError) as e:
        log.critical("Cannot reach the queue broker at %s: %s", settings.REDIS_URL, e)
        return 1

    jobs = InFlightJobs()
    scheduler = build_scheduler(services, jobs)
    services["scheduler"] = scheduler
    scheduler.start()
    log.info("Worker scheduler started.")

    background = []
    if settings.RUN_INITIAL_SYNC:
        background.append(asyncio.create_task(_guarded("initial_sync", services["ingestion_service"].run)()))

    server: Optional[uvicorn.Server] = None
    if settings.HEALTH_PORT:
        app = create_app(services, metrics_enabled=settings.METRICS_ENABLED)
        server = uvicorn.Server(uvicorn.Config(app, host=settings.HEALTH_HOST, port=settings.HEALTH_PORT,
                                               log_level="warning"))
        background.append(asyncio.create_task(server.serve()))

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass  # not supported on Windows event loops

    waiters = [asyncio.create_task(stop.wait())]
    if server is not None:
        waiters.append(background[-1])
    try:
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    finally:
        log.info("Shutting down worker...")
        waiters[0].cancel()
        await stop_scheduler(scheduler, jobs)
        if server is not None:
            server.should_exit = True
        await asyncio.gather(*background, return_exceptions=True)
        await broker.close()
        await services["calendar_client"].aclose()
        services["engine"].dispose()
    return 0


def main() -> None:
    settings = get_settings()
    setup_logging(settings.ENV)
    sys.exit(asyncio.run(run_worker(settings)))


if __name__ == "__main__":
    main()
