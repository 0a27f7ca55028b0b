from apscheduler.schedulers.asyncio import AsyncIOScheduler
import structlog

logger = structlog.get_logger()

scheduler = AsyncIOScheduler()


def start_scheduler():
    if not scheduler.running:
        scheduler.start()
        logger.info("scheduler_started")


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")


def add_interval_job(func, seconds: int, job_id: str, **kwargs):
    """Register an interval job that never stacks: a firing that lands while
    the previous run is still going is dropped, not queued."""
    return scheduler.add_job(
        func,
        "interval",
        seconds=seconds,
        id=job_id,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
        **kwargs,
    )


def remove_job(job_id: str) -> bool:
    if scheduler.get_job(job_id) is None:
        return False
    scheduler.remove_job(job_id)
    return True
