"""
Scheduler for automated GMB syncs

Uses APScheduler to run the schedule-driven account sync once an hour; each
account's own syncSchedule decides whether that run touches it.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from gmb_hub.config import get_settings
from gmb_hub.models.base import SessionLocal
from gmb_hub.services.account_service import AccountService
from gmb_hub.services.auto_reply_service import auto_reply_dispatcher
from gmb_hub.services.gmb_sync_service import GMBSyncService
from gmb_hub.utils.helpers import utcnow
from gmb_hub.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler(timezone="UTC")


async def run_scheduled_gmb_sync():
    """Hourly job: sync accounts whose schedule is due"""
    db = SessionLocal()
    try:
        result = await AccountService(db).run_scheduled_sync(
            lambda session: GMBSyncService(session, dispatcher=auto_reply_dispatcher),
            now=utcnow(),
        )
        log.info(f"Scheduled GMB sync finished: {result['synced']} synced, {result['errors']} failed")
    except Exception as e:
        log.error(f"Scheduled GMB sync failed: {str(e)}")
    finally:
        db.close()


def start_scheduler():
    """Register jobs and start the scheduler"""
    scheduler.add_job(
        run_scheduled_gmb_sync,
        CronTrigger.from_crontab(settings.scheduled_sync_cron, timezone="UTC"),
        id="gmb_scheduled_sync",
        name="GMB scheduled sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    log.info(f"Scheduler started (GMB sync cron: {settings.scheduled_sync_cron})")


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        log.info("Scheduler stopped")
