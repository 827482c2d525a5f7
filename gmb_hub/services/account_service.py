"""
GMB account lifecycle and schedule-driven syncing
"""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from gmb_hub.config import get_settings
from gmb_hub.errors import AccountNotFoundError, SyncError
from gmb_hub.models.gmb import GMBAccount
from gmb_hub.utils.helpers import utcnow
from gmb_hub.utils.logger import log

settings = get_settings()

SYNC_SCHEDULES = ("manual", "hourly", "daily", "twice-daily", "weekly")


def sync_schedule(account: GMBAccount) -> str:
    raw = (account.settings or {}).get("syncSchedule") or (account.settings or {}).get("sync_schedule")
    return raw if raw in SYNC_SCHEDULES else "manual"


def is_sync_due(schedule: str, now: datetime, last_sync: Optional[datetime] = None) -> bool:
    """
    Whether an account on `schedule` should sync during the hour containing `now` (UTC).

    hourly: every run, unless the last sync was under 30 minutes ago
    daily: 00 UTC; twice-daily: 09 and 18 UTC; weekly: Monday 00 UTC
    """
    if schedule == "hourly":
        if last_sync is not None:
            minutes_since = (now - last_sync).total_seconds() / 60
            if minutes_since < settings.hourly_sync_min_interval_minutes:
                return False
        return True
    if schedule == "daily":
        return now.hour == 0
    if schedule == "twice-daily":
        return now.hour in (9, 18)
    if schedule == "weekly":
        return now.weekday() == 0 and now.hour == 0
    return False


class AccountService:
    """Disconnect and scheduled-sync selection for GMB accounts"""

    def __init__(self, db: Session):
        self.db = db

    def get_account(self, account_id: int, user_id: Optional[str] = None) -> GMBAccount:
        account = self.db.get(GMBAccount, account_id)
        if account is None or (user_id is not None and account.user_id != user_id):
            raise AccountNotFoundError(f"GMB account {account_id} not found")
        return account

    def disconnect(self, account_id: int, user_id: Optional[str] = None) -> GMBAccount:
        """Deactivate and forget tokens; synced data stays."""
        account = self.get_account(account_id, user_id)
        account.is_active = False
        account.access_token = None
        account.refresh_token = None
        account.token_expires_at = None
        account.disconnected_at = utcnow()
        self.db.commit()
        log.info(f"Disconnected GMB account {account.id}")
        return account

    def accounts_due_for_sync(self, now: Optional[datetime] = None) -> List[GMBAccount]:
        now = now or utcnow()
        accounts = self.db.query(GMBAccount).filter(GMBAccount.is_active == True).all()  # noqa: E712
        due = []
        for account in accounts:
            schedule = sync_schedule(account)
            if is_sync_due(schedule, now, account.last_sync):
                due.append(account)
            elif schedule == "hourly":
                log.debug(f"Skipping GMB account {account.id}: synced recently")
        return due

    async def run_scheduled_sync(
        self,
        sync_service_factory: Callable[[Session], Any],
        now: Optional[datetime] = None,
        sync_type: str = "full",
    ) -> Dict[str, Any]:
        """Sync every due account; one account failing does not stop the others."""
        now = now or utcnow()
        due = self.accounts_due_for_sync(now)
        log.info(f"Scheduled sync: {len(due)} account(s) due at {now.isoformat()}")

        results = []
        sync_service = sync_service_factory(self.db)
        for account in due:
            account_id, account_name = account.id, account.account_name
            try:
                outcome = await sync_service.sync_account(account_id, sync_type)
                results.append({
                    "account_id": account_id,
                    "account_name": account_name,
                    "status": "success",
                    "counts": dict(outcome.counts),
                })
            except SyncError as e:
                results.append({
                    "account_id": account_id,
                    "account_name": account_name,
                    "status": "error",
                    "error": e.code,
                    "message": e.message,
                })
            except Exception as e:
                self.db.rollback()
                log.exception(f"Scheduled sync crashed for GMB account {account_id}: {e}")
                results.append({
                    "account_id": account_id,
                    "account_name": account_name,
                    "status": "error",
                    "error": "unexpected_error",
                    "message": str(e),
                })

        return {
            "synced": sum(1 for r in results if r["status"] == "success"),
            "errors": sum(1 for r in results if r["status"] == "error"),
            "results": results,
            "schedule": {"hour": now.hour, "day_of_week": now.weekday()},
        }
