"""
Account lifecycle and schedule-driven sync tests
"""
from datetime import datetime, timedelta

import pytest

from gmb_hub.errors import AccountNotFoundError, InvalidGrantError
from gmb_hub.services.account_service import AccountService, is_sync_due, sync_schedule
from gmb_hub.services.gmb_sync_service import SyncOutcome

MONDAY_MIDNIGHT = datetime(2026, 10, 12, 0, 5)
TUESDAY_9AM = datetime(2026, 10, 13, 9, 5)
TUESDAY_NOON = datetime(2026, 10, 13, 12, 5)


@pytest.mark.parametrize("schedule, now, due", [
    ("daily", MONDAY_MIDNIGHT, True),
    ("daily", TUESDAY_9AM, False),
    ("twice-daily", TUESDAY_9AM, True),
    ("twice-daily", datetime(2026, 10, 13, 18, 0), True),
    ("twice-daily", TUESDAY_NOON, False),
    ("weekly", MONDAY_MIDNIGHT, True),
    ("weekly", datetime(2026, 10, 13, 0, 5), False),
    ("hourly", TUESDAY_NOON, True),
    ("manual", MONDAY_MIDNIGHT, False),
])
def test_is_sync_due(schedule, now, due):
    assert is_sync_due(schedule, now) is due


def test_hourly_skips_recent_sync():
    assert is_sync_due("hourly", TUESDAY_NOON, last_sync=TUESDAY_NOON - timedelta(minutes=29)) is False
    assert is_sync_due("hourly", TUESDAY_NOON, last_sync=TUESDAY_NOON - timedelta(minutes=31)) is True


def test_unknown_schedule_means_manual(make_account):
    assert sync_schedule(make_account(settings={"syncSchedule": "every-minute"})) == "manual"
    assert sync_schedule(make_account(account_id="accounts/2", settings=None)) == "manual"
    assert sync_schedule(make_account(account_id="accounts/3", settings={"sync_schedule": "weekly"})) == "weekly"


def test_accounts_due_for_sync(db, make_account):
    daily = make_account(account_id="accounts/1")
    make_account(account_id="accounts/2", settings={"syncSchedule": "twice-daily"})
    make_account(account_id="accounts/3", is_active=False)
    hourly_recent = make_account(account_id="accounts/4", settings={"syncSchedule": "hourly"},
                                 last_sync=MONDAY_MIDNIGHT - timedelta(minutes=10))
    hourly_old = make_account(account_id="accounts/5", settings={"syncSchedule": "hourly"},
                              last_sync=MONDAY_MIDNIGHT - timedelta(hours=2))

    due = AccountService(db).accounts_due_for_sync(MONDAY_MIDNIGHT)

    assert {a.id for a in due} == {daily.id, hourly_old.id}
    assert hourly_recent.id not in {a.id for a in due}


# ---------------------------------------------------------------------------
# Disconnect
# ---------------------------------------------------------------------------

def test_disconnect_clears_tokens_and_keeps_row(db, account):
    AccountService(db).disconnect(account.id, user_id="user-1")

    db.refresh(account)
    assert account.is_active is False
    assert account.access_token is None
    assert account.refresh_token is None
    assert account.token_expires_at is None
    assert account.disconnected_at is not None


def test_disconnect_other_users_account(db, account):
    with pytest.raises(AccountNotFoundError):
        AccountService(db).disconnect(account.id, user_id="user-2")


def test_disconnected_account_is_never_due(db, account):
    AccountService(db).disconnect(account.id)
    assert AccountService(db).accounts_due_for_sync(MONDAY_MIDNIGHT) == []


# ---------------------------------------------------------------------------
# run_scheduled_sync
# ---------------------------------------------------------------------------

class FakeSyncService:
    def __init__(self, failures=None):
        self.failures = failures or {}
        self.synced = []

    async def sync_account(self, account_id, sync_type="full"):
        self.synced.append((account_id, sync_type))
        if account_id in self.failures:
            raise self.failures[account_id]
        outcome = SyncOutcome(account_id=account_id, sync_type=sync_type)
        outcome.add("reviews", 3)
        return outcome


@pytest.mark.asyncio
async def test_run_scheduled_sync_isolates_failures(db, make_account):
    ok = make_account(account_id="accounts/1")
    revoked = make_account(account_id="accounts/2")
    broken = make_account(account_id="accounts/3")
    make_account(account_id="accounts/4", settings={"syncSchedule": "manual"})

    fake = FakeSyncService(failures={
        revoked.id: InvalidGrantError(),
        broken.id: RuntimeError("database is locked"),
    })

    result = await AccountService(db).run_scheduled_sync(lambda session: fake, now=MONDAY_MIDNIGHT)

    assert result["synced"] == 1
    assert result["errors"] == 2
    assert result["schedule"] == {"hour": 0, "day_of_week": 0}
    assert {account_id for account_id, _ in fake.synced} == {ok.id, revoked.id, broken.id}
    assert {sync_type for _, sync_type in fake.synced} == {"full"}

    by_id = {r["account_id"]: r for r in result["results"]}
    assert by_id[ok.id]["status"] == "success"
    assert by_id[ok.id]["counts"]["reviews"] == 3
    assert by_id[revoked.id]["error"] == "invalid_grant"
    assert by_id[broken.id]["error"] == "unexpected_error"


@pytest.mark.asyncio
async def test_run_scheduled_sync_with_nothing_due(db, account):
    fake = FakeSyncService()
    result = await AccountService(db).run_scheduled_sync(lambda session: fake, now=TUESDAY_NOON)
    assert result["synced"] == 0
    assert result["results"] == []
    assert fake.synced == []
