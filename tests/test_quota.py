import os

os.environ.setdefault("DB_BACKEND", "sqlite")

from datetime import datetime, timezone

from memgraph.models import Quota, Tier
from memgraph.services import quota as quota_service
from memgraph.services import subscriptions
from memgraph.services.quota import first_day_of_next_month


def _limit_api_calls(monkeypatch, limit):
    monkeypatch.setitem(
        subscriptions.TIER_LIMITS,
        Tier.FREE,
        subscriptions.TierLimits(memory_limit=10_000, monthly_api_limit=limit),
    )


def test_first_day_of_next_month():
    assert first_day_of_next_month(datetime(2024, 1, 15, tzinfo=timezone.utc)) == datetime(
        2024, 2, 1, tzinfo=timezone.utc
    )
    assert first_day_of_next_month(datetime(2024, 12, 15, tzinfo=timezone.utc)) == datetime(
        2025, 1, 1, tzinfo=timezone.utc
    )


def test_unknown_key_is_rejected(server_db):
    memory_check = quota_service.check_memory_quota("missing")
    api_check = quota_service.check_api_quota("missing")
    assert memory_check.allowed is False
    assert memory_check.reason == "API Key not found"
    assert api_check.reason == "API Key not found"


def test_memory_quota_counts_per_key(tenant):
    check = quota_service.check_memory_quota(tenant["api_key_id"])
    assert check.allowed is True
    assert check.limit == 10_000
    assert check.used == 0


def test_enterprise_is_unlimited(make_tenant, db_session):
    enterprise = make_tenant(tier=Tier.ENTERPRISE)
    assert quota_service.check_memory_quota(enterprise["api_key_id"]).allowed is True
    assert quota_service.check_api_quota(enterprise["api_key_id"]).allowed is True
    assert db_session.query(Quota).count() == 0


def test_api_quota_blocks_once_limit_is_used(tenant, monkeypatch):
    _limit_api_calls(monkeypatch, 2)
    api_key_id = tenant["api_key_id"]

    first = quota_service.check_api_quota(api_key_id)
    assert first.allowed is True
    assert first.used == 0
    quota_service.increment_api_usage_by_api_key(api_key_id)
    assert quota_service.check_api_quota(api_key_id).allowed is True
    quota_service.increment_api_usage_by_api_key(api_key_id)

    blocked = quota_service.check_api_quota(api_key_id)
    assert blocked.allowed is False
    assert blocked.reason == "Monthly API call limit reached"
    assert blocked.limit == 2
    assert blocked.used == 2


def test_increment_creates_then_bumps_counter(tenant, db_session):
    owner_id = tenant["owner_id"]
    now = datetime(2024, 5, 20, tzinfo=timezone.utc)
    quota_service.increment_api_usage(owner_id, now=now)
    quota_service.increment_api_usage(owner_id, now=now)
    quota_service.increment_api_usage_by_api_key("missing")

    rows = db_session.query(Quota).all()
    assert len(rows) == 1
    assert rows[0].monthly_api_used == 2
    assert rows[0].monthly_api_limit == 1_000


def test_quota_status_reports_usage(tenant, embedding_provider):
    from memgraph.services import memories
    from memgraph.services.memories import MemoryInput

    empty = quota_service.get_quota_status(tenant["owner_id"])
    assert empty["tier"] == "FREE"
    assert empty["usage"] == {"memories": 0, "api_calls": 0}
    assert empty["period_end_at"] is None

    memories.create(tenant["api_key_id"], MemoryInput(user_id="end-user-1", content="coffee"))
    quota_service.increment_api_usage(tenant["owner_id"], now=datetime(2024, 5, 20, tzinfo=timezone.utc))
    status = quota_service.get_quota_status(tenant["owner_id"])
    assert status["limits"] == {"memories": 10_000, "monthly_api_calls": 1_000}
    assert status["usage"] == {"memories": 1, "api_calls": 1}
    assert status["period_end_at"] == "2024-06-01T00:00:00+00:00"


def test_reset_monthly_quota(tenant):
    owner_id = tenant["owner_id"]
    assert quota_service.reset_monthly_quota(owner_id) is None

    quota_service.increment_api_usage(owner_id)
    reset = quota_service.reset_monthly_quota(owner_id, now=datetime(2024, 12, 15, tzinfo=timezone.utc))
    assert reset["monthly_api_used"] == 0
    assert reset["period_start_at"] == "2024-12-15T00:00:00+00:00"
    assert reset["period_end_at"] == "2025-01-01T00:00:00+00:00"


def test_ensure_quota_exists_is_idempotent(tenant, db_session):
    first = quota_service.ensure_quota_exists(tenant["owner_id"])
    second = quota_service.ensure_quota_exists(tenant["owner_id"])
    assert first["monthly_api_used"] == 0
    assert second["user_id"] == first["user_id"]
    assert db_session.query(Quota).count() == 1
