import os

os.environ.setdefault("DB_BACKEND", "sqlite")

import pytest

import server
from memgraph.errors import NotFoundError, ValidationIssue
from memgraph.models import Tier
from memgraph.services import accounts, subscriptions


def test_create_account_with_subscription(server_db):
    account = accounts.create_account("owner@example.com", name="Owner", tier=Tier.HOBBY)
    assert account["email"] == "owner@example.com"
    assert account["tier"] == "HOBBY"
    assert account["deleted_at"] is None
    assert subscriptions.get_tier(account["id"]) == Tier.HOBBY


def test_duplicate_email_is_rejected(server_db):
    accounts.create_account("dup@example.com")
    with pytest.raises(ValidationIssue) as exc:
        accounts.create_account("dup@example.com")
    assert exc.value.error_type == "duplicate"

    with pytest.raises(ValidationIssue) as exc:
        accounts.create_account("other@example.com", tier="PLATINUM")
    assert exc.value.error_type == "invalid_choice"


def test_set_tier_and_soft_delete(tenant):
    updated = accounts.set_tier(tenant["owner_id"], Tier.ENTERPRISE)
    assert updated["tier"] == "ENTERPRISE"
    assert subscriptions.is_enterprise_by_api_key(tenant["api_key_id"]) is True

    accounts.soft_delete_account(tenant["owner_id"])
    with pytest.raises(NotFoundError):
        accounts.soft_delete_account(tenant["owner_id"])
    with pytest.raises(NotFoundError):
        accounts.set_tier("missing", Tier.FREE)


def test_cli_create_account_prints_key(server_db, monkeypatch, capsys):
    monkeypatch.setattr(server, "init_db", lambda: None)
    server.main(["create-account", "cli@example.com", "--tier", "HOBBY", "--key-name", "ops"])
    output = capsys.readouterr().out
    assert '"email": "cli@example.com"' in output
    assert '"name": "ops"' in output
    assert '"key": "mk_' in output
