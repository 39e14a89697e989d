"""
Usage event recording, keyed by billing period.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import func

import memgraph.config as config
from memgraph.db import DB
from memgraph.models import UsageRecord, UsageType, utcnow
from memgraph.services.subscriptions import owner_for_api_key

logger = config.logger


def billing_period(now: Optional[datetime] = None) -> str:
    return (now or utcnow()).strftime("%Y-%m")


def _usage_to_dict(record: UsageRecord) -> dict:
    return {
        "id": record.id,
        "user_id": record.user_id,
        "api_key_id": record.api_key_id,
        "type": record.type,
        "quantity": record.quantity,
        "billing_period": record.billing_period,
    }


def record_usage_in(
    db,
    owner_id: str,
    usage_type: UsageType,
    quantity: int = 1,
    api_key_id: Optional[str] = None,
) -> UsageRecord:
    record = UsageRecord(
        user_id=owner_id,
        api_key_id=api_key_id,
        type=UsageType(usage_type).value,
        quantity=quantity,
        billing_period=billing_period(),
    )
    db.add(record)
    return record


def record_usage(
    owner_id: str,
    usage_type: UsageType,
    quantity: int = 1,
    api_key_id: Optional[str] = None,
) -> dict:
    db = DB.SessionLocal()
    try:
        record = record_usage_in(db, owner_id, usage_type, quantity, api_key_id)
        db.commit()
        return _usage_to_dict(record)
    finally:
        db.close()


def record_usage_by_api_key(
    api_key_id: str,
    usage_type: UsageType,
    quantity: int = 1,
) -> Optional[dict]:
    db = DB.SessionLocal()
    try:
        owner_id = owner_for_api_key(db, api_key_id)
        if owner_id is None:
            logger.warning("usage_unknown_api_key", extra={"api_key_id": api_key_id})
            return None
        record = record_usage_in(db, owner_id, usage_type, quantity, api_key_id)
        db.commit()
        return _usage_to_dict(record)
    finally:
        db.close()


def get_usage_summary(owner_id: str, period: Optional[str] = None) -> dict:
    period = period or billing_period()
    db = DB.SessionLocal()
    try:
        rows = (
            db.query(UsageRecord.type, func.sum(UsageRecord.quantity))
            .filter(UsageRecord.user_id == owner_id, UsageRecord.billing_period == period)
            .group_by(UsageRecord.type)
            .all()
        )
        totals = {usage_type.value: 0 for usage_type in UsageType}
        for usage_type, quantity in rows:
            totals[usage_type] = int(quantity or 0)
        return {"billing_period": period, "totals": totals}
    finally:
        db.close()
