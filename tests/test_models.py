"""Table-level checks on the SQLModel metadata."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import DateTime
from sqlmodel import SQLModel

import customsdesk.models  # noqa: F401
from customsdesk.models.base import utcnow
from customsdesk.services import quota


def _datetime_columns():
    for table in SQLModel.metadata.sorted_tables:
        for column in table.columns:
            try:
                python_type = column.type.python_type
            except NotImplementedError:
                continue
            if python_type is datetime:
                yield f"{table.name}.{column.name}", column.type


def test_timestamps_are_naive_datetime_columns():
    columns = dict(_datetime_columns())
    assert {
        "usage_tracking.last_updated",
        "agency_agreements.start_date",
        "agency_agreements.end_date",
        "broker_subscriptions.end_date",
        "companies.created_at",
        "customs_transactions.updated_at",
    } <= set(columns)
    for name, column_type in columns.items():
        # A timezone-aware decorator would reject the naive values utcnow() produces
        assert type(column_type) is DateTime, name
        assert column_type.timezone is False, name


@pytest.mark.asyncio
async def test_naive_timestamps_round_trip(session, make_broker):
    broker_id = await make_broker("Clockwork Customs")
    subscription, _plan = await quota.get_active_subscription(session, broker_id)
    end = utcnow() + timedelta(days=30)
    subscription.end_date = end
    session.add(subscription)
    await session.commit()

    await session.refresh(subscription)
    assert subscription.end_date == end
    assert subscription.end_date.tzinfo is None
    assert subscription.created_at.tzinfo is None
