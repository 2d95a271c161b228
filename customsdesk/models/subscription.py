"""Subscription plans, broker subscriptions and the per-broker usage counter."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Column, Index, Text, text
from sqlmodel import Field, SQLModel

from customsdesk.models.base import TimestampMixin, naive_timestamp, new_uuid, utcnow


class SubscriptionPlan(TimestampMixin, SQLModel, table=True):
    __tablename__ = "subscription_plans"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    name: str = Field(max_length=100, nullable=False)
    description: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))

    # Hard caps enforced by the quota tracker
    max_staff: int = Field(default=5, ge=0, nullable=False)
    max_clients: int = Field(default=20, ge=0, nullable=False)

    monthly_price: Decimal | None = Field(default=None, max_digits=10, decimal_places=2)
    yearly_price: Decimal | None = Field(default=None, max_digits=10, decimal_places=2)

    # JSON array, e.g. ["Excel Import", "Email Notifications"]
    features: str = Field(default="[]", sa_column=Column(Text, nullable=False, server_default="[]"))

    is_active: bool = Field(default=True)


class BrokerSubscription(TimestampMixin, SQLModel, table=True):
    __tablename__ = "broker_subscriptions"
    __table_args__ = (
        Index(
            "uq_broker_subscriptions_one_active",
            "broker_company_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    broker_company_id: uuid.UUID = Field(foreign_key="companies.id", nullable=False, index=True)
    plan_id: uuid.UUID = Field(foreign_key="subscription_plans.id", nullable=False, index=True)

    start_date: datetime = naive_timestamp(default_factory=utcnow, nullable=False)
    end_date: datetime | None = naive_timestamp(default=None)
    is_active: bool = Field(default=True)

    # Per-broker overrides; NULL means "use the plan's cap"
    custom_max_staff: int | None = Field(default=None, ge=0)
    custom_max_clients: int | None = Field(default=None, ge=0)

    notes: str | None = Field(default=None, sa_column=Column(Text))
    created_by_id: uuid.UUID | None = Field(default=None, foreign_key="users.id")

    def is_current(self, now: datetime) -> bool:
        return self.is_active and (self.end_date is None or self.end_date > now)

    def effective_max_staff(self, plan: SubscriptionPlan) -> int:
        return self.custom_max_staff if self.custom_max_staff is not None else plan.max_staff

    def effective_max_clients(self, plan: SubscriptionPlan) -> int:
        return self.custom_max_clients if self.custom_max_clients is not None else plan.max_clients

    def days_until_expiry(self, now: datetime) -> int:
        """Whole days left; -1 for an open-ended subscription."""
        if self.end_date is None:
            return -1
        return (self.end_date - now).days


class UsageTracking(SQLModel, table=True):
    """Live staff / client counters for one broker.

    Only the quota tracker writes to this table.
    """

    __tablename__ = "usage_tracking"
    __table_args__ = (
        CheckConstraint("current_staff >= 0", name="ck_usage_staff_non_negative"),
        CheckConstraint("current_clients >= 0", name="ck_usage_clients_non_negative"),
    )

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    broker_company_id: uuid.UUID = Field(
        foreign_key="companies.id", nullable=False, unique=True, index=True,
    )
    current_staff: int = Field(default=0, nullable=False)
    current_clients: int = Field(default=0, nullable=False)
    last_updated: datetime = naive_timestamp(default_factory=utcnow, nullable=False)


# ── Pydantic schemas ─────────────────────────────────────────

class SubscriptionPlanCreate(SQLModel):
    name: str = Field(max_length=100)
    description: str = ""
    max_staff: int = Field(default=5, ge=0)
    max_clients: int = Field(default=20, ge=0)
    monthly_price: Decimal | None = None
    yearly_price: Decimal | None = None
    features: list[str] = Field(default_factory=list)


class SubscriptionPlanUpdate(SQLModel):
    name: str | None = Field(default=None, max_length=100)
    description: str | None = None
    max_staff: int | None = Field(default=None, ge=0)
    max_clients: int | None = Field(default=None, ge=0)
    monthly_price: Decimal | None = None
    yearly_price: Decimal | None = None
    features: list[str] | None = None
    is_active: bool | None = None


class SubscriptionPlanRead(SQLModel):
    id: uuid.UUID
    name: str
    description: str
    max_staff: int
    max_clients: int
    monthly_price: Decimal | None
    yearly_price: Decimal | None
    features: list[str]
    is_active: bool


class BrokerSubscriptionCreate(SQLModel):
    plan_id: uuid.UUID
    start_date: datetime | None = None
    end_date: datetime | None = None
    custom_max_staff: int | None = Field(default=None, ge=0)
    custom_max_clients: int | None = Field(default=None, ge=0)
    notes: str | None = None


class BrokerSubscriptionUpdate(SQLModel):
    end_date: datetime | None = None
    custom_max_staff: int | None = Field(default=None, ge=0)
    custom_max_clients: int | None = Field(default=None, ge=0)
    notes: str | None = None


class BrokerSubscriptionRead(SQLModel):
    id: uuid.UUID
    broker_company_id: uuid.UUID
    plan_id: uuid.UUID
    start_date: datetime
    end_date: datetime | None
    is_active: bool
    custom_max_staff: int | None
    custom_max_clients: int | None
    notes: str | None


class QuotaSnapshot(SQLModel):
    broker_company_id: uuid.UUID
    max_staff: int
    current_staff: int
    max_clients: int
    current_clients: int
    remaining_staff: int
    remaining_clients: int
    days_until_expiry: int
