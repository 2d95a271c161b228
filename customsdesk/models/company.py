"""Company model — a broker (tenant root) or one of its clients."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel

from customsdesk.models.base import TimestampMixin, new_uuid


class CompanyType(StrEnum):
    CUSTOMS_BROKER = "CUSTOMS_BROKER"
    CLIENT = "CLIENT"


class Company(TimestampMixin, SQLModel, table=True):
    __tablename__ = "companies"
    __table_args__ = (
        # A broker is a root; a client always hangs off exactly one broker.
        CheckConstraint(
            "(company_type = 'CUSTOMS_BROKER' AND parent_broker_id IS NULL) OR "
            "(company_type = 'CLIENT' AND parent_broker_id IS NOT NULL)",
            name="ck_companies_hierarchy",
        ),
    )

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    name: str = Field(max_length=255, unique=True, nullable=False)
    description: str = Field(default="", max_length=500)
    company_type: CompanyType = Field(nullable=False, index=True)
    parent_broker_id: uuid.UUID | None = Field(
        default=None, foreign_key="companies.id", nullable=True, index=True,
    )
    is_active: bool = Field(default=True)

    @property
    def is_broker(self) -> bool:
        return self.company_type == CompanyType.CUSTOMS_BROKER

    @property
    def is_client(self) -> bool:
        return self.company_type == CompanyType.CLIENT


# ── Pydantic schemas ─────────────────────────────────────────

class BrokerCompanyCreate(SQLModel):
    """Broker onboarding: the company plus its first subscription."""
    name: str = Field(max_length=255)
    description: str = Field(default="", max_length=500)
    plan_id: uuid.UUID
    subscription_end: datetime | None = None
    custom_max_staff: int | None = Field(default=None, ge=0)
    custom_max_clients: int | None = Field(default=None, ge=0)


class ClientCompanyCreate(SQLModel):
    name: str = Field(max_length=255)
    description: str = Field(default="", max_length=500)
    parent_broker_id: uuid.UUID


class CompanyUpdate(SQLModel):
    name: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=500)


class CompanyRead(SQLModel):
    id: uuid.UUID
    name: str
    description: str
    company_type: CompanyType
    parent_broker_id: uuid.UUID | None
    is_active: bool
    created_at: datetime
