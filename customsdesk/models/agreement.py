"""AgencyAgreement model — authorises a broker to transact for a client."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

from customsdesk.models.base import TimestampMixin, naive_timestamp, new_uuid, utcnow


class AgreementStatus(StrEnum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    TERMINATED = "TERMINATED"


class AgencyAgreement(TimestampMixin, SQLModel, table=True):
    __tablename__ = "agency_agreements"
    __table_args__ = (
        # At most one ACTIVE agreement per broker/client pair
        Index(
            "uq_agency_agreements_active_pair",
            "broker_company_id",
            "client_company_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    agreement_number: str = Field(max_length=100, unique=True, nullable=False, index=True)

    broker_company_id: uuid.UUID = Field(foreign_key="companies.id", nullable=False, index=True)
    client_company_id: uuid.UUID = Field(foreign_key="companies.id", nullable=False, index=True)
    created_by_id: uuid.UUID | None = Field(default=None, foreign_key="users.id")

    status: AgreementStatus = Field(default=AgreementStatus.ACTIVE, index=True)
    start_date: datetime = naive_timestamp(default_factory=utcnow, nullable=False)
    end_date: datetime | None = naive_timestamp(default=None)

    # Last suspension / termination reason
    notes: str | None = Field(default=None, max_length=500)

    def is_expired(self, now: datetime) -> bool:
        return self.end_date is not None and now > self.end_date


# ── Pydantic schemas ─────────────────────────────────────────

class AgreementCreate(SQLModel):
    broker_company_id: uuid.UUID
    client_company_id: uuid.UUID
    start_date: datetime | None = None
    end_date: datetime | None = None
    notes: str | None = Field(default=None, max_length=500)


class AgreementReason(SQLModel):
    reason: str = Field(default="", max_length=500)


class AgreementRead(SQLModel):
    id: uuid.UUID
    agreement_number: str
    broker_company_id: uuid.UUID
    client_company_id: uuid.UUID
    status: AgreementStatus
    start_date: datetime
    end_date: datetime | None
    notes: str | None
    created_at: datetime
    updated_at: datetime


class BrokerAgreementStats(SQLModel):
    broker_company_id: uuid.UUID
    total_agreements: int
    active_agreements: int
    inactive_agreements: int
    # Distinct clients this broker currently holds an ACTIVE agreement with
    active_client_count: int


class ClientAgreementStats(SQLModel):
    client_company_id: uuid.UUID
    total_agreements: int
    active_agreements: int
    active_broker_count: int
