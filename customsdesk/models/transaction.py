"""CustomsTransaction model — a customs work item owned by a broker and a client."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from sqlmodel import Field, SQLModel

from customsdesk.models.base import TimestampMixin, new_uuid


class TransactionStatus(StrEnum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class CustomsTransaction(TimestampMixin, SQLModel, table=True):
    __tablename__ = "customs_transactions"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    broker_company_id: uuid.UUID = Field(foreign_key="companies.id", nullable=False, index=True)
    client_company_id: uuid.UUID = Field(foreign_key="companies.id", nullable=False, index=True)
    created_by_id: uuid.UUID | None = Field(default=None, foreign_key="users.id", index=True)

    file_no: str = Field(max_length=100, unique=True, nullable=False, index=True)
    recipient_name: str | None = Field(default=None, max_length=255)
    customs_warehouse: str | None = Field(default=None, max_length=255)
    gate: str | None = Field(default=None, max_length=50)
    weight: Decimal | None = Field(default=None, max_digits=12, decimal_places=2)
    tax: Decimal | None = Field(default=None, max_digits=15, decimal_places=2)
    sender_name: str | None = Field(default=None, max_length=255)
    warehouse_arrival_date: date | None = None
    registration_date: date | None = None
    declaration_number: str | None = Field(default=None, max_length=100)
    line_closure_date: date | None = None
    import_processing_time: int | None = None
    withdrawal_date: date | None = None
    description: str | None = Field(default=None, max_length=500)

    # Days from registration to withdrawal, derived on every save
    total_processing_time: int | None = None
    delay_reason: str | None = Field(default=None, max_length=500)

    status: TransactionStatus = Field(default=TransactionStatus.PENDING, index=True)
    last_modified_by: str | None = Field(default=None, max_length=255)

    def calculate_processing_time(self) -> None:
        if self.registration_date is not None and self.withdrawal_date is not None:
            self.total_processing_time = (self.withdrawal_date - self.registration_date).days

    @property
    def has_delay(self) -> bool:
        return bool(self.delay_reason)


# ── Pydantic schemas ─────────────────────────────────────────

class TransactionFields(SQLModel):
    """Editable business fields shared by create and update payloads."""
    recipient_name: str | None = Field(default=None, max_length=255)
    customs_warehouse: str | None = Field(default=None, max_length=255)
    gate: str | None = Field(default=None, max_length=50)
    weight: Decimal | None = None
    tax: Decimal | None = None
    sender_name: str | None = Field(default=None, max_length=255)
    warehouse_arrival_date: date | None = None
    registration_date: date | None = None
    declaration_number: str | None = Field(default=None, max_length=100)
    line_closure_date: date | None = None
    import_processing_time: int | None = None
    withdrawal_date: date | None = None
    description: str | None = Field(default=None, max_length=500)
    delay_reason: str | None = Field(default=None, max_length=500)


class TransactionCreate(TransactionFields):
    broker_company_id: uuid.UUID
    client_company_id: uuid.UUID
    file_no: str = Field(min_length=1, max_length=100)


class TransactionUpdate(TransactionFields):
    file_no: str | None = Field(default=None, min_length=1, max_length=100)


class TransactionStatusChange(SQLModel):
    status: TransactionStatus
    reason: str | None = Field(default=None, max_length=500)


class TransactionCancel(SQLModel):
    reason: str = Field(default="", max_length=500)


class TransactionRead(TransactionFields):
    id: uuid.UUID
    broker_company_id: uuid.UUID
    client_company_id: uuid.UUID
    file_no: str
    total_processing_time: int | None
    status: TransactionStatus
    last_modified_by: str | None
    created_at: datetime
    updated_at: datetime


class BrokerTransactionStats(SQLModel):
    broker_company_id: uuid.UUID
    total_transactions: int
    completed_transactions: int
    pending_transactions: int
    cancelled_transactions: int
    # Percentage of all transactions that are COMPLETED, 0.0 when there are none
    completion_rate: float
