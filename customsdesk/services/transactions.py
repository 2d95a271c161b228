"""Customs transaction authorization & lifecycle.

PENDING -> COMPLETED, PENDING -> CANCELLED. ``change_status`` overwrites the
status directly but never returns a transaction to PENDING once it has left.
Business fields are editable only while PENDING.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from customsdesk.core.database import unit_of_work
from customsdesk.core.errors import (
    AgreementRequired,
    Conflict,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from customsdesk.models.company import Company
from customsdesk.models.transaction import (
    BrokerTransactionStats,
    CustomsTransaction,
    TransactionCreate,
    TransactionStatus,
    TransactionUpdate,
)
from customsdesk.models.user import Role
from customsdesk.services.access import Operation, require, require_visible
from customsdesk.services.agreements import has_active_agreement
from customsdesk.services.hierarchy import Principal

logger = logging.getLogger(__name__)

_DUPLICATE_FILE_NO = "A transaction with this file number already exists"


async def _file_no_taken(
    session: AsyncSession, file_no: str, exclude_id: uuid.UUID | None = None
) -> bool:
    stmt = select(CustomsTransaction.id).where(CustomsTransaction.file_no == file_no)
    if exclude_id is not None:
        stmt = stmt.where(CustomsTransaction.id != exclude_id)
    return (await session.execute(stmt)).first() is not None


async def _load_for(
    session: AsyncSession, principal: Principal, txn_id: uuid.UUID, operation: Operation
) -> CustomsTransaction:
    txn = await session.get(CustomsTransaction, txn_id)
    if txn is None:
        raise NotFound("Transaction not found")
    require_visible(principal, Operation.TRANSACTION_VIEW, txn, "Transaction not found")
    if operation != Operation.TRANSACTION_VIEW:
        require(principal, operation, txn)
    return txn


def _stamp(txn: CustomsTransaction, principal: Principal) -> None:
    txn.calculate_processing_time()
    txn.last_modified_by = principal.email
    txn.touch()


# ── Create ───────────────────────────────────────────────────

async def create_transaction(
    session: AsyncSession, principal: Principal, data: TransactionCreate
) -> CustomsTransaction:
    """Create a PENDING transaction.

    Preconditions are checked in a fixed order and the first failure wins:
    unused file number, existing broker and client of the right kinds, both
    still active, an ACTIVE agreement between them, and finally the caller's
    permission.
    """
    async with unit_of_work(session, conflict_detail=_DUPLICATE_FILE_NO):
        if await _file_no_taken(session, data.file_no):
            raise Conflict(_DUPLICATE_FILE_NO)

        broker = await session.get(Company, data.broker_company_id)
        if broker is None:
            raise NotFound("Broker company not found")
        client = await session.get(Company, data.client_company_id)
        if client is None:
            raise NotFound("Client company not found")
        if not broker.is_broker:
            raise ValidationError("Transaction broker must be a customs broker")
        if not client.is_client:
            raise ValidationError("Transaction client must be a client company")
        if not broker.is_active or not client.is_active:
            raise ValidationError("Transactions require an active broker and an active client")

        if not await has_active_agreement(session, broker.id, client.id):
            raise AgreementRequired(
                "No active agency agreement between this broker and client"
            )

        require(
            principal,
            Operation.TRANSACTION_CREATE,
            broker.id,
            detail="Not allowed to create transactions for this broker",
        )

        txn = CustomsTransaction(
            **data.model_dump(),
            created_by_id=principal.user_id,
            status=TransactionStatus.PENDING,
        )
        _stamp(txn, principal)
        session.add(txn)

    logger.info("Transaction %s created for broker %s by %s",
                txn.file_no, txn.broker_company_id, principal.email)
    return txn


# ── Update ───────────────────────────────────────────────────

async def update_transaction(
    session: AsyncSession, principal: Principal, txn_id: uuid.UUID, data: TransactionUpdate
) -> CustomsTransaction:
    async with unit_of_work(session, conflict_detail=_DUPLICATE_FILE_NO):
        txn = await _load_for(session, principal, txn_id, Operation.TRANSACTION_UPDATE)
        if txn.status != TransactionStatus.PENDING:
            raise InvalidStateTransition(f"Only pending transactions can be edited (is {txn.status})")

        changes = data.model_dump(exclude_unset=True)
        new_file_no = changes.get("file_no")
        if new_file_no is None:
            changes.pop("file_no", None)
        elif new_file_no != txn.file_no and await _file_no_taken(session, new_file_no, txn.id):
            raise Conflict(_DUPLICATE_FILE_NO)

        for field, value in changes.items():
            setattr(txn, field, value)
        _stamp(txn, principal)
        session.add(txn)

    logger.info("Transaction %s updated by %s", txn.file_no, principal.email)
    return txn


async def change_status(
    session: AsyncSession,
    principal: Principal,
    txn_id: uuid.UUID,
    status: TransactionStatus,
    reason: str | None = None,
) -> CustomsTransaction:
    """Overwrite a transaction's status. Leaving PENDING is one-way."""
    async with unit_of_work(session):
        txn = await _load_for(session, principal, txn_id, Operation.TRANSACTION_CHANGE_STATUS)
        if status == TransactionStatus.PENDING and txn.status != TransactionStatus.PENDING:
            raise InvalidStateTransition("A transaction cannot return to PENDING")

        previous = txn.status
        txn.status = status
        if reason:
            txn.delay_reason = reason
        _stamp(txn, principal)
        session.add(txn)

    logger.info("Transaction %s status %s -> %s by %s",
                txn.file_no, previous, status, principal.email)
    return txn


async def _finish(
    session: AsyncSession,
    principal: Principal,
    txn_id: uuid.UUID,
    status: TransactionStatus,
    reason: str | None = None,
) -> CustomsTransaction:
    async with unit_of_work(session):
        txn = await _load_for(session, principal, txn_id, Operation.TRANSACTION_CHANGE_STATUS)
        if txn.status != TransactionStatus.PENDING:
            raise InvalidStateTransition(
                f"Only pending transactions can become {status} (is {txn.status})"
            )
        txn.status = status
        if reason is not None:
            txn.delay_reason = reason
        _stamp(txn, principal)
        session.add(txn)

    logger.info("Transaction %s %s by %s", txn.file_no, status.lower(), principal.email)
    return txn


async def complete_transaction(
    session: AsyncSession, principal: Principal, txn_id: uuid.UUID
) -> CustomsTransaction:
    return await _finish(session, principal, txn_id, TransactionStatus.COMPLETED)


async def cancel_transaction(
    session: AsyncSession, principal: Principal, txn_id: uuid.UUID, reason: str = ""
) -> CustomsTransaction:
    """Cancel a pending transaction; the reason is kept as its delay reason."""
    return await _finish(session, principal, txn_id, TransactionStatus.CANCELLED, reason)


async def delete_transaction(
    session: AsyncSession, principal: Principal, txn_id: uuid.UUID
) -> None:
    async with unit_of_work(session):
        txn = await _load_for(session, principal, txn_id, Operation.TRANSACTION_DELETE)
        file_no = txn.file_no
        await session.delete(txn)
    logger.info("Transaction %s deleted by %s", file_no, principal.email)


# ── Read ─────────────────────────────────────────────────────

async def get_transaction(
    session: AsyncSession, principal: Principal, txn_id: uuid.UUID
) -> CustomsTransaction:
    return await _load_for(session, principal, txn_id, Operation.TRANSACTION_VIEW)


async def get_transaction_by_file_no(
    session: AsyncSession, principal: Principal, file_no: str
) -> CustomsTransaction:
    stmt = select(CustomsTransaction.id).where(CustomsTransaction.file_no == file_no)
    txn_id = (await session.execute(stmt)).scalar_one_or_none()
    if txn_id is None:
        raise NotFound("Transaction not found")
    return await _load_for(session, principal, txn_id, Operation.TRANSACTION_VIEW)


def _visible_to(principal: Principal):
    """Base query narrowed to the transactions the principal may see."""
    stmt = select(CustomsTransaction)
    if principal.role in (Role.BROKER_ADMIN, Role.BROKER_USER):
        stmt = stmt.where(CustomsTransaction.broker_company_id == principal.broker_id)
    elif principal.role == Role.CLIENT_USER:
        stmt = stmt.where(CustomsTransaction.client_company_id == principal.company_id)
    return stmt


async def _newest_first(session: AsyncSession, stmt, limit: int | None = None):
    stmt = stmt.order_by(CustomsTransaction.created_at.desc())  # type: ignore[attr-defined]
    if limit is not None:
        stmt = stmt.limit(limit)
    return list((await session.execute(stmt)).scalars().all())


async def list_transactions(
    session: AsyncSession,
    principal: Principal,
    client_id: uuid.UUID | None = None,
    status: TransactionStatus | None = None,
) -> list[CustomsTransaction]:
    stmt = _visible_to(principal)
    if client_id is not None:
        stmt = stmt.where(CustomsTransaction.client_company_id == client_id)
    if status is not None:
        stmt = stmt.where(CustomsTransaction.status == status)
    return await _newest_first(session, stmt)


async def list_delayed(session: AsyncSession, principal: Principal) -> list[CustomsTransaction]:
    """Visible transactions carrying a non-empty delay reason."""
    stmt = _visible_to(principal).where(
        CustomsTransaction.delay_reason.is_not(None),  # type: ignore[union-attr]
        CustomsTransaction.delay_reason != "",
    )
    return await _newest_first(session, stmt)


async def list_registered_between(
    session: AsyncSession, principal: Principal, start: date, end: date
) -> list[CustomsTransaction]:
    """Visible transactions whose registration date falls in ``[start, end]``."""
    if end < start:
        raise ValidationError("End date must not be before start date")
    stmt = _visible_to(principal).where(
        CustomsTransaction.registration_date >= start,  # type: ignore[operator]
        CustomsTransaction.registration_date <= end,  # type: ignore[operator]
    )
    return await _newest_first(session, stmt)


async def list_recent(
    session: AsyncSession, principal: Principal, limit: int = 10
) -> list[CustomsTransaction]:
    return await _newest_first(session, _visible_to(principal), limit=limit)


# ── Stats ────────────────────────────────────────────────────

async def broker_stats(
    session: AsyncSession, principal: Principal, broker_id: uuid.UUID
) -> BrokerTransactionStats:
    broker = await session.get(Company, broker_id)
    if broker is None or not broker.is_broker:
        raise NotFound("Broker company not found")
    require(principal, Operation.TRANSACTION_STATS, broker_id,
            detail="Not allowed to view this broker's transaction stats")

    stmt = (
        select(CustomsTransaction.status, func.count())
        .where(CustomsTransaction.broker_company_id == broker_id)
        .group_by(CustomsTransaction.status)
    )
    by_status = {TransactionStatus(s): n for s, n in (await session.execute(stmt)).all()}
    total = sum(by_status.values())
    completed = by_status.get(TransactionStatus.COMPLETED, 0)
    return BrokerTransactionStats(
        broker_company_id=broker_id,
        total_transactions=total,
        completed_transactions=completed,
        pending_transactions=by_status.get(TransactionStatus.PENDING, 0),
        cancelled_transactions=by_status.get(TransactionStatus.CANCELLED, 0),
        completion_rate=round(completed * 100.0 / total, 2) if total else 0.0,
    )
