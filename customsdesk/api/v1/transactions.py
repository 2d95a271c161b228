"""Customs transactions — gated by an active agency agreement."""

import uuid
from datetime import date

from fastapi import APIRouter, Query, status

from customsdesk.api.deps import Auth, Session
from customsdesk.models.transaction import (
    BrokerTransactionStats,
    CustomsTransaction,
    TransactionCancel,
    TransactionCreate,
    TransactionRead,
    TransactionStatus,
    TransactionStatusChange,
    TransactionUpdate,
)
from customsdesk.services import transactions as transaction_service

router = APIRouter(prefix="/transactions", tags=["transactions"])


def _to_read(txn: CustomsTransaction) -> TransactionRead:
    return TransactionRead.model_validate(txn)


@router.post("", response_model=TransactionRead, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    body: TransactionCreate, auth: Auth, session: Session
) -> TransactionRead:
    txn = await transaction_service.create_transaction(session, auth, body)
    return _to_read(txn)


@router.get("", response_model=list[TransactionRead])
async def list_transactions(
    auth: Auth,
    session: Session,
    client_id: uuid.UUID | None = None,
    status: TransactionStatus | None = None,
) -> list[TransactionRead]:
    txns = await transaction_service.list_transactions(
        session, auth, client_id=client_id, status=status,
    )
    return [_to_read(t) for t in txns]


# Fixed paths are registered before "/{txn_id}" so they are not parsed as ids.

@router.get("/by-file-no/{file_no}", response_model=TransactionRead)
async def get_by_file_no(file_no: str, auth: Auth, session: Session) -> TransactionRead:
    txn = await transaction_service.get_transaction_by_file_no(session, auth, file_no)
    return _to_read(txn)


@router.get("/delayed", response_model=list[TransactionRead])
async def list_delayed(auth: Auth, session: Session) -> list[TransactionRead]:
    """Transactions with a recorded delay reason."""
    return [_to_read(t) for t in await transaction_service.list_delayed(session, auth)]


@router.get("/registered", response_model=list[TransactionRead])
async def list_registered_between(
    start: date, end: date, auth: Auth, session: Session
) -> list[TransactionRead]:
    """Transactions registered between two dates, both inclusive."""
    txns = await transaction_service.list_registered_between(session, auth, start, end)
    return [_to_read(t) for t in txns]


@router.get("/recent", response_model=list[TransactionRead])
async def list_recent(
    auth: Auth, session: Session, limit: int = Query(default=10, ge=1, le=100)
) -> list[TransactionRead]:
    txns = await transaction_service.list_recent(session, auth, limit=limit)
    return [_to_read(t) for t in txns]


@router.get("/stats/broker/{broker_id}", response_model=BrokerTransactionStats)
async def broker_stats(
    broker_id: uuid.UUID, auth: Auth, session: Session
) -> BrokerTransactionStats:
    return await transaction_service.broker_stats(session, auth, broker_id)


@router.get("/{txn_id}", response_model=TransactionRead)
async def get_transaction(txn_id: uuid.UUID, auth: Auth, session: Session) -> TransactionRead:
    txn = await transaction_service.get_transaction(session, auth, txn_id)
    return _to_read(txn)


@router.patch("/{txn_id}", response_model=TransactionRead)
async def update_transaction(
    txn_id: uuid.UUID,
    body: TransactionUpdate,
    auth: Auth,
    session: Session,
) -> TransactionRead:
    """Edit business fields; only while the transaction is PENDING."""
    txn = await transaction_service.update_transaction(session, auth, txn_id, body)
    return _to_read(txn)


@router.post("/{txn_id}/status", response_model=TransactionRead)
async def change_status(
    txn_id: uuid.UUID,
    body: TransactionStatusChange,
    auth: Auth,
    session: Session,
) -> TransactionRead:
    txn = await transaction_service.change_status(
        session, auth, txn_id, body.status, reason=body.reason,
    )
    return _to_read(txn)


@router.post("/{txn_id}/complete", response_model=TransactionRead)
async def complete_transaction(
    txn_id: uuid.UUID, auth: Auth, session: Session
) -> TransactionRead:
    txn = await transaction_service.complete_transaction(session, auth, txn_id)
    return _to_read(txn)


@router.post("/{txn_id}/cancel", response_model=TransactionRead)
async def cancel_transaction(
    txn_id: uuid.UUID,
    body: TransactionCancel,
    auth: Auth,
    session: Session,
) -> TransactionRead:
    txn = await transaction_service.cancel_transaction(session, auth, txn_id, body.reason)
    return _to_read(txn)


@router.delete("/{txn_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transaction(txn_id: uuid.UUID, auth: Auth, session: Session) -> None:
    await transaction_service.delete_transaction(session, auth, txn_id)
