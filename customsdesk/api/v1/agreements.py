"""Agency agreements: lifecycle transitions, lookup by number and per-party stats."""

import uuid

from fastapi import APIRouter, status

from customsdesk.api.deps import Auth, Session
from customsdesk.models.agreement import (
    AgreementCreate,
    AgreementRead,
    AgreementReason,
    AgreementStatus,
    BrokerAgreementStats,
    ClientAgreementStats,
)
from customsdesk.services import agreements as agreement_service

router = APIRouter(prefix="/agreements", tags=["agreements"])


@router.post("", response_model=AgreementRead, status_code=status.HTTP_201_CREATED)
async def create_agreement(body: AgreementCreate, auth: Auth, session: Session) -> AgreementRead:
    agreement = await agreement_service.create_agreement(
        session,
        auth,
        broker_id=body.broker_company_id,
        client_id=body.client_company_id,
        start_date=body.start_date,
        end_date=body.end_date,
        notes=body.notes,
    )
    return AgreementRead.model_validate(agreement)


@router.get("", response_model=list[AgreementRead])
async def list_agreements(
    auth: Auth,
    session: Session,
    broker_id: uuid.UUID | None = None,
    client_id: uuid.UUID | None = None,
    status: AgreementStatus | None = None,
) -> list[AgreementRead]:
    agreements = await agreement_service.list_agreements(
        session, auth, broker_id=broker_id, client_id=client_id, status=status,
    )
    return [AgreementRead.model_validate(a) for a in agreements]


@router.get("/by-number/{agreement_number}", response_model=AgreementRead)
async def get_by_number(agreement_number: str, auth: Auth, session: Session) -> AgreementRead:
    agreement = await agreement_service.get_agreement_by_number(session, auth, agreement_number)
    return AgreementRead.model_validate(agreement)


@router.get("/stats/broker/{broker_id}", response_model=BrokerAgreementStats)
async def broker_stats(
    broker_id: uuid.UUID, auth: Auth, session: Session
) -> BrokerAgreementStats:
    return await agreement_service.broker_agreement_stats(session, auth, broker_id)


@router.get("/stats/client/{client_id}", response_model=ClientAgreementStats)
async def client_stats(
    client_id: uuid.UUID, auth: Auth, session: Session
) -> ClientAgreementStats:
    return await agreement_service.client_agreement_stats(session, auth, client_id)


@router.get("/{agreement_id}", response_model=AgreementRead)
async def get_agreement(agreement_id: uuid.UUID, auth: Auth, session: Session) -> AgreementRead:
    agreement = await agreement_service.get_agreement(session, auth, agreement_id)
    return AgreementRead.model_validate(agreement)


@router.post("/{agreement_id}/suspend", response_model=AgreementRead)
async def suspend_agreement(
    agreement_id: uuid.UUID,
    body: AgreementReason,
    auth: Auth,
    session: Session,
) -> AgreementRead:
    agreement = await agreement_service.suspend_agreement(session, auth, agreement_id, body.reason)
    return AgreementRead.model_validate(agreement)


@router.post("/{agreement_id}/reactivate", response_model=AgreementRead)
async def reactivate_agreement(
    agreement_id: uuid.UUID, auth: Auth, session: Session
) -> AgreementRead:
    agreement = await agreement_service.reactivate_agreement(session, auth, agreement_id)
    return AgreementRead.model_validate(agreement)


@router.post("/{agreement_id}/terminate", response_model=AgreementRead)
async def terminate_agreement(
    agreement_id: uuid.UUID,
    body: AgreementReason,
    auth: Auth,
    session: Session,
) -> AgreementRead:
    agreement = await agreement_service.terminate_agreement(
        session, auth, agreement_id, body.reason
    )
    return AgreementRead.model_validate(agreement)
