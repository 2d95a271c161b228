"""Companies: broker onboarding, client companies, soft delete and reactivation."""

import uuid

from fastapi import APIRouter, status

from customsdesk.api.deps import Auth, Session
from customsdesk.models.company import (
    BrokerCompanyCreate,
    ClientCompanyCreate,
    CompanyRead,
    CompanyType,
    CompanyUpdate,
)
from customsdesk.services import companies as company_service

router = APIRouter(prefix="/companies", tags=["companies"])


@router.post("/brokers", response_model=CompanyRead, status_code=status.HTTP_201_CREATED)
async def create_broker(body: BrokerCompanyCreate, auth: Auth, session: Session) -> CompanyRead:
    """Create a customs broker together with its first subscription."""
    broker = await company_service.create_broker(session, auth, body)
    return CompanyRead.model_validate(broker)


@router.post("/clients", response_model=CompanyRead, status_code=status.HTTP_201_CREATED)
async def create_client(body: ClientCompanyCreate, auth: Auth, session: Session) -> CompanyRead:
    client = await company_service.create_client(session, auth, body)
    return CompanyRead.model_validate(client)


@router.get("", response_model=list[CompanyRead])
async def list_companies(
    auth: Auth,
    session: Session,
    company_type: CompanyType | None = None,
    include_inactive: bool = False,
) -> list[CompanyRead]:
    companies = await company_service.list_companies(
        session, auth, company_type=company_type, include_inactive=include_inactive,
    )
    return [CompanyRead.model_validate(c) for c in companies]


@router.get("/{company_id}", response_model=CompanyRead)
async def get_company(company_id: uuid.UUID, auth: Auth, session: Session) -> CompanyRead:
    company = await company_service.get_company(session, auth, company_id)
    return CompanyRead.model_validate(company)


@router.patch("/{company_id}", response_model=CompanyRead)
async def update_company(
    company_id: uuid.UUID,
    body: CompanyUpdate,
    auth: Auth,
    session: Session,
) -> CompanyRead:
    company = await company_service.update_company(session, auth, company_id, body)
    return CompanyRead.model_validate(company)


@router.delete("/{company_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_company(company_id: uuid.UUID, auth: Auth, session: Session) -> None:
    """Soft delete; the company's active agreements are suspended."""
    await company_service.deactivate_company(session, auth, company_id)


@router.post("/{company_id}/reactivate", response_model=CompanyRead)
async def reactivate_company(company_id: uuid.UUID, auth: Auth, session: Session) -> CompanyRead:
    """Super admin only. A reactivated client occupies a quota slot again."""
    company = await company_service.reactivate_company(session, auth, company_id)
    return CompanyRead.model_validate(company)
