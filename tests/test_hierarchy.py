"""Tests for identity & hierarchy rules (pure, no database)."""

import uuid

import pytest

from customsdesk.core.errors import ValidationError
from customsdesk.models.company import Company, CompanyType
from customsdesk.models.user import Role, User
from customsdesk.services.hierarchy import (
    Principal,
    broker_of,
    is_admin_of_company,
    is_authorized_for_broker,
    validate_company_shape,
)


def _broker(name: str = "Acme Customs") -> Company:
    return Company(id=uuid.uuid4(), name=name, company_type=CompanyType.CUSTOMS_BROKER)


def _client(parent: Company | None, name: str = "Globex") -> Company:
    return Company(
        id=uuid.uuid4(),
        name=name,
        company_type=CompanyType.CLIENT,
        parent_broker_id=parent.id if parent else None,
    )


def _principal(role: Role, company: Company | None) -> Principal:
    user = User(
        id=uuid.uuid4(),
        email=f"{role.lower()}@acme.com",
        username=role.lower(),
        password_hash="x",
        role=role,
        company_id=company.id if company else None,
    )
    return Principal.from_user(user, company)


def test_broker_of_resolves_one_hop():
    broker = _broker()
    client = _client(broker)
    assert broker_of(broker) == broker.id
    assert broker_of(client) == broker.id
    assert broker_of(None) is None
    assert broker_of(_client(None)) is None


def test_admin_of_company_is_scoped_to_own_broker():
    broker, other = _broker(), _broker("Initech")
    client, foreign_client = _client(broker), _client(other, "Umbrella")
    admin = _principal(Role.BROKER_ADMIN, broker)

    assert is_admin_of_company(admin, broker)
    assert is_admin_of_company(admin, client)
    assert not is_admin_of_company(admin, other)
    assert not is_admin_of_company(admin, foreign_client)


def test_admin_of_company_is_total():
    """Missing companies and parentless clients never raise, and only a super admin owns them."""
    admin = _principal(Role.BROKER_ADMIN, _broker())
    root = _principal(Role.SUPER_ADMIN, None)
    orphan = _client(None)

    assert not is_admin_of_company(admin, None)
    assert not is_admin_of_company(admin, orphan)
    assert is_admin_of_company(root, orphan)
    assert is_admin_of_company(root, None)


def test_non_admin_roles_administer_nothing():
    broker = _broker()
    client = _client(broker)
    staff = _principal(Role.BROKER_USER, broker)
    buyer = _principal(Role.CLIENT_USER, client)
    for company in (broker, client):
        assert not is_admin_of_company(staff, company)
        assert not is_admin_of_company(buyer, company)


def test_authorized_for_broker():
    broker, other = _broker(), _broker("Initech")
    staff = _principal(Role.BROKER_USER, broker)
    buyer = _principal(Role.CLIENT_USER, _client(broker))

    assert is_authorized_for_broker(staff, broker.id)
    assert not is_authorized_for_broker(staff, other.id)
    assert not is_authorized_for_broker(staff, None)
    assert not is_authorized_for_broker(buyer, broker.id)
    assert is_authorized_for_broker(_principal(Role.SUPER_ADMIN, None), other.id)


def test_principal_resolves_broker_for_client_user():
    broker = _broker()
    client = _client(broker)
    buyer = _principal(Role.CLIENT_USER, client)
    assert buyer.company_id == client.id
    assert buyer.broker_id == broker.id


def test_principal_rejects_broken_role_company_pairs():
    broker = _broker()
    client = _client(broker)
    with pytest.raises(ValidationError):
        _principal(Role.BROKER_USER, client)
    with pytest.raises(ValidationError):
        _principal(Role.CLIENT_USER, broker)
    with pytest.raises(ValidationError):
        _principal(Role.SUPER_ADMIN, broker)
    with pytest.raises(ValidationError):
        _principal(Role.BROKER_ADMIN, None)


def test_validate_company_shape():
    broker = _broker()
    validate_company_shape(CompanyType.CUSTOMS_BROKER, None)
    validate_company_shape(CompanyType.CLIENT, broker)

    with pytest.raises(ValidationError):
        validate_company_shape(CompanyType.CUSTOMS_BROKER, broker)
    with pytest.raises(ValidationError):
        validate_company_shape(CompanyType.CLIENT, None)
    with pytest.raises(ValidationError):
        validate_company_shape(CompanyType.CLIENT, _client(broker))
