"""Tests for the access decision engine (pure, no database)."""

import logging
import uuid

import pytest

from customsdesk.core.errors import NotFound, Unauthorized
from customsdesk.models.company import Company, CompanyType
from customsdesk.models.user import Role
from customsdesk.services.access import (
    Decision,
    NewUser,
    Operation,
    PartyPair,
    UserTarget,
    authorize,
    require,
    require_visible,
)
from customsdesk.services.hierarchy import Principal

BROKER = Company(id=uuid.uuid4(), name="Acme Customs", company_type=CompanyType.CUSTOMS_BROKER)
CLIENT = Company(
    id=uuid.uuid4(), name="Globex", company_type=CompanyType.CLIENT, parent_broker_id=BROKER.id,
)
OTHER_BROKER = Company(id=uuid.uuid4(), name="Initech", company_type=CompanyType.CUSTOMS_BROKER)
OTHER_CLIENT = Company(
    id=uuid.uuid4(), name="Umbrella", company_type=CompanyType.CLIENT,
    parent_broker_id=OTHER_BROKER.id,
)


def _principal(role: Role) -> Principal:
    if role == Role.SUPER_ADMIN:
        return Principal(uuid.uuid4(), "root@customsdesk.com", role)
    company = CLIENT if role == Role.CLIENT_USER else BROKER
    return Principal(
        uuid.uuid4(), f"{role.lower()}@acme.com", role,
        company_id=company.id, company_type=company.company_type, broker_id=BROKER.id,
    )


ROOT = _principal(Role.SUPER_ADMIN)
ADMIN = _principal(Role.BROKER_ADMIN)
STAFF = _principal(Role.BROKER_USER)
BUYER = _principal(Role.CLIENT_USER)

OWN_TXN = PartyPair(BROKER.id, CLIENT.id, BROKER.id)
FOREIGN_TXN = PartyPair(OTHER_BROKER.id, OTHER_CLIENT.id, OTHER_BROKER.id)


def _allowed(principal, operation, resource=None) -> bool:
    return authorize(principal, operation, resource) == Decision.ALLOW


@pytest.mark.parametrize("operation", list(Operation))
def test_super_admin_is_always_allowed(operation):
    assert _allowed(ROOT, operation, None)


def test_company_rows():
    assert not _allowed(ADMIN, Operation.COMPANY_CREATE_BROKER)
    assert _allowed(ADMIN, Operation.COMPANY_CREATE_CLIENT, BROKER)
    assert not _allowed(ADMIN, Operation.COMPANY_CREATE_CLIENT, OTHER_BROKER)
    assert not _allowed(STAFF, Operation.COMPANY_CREATE_CLIENT, BROKER)

    assert _allowed(ADMIN, Operation.COMPANY_UPDATE, CLIENT)
    assert not _allowed(ADMIN, Operation.COMPANY_DELETE, OTHER_CLIENT)
    assert not _allowed(STAFF, Operation.COMPANY_UPDATE, CLIENT)

    assert _allowed(STAFF, Operation.COMPANY_VIEW, CLIENT)
    assert not _allowed(STAFF, Operation.COMPANY_VIEW, OTHER_CLIENT)
    assert _allowed(BUYER, Operation.COMPANY_VIEW, CLIENT)
    assert not _allowed(BUYER, Operation.COMPANY_VIEW, BROKER)

    for principal in (ADMIN, STAFF, BUYER):
        assert not _allowed(principal, Operation.COMPANY_REACTIVATE, CLIENT)


def test_user_rows():
    assert _allowed(ADMIN, Operation.USER_CREATE, NewUser(Role.BROKER_USER, BROKER))
    assert _allowed(ADMIN, Operation.USER_CREATE, NewUser(Role.CLIENT_USER, CLIENT))
    assert not _allowed(ADMIN, Operation.USER_CREATE, NewUser(Role.BROKER_ADMIN, BROKER))
    assert not _allowed(ADMIN, Operation.USER_CREATE, NewUser(Role.CLIENT_USER, OTHER_CLIENT))
    assert not _allowed(ADMIN, Operation.USER_CREATE, NewUser(Role.SUPER_ADMIN, None))
    assert not _allowed(STAFF, Operation.USER_CREATE, NewUser(Role.BROKER_USER, BROKER))

    me = UserTarget(STAFF.user_id, Role.BROKER_USER, BROKER)
    colleague = UserTarget(uuid.uuid4(), Role.BROKER_USER, BROKER)
    stranger = UserTarget(uuid.uuid4(), Role.BROKER_USER, OTHER_BROKER)

    assert _allowed(STAFF, Operation.USER_EDIT, me)
    assert not _allowed(STAFF, Operation.USER_EDIT, colleague)
    assert _allowed(ADMIN, Operation.USER_EDIT, colleague)
    assert not _allowed(ADMIN, Operation.USER_EDIT, stranger)

    assert _allowed(ADMIN, Operation.USER_DELETE, colleague)
    assert not _allowed(ADMIN, Operation.USER_DELETE, stranger)
    assert not _allowed(STAFF, Operation.USER_DELETE, me)


def test_transaction_rows():
    for principal in (ADMIN, STAFF):
        assert _allowed(principal, Operation.TRANSACTION_CREATE, BROKER.id)
        assert not _allowed(principal, Operation.TRANSACTION_CREATE, OTHER_BROKER.id)
        assert _allowed(principal, Operation.TRANSACTION_UPDATE, OWN_TXN)
        assert _allowed(principal, Operation.TRANSACTION_CHANGE_STATUS, OWN_TXN)
        assert not _allowed(principal, Operation.TRANSACTION_VIEW, FOREIGN_TXN)

    assert _allowed(ADMIN, Operation.TRANSACTION_DELETE, OWN_TXN)
    assert not _allowed(STAFF, Operation.TRANSACTION_DELETE, OWN_TXN)

    assert not _allowed(BUYER, Operation.TRANSACTION_CREATE, BROKER.id)
    assert _allowed(BUYER, Operation.TRANSACTION_VIEW, OWN_TXN)
    assert not _allowed(BUYER, Operation.TRANSACTION_VIEW, FOREIGN_TXN)


@pytest.mark.parametrize("txn", [OWN_TXN, FOREIGN_TXN])
def test_client_user_is_always_denied_transaction_update(txn):
    assert not _allowed(BUYER, Operation.TRANSACTION_UPDATE, txn)
    assert not _allowed(BUYER, Operation.TRANSACTION_CHANGE_STATUS, txn)
    assert not _allowed(BUYER, Operation.TRANSACTION_DELETE, txn)


def test_agreement_rows():
    for operation in (
        Operation.AGREEMENT_CREATE,
        Operation.AGREEMENT_SUSPEND,
        Operation.AGREEMENT_TERMINATE,
        Operation.AGREEMENT_REACTIVATE,
    ):
        assert _allowed(ADMIN, operation, OWN_TXN)
        assert not _allowed(ADMIN, operation, FOREIGN_TXN)
        assert not _allowed(STAFF, operation, OWN_TXN)
        assert not _allowed(BUYER, operation, OWN_TXN)

    # A broker admin sees agreements another broker holds with one of its clients
    cross = PartyPair(OTHER_BROKER.id, CLIENT.id, BROKER.id)
    assert _allowed(ADMIN, Operation.AGREEMENT_VIEW, cross)
    assert not _allowed(ADMIN, Operation.AGREEMENT_SUSPEND, cross)
    assert not _allowed(STAFF, Operation.AGREEMENT_VIEW, cross)
    assert _allowed(BUYER, Operation.AGREEMENT_VIEW, cross)
    assert not _allowed(BUYER, Operation.AGREEMENT_VIEW, FOREIGN_TXN)


def test_subscription_and_quota_rows():
    for principal in (ADMIN, STAFF, BUYER):
        assert not _allowed(principal, Operation.PLAN_MANAGE)
        assert not _allowed(principal, Operation.SUBSCRIPTION_MANAGE)
    assert _allowed(STAFF, Operation.QUOTA_VIEW, BROKER.id)
    assert not _allowed(ADMIN, Operation.QUOTA_VIEW, OTHER_BROKER.id)
    assert not _allowed(BUYER, Operation.QUOTA_VIEW, BROKER.id)


def test_denials_are_logged_as_warnings(caplog):
    with caplog.at_level(logging.DEBUG, logger="customsdesk.services.access"):
        authorize(BUYER, Operation.TRANSACTION_UPDATE, OWN_TXN)
        authorize(STAFF, Operation.TRANSACTION_UPDATE, OWN_TXN)

    levels = {r.levelno for r in caplog.records if "DENIED" in r.getMessage()}
    assert levels == {logging.WARNING}
    assert any("GRANTED" in r.getMessage() and r.levelno == logging.DEBUG for r in caplog.records)


def test_require_helpers_raise_typed_errors():
    require(STAFF, Operation.TRANSACTION_UPDATE, OWN_TXN)
    with pytest.raises(Unauthorized):
        require(BUYER, Operation.TRANSACTION_UPDATE, OWN_TXN)
    with pytest.raises(NotFound):
        require_visible(STAFF, Operation.TRANSACTION_VIEW, FOREIGN_TXN, "Transaction not found")


def test_stats_rows():
    for principal in (ADMIN, STAFF):
        assert _allowed(principal, Operation.TRANSACTION_STATS, BROKER.id)
        assert not _allowed(principal, Operation.TRANSACTION_STATS, OTHER_BROKER.id)
    assert not _allowed(BUYER, Operation.TRANSACTION_STATS, BROKER.id)

    assert _allowed(ADMIN, Operation.AGREEMENT_STATS, BROKER)
    assert _allowed(ADMIN, Operation.AGREEMENT_STATS, CLIENT)
    assert not _allowed(ADMIN, Operation.AGREEMENT_STATS, OTHER_CLIENT)
    assert not _allowed(STAFF, Operation.AGREEMENT_STATS, BROKER)
    assert not _allowed(BUYER, Operation.AGREEMENT_STATS, CLIENT)
