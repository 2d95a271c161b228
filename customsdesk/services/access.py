"""Access decision engine — can principal P perform operation O on resource R?

Every rule is a row in ``_RULES`` with one entry per role, so the table reads
like the permission matrix it implements. The table is checked for
completeness at import time: a missing role or operation is a startup error,
never an implicit allow or deny.

``authorize`` returns a ``Decision`` and never raises. Services that want an
exception call ``require`` (403) or ``require_visible`` (404, hides existence).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from customsdesk.core.errors import NotFound, Unauthorized
from customsdesk.models.company import Company
from customsdesk.models.user import Role
from customsdesk.services.hierarchy import (
    Principal,
    broker_of,
    is_admin_of_broker,
    is_admin_of_company,
)

logger = logging.getLogger(__name__)


class Operation(StrEnum):
    COMPANY_CREATE_BROKER = "company.create_broker"
    COMPANY_CREATE_CLIENT = "company.create_client"
    COMPANY_UPDATE = "company.update"
    COMPANY_DELETE = "company.delete"
    COMPANY_VIEW = "company.view"
    COMPANY_REACTIVATE = "company.reactivate"

    USER_CREATE = "user.create"
    USER_EDIT = "user.edit"
    USER_DELETE = "user.delete"
    USER_VIEW = "user.view"

    TRANSACTION_CREATE = "transaction.create"
    TRANSACTION_UPDATE = "transaction.update"
    TRANSACTION_CHANGE_STATUS = "transaction.change_status"
    TRANSACTION_DELETE = "transaction.delete"
    TRANSACTION_VIEW = "transaction.view"
    TRANSACTION_STATS = "transaction.stats"

    AGREEMENT_CREATE = "agreement.create"
    AGREEMENT_SUSPEND = "agreement.suspend"
    AGREEMENT_TERMINATE = "agreement.terminate"
    AGREEMENT_REACTIVATE = "agreement.reactivate"
    AGREEMENT_VIEW = "agreement.view"
    AGREEMENT_STATS = "agreement.stats"

    PLAN_MANAGE = "plan.manage"
    SUBSCRIPTION_MANAGE = "subscription.manage"
    QUOTA_VIEW = "quota.view"


class Decision(StrEnum):
    ALLOW = "allow"
    DENY = "deny"

    @property
    def allowed(self) -> bool:
        return self is Decision.ALLOW


# ── Resource references ──────────────────────────────────────

@dataclass(frozen=True)
class NewUser:
    """A user about to be created: its role and target company (None for super admins)."""
    role: Role
    company: Company | None


@dataclass(frozen=True)
class UserTarget:
    """An existing user together with its company (None for super admins)."""
    user_id: uuid.UUID
    role: Role
    company: Company | None


@dataclass(frozen=True)
class PartyPair:
    """A broker/client pair, as carried by agreements and transactions.

    ``client_parent_id`` is the client's own broker, needed to decide whether
    a broker admin administers the client side.
    """
    broker_company_id: uuid.UUID
    client_company_id: uuid.UUID
    client_parent_id: uuid.UUID | None = None


# ── Rule helpers ─────────────────────────────────────────────

Rule = Callable[[Principal, Any], bool]


def _allow(_principal: Principal, _resource: Any) -> bool:
    return True


def _deny(_principal: Principal, _resource: Any) -> bool:
    return False


def _own_broker(principal: Principal, broker_id: uuid.UUID | None) -> bool:
    return broker_id is not None and broker_id == principal.broker_id


def _company_in_subtree(principal: Principal, company: Company) -> bool:
    return _own_broker(principal, broker_of(company))


def _own_company(principal: Principal, company: Company) -> bool:
    return company.id == principal.company_id


def _admin_of_company(principal: Principal, company: Company) -> bool:
    return is_admin_of_company(principal, company)


def _client_under_own_broker(principal: Principal, parent: Company) -> bool:
    return parent.is_broker and parent.id == principal.broker_id


def _admin_creates_user(principal: Principal, new: NewUser) -> bool:
    if new.company is None:
        return False
    if new.role == Role.BROKER_USER:
        return new.company.is_broker and new.company.id == principal.broker_id
    if new.role == Role.CLIENT_USER:
        return new.company.is_client and new.company.parent_broker_id == principal.broker_id
    return False


def _self(principal: Principal, target: UserTarget) -> bool:
    return target.user_id == principal.user_id


def _admin_edits_user(principal: Principal, target: UserTarget) -> bool:
    return _self(principal, target) or _own_broker(principal, broker_of(target.company))


def _admin_deletes_user(principal: Principal, target: UserTarget) -> bool:
    return target.company is not None and is_admin_of_company(principal, target.company)


def _broker_id_matches(principal: Principal, broker_id: uuid.UUID) -> bool:
    return _own_broker(principal, broker_id)


def _broker_side_matches(principal: Principal, pair: Any) -> bool:
    return _own_broker(principal, pair.broker_company_id)


def _client_side_matches(principal: Principal, pair: Any) -> bool:
    return principal.company_id is not None and pair.client_company_id == principal.company_id


def _admin_of_agreement_broker(principal: Principal, pair: PartyPair) -> bool:
    return is_admin_of_broker(principal, pair.broker_company_id)


def _admin_of_either_party(principal: Principal, pair: PartyPair) -> bool:
    return is_admin_of_broker(principal, pair.broker_company_id) or is_admin_of_broker(
        principal, pair.client_parent_id
    )


# ── Permission matrix (SUPER_ADMIN is always allowed) ────────

_RULES: dict[Operation, dict[Role, Rule]] = {
    Operation.COMPANY_CREATE_BROKER: {
        Role.BROKER_ADMIN: _deny,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.COMPANY_CREATE_CLIENT: {
        Role.BROKER_ADMIN: _client_under_own_broker,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.COMPANY_UPDATE: {
        Role.BROKER_ADMIN: _admin_of_company,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.COMPANY_DELETE: {
        Role.BROKER_ADMIN: _admin_of_company,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.COMPANY_VIEW: {
        Role.BROKER_ADMIN: _company_in_subtree,
        Role.BROKER_USER: _company_in_subtree,
        Role.CLIENT_USER: _own_company,
    },
    Operation.COMPANY_REACTIVATE: {
        Role.BROKER_ADMIN: _deny,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.USER_CREATE: {
        Role.BROKER_ADMIN: _admin_creates_user,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.USER_EDIT: {
        Role.BROKER_ADMIN: _admin_edits_user,
        Role.BROKER_USER: _self,
        Role.CLIENT_USER: _self,
    },
    Operation.USER_DELETE: {
        Role.BROKER_ADMIN: _admin_deletes_user,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.USER_VIEW: {
        Role.BROKER_ADMIN: _admin_edits_user,
        Role.BROKER_USER: _self,
        Role.CLIENT_USER: _self,
    },
    Operation.TRANSACTION_CREATE: {
        Role.BROKER_ADMIN: _broker_id_matches,
        Role.BROKER_USER: _broker_id_matches,
        Role.CLIENT_USER: _deny,
    },
    Operation.TRANSACTION_UPDATE: {
        Role.BROKER_ADMIN: _broker_side_matches,
        Role.BROKER_USER: _broker_side_matches,
        Role.CLIENT_USER: _deny,
    },
    Operation.TRANSACTION_CHANGE_STATUS: {
        Role.BROKER_ADMIN: _broker_side_matches,
        Role.BROKER_USER: _broker_side_matches,
        Role.CLIENT_USER: _deny,
    },
    Operation.TRANSACTION_DELETE: {
        Role.BROKER_ADMIN: _broker_side_matches,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.TRANSACTION_VIEW: {
        Role.BROKER_ADMIN: _broker_side_matches,
        Role.BROKER_USER: _broker_side_matches,
        Role.CLIENT_USER: _client_side_matches,
    },
    Operation.TRANSACTION_STATS: {
        Role.BROKER_ADMIN: _broker_id_matches,
        Role.BROKER_USER: _broker_id_matches,
        Role.CLIENT_USER: _deny,
    },
    Operation.AGREEMENT_CREATE: {
        Role.BROKER_ADMIN: _admin_of_agreement_broker,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.AGREEMENT_SUSPEND: {
        Role.BROKER_ADMIN: _admin_of_agreement_broker,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.AGREEMENT_TERMINATE: {
        Role.BROKER_ADMIN: _admin_of_agreement_broker,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.AGREEMENT_REACTIVATE: {
        Role.BROKER_ADMIN: _admin_of_agreement_broker,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.AGREEMENT_VIEW: {
        Role.BROKER_ADMIN: _admin_of_either_party,
        Role.BROKER_USER: _broker_side_matches,
        Role.CLIENT_USER: _client_side_matches,
    },
    Operation.AGREEMENT_STATS: {
        Role.BROKER_ADMIN: _admin_of_company,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.PLAN_MANAGE: {
        Role.BROKER_ADMIN: _deny,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.SUBSCRIPTION_MANAGE: {
        Role.BROKER_ADMIN: _deny,
        Role.BROKER_USER: _deny,
        Role.CLIENT_USER: _deny,
    },
    Operation.QUOTA_VIEW: {
        Role.BROKER_ADMIN: _broker_id_matches,
        Role.BROKER_USER: _broker_id_matches,
        Role.CLIENT_USER: _deny,
    },
}

for _operation in Operation:
    _rows = _RULES.get(_operation, {})
    for _role in Role:
        if _role != Role.SUPER_ADMIN and _role not in _rows:
            raise RuntimeError(f"No access rule for {_role} on {_operation}")
for _operation, _rows in _RULES.items():
    _rows[Role.SUPER_ADMIN] = _allow


# ── Public API ───────────────────────────────────────────────

def authorize(principal: Principal, operation: Operation, resource: Any = None) -> Decision:
    """Decide whether ``principal`` may perform ``operation`` on ``resource``."""
    allowed = _RULES[operation][principal.role](principal, resource)
    resource_id = _resource_id(resource)
    if allowed:
        logger.debug(
            "Access GRANTED - user=%s role=%s operation=%s resource=%s",
            principal.email, principal.role, operation, resource_id,
        )
        return Decision.ALLOW
    logger.warning(
        "Access DENIED - user=%s role=%s operation=%s resource=%s",
        principal.email, principal.role, operation, resource_id,
    )
    return Decision.DENY


def require(
    principal: Principal,
    operation: Operation,
    resource: Any = None,
    detail: str | None = None,
) -> None:
    """Raise ``Unauthorized`` unless the operation is allowed."""
    if not authorize(principal, operation, resource).allowed:
        raise Unauthorized(detail or f"Not allowed to perform {operation}")


def require_visible(
    principal: Principal,
    operation: Operation,
    resource: Any,
    detail: str,
) -> None:
    """Raise ``NotFound`` when the principal may not see the resource at all."""
    if not authorize(principal, operation, resource).allowed:
        raise NotFound(detail)


def _resource_id(resource: Any) -> Any:
    if resource is None or isinstance(resource, uuid.UUID):
        return resource
    for attr in ("id", "user_id", "broker_company_id"):
        value = getattr(resource, attr, None)
        if value is not None:
            return value
    return type(resource).__name__
