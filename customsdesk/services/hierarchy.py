"""Identity & hierarchy rules over principals and companies.

Pure functions, no I/O. The company tree is capped at depth two (broker ->
client), so resolving a company's broker is always a single hop over
``parent_broker_id``.
"""

from __future__ import annotations

import uuid

from customsdesk.core.errors import ValidationError
from customsdesk.models.company import Company, CompanyType
from customsdesk.models.user import STAFF_ROLES, Role, User


class Principal:
    """The acting identity for one request, resolved from a User and its Company."""

    __slots__ = ("user_id", "email", "role", "company_id", "company_type", "broker_id")

    def __init__(
        self,
        user_id: uuid.UUID,
        email: str,
        role: Role,
        company_id: uuid.UUID | None = None,
        company_type: CompanyType | None = None,
        broker_id: uuid.UUID | None = None,
    ) -> None:
        self.user_id = user_id
        self.email = email
        self.role = role
        self.company_id = company_id
        self.company_type = company_type
        self.broker_id = broker_id

    @classmethod
    def from_user(cls, user: User, company: Company | None) -> Principal:
        """Build a principal, rejecting users that break the role/company invariant."""
        if user.role == Role.SUPER_ADMIN:
            if user.company_id is not None:
                raise ValidationError("A super admin cannot belong to a company")
            return cls(user_id=user.id, email=user.email, role=user.role)

        if company is None or company.id != user.company_id:
            raise ValidationError(f"User {user.email} has no company")
        if user.role in STAFF_ROLES and not company.is_broker:
            raise ValidationError("Broker staff must belong to a customs broker")
        if user.role == Role.CLIENT_USER and not company.is_client:
            raise ValidationError("Client users must belong to a client company")

        return cls(
            user_id=user.id,
            email=user.email,
            role=user.role,
            company_id=company.id,
            company_type=company.company_type,
            broker_id=broker_of(company),
        )

    def __repr__(self) -> str:
        return f"Principal({self.email!r}, {self.role.value})"


# ── Role predicates ──────────────────────────────────────────

def is_super_admin(principal: Principal) -> bool:
    return principal.role == Role.SUPER_ADMIN


def is_broker_admin(principal: Principal) -> bool:
    return principal.role == Role.BROKER_ADMIN


def is_broker_user(principal: Principal) -> bool:
    return principal.role == Role.BROKER_USER


def is_client_user(principal: Principal) -> bool:
    return principal.role == Role.CLIENT_USER


def is_broker_staff(principal: Principal) -> bool:
    return principal.role in STAFF_ROLES


# ── Hierarchy ────────────────────────────────────────────────

def broker_of(company: Company | None) -> uuid.UUID | None:
    """The broker a company belongs to: itself for a broker, its parent for a client."""
    if company is None:
        return None
    if company.company_type == CompanyType.CUSTOMS_BROKER:
        return company.id
    return company.parent_broker_id


def is_admin_of_broker(principal: Principal, broker_id: uuid.UUID | None) -> bool:
    if principal.role == Role.SUPER_ADMIN:
        return True
    if principal.role != Role.BROKER_ADMIN:
        return False
    return broker_id is not None and broker_id == principal.broker_id


def is_admin_of_company(principal: Principal, company: Company | None) -> bool:
    """Super admins administer everything; a broker admin its broker and the broker's clients.

    Total over every input: a missing company or a parentless client is
    simply not administered by anyone but a super admin.
    """
    return is_admin_of_broker(principal, broker_of(company))


def is_authorized_for_broker(principal: Principal, broker_id: uuid.UUID | None) -> bool:
    if principal.role == Role.SUPER_ADMIN:
        return True
    return (
        principal.role in STAFF_ROLES
        and broker_id is not None
        and principal.broker_id == broker_id
    )


def validate_company_shape(company_type: CompanyType, parent: Company | None) -> None:
    """Reject a company that would break the broker/client hierarchy."""
    if company_type == CompanyType.CUSTOMS_BROKER:
        if parent is not None:
            raise ValidationError("A customs broker cannot have a parent company")
        return
    if parent is None:
        raise ValidationError("A client company must reference its customs broker")
    if not parent.is_broker:
        raise ValidationError("A client company's parent must be a customs broker")
