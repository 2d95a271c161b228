"""Import all models so SQLModel.metadata picks them up."""

from customsdesk.models.agreement import (
    AgencyAgreement,
    AgreementCreate,
    AgreementRead,
    AgreementReason,
    AgreementStatus,
)
from customsdesk.models.company import (
    BrokerCompanyCreate,
    ClientCompanyCreate,
    Company,
    CompanyRead,
    CompanyType,
    CompanyUpdate,
)
from customsdesk.models.subscription import (
    BrokerSubscription,
    BrokerSubscriptionCreate,
    BrokerSubscriptionRead,
    BrokerSubscriptionUpdate,
    QuotaSnapshot,
    SubscriptionPlan,
    SubscriptionPlanCreate,
    SubscriptionPlanRead,
    SubscriptionPlanUpdate,
    UsageTracking,
)
from customsdesk.models.transaction import (
    CustomsTransaction,
    TransactionCancel,
    TransactionCreate,
    TransactionRead,
    TransactionStatus,
    TransactionStatusChange,
    TransactionUpdate,
)
from customsdesk.models.user import Role, User, UserCreate, UserRead, UserUpdate

__all__ = [
    "AgencyAgreement",
    "AgreementCreate",
    "AgreementRead",
    "AgreementReason",
    "AgreementStatus",
    "BrokerCompanyCreate",
    "BrokerSubscription",
    "BrokerSubscriptionCreate",
    "BrokerSubscriptionRead",
    "BrokerSubscriptionUpdate",
    "ClientCompanyCreate",
    "Company",
    "CompanyRead",
    "CompanyType",
    "CompanyUpdate",
    "CustomsTransaction",
    "QuotaSnapshot",
    "Role",
    "SubscriptionPlan",
    "SubscriptionPlanCreate",
    "SubscriptionPlanRead",
    "SubscriptionPlanUpdate",
    "TransactionCancel",
    "TransactionCreate",
    "TransactionRead",
    "TransactionStatus",
    "TransactionStatusChange",
    "TransactionUpdate",
    "UsageTracking",
    "User",
    "UserCreate",
    "UserRead",
    "UserUpdate",
]
