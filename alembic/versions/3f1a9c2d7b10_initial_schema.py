"""initial schema: companies, users, subscriptions, usage, agreements, transactions

Revision ID: 3f1a9c2d7b10
Revises: 
Create Date: 2026-10-19 09:12:44.201337

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7b10'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

company_type = sa.Enum("CUSTOMS_BROKER", "CLIENT", name="companytype")
role = sa.Enum("SUPER_ADMIN", "BROKER_ADMIN", "BROKER_USER", "CLIENT_USER", name="role")
agreement_status = sa.Enum("ACTIVE", "SUSPENDED", "TERMINATED", name="agreementstatus")
transaction_status = sa.Enum("PENDING", "COMPLETED", "CANCELLED", name="transactionstatus")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("company_type", company_type, nullable=False),
        sa.Column("parent_broker_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "(company_type = 'CUSTOMS_BROKER' AND parent_broker_id IS NULL) OR "
            "(company_type = 'CLIENT' AND parent_broker_id IS NOT NULL)",
            name="ck_companies_hierarchy",
        ),
    )
    op.create_index("ix_companies_company_type", "companies", ["company_type"])
    op.create_index("ix_companies_parent_broker_id", "companies", ["parent_broker_id"])

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("role", role, nullable=False),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_company_id", "users", ["company_id"])

    op.create_table(
        "subscription_plans",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("max_staff", sa.Integer(), nullable=False),
        sa.Column("max_clients", sa.Integer(), nullable=False),
        sa.Column("monthly_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("yearly_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("features", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "broker_subscriptions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("broker_company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("plan_id", sa.Uuid(), sa.ForeignKey("subscription_plans.id"), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("custom_max_staff", sa.Integer(), nullable=True),
        sa.Column("custom_max_clients", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_broker_subscriptions_broker_company_id", "broker_subscriptions", ["broker_company_id"]
    )
    op.create_index("ix_broker_subscriptions_plan_id", "broker_subscriptions", ["plan_id"])
    op.create_index(
        "uq_broker_subscriptions_one_active",
        "broker_subscriptions",
        ["broker_company_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "usage_tracking",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("broker_company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("current_staff", sa.Integer(), nullable=False),
        sa.Column("current_clients", sa.Integer(), nullable=False),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
        sa.CheckConstraint("current_staff >= 0", name="ck_usage_staff_non_negative"),
        sa.CheckConstraint("current_clients >= 0", name="ck_usage_clients_non_negative"),
    )
    op.create_index(
        "ix_usage_tracking_broker_company_id", "usage_tracking", ["broker_company_id"], unique=True
    )

    op.create_table(
        "agency_agreements",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("agreement_number", sa.String(100), nullable=False),
        sa.Column("broker_company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("client_company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("status", agreement_status, nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_agency_agreements_agreement_number", "agency_agreements", ["agreement_number"],
        unique=True,
    )
    op.create_index(
        "ix_agency_agreements_broker_company_id", "agency_agreements", ["broker_company_id"]
    )
    op.create_index(
        "ix_agency_agreements_client_company_id", "agency_agreements", ["client_company_id"]
    )
    op.create_index("ix_agency_agreements_status", "agency_agreements", ["status"])
    op.create_index(
        "uq_agency_agreements_active_pair",
        "agency_agreements",
        ["broker_company_id", "client_company_id"],
        unique=True,
        postgresql_where=sa.text("status = 'ACTIVE'"),
    )

    op.create_table(
        "customs_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("broker_company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("client_company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("file_no", sa.String(100), nullable=False),
        sa.Column("recipient_name", sa.String(255), nullable=True),
        sa.Column("customs_warehouse", sa.String(255), nullable=True),
        sa.Column("gate", sa.String(50), nullable=True),
        sa.Column("weight", sa.Numeric(12, 2), nullable=True),
        sa.Column("tax", sa.Numeric(15, 2), nullable=True),
        sa.Column("sender_name", sa.String(255), nullable=True),
        sa.Column("warehouse_arrival_date", sa.Date(), nullable=True),
        sa.Column("registration_date", sa.Date(), nullable=True),
        sa.Column("declaration_number", sa.String(100), nullable=True),
        sa.Column("line_closure_date", sa.Date(), nullable=True),
        sa.Column("import_processing_time", sa.Integer(), nullable=True),
        sa.Column("withdrawal_date", sa.Date(), nullable=True),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("total_processing_time", sa.Integer(), nullable=True),
        sa.Column("delay_reason", sa.String(500), nullable=True),
        sa.Column("status", transaction_status, nullable=False),
        sa.Column("last_modified_by", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_customs_transactions_file_no", "customs_transactions", ["file_no"], unique=True
    )
    op.create_index(
        "ix_customs_transactions_broker_company_id", "customs_transactions", ["broker_company_id"]
    )
    op.create_index(
        "ix_customs_transactions_client_company_id", "customs_transactions", ["client_company_id"]
    )
    op.create_index(
        "ix_customs_transactions_created_by_id", "customs_transactions", ["created_by_id"]
    )
    op.create_index("ix_customs_transactions_status", "customs_transactions", ["status"])


def downgrade() -> None:
    op.drop_table("customs_transactions")
    op.drop_table("agency_agreements")
    op.drop_table("usage_tracking")
    op.drop_table("broker_subscriptions")
    op.drop_table("subscription_plans")
    op.drop_table("users")
    op.drop_table("companies")
    for enum in (transaction_status, agreement_status, role, company_type):
        enum.drop(op.get_bind(), checkfirst=True)
