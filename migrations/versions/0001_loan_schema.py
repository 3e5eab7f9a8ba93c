"""loan schema: loans, applications, documents, number sequences

Revision ID: 0001_loan_schema
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_loan_schema"
down_revision = None
branch_labels = None
depends_on = None


LOAN_TYPES = "'PERSONAL', 'AUTO', 'MORTGAGE', 'HOME_EQUITY', 'BUSINESS'"
LOAN_STATUSES = (
    "'PENDING', 'UNDER_REVIEW', 'APPROVED', 'REJECTED', 'ACTIVE', "
    "'DELINQUENT', 'DEFAULT', 'CLOSED', 'WRITTEN_OFF', 'CANCELLED'"
)
APPLICATION_STATUSES = (
    "'DRAFT', 'SUBMITTED', 'UNDER_REVIEW', 'INFO_REQUESTED', "
    "'APPROVED', 'REJECTED', 'WITHDRAWN', 'EXPIRED'"
)
DOCUMENT_TYPES = (
    "'IDENTIFICATION', 'PAY_STUB', 'W2_FORM', 'TAX_RETURN', 'BANK_STATEMENT', "
    "'EMPLOYMENT_VERIFICATION', 'CREDIT_REPORT', 'APPRAISAL', 'VEHICLE_TITLE', "
    "'INSURANCE', 'LOAN_AGREEMENT', 'PROMISSORY_NOTE', 'OTHER'"
)


def upgrade() -> None:
    op.create_table(
        "loans",
        sa.Column("loan_id", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column("customer_id", sa.BigInteger(), nullable=False),
        sa.Column("loan_number", sa.String(length=20), nullable=True),
        sa.Column("loan_type", sa.String(length=20), nullable=False),
        sa.Column("loan_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("interest_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("term_months", sa.Integer(), nullable=False),
        sa.Column("monthly_payment", sa.Numeric(10, 2), nullable=False),
        sa.Column("outstanding_balance", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_interest_paid", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_principal_paid", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("application_date", sa.Date(), nullable=False),
        sa.Column("approval_date", sa.Date(), nullable=True),
        sa.Column("disbursement_date", sa.Date(), nullable=True),
        sa.Column("maturity_date", sa.Date(), nullable=True),
        sa.Column("closed_date", sa.Date(), nullable=True),
        sa.Column("first_payment_date", sa.Date(), nullable=True),
        sa.Column("next_payment_date", sa.Date(), nullable=True),
        sa.Column("days_past_due", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("missed_payments", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("loan_purpose", sa.String(length=100), nullable=True),
        sa.Column("approved_by", sa.BigInteger(), nullable=True),
        sa.Column("approval_notes", sa.String(length=500), nullable=True),
        sa.Column("collateral_description", sa.String(length=500), nullable=True),
        sa.Column("collateral_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("loan_to_value_ratio", sa.Numeric(5, 2), nullable=True),
        sa.Column("application_id", sa.BigInteger(), nullable=True),
        sa.Column("is_defaulted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_written_off", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("loan_id", name="pk_loans"),
        sa.UniqueConstraint("loan_number", name="uq_loans_loan_number"),
        sa.CheckConstraint(f"loan_type IN ({LOAN_TYPES})", name="ck_loan_type"),
        sa.CheckConstraint(f"status IN ({LOAN_STATUSES})", name="ck_loan_status"),
        sa.CheckConstraint(
            "loan_amount >= 1000 AND loan_amount <= 1000000", name="ck_loan_amount_bounds"
        ),
        sa.CheckConstraint(
            "interest_rate >= 0 AND interest_rate <= 36", name="ck_loan_interest_rate_bounds"
        ),
        sa.CheckConstraint("term_months >= 6 AND term_months <= 360", name="ck_loan_term_bounds"),
        sa.CheckConstraint("outstanding_balance >= 0", name="ck_loan_balance_nonneg"),
        sa.CheckConstraint("days_past_due >= 0", name="ck_loan_days_past_due_nonneg"),
        sa.CheckConstraint("missed_payments >= 0", name="ck_loan_missed_payments_nonneg"),
    )
    op.create_index("idx_loan_customer_id", "loans", ["customer_id"])
    op.create_index("idx_loan_status", "loans", ["status"])
    op.create_index("idx_loan_type", "loans", ["loan_type"])
    op.create_index("idx_loan_application_date", "loans", ["application_date"])
    op.create_index("idx_loan_next_payment_date", "loans", ["next_payment_date"])
    op.create_index(
        "idx_loan_delinquent",
        "loans",
        ["days_past_due"],
        postgresql_where=sa.text("days_past_due > 0"),
    )

    op.create_table(
        "loan_applications",
        sa.Column("application_id", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column("customer_id", sa.BigInteger(), nullable=False),
        sa.Column("loan_type", sa.String(length=20), nullable=False),
        sa.Column("requested_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("preferred_term_months", sa.Integer(), nullable=False),
        sa.Column("loan_purpose", sa.String(length=200), nullable=False),
        sa.Column("employment_info", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("annual_income", sa.Numeric(12, 2), nullable=False),
        sa.Column("monthly_housing_payment", sa.Numeric(10, 2), nullable=True),
        sa.Column("other_monthly_debts", sa.Numeric(10, 2), nullable=True),
        sa.Column("debt_to_income_ratio", sa.Numeric(5, 2), nullable=True),
        sa.Column("credit_score", sa.Integer(), nullable=True),
        sa.Column("credit_bureau", sa.String(length=50), nullable=True),
        sa.Column("income_verification", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("collateral_info", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("co_borrower_info", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="DRAFT"),
        sa.Column("underwriting_decision", sa.String(length=20), nullable=True),
        sa.Column("decision_notes", sa.String(length=1000), nullable=True),
        sa.Column("approved_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("approved_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("approved_term_months", sa.Integer(), nullable=True),
        sa.Column("reviewed_by", sa.BigInteger(), nullable=True),
        sa.Column("application_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("loan_id", sa.BigInteger(), nullable=True),
        sa.Column("submission_ip", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=500), nullable=True),
        sa.Column("fraud_check_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("fraud_check_score", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("application_id", name="pk_loan_applications"),
        sa.CheckConstraint(f"loan_type IN ({LOAN_TYPES})", name="ck_loan_app_loan_type"),
        sa.CheckConstraint("requested_amount >= 1000", name="ck_loan_app_requested_amount_min"),
        sa.CheckConstraint(
            "preferred_term_months >= 6 AND preferred_term_months <= 360",
            name="ck_loan_app_term_bounds",
        ),
        sa.CheckConstraint("annual_income >= 12000", name="ck_loan_app_annual_income_min"),
        sa.CheckConstraint(f"status IN ({APPLICATION_STATUSES})", name="ck_loan_app_status"),
    )
    op.create_index("idx_app_customer_id", "loan_applications", ["customer_id"])
    op.create_index("idx_app_status", "loan_applications", ["status"])
    op.create_index("idx_app_date", "loan_applications", ["application_date"])
    op.create_index("idx_app_credit_score", "loan_applications", ["credit_score"])

    op.create_table(
        "loan_documents",
        sa.Column("document_id", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column("loan_id", sa.BigInteger(), nullable=False),
        sa.Column("document_type", sa.String(length=50), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("document_url", sa.String(length=500), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("mime_type", sa.String(length=100), nullable=True),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("verified_by", sa.BigInteger(), nullable=True),
        sa.Column("verified_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verification_notes", sa.String(length=500), nullable=True),
        sa.Column("uploaded_by", sa.BigInteger(), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("expiration_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("document_id", name="pk_loan_documents"),
        sa.ForeignKeyConstraint(
            ["loan_id"],
            ["loans.loan_id"],
            name="fk_loan_documents_loan_id_loans",
            ondelete="CASCADE",
        ),
        sa.CheckConstraint(f"document_type IN ({DOCUMENT_TYPES})", name="ck_loan_document_type"),
    )
    op.create_index("idx_doc_loan_id", "loan_documents", ["loan_id"])
    op.create_index("idx_doc_type", "loan_documents", ["document_type"])
    op.create_index("idx_doc_verified", "loan_documents", ["verified"])

    op.create_table(
        "loan_number_sequences",
        sa.Column("year", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("last_value", sa.BigInteger(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("year", name="pk_loan_number_sequences"),
        sa.CheckConstraint("last_value >= 0", name="ck_loan_number_seq_nonneg"),
    )

    op.execute(
        """
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = CURRENT_TIMESTAMP;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        "CREATE TRIGGER update_loans_updated_at BEFORE UPDATE ON loans "
        "FOR EACH ROW EXECUTE FUNCTION update_updated_at_column()"
    )
    op.execute(
        "CREATE TRIGGER update_loan_applications_updated_at BEFORE UPDATE ON loan_applications "
        "FOR EACH ROW EXECUTE FUNCTION update_updated_at_column()"
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS update_loan_applications_updated_at ON loan_applications")
    op.execute("DROP TRIGGER IF EXISTS update_loans_updated_at ON loans")
    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column()")

    op.drop_table("loan_number_sequences")

    op.drop_index("idx_doc_verified", table_name="loan_documents")
    op.drop_index("idx_doc_type", table_name="loan_documents")
    op.drop_index("idx_doc_loan_id", table_name="loan_documents")
    op.drop_table("loan_documents")

    op.drop_index("idx_app_credit_score", table_name="loan_applications")
    op.drop_index("idx_app_date", table_name="loan_applications")
    op.drop_index("idx_app_status", table_name="loan_applications")
    op.drop_index("idx_app_customer_id", table_name="loan_applications")
    op.drop_table("loan_applications")

    op.drop_index("idx_loan_delinquent", table_name="loans")
    op.drop_index("idx_loan_next_payment_date", table_name="loans")
    op.drop_index("idx_loan_application_date", table_name="loans")
    op.drop_index("idx_loan_type", table_name="loans")
    op.drop_index("idx_loan_status", table_name="loans")
    op.drop_index("idx_loan_customer_id", table_name="loans")
    op.drop_table("loans")
