"""initial kiosk schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "employees",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("department", sa.String(), nullable=True),
        sa.Column("photo_url", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_employees_first_name", "employees", ["first_name"])
    op.create_index("ix_employees_email", "employees", ["email"])

    op.create_table(
        "visitor_logs",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("visitor_name", sa.String(), nullable=False),
        sa.Column("company_name", sa.String(), nullable=True),
        sa.Column("purpose_of_visit", sa.String(), nullable=True),
        sa.Column("employee_visited_id", sa.String(32), nullable=False),
        sa.Column("employee_visited_name", sa.String(), nullable=False),
        sa.Column("check_in_time", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("check_out_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("has_checked_out", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.CheckConstraint(
            "(NOT has_checked_out AND check_out_time IS NULL) "
            "OR (has_checked_out AND check_out_time IS NOT NULL)",
            name="ck_visitor_logs_checkout_consistent",
        ),
    )
    op.create_index("ix_visitor_logs_employee_visited_id", "visitor_logs", ["employee_visited_id"])
    op.create_index("ix_visitor_logs_check_in_time", "visitor_logs", ["check_in_time"])
    op.create_index("ix_visitor_logs_has_checked_out", "visitor_logs", ["has_checked_out"])

    op.create_table(
        "preregistrations",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("visitor_name", sa.String(), nullable=False),
        sa.Column("visitor_company", sa.String(), nullable=True),
        sa.Column("employee_to_see_id", sa.String(32), nullable=False),
        sa.Column("arrival_timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
    )

    op.create_table(
        "admin_users",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("hashed_password", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_admin_users_email", "admin_users", ["email"], unique=True)


def downgrade():
    op.drop_table("admin_users")
    op.drop_table("preregistrations")
    op.drop_table("visitor_logs")
    op.drop_table("employees")
