"""
Create schedule_jobs table

Revision ID: 0001_create_schedule_jobs
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_create_schedule_jobs"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create schedule_jobs table"""
    op.create_table(
        "schedule_jobs",
        sa.Column("job_id", sa.String(length=36), nullable=False),
        sa.Column("job_key", sa.Integer(), nullable=True),
        sa.Column("status", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=32), nullable=False),
        sa.Column("trigger_type", sa.String(length=16), nullable=False),
        sa.Column("expression", sa.String(length=255), nullable=False),
        sa.Column("http_method", sa.String(length=8), nullable=False),
        sa.Column("http_target_url", sa.Text(), nullable=False),
        sa.Column("http_request_body", sa.Text(), nullable=False),
        sa.Column("json_web_token", sa.Text(), nullable=False),
        sa.Column("creation_time", sa.BigInteger(), nullable=False),
        sa.Column("update_time", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("job_id"),
    )
    op.create_index("idx_schedule_jobs_status", "schedule_jobs", ["status"])


def downgrade() -> None:
    """Drop schedule_jobs table"""
    op.drop_index("idx_schedule_jobs_status", table_name="schedule_jobs")
    op.drop_table("schedule_jobs")
