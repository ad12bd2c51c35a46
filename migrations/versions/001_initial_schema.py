"""Monitoring tables: cloud_tasks and failed_jobs

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

Tables:
- cloud_tasks: one row per dispatched task, status + event history
- failed_jobs: jobs that exhausted their attempts

Indexes:
- cloud_tasks(task_uuid) - UNIQUE, lookup from lifecycle events
- cloud_tasks(queue, created_at) - dashboard listing
- failed_jobs(uuid)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'cloud_tasks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('task_uuid', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('queue', sa.String(length=255), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=32), server_default='queued', nullable=False),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_cloud_tasks_task_uuid', 'cloud_tasks', ['task_uuid'], unique=True)
    op.create_index('ix_cloud_tasks_status', 'cloud_tasks', ['status'])
    op.create_index('ix_cloud_tasks_queue_created_at', 'cloud_tasks', ['queue', 'created_at'])

    op.create_table(
        'failed_jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('uuid', sa.String(length=64), nullable=False),
        sa.Column('connection', sa.Text(), nullable=False),
        sa.Column('queue', sa.Text(), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('exception', sa.Text(), nullable=False),
        sa.Column('failed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_failed_jobs_uuid', 'failed_jobs', ['uuid'])


def downgrade() -> None:
    op.drop_index('ix_failed_jobs_uuid', table_name='failed_jobs')
    op.drop_table('failed_jobs')

    op.drop_index('ix_cloud_tasks_queue_created_at', table_name='cloud_tasks')
    op.drop_index('ix_cloud_tasks_status', table_name='cloud_tasks')
    op.drop_index('ix_cloud_tasks_task_uuid', table_name='cloud_tasks')
    op.drop_table('cloud_tasks')
