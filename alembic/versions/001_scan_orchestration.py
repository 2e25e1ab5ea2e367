"""scan_orchestration

Revision ID: 001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SCAN_STATE = ('queued', 'running', 'complete', 'failed')
TASK_TYPE = ('tech', 'colors', 'seo', 'perf')
TASK_STATUS = ('queued', 'running', 'complete', 'failed')


def upgrade() -> None:
    """Upgrade schema."""
    # Create scans table
    op.create_table(
        'scans',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('last_run_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_scans_id'), 'scans', ['id'], unique=False)
    op.create_index(op.f('ix_scans_url'), 'scans', ['url'], unique=False)
    op.create_index(op.f('ix_scans_user_id'), 'scans', ['user_id'], unique=False)

    # Create scan_status table
    op.create_table(
        'scan_status',
        sa.Column('scan_id', sa.String(), nullable=False),
        sa.Column('status', sa.Enum(*SCAN_STATE, name='scanstate'), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('progress >= 0 AND progress <= 100', name='check_progress_range'),
        sa.ForeignKeyConstraint(['scan_id'], ['scans.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('scan_id')
    )
    op.create_index(op.f('ix_scan_status_status'), 'scan_status', ['status'], unique=False)

    # Create scan_tasks table
    op.create_table(
        'scan_tasks',
        sa.Column('task_id', sa.String(), nullable=False),
        sa.Column('scan_id', sa.String(), nullable=False),
        sa.Column('type', sa.Enum(*TASK_TYPE, name='tasktype'), nullable=False),
        sa.Column('status', sa.Enum(*TASK_STATUS, name='taskstatus'), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['scan_id'], ['scans.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('task_id'),
        sa.UniqueConstraint('scan_id', 'type', name='uq_scan_tasks_scan_type')
    )
    op.create_index(op.f('ix_scan_tasks_scan_id'), 'scan_tasks', ['scan_id'], unique=False)
    op.create_index('idx_scan_tasks_status_created', 'scan_tasks', ['status', 'created_at'], unique=False)

    # Create analysis_cache table
    op.create_table(
        'analysis_cache',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('url_hash', sa.String(255), nullable=False),
        sa.Column('original_url', sa.String(2048), nullable=False),
        sa.Column('audit_json', sa.JSON(), nullable=False),
        sa.Column('schema_version', sa.String(32), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_analysis_cache_url_hash'), 'analysis_cache', ['url_hash'], unique=True)
    op.create_index(op.f('ix_analysis_cache_expires_at'), 'analysis_cache', ['expires_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_analysis_cache_expires_at'), table_name='analysis_cache')
    op.drop_index(op.f('ix_analysis_cache_url_hash'), table_name='analysis_cache')
    op.drop_table('analysis_cache')

    op.drop_index('idx_scan_tasks_status_created', table_name='scan_tasks')
    op.drop_index(op.f('ix_scan_tasks_scan_id'), table_name='scan_tasks')
    op.drop_table('scan_tasks')

    op.drop_index(op.f('ix_scan_status_status'), table_name='scan_status')
    op.drop_table('scan_status')

    op.drop_index(op.f('ix_scans_user_id'), table_name='scans')
    op.drop_index(op.f('ix_scans_url'), table_name='scans')
    op.drop_index(op.f('ix_scans_id'), table_name='scans')
    op.drop_table('scans')

    sa.Enum(name='taskstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='tasktype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='scanstate').drop(op.get_bind(), checkfirst=True)
