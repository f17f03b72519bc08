"""Create sync run tables

Revision ID: syncrun_001
Revises:
Create Date: 2026-10-19 10:00:00.000000

This migration creates all tables read and written by sync run orchestration:
- configuration_objects: Workspace configuration objects (services, destinations)
- configuration_object_links: Links between objects; type 'sync' for source syncs
- workspace_access: Workspace membership of console users
- source_state: Checkpoint state rows per sync and stream
- source_catalog: Stream catalogs captured by discovery
- source_task: Read tasks dispatched to the sync controller
- task_log: Log lines of sync tasks
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'syncrun_001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # TaskStatus enum
    op.execute("""
        CREATE TYPE taskstatus AS ENUM (
            'RUNNING', 'SUCCEEDED', 'FAILED', 'CANCELLED'
        )
    """)

    # ========================================================================
    # Configuration
    # ========================================================================

    op.create_table('configuration_objects',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('workspace_id', sa.String(64), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('config', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}'),
        sa.Column('deleted', sa.Boolean(), nullable=True, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_configuration_objects_workspace_id', 'configuration_objects', ['workspace_id'])

    op.create_table('configuration_object_links',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('workspace_id', sa.String(64), nullable=False),
        sa.Column('type', sa.String(32), nullable=False, server_default='push'),
        sa.Column('from_id', sa.String(64), nullable=False),
        sa.Column('to_id', sa.String(64), nullable=True),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=True, server_default='{}'),
        sa.Column('deleted', sa.Boolean(), nullable=True, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['from_id'], ['configuration_objects.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_configuration_object_links_workspace_id', 'configuration_object_links', ['workspace_id'])
    op.create_index('idx_links_workspace_type', 'configuration_object_links', ['workspace_id', 'type'])

    op.create_table('workspace_access',
        sa.Column('workspace_id', sa.String(64), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('workspace_id', 'user_id')
    )

    # ========================================================================
    # Source sync
    # ========================================================================

    op.create_table('source_state',
        sa.Column('sync_id', sa.String(64), nullable=False),
        sa.Column('stream', sa.String(512), nullable=False),
        sa.Column('state', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('sync_id', 'stream')
    )

    op.create_table('source_catalog',
        sa.Column('key', sa.String(512), nullable=False),
        sa.Column('package', sa.String(256), nullable=False),
        sa.Column('version', sa.String(64), nullable=False),
        sa.Column('catalog', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('status', sa.String(32), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('key', 'package', 'version')
    )

    op.create_table('source_task',
        sa.Column('task_id', sa.String(64), nullable=False),
        sa.Column('sync_id', sa.String(64), nullable=False),
        sa.Column('package', sa.String(256), nullable=True),
        sa.Column('version', sa.String(64), nullable=True),
        sa.Column('status', postgresql.ENUM('RUNNING', 'SUCCEEDED', 'FAILED', 'CANCELLED', name='taskstatus', create_type=False), nullable=True, server_default='RUNNING'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('task_id')
    )
    op.create_index('ix_source_task_sync_id', 'source_task', ['sync_id'])
    op.create_index('idx_source_task_sync_status', 'source_task', ['sync_id', 'status'])

    op.create_table('task_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('task_id', sa.String(64), nullable=False),
        sa.Column('sync_id', sa.String(64), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('level', sa.String(16), nullable=True, server_default='INFO'),
        sa.Column('logger', sa.String(128), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_task_log_task_id', 'task_log', ['task_id'])


def downgrade():
    # Drop tables in reverse order
    op.drop_table('task_log')
    op.drop_table('source_task')
    op.drop_table('source_catalog')
    op.drop_table('source_state')
    op.drop_table('workspace_access')
    op.drop_table('configuration_object_links')
    op.drop_table('configuration_objects')

    op.execute("DROP TYPE IF EXISTS taskstatus")
