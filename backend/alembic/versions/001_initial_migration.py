# backend/alembic/versions/001_initial_migration.py
"""Initial migration

Revision ID: 001
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create scan_runs table
    op.create_table(
        'scan_runs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('idempotency_key', sa.String(128), nullable=False),
        sa.Column('payload_hash', sa.String(16), nullable=False),
        sa.Column('workspace_id', sa.String(128), nullable=False),
        sa.Column('scanner_name', sa.String(128), nullable=False),
        sa.Column('scanner_version', sa.String(64)),
        sa.Column('source', sa.String(20), server_default=sa.text("'manual'"), nullable=False),
        sa.Column('status', sa.String(20), server_default=sa.text("'processing'"), nullable=False),
        sa.Column('attempt_count', sa.Integer, server_default=sa.text("1"), nullable=False),
        sa.Column('project_count', sa.Integer, server_default=sa.text("0"), nullable=False),
        sa.Column('library_count', sa.Integer, server_default=sa.text("0"), nullable=False),
        sa.Column('component_count', sa.Integer, server_default=sa.text("0"), nullable=False),
        sa.Column('dependency_count', sa.Integer, server_default=sa.text("0"), nullable=False),
        sa.Column('metadata', sa.JSON),
        sa.Column('graph_version_id', sa.Uuid()),
        sa.Column('graph_version_number', sa.Integer),
        sa.Column('error_code', sa.String(64)),
        sa.Column('error_message', sa.String(512)),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('processing', 'succeeded', 'failed')", name='scan_runs_status_check'),
        sa.CheckConstraint("source IN ('manual', 'pipeline', 'scheduled')", name='scan_runs_source_check'),
        sa.CheckConstraint("attempt_count >= 1", name='scan_runs_attempt_count_check'),
    )
    op.create_index('ix_scan_runs_idempotency_key', 'scan_runs', ['idempotency_key'], unique=True)
    op.create_index('ix_scan_runs_workspace_id', 'scan_runs', ['workspace_id'])
    op.create_index(
        'ix_scan_runs_workspace_status_started_at',
        'scan_runs',
        ['workspace_id', 'status', 'started_at'],
    )

    # Create graph_versions table
    op.create_table(
        'graph_versions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('workspace_id', sa.String(128), nullable=False),
        sa.Column('version', sa.Integer, nullable=False),
        sa.Column('scan_run_id', sa.Uuid(), sa.ForeignKey('scan_runs.id'), nullable=False),
        sa.Column('payload_hash', sa.String(16), nullable=False),
        sa.Column('schema_version', sa.Integer, nullable=False),
        sa.Column('workspace_config_path', sa.Text(), nullable=False),
        sa.Column('project_count', sa.Integer, nullable=False),
        sa.Column('library_count', sa.Integer, nullable=False),
        sa.Column('component_count', sa.Integer, nullable=False),
        sa.Column('dependency_count', sa.Integer, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('workspace_id', 'version', name='uq_graph_versions_workspace_version'),
        sa.CheckConstraint("version >= 1", name='graph_versions_version_check'),
    )
    op.create_index('ix_graph_versions_workspace_id', 'graph_versions', ['workspace_id'])
    op.create_index('ix_graph_versions_scan_run_id', 'graph_versions', ['scan_run_id'])

    # Create graph_heads table
    op.create_table(
        'graph_heads',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('workspace_id', sa.String(128), nullable=False),
        sa.Column('latest_version', sa.Integer, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_graph_heads_workspace_id', 'graph_heads', ['workspace_id'], unique=True)

    # Create graph_projects table
    op.create_table(
        'graph_projects',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('version_id', sa.Uuid(), sa.ForeignKey('graph_versions.id'), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('root_path', sa.Text(), nullable=False),
        sa.Column('source_root_path', sa.Text()),
        sa.Column('config_file_path', sa.Text(), nullable=False),
        sa.Column('dependencies', sa.JSON, nullable=False),
    )
    op.create_index('ix_graph_projects_version_id', 'graph_projects', ['version_id'])

    # Create graph_components table
    op.create_table(
        'graph_components',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('version_id', sa.Uuid(), sa.ForeignKey('graph_versions.id'), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('class_name', sa.Text()),
        sa.Column('selector', sa.Text()),
        sa.Column('standalone', sa.Boolean),
        sa.Column('project', sa.Text(), nullable=False),
        sa.Column('file_path', sa.Text(), nullable=False),
        sa.Column('dependencies', sa.JSON, nullable=False),
    )
    op.create_index('ix_graph_components_version_id', 'graph_components', ['version_id'])

    # Create graph_dependencies table
    op.create_table(
        'graph_dependencies',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('version_id', sa.Uuid(), sa.ForeignKey('graph_versions.id'), nullable=False),
        sa.Column('source_project', sa.Text(), nullable=False),
        sa.Column('target_project', sa.Text(), nullable=False),
        sa.Column('via_files', sa.JSON, nullable=False),
        sa.CheckConstraint("source_project <> target_project", name='graph_dependencies_no_self_edge'),
    )
    op.create_index('ix_graph_dependencies_version_id', 'graph_dependencies', ['version_id'])


def downgrade() -> None:
    op.drop_table('graph_dependencies')
    op.drop_table('graph_components')
    op.drop_table('graph_projects')
    op.drop_table('graph_heads')
    op.drop_table('graph_versions')
    op.drop_table('scan_runs')
