"""Create master_files, files and scans tables

Revision ID: 001_initial_schema
Revises: 
Create Date: 2025-03-02 09:00:00.000000

Stores created by the first desktop release already have these tables but
no alembic_version table; existing tables are left untouched.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from file_tracker.models.records import touch_trigger_sql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the three base tables and the updated_at triggers."""
    existing = set(sa.inspect(op.get_bind()).get_table_names())

    if 'master_files' not in existing:
        op.create_table(
            'master_files',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('description', sa.Text(), nullable=False, server_default=''),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('name')
        )

    if 'files' not in existing:
        op.create_table(
            'files',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('title', sa.Text(), nullable=False),
            sa.Column('reference_number', sa.Text(), nullable=False, server_default=''),
            sa.Column('description', sa.Text(), nullable=False, server_default=''),
            sa.Column('date_received', sa.Text(), nullable=False, server_default=''),
            sa.Column('date_sent', sa.Text(), nullable=False, server_default=''),
            sa.Column('tags', sa.Text(), nullable=False, server_default=''),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_files_updated_at', 'files', ['updated_at'])

    if 'scans' not in existing:
        op.create_table(
            'scans',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('file_id', sa.Integer(), nullable=False),
            sa.Column('filename', sa.Text(), nullable=False),
            sa.Column('filepath', sa.Text(), nullable=False),
            sa.Column('mimetype', sa.String(length=255), nullable=False),
            sa.Column('size', sa.Integer(), nullable=False),
            sa.Column('uploaded_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()),
            sa.ForeignKeyConstraint(['file_id'], ['files.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_scans_file_id', 'scans', ['file_id'])

    # Legacy triggers touched updated_at unconditionally; replace them
    for table in ('master_files', 'files'):
        op.execute(f"DROP TRIGGER IF EXISTS update_{table}_updated_at")
        op.execute(touch_trigger_sql(table))


def downgrade() -> None:
    """Drop all tables."""
    for table in ('master_files', 'files'):
        op.execute(f"DROP TRIGGER IF EXISTS update_{table}_updated_at")
    op.drop_table('scans')
    op.drop_table('files')
    op.drop_table('master_files')
