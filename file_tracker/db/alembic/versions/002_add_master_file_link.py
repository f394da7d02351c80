"""Link files to master files

Revision ID: 002_add_master_file_link
Revises: 001_initial_schema
Create Date: 2025-04-11 14:30:00.000000

"""
import logging

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "002_add_master_file_link"
down_revision = "001_initial_schema"
branch_labels = None
depends_on = None

logger = logging.getLogger(__name__)


def upgrade():
    columns = {col["name"] for col in sa.inspect(op.get_bind()).get_columns("files")}
    if "master_file_id" in columns:
        logger.info("files.master_file_id already present")
    else:
        # Plain ALTER keeps the table (and its triggers) in place; batch mode would rebuild it
        op.execute(
            "ALTER TABLE files ADD COLUMN master_file_id INTEGER "
            "REFERENCES master_files (id) ON DELETE SET NULL"
        )
        logger.info("Added master_file_id column to files table")

    op.execute("CREATE INDEX IF NOT EXISTS ix_files_master_file_id ON files (master_file_id)")


def downgrade():
    op.drop_index("ix_files_master_file_id", table_name="files")
    with op.batch_alter_table("files") as batch_op:
        batch_op.drop_column("master_file_id")
