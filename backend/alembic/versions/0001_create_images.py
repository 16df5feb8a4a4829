"""create images

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "images",
        sa.Column("key", sa.String(length=1024), primary_key=True, nullable=False),
        sa.Column("alive", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("favorite", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("create_date", sa.String(length=40), nullable=False),
        sa.Column("delete_date", sa.String(length=40), nullable=False, server_default=""),
    )
    op.create_index("ix_images_alive", "images", ["alive"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_images_alive", table_name="images")
    op.drop_table("images")
