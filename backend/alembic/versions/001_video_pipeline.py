"""Video pipeline migration.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the videos and upload_ledger tables.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "videos",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("unique_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("zone", sa.String(100), nullable=False),
        sa.Column("owner_id", sa.String(255), nullable=True),
        sa.Column("duration_seconds", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="processing"),
        sa.Column("primary_rendition_key", sa.String(512), nullable=False, server_default=""),
        sa.Column("thumbnail_key", sa.String(512), nullable=False, server_default=""),
        sa.Column("rendition_high_key", sa.String(512), nullable=False, server_default=""),
        sa.Column("rendition_medium_key", sa.String(512), nullable=False, server_default=""),
        sa.Column("rendition_low_key", sa.String(512), nullable=False, server_default=""),
        sa.Column("staging_key", sa.String(512), nullable=False, server_default=""),
        sa.Column("processing_error", sa.Text(), nullable=False, server_default=""),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("unique_id"),
    )
    op.create_index("ix_videos_status_created_at", "videos", ["status", "created_at"])
    op.create_index("ix_videos_category_view_count", "videos", ["category", "view_count"])

    op.create_table(
        "upload_ledger",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("video_id", sa.Uuid(), nullable=True),
        sa.Column("owner_id", sa.String(255), nullable=True),
        sa.Column("file_name", sa.String(512), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("mime_type", sa.String(255), nullable=False),
        sa.Column("storage_type", sa.String(20), nullable=False),
        sa.Column("storage_key", sa.String(512), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_upload_ledger_video_id", "upload_ledger", ["video_id"])
    op.create_index("ix_upload_ledger_owner_id", "upload_ledger", ["owner_id"])


def downgrade() -> None:
    op.drop_index("ix_upload_ledger_owner_id", table_name="upload_ledger")
    op.drop_index("ix_upload_ledger_video_id", table_name="upload_ledger")
    op.drop_table("upload_ledger")
    op.drop_index("ix_videos_category_view_count", table_name="videos")
    op.drop_index("ix_videos_status_created_at", table_name="videos")
    op.drop_table("videos")
