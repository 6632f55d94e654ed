"""
Video assets + storage references.

- Create `video_assets` with the UNIQUE constraint on `external_processor_asset_id`
  (the only coordination point for concurrent registrations).
- Create `storage_references` (ordered child rows, unique per asset/backend/uri).
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic.
revision = "20260101_01_video_assets"
down_revision = None
branch_labels = None
depends_on = None

BACKEND_TYPES = ("OBJECT_STORE", "CDN", "PROCESSOR_STREAM", "ORIGIN_RELAY")
PROCESSING_STATES = ("PENDING", "REGISTERED", "THUMBNAIL_PENDING", "READY", "DISCOVERY_FAILED")
THUMBNAIL_METHODS = ("native", "secondary", "placeholder")


def upgrade() -> None:
    # --- Enum types ---
    backend_type = postgresql.ENUM(*BACKEND_TYPES, name="storage_backend_type", create_type=False)
    processing_state = postgresql.ENUM(*PROCESSING_STATES, name="processing_state", create_type=False)
    thumbnail_method = postgresql.ENUM(*THUMBNAIL_METHODS, name="thumbnail_method", create_type=False)
    for enum_type in (backend_type, processing_state, thumbnail_method):
        enum_type.create(op.get_bind(), checkfirst=True)

    # --- video_assets ---
    op.create_table(
        "video_assets",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("external_processor_asset_id", sa.String(length=255), nullable=True),
        sa.Column("title", sa.String(length=512), nullable=True),
        sa.Column("filename", sa.String(length=1024), nullable=True),
        sa.Column("upload_key", sa.String(length=1024), nullable=True),
        sa.Column("processor_playback_id", sa.String(length=255), nullable=True),
        sa.Column("size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("content_type", sa.String(length=127), nullable=True),
        sa.Column("duration_seconds", sa.Float(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("thumbnail_backend_type", backend_type, nullable=True),
        sa.Column("thumbnail_uri", sa.String(length=2048), nullable=True),
        sa.Column("thumbnail_method", thumbnail_method, nullable=True),
        sa.Column("thumbnail_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_state", processing_state, nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_video_assets"),
        sa.UniqueConstraint("external_processor_asset_id", name="uq_video_assets_external_processor_asset_id"),
    )
    op.create_index("ix_video_assets_id", "video_assets", ["id"], unique=False)
    op.create_index("ix_video_assets_filename", "video_assets", ["filename"], unique=False)
    op.create_index("ix_video_assets_processing_state", "video_assets", ["processing_state"], unique=False)
    op.create_index("ix_video_assets_created_at", "video_assets", ["created_at"], unique=False)
    op.create_check_constraint(
        "ck_video_assets_external_id_not_blank",
        "video_assets",
        "(external_processor_asset_id IS NULL) OR (length(btrim(external_processor_asset_id)) > 0)",
    )
    op.create_check_constraint("ck_video_assets_size_nonneg", "video_assets", "(size_bytes IS NULL) OR (size_bytes >= 0)")
    op.create_check_constraint(
        "ck_video_assets_thumbnail_has_method", "video_assets", "(thumbnail_uri IS NULL) = (thumbnail_method IS NULL)"
    )
    op.create_check_constraint("ck_video_assets_updated_after_created", "video_assets", "updated_at >= created_at")

    # --- storage_references ---
    op.create_table(
        "storage_references",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("video_asset_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("backend_type", backend_type, nullable=False),
        sa.Column("uri", sa.String(length=2048), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_storage_references"),
        sa.ForeignKeyConstraint(
            ["video_asset_id"],
            ["video_assets.id"],
            name="fk_storage_references_video_asset_id_video_assets",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "video_asset_id", "backend_type", "uri", name="uq_storage_references_asset_backend_uri"
        ),
    )
    op.create_index("ix_storage_references_video_asset_id", "storage_references", ["video_asset_id"], unique=False)
    op.create_check_constraint("ck_storage_references_position_nonneg", "storage_references", "position >= 0")
    op.create_check_constraint("ck_storage_references_uri_not_blank", "storage_references", "length(btrim(uri)) > 0")


def downgrade() -> None:
    op.drop_index("ix_storage_references_video_asset_id", table_name="storage_references")
    op.drop_table("storage_references")

    op.drop_index("ix_video_assets_created_at", table_name="video_assets")
    op.drop_index("ix_video_assets_processing_state", table_name="video_assets")
    op.drop_index("ix_video_assets_filename", table_name="video_assets")
    op.drop_index("ix_video_assets_id", table_name="video_assets")
    op.drop_table("video_assets")

    for name in ("thumbnail_method", "processing_state", "storage_backend_type"):
        postgresql.ENUM(name=name).drop(op.get_bind(), checkfirst=True)
