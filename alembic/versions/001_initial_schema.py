"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("template_id", sa.String(32), nullable=False),
        sa.Column("vibe", sa.String(64), nullable=False),
        sa.Column("pages_json", postgresql.JSONB(), nullable=False),
        sa.Column("character_refs", postgresql.JSONB()),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
    )
    op.create_table(
        "published_tales",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("project_id", sa.String(36), sa.ForeignKey("projects.id"), nullable=False, unique=True),
        sa.Column("slug", sa.String(32), nullable=False, unique=True),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("narration_url", sa.Text()),
        sa.Column("published_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
    )
    op.create_table(
        "purchases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("provider_ref", sa.String(128), nullable=False, unique=True),
        sa.Column("amount_minor", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
    )
    op.create_table(
        "reactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("published_tale_id", sa.String(36), sa.ForeignKey("published_tales.id"), nullable=False),
        sa.Column("reaction", sa.String(16), nullable=False),
        sa.Column("reply_text", sa.String(160)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
    )
    op.create_index("ix_reactions_published_tale_id", "reactions", ["published_tale_id"])


def downgrade() -> None:
    op.drop_index("ix_reactions_published_tale_id", table_name="reactions")
    op.drop_table("reactions")
    op.drop_table("purchases")
    op.drop_table("published_tales")
    op.drop_table("projects")
