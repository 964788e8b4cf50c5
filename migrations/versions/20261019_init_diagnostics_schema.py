"""create farms and diagnostics tables

Revision ID: 20261019_init_diagnostics_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_init_diagnostics_schema"
down_revision = None
branch_labels = None
depends_on = None


severity_enum = sa.Enum("LOW", "MEDIUM", "HIGH", name="severity")
crop_status_enum = sa.Enum(
    "HEALTHY", "DISEASED", "AT_RISK", "UNKNOWN", name="crop_status"
)


def upgrade() -> None:
    op.create_table(
        "farms",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("location", sa.String(), nullable=False),
        sa.Column("size_hectares", sa.Float(), nullable=False),
        sa.Column("soil_type", sa.String(), nullable=True),
        sa.Column("water_source", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("idx_farms_user", "farms", ["user_id"])

    op.create_table(
        "diagnostics",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "farm_id",
            sa.Integer(),
            sa.ForeignKey("farms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("image_url", sa.String(), nullable=False),
        sa.Column("disease", sa.String(), nullable=False),
        sa.Column("confidence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("severity", severity_enum, nullable=False),
        sa.Column("status", crop_status_enum, nullable=False),
        sa.Column("crop", sa.String(), nullable=False, server_default=""),
        sa.Column("treatment", sa.Text(), nullable=False, server_default=""),
        sa.Column("prevention", sa.Text(), nullable=False, server_default=""),
        sa.Column("model_version", sa.String(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "confidence >= 0 AND confidence <= 100",
            name="ck_diagnostics_confidence_range",
        ),
    )
    op.create_index(
        "idx_diagnostics_farm_created",
        "diagnostics",
        ["farm_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_diagnostics_farm_created", table_name="diagnostics")
    op.drop_table("diagnostics")
    op.drop_index("idx_farms_user", table_name="farms")
    op.drop_table("farms")
    bind = op.get_bind()
    crop_status_enum.drop(bind, checkfirst=True)
    severity_enum.drop(bind, checkfirst=True)
