"""records table

Revision ID: 3c9d1e7f2a40
Revises:
Create Date: 2026-10-17 10:12:31.418207
"""
from __future__ import annotations

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c9d1e7f2a40"
down_revision: Union[str, Sequence[str], None] = None  # ← raíz, sin dependencias
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Una sola tabla clave-valor para todas las entidades (clientes, recompensas, cupones, ...)
    op.create_table(
        "records",
        sa.Column("pk", sa.String(length=255), nullable=False),
        sa.Column("sk", sa.String(length=255), nullable=False),
        sa.Column("record_type", sa.String(length=50), nullable=True),
        sa.Column("attributes", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("pk", "sk"),
    )
    op.create_index("ix_records_record_type", "records", ["record_type"])


def downgrade() -> None:
    op.drop_index("ix_records_record_type", table_name="records")
    op.drop_table("records")
