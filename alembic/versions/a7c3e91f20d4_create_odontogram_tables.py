"""Create odontograms and tooth_treatments tables

Un odontograma por paciente (dientes como arreglo JSON en formato de
cable) y el historial append-only de tratamientos por diente.

Revision ID: a7c3e91f20d4
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision: str = "a7c3e91f20d4"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "odontograms",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("patient_id", sa.String(64), nullable=False, unique=True,
                  comment="A lo sumo un odontograma por paciente"),
        sa.Column("doctor_id", sa.String(64), nullable=False),
        sa.Column("teeth", sa.JSON().with_variant(JSONB(), "postgresql"), nullable=False,
                  comment="Registros por diente: toothNumber, isPresent, surfaces, generalNotes, lastUpdated"),
        sa.Column("general_notes", sa.Text(), nullable=True),
        sa.Column("last_exam_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_exam_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "tooth_treatments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("odontogram_id", sa.String(36), sa.ForeignKey("odontograms.id"), nullable=False),
        sa.Column("patient_id", sa.String(64), nullable=False),
        sa.Column("doctor_id", sa.String(64), nullable=False),
        sa.Column("tooth_number", sa.SmallInteger(), nullable=False),
        sa.Column("surface", sa.String(2), nullable=True,
                  comment="O, V, L, M, D o NULL si aplica al diente completo"),
        sa.Column("kind", sa.String(40), nullable=False,
                  comment="surface_edit, tooth_edit, reset, procedure"),
        sa.Column("treatment_code", sa.String(20), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("before_condition", sa.String(40), nullable=True),
        sa.Column("after_condition", sa.String(40), nullable=True),
        sa.Column("cost", sa.Numeric(10, 2), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_index(
        "idx_treatment_patient_created", "tooth_treatments", ["patient_id", "created_at"]
    )
    op.create_index(
        "idx_treatment_odontogram_tooth", "tooth_treatments", ["odontogram_id", "tooth_number"]
    )


def downgrade() -> None:
    op.drop_index("idx_treatment_odontogram_tooth", table_name="tooth_treatments")
    op.drop_index("idx_treatment_patient_created", table_name="tooth_treatments")
    op.drop_table("tooth_treatments")
    op.drop_table("odontograms")
