"""
Modelos Odontogram y ToothTreatment.

Un odontograma por paciente (patient_id único). Los dientes se guardan
como un arreglo JSON de registros en formato de cable; el historial de
tratamientos es append-only (nunca se edita ni se borra).
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Odontogram(Base):
    __tablename__ = "odontograms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    patient_id: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True,
        comment="A lo sumo un odontograma por paciente"
    )
    doctor_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # ── Estado dental ────────────────────────────────
    teeth: Mapped[list[dict]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list,
        comment="Registros por diente: toothNumber, isPresent, surfaces, generalNotes, lastUpdated"
    )
    general_notes: Mapped[str | None] = mapped_column(Text)

    # ── Control de exámenes ──────────────────────────
    last_exam_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    next_exam_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # ── Timestamps ───────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<Odontogram patient={self.patient_id} teeth={len(self.teeth or [])}>"


class ToothTreatment(Base):
    __tablename__ = "tooth_treatments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    odontogram_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("odontograms.id"), nullable=False
    )
    patient_id: Mapped[str] = mapped_column(String(64), nullable=False)
    doctor_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # ── Diente / superficie (FDI) ────────────────────
    tooth_number: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    surface: Mapped[str | None] = mapped_column(
        String(2), comment="O, V, L, M, D o NULL si aplica al diente completo"
    )

    # ── Tratamiento ──────────────────────────────────
    kind: Mapped[str] = mapped_column(
        String(40), nullable=False,
        comment="surface_edit, tooth_edit, reset, procedure"
    )
    treatment_code: Mapped[str | None] = mapped_column(String(20))
    description: Mapped[str | None] = mapped_column(Text)
    before_condition: Mapped[str | None] = mapped_column(String(40))
    after_condition: Mapped[str | None] = mapped_column(String(40))
    cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    duration_minutes: Mapped[int | None] = mapped_column(Integer)

    # ── Timestamps ───────────────────────────────────
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    # ── Índices ──────────────────────────────────────
    __table_args__ = (
        Index("idx_treatment_patient_created", "patient_id", "created_at"),
        Index("idx_treatment_odontogram_tooth", "odontogram_id", "tooth_number"),
    )

    def __repr__(self) -> str:
        return f"<ToothTreatment tooth={self.tooth_number} [{self.kind}]>"
