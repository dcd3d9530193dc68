"""
Colaborador de persistencia del odontograma.

OdontogramRepository define el contrato asíncrono que consume el núcleo
(Create, GetByPatientID, GetByID, Update, AddTreatment,
UpdateToothCondition, GetTreatmentHistory). SqlOdontogramRepository lo
implementa con SQLAlchemy async: cada operación abre su propia transacción
y la semántica de concurrencia es last-write-wins por odontograma.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import DuplicateOdontogramError, OdontogramNotFoundError
from app.models.odontogram import Odontogram, ToothTreatment

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class NewTreatment:
    """Entrada del historial append-only de tratamientos."""
    tooth_number: int
    kind: str
    doctor_id: str
    surface: str | None = None
    treatment_code: str | None = None
    description: str | None = None
    before_condition: str | None = None
    after_condition: str | None = None
    cost: Decimal | None = None
    duration_minutes: int | None = None
    completed_at: datetime | None = None


class OdontogramRepository(Protocol):
    async def create(
        self,
        patient_id: str,
        doctor_id: str,
        teeth: list[dict],
        general_notes: str | None = None,
        last_exam_date: datetime | None = None,
    ) -> Odontogram: ...

    async def get_by_patient_id(self, patient_id: str) -> Odontogram | None: ...

    async def get_by_id(self, odontogram_id: str) -> Odontogram | None: ...

    async def update(
        self,
        odontogram_id: str,
        *,
        teeth: list[dict] | None = None,
        general_notes: str | None = _UNSET,
        last_exam_date: datetime | None = _UNSET,
        next_exam_date: datetime | None = _UNSET,
    ) -> Odontogram: ...

    async def add_treatment(self, odontogram_id: str, treatment: NewTreatment) -> ToothTreatment: ...

    async def update_tooth_condition(
        self,
        odontogram_id: str,
        tooth_number: int,
        surfaces: list[dict],
        *,
        is_present: bool | None = None,
        general_notes: str | None = None,
    ) -> Odontogram: ...

    async def get_treatment_history(self, patient_id: str, limit: int = 0) -> list[ToothTreatment]: ...


def _stamp_record(record: dict, now: datetime) -> dict:
    stamped = dict(record)
    stamped["lastUpdated"] = isoformat(now)
    return stamped


class SqlOdontogramRepository:
    """Implementación SQLAlchemy async del colaborador de persistencia."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _load(self, session: AsyncSession, odontogram_id: str) -> Odontogram:
        odontogram = await session.get(Odontogram, odontogram_id)
        if odontogram is None:
            raise OdontogramNotFoundError(odontogram_id)
        return odontogram

    # ── Create ───────────────────────────────────────

    async def create(
        self,
        patient_id: str,
        doctor_id: str,
        teeth: list[dict],
        general_notes: str | None = None,
        last_exam_date: datetime | None = None,
    ) -> Odontogram:
        now = utcnow()
        odontogram = Odontogram(
            patient_id=patient_id,
            doctor_id=doctor_id,
            teeth=[_stamp_record(t, now) for t in teeth],
            general_notes=general_notes,
            last_exam_date=last_exam_date,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._session_factory.begin() as session:
                session.add(odontogram)
        except IntegrityError as exc:
            raise DuplicateOdontogramError(patient_id) from exc
        logger.info("Odontograma %s creado para paciente %s", odontogram.id, patient_id)
        return odontogram

    # ── Lecturas ─────────────────────────────────────

    async def get_by_patient_id(self, patient_id: str) -> Odontogram | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Odontogram).where(Odontogram.patient_id == patient_id)
            )
            return result.scalar_one_or_none()

    async def get_by_id(self, odontogram_id: str) -> Odontogram | None:
        async with self._session_factory() as session:
            return await session.get(Odontogram, odontogram_id)

    # ── Update ───────────────────────────────────────

    async def update(
        self,
        odontogram_id: str,
        *,
        teeth: list[dict] | None = None,
        general_notes: str | None = _UNSET,
        last_exam_date: datetime | None = _UNSET,
        next_exam_date: datetime | None = _UNSET,
    ) -> Odontogram:
        now = utcnow()
        async with self._session_factory.begin() as session:
            odontogram = await self._load(session, odontogram_id)
            if teeth is not None:
                # Last-write-wins: el arreglo se reemplaza completo
                odontogram.teeth = [_stamp_record(t, now) for t in teeth]
            if general_notes is not _UNSET:
                odontogram.general_notes = general_notes
            if last_exam_date is not _UNSET:
                odontogram.last_exam_date = last_exam_date
            if next_exam_date is not _UNSET:
                odontogram.next_exam_date = next_exam_date
            odontogram.updated_at = now
        return odontogram

    async def update_tooth_condition(
        self,
        odontogram_id: str,
        tooth_number: int,
        surfaces: list[dict],
        *,
        is_present: bool | None = None,
        general_notes: str | None = None,
    ) -> Odontogram:
        """Reemplaza las superficies de un diente (lo agrega si no existía)."""
        now = utcnow()
        async with self._session_factory.begin() as session:
            odontogram = await self._load(session, odontogram_id)
            teeth = [dict(t) for t in odontogram.teeth or []]
            record = next((t for t in teeth if t.get("toothNumber") == tooth_number), None)
            if record is None:
                record = {"toothNumber": tooth_number, "isPresent": True, "generalNotes": ""}
                teeth.append(record)
                teeth.sort(key=lambda t: t["toothNumber"])

            record["surfaces"] = [dict(s) for s in surfaces]
            if is_present is not None:
                record["isPresent"] = is_present
            if general_notes is not None:
                record["generalNotes"] = general_notes
            record["lastUpdated"] = isoformat(now)

            # Nueva lista para que SQLAlchemy detecte el cambio del JSON
            odontogram.teeth = teeth
            odontogram.updated_at = now
        return odontogram

    # ── Historial de tratamientos ────────────────────

    async def add_treatment(self, odontogram_id: str, treatment: NewTreatment) -> ToothTreatment:
        now = utcnow()
        async with self._session_factory.begin() as session:
            odontogram = await self._load(session, odontogram_id)
            entry = ToothTreatment(
                odontogram_id=odontogram.id,
                patient_id=odontogram.patient_id,
                doctor_id=treatment.doctor_id,
                tooth_number=treatment.tooth_number,
                surface=treatment.surface,
                kind=treatment.kind,
                treatment_code=treatment.treatment_code,
                description=treatment.description,
                before_condition=treatment.before_condition,
                after_condition=treatment.after_condition,
                cost=treatment.cost,
                duration_minutes=treatment.duration_minutes,
                completed_at=treatment.completed_at or now,
                created_at=now,
            )
            session.add(entry)
        return entry

    async def get_treatment_history(self, patient_id: str, limit: int = 0) -> list[ToothTreatment]:
        """Historial más reciente primero; limit <= 0 significa sin límite."""
        query = (
            select(ToothTreatment)
            .where(ToothTreatment.patient_id == patient_id)
            .order_by(ToothTreatment.created_at.desc())
        )
        if limit > 0:
            query = query.limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())
