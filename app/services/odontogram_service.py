"""
Servicio de odontograma: creación idempotente, actualización por diente,
historial append-only de tratamientos y sugerencias de tratamiento.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal

from app.core.exceptions import (
    ConflictException,
    DuplicateOdontogramError,
    NotFoundException,
    OdontogramNotFoundError,
    ValidationException,
)
from app.models.odontogram import Odontogram, ToothTreatment
from app.schemas.odontogram import (
    AssessmentFinding,
    OdontogramResponse,
    SuggestedTreatment,
    SurfaceRecord,
    ToothRecord,
    TreatmentCreate,
    TreatmentResponse,
)
from app.services.chart_serialization import canonical_serializer
from app.services.chart_state import ToothState
from app.services.odontogram_repository import (
    NewTreatment,
    OdontogramRepository,
    isoformat,
    utcnow,
)
from app.services.tooth_taxonomy import UPPER_PERMANENT, LOWER_PERMANENT, validate_tooth

logger = logging.getLogger(__name__)

# Código, descripción, costo estimado, minutos
TREATMENT_SUGGESTIONS: dict[str, tuple[str, str, Decimal, int]] = {
    "caries": ("D2140", "Obturación diente {tooth}", Decimal("50.00"), 45),
    "fracture": ("D2750", "Corona para diente fracturado {tooth}", Decimal("300.00"), 90),
    "missing": ("D6010", "Implante para diente ausente {tooth}", Decimal("1200.00"), 120),
}


# ── Helpers ──────────────────────────────────────────

def _to_response(odontogram: Odontogram) -> OdontogramResponse:
    """Convierte un modelo Odontogram a su schema de respuesta."""
    return OdontogramResponse(
        id=odontogram.id,
        patient_id=odontogram.patient_id,
        doctor_id=odontogram.doctor_id,
        teeth=[ToothRecord.model_validate(t) for t in odontogram.teeth or []],
        general_notes=odontogram.general_notes,
        last_exam_date=odontogram.last_exam_date,
        next_exam_date=odontogram.next_exam_date,
        created_at=odontogram.created_at,
        updated_at=odontogram.updated_at,
    )


def _treatment_to_response(entry: ToothTreatment) -> TreatmentResponse:
    return TreatmentResponse(
        id=entry.id,
        odontogram_id=entry.odontogram_id,
        patient_id=entry.patient_id,
        doctor_id=entry.doctor_id,
        tooth_number=entry.tooth_number,
        surface=entry.surface,
        kind=entry.kind,
        treatment_code=entry.treatment_code,
        description=entry.description,
        before_condition=entry.before_condition,
        after_condition=entry.after_condition,
        cost=entry.cost,
        duration_minutes=entry.duration_minutes,
        completed_at=entry.completed_at,
        created_at=entry.created_at,
    )


def _stamp_surfaces(surfaces: list[SurfaceRecord], doctor_id: str) -> list[dict]:
    """Marca cada superficie con fecha de modificación y doctor."""
    now = isoformat(utcnow())
    stamped = []
    for surface in surfaces:
        record = surface.model_dump(by_alias=True, mode="json", exclude_none=True)
        record["lastModified"] = now
        record["modifiedBy"] = doctor_id
        stamped.append(record)
    return stamped


def initial_teeth() -> list[dict]:
    """Las 32 piezas permanentes presentes y sanas."""
    numbers = sorted(UPPER_PERMANENT + LOWER_PERMANENT)
    return [canonical_serializer(n, ToothState.default()) for n in numbers]


async def _require(repo: OdontogramRepository, odontogram_id: str) -> Odontogram:
    odontogram = await repo.get_by_id(odontogram_id)
    if odontogram is None:
        raise NotFoundException("Odontograma")
    return odontogram


# ── Crear odontograma ────────────────────────────────

async def create_odontogram(
    repo: OdontogramRepository,
    patient_id: str,
    doctor_id: str,
) -> OdontogramResponse:
    """
    Crea el odontograma del paciente. Si ya existe, retorna el existente
    (a lo sumo uno por paciente).
    """
    existing = await repo.get_by_patient_id(patient_id)
    if existing is not None:
        return _to_response(existing)

    try:
        odontogram = await repo.create(
            patient_id=patient_id,
            doctor_id=doctor_id,
            teeth=initial_teeth(),
            last_exam_date=utcnow(),
        )
    except DuplicateOdontogramError:
        # Otro request lo creó entre la lectura y la escritura
        odontogram = await repo.get_by_patient_id(patient_id)
        if odontogram is None:
            raise ConflictException("El paciente ya tiene odontograma") from None
    return _to_response(odontogram)


# ── Lecturas ─────────────────────────────────────────

async def get_by_patient(repo: OdontogramRepository, patient_id: str) -> OdontogramResponse:
    odontogram = await repo.get_by_patient_id(patient_id)
    if odontogram is None:
        raise NotFoundException("Odontograma")
    return _to_response(odontogram)


async def get_by_id(repo: OdontogramRepository, odontogram_id: str) -> OdontogramResponse:
    return _to_response(await _require(repo, odontogram_id))


# ── Actualizaciones ──────────────────────────────────

async def update_odontogram(
    repo: OdontogramRepository,
    odontogram_id: str,
    teeth: list[ToothRecord] | None = None,
    general_notes: str | None = None,
    next_exam_date: datetime | None = None,
) -> OdontogramResponse:
    """Reemplaza los registros de dientes (last-write-wins) y marca el examen."""
    kwargs = {"last_exam_date": utcnow()}
    if teeth is not None:
        numbers = [t.tooth_number for t in teeth]
        if len(numbers) != len(set(numbers)):
            raise ValidationException("Cada diente puede aparecer una sola vez")
        kwargs["teeth"] = [t.to_wire() for t in teeth]
    if general_notes is not None:
        kwargs["general_notes"] = general_notes
    if next_exam_date is not None:
        kwargs["next_exam_date"] = next_exam_date
    try:
        odontogram = await repo.update(odontogram_id, **kwargs)
    except OdontogramNotFoundError:
        raise NotFoundException("Odontograma") from None
    return _to_response(odontogram)


async def update_tooth_condition(
    repo: OdontogramRepository,
    odontogram_id: str,
    tooth_number: int,
    surfaces: list[SurfaceRecord],
    doctor_id: str,
    is_present: bool | None = None,
    general_notes: str | None = None,
) -> OdontogramResponse:
    validate_tooth(tooth_number)
    try:
        odontogram = await repo.update_tooth_condition(
            odontogram_id,
            tooth_number,
            _stamp_surfaces(surfaces, doctor_id),
            is_present=is_present,
            general_notes=general_notes,
        )
    except OdontogramNotFoundError:
        raise NotFoundException("Odontograma") from None
    return _to_response(odontogram)


async def generate_initial_assessment(
    repo: OdontogramRepository,
    odontogram_id: str,
    findings: list[AssessmentFinding],
    doctor_id: str,
) -> OdontogramResponse:
    """Carga masiva de hallazgos iniciales por diente."""
    odontogram = await _require(repo, odontogram_id)
    for finding in findings:
        try:
            odontogram = await repo.update_tooth_condition(
                odontogram_id,
                finding.tooth_number,
                _stamp_surfaces(finding.surfaces, doctor_id),
            )
        except OdontogramNotFoundError:
            raise NotFoundException("Odontograma") from None
    logger.info(
        "Evaluación inicial registrada en odontograma %s (%d dientes)",
        odontogram_id, len(findings),
    )
    return _to_response(odontogram)


# ── Tratamientos ─────────────────────────────────────

async def record_treatment(
    repo: OdontogramRepository,
    odontogram_id: str,
    data: TreatmentCreate,
) -> TreatmentResponse:
    """Agrega una entrada al historial append-only."""
    await _require(repo, odontogram_id)
    entry = await repo.add_treatment(
        odontogram_id,
        NewTreatment(
            tooth_number=data.tooth_number,
            kind=data.kind,
            doctor_id=data.doctor_id,
            surface=data.surface,
            treatment_code=data.treatment_code,
            description=data.description,
            before_condition=data.before_condition,
            after_condition=data.after_condition,
            cost=data.cost,
            duration_minutes=data.duration_minutes,
        ),
    )
    logger.info(
        "Tratamiento %s registrado en diente %s (odontograma %s)",
        data.kind, data.tooth_number, odontogram_id,
    )
    return _treatment_to_response(entry)


async def get_treatment_history(
    repo: OdontogramRepository,
    patient_id: str,
    limit: int = 0,
) -> list[TreatmentResponse]:
    entries = await repo.get_treatment_history(patient_id, limit)
    return [_treatment_to_response(e) for e in entries]


async def get_tooth_history(
    repo: OdontogramRepository,
    patient_id: str,
    tooth_number: int,
) -> list[TreatmentResponse]:
    """Historial completo de un diente, del más reciente al más antiguo."""
    validate_tooth(tooth_number)
    entries = await repo.get_treatment_history(patient_id, 0)
    return [_treatment_to_response(e) for e in entries if e.tooth_number == tooth_number]


# ── Sugerencias de tratamiento ───────────────────────

def _tooth_level_condition(record: dict) -> str | None:
    notes = record.get("generalNotes") or ""
    if notes:
        try:
            parsed = json.loads(notes)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict) and parsed.get("condition"):
            return parsed["condition"]
    if record.get("isPresent") is False:
        return "missing"
    return None


def _suggestion(tooth: int, surface: str | None, condition: str, priority: int) -> SuggestedTreatment | None:
    if condition not in TREATMENT_SUGGESTIONS:
        return None
    code, description, cost, minutes = TREATMENT_SUGGESTIONS[condition]
    description = description.format(tooth=tooth)
    if surface:
        description += f" superficie {surface}"
    return SuggestedTreatment(
        tooth_number=tooth,
        surface=surface,
        treatment_code=code,
        description=description,
        estimated_cost=cost,
        estimated_minutes=minutes,
        priority=priority,
    )


def suggest_treatments(odontogram: OdontogramResponse | Odontogram) -> list[SuggestedTreatment]:
    """
    Sugiere tratamientos a partir de los hallazgos: caries → obturación,
    fractura → corona, ausente → implante. Prioridad en orden del gráfico.
    """
    teeth = odontogram.teeth
    records = [t.to_wire() if isinstance(t, ToothRecord) else t for t in teeth or []]
    suggestions: list[SuggestedTreatment] = []
    for record in sorted(records, key=lambda r: r["toothNumber"]):
        tooth = record["toothNumber"]
        for surface in record.get("surfaces") or []:
            suggestion = _suggestion(
                tooth, surface.get("surface"), surface.get("condition", ""), len(suggestions) + 1
            )
            if suggestion:
                suggestions.append(suggestion)
        condition = _tooth_level_condition(record)
        if condition:
            suggestion = _suggestion(tooth, None, condition, len(suggestions) + 1)
            if suggestion:
                suggestions.append(suggestion)
    return suggestions


async def get_suggested_treatments(
    repo: OdontogramRepository,
    odontogram_id: str,
) -> list[SuggestedTreatment]:
    return suggest_treatments(await _require(repo, odontogram_id))
