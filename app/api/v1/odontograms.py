"""
Endpoints del odontograma: creación idempotente por paciente, actualización
de dientes, historial append-only y sugerencias de tratamiento.
"""

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_odontogram_repository
from app.config import get_settings
from app.schemas.odontogram import (
    InitialAssessment,
    OdontogramCreate,
    OdontogramResponse,
    OdontogramUpdate,
    SuggestedTreatment,
    ToothConditionUpdate,
    TreatmentCreate,
    TreatmentResponse,
)
from app.services import odontogram_service
from app.services.odontogram_repository import OdontogramRepository

router = APIRouter()
settings = get_settings()


@router.post("", response_model=OdontogramResponse, status_code=201)
async def create_odontogram(
    data: OdontogramCreate,
    repo: OdontogramRepository = Depends(get_odontogram_repository),
):
    """
    Crea el odontograma del paciente con las 32 piezas sanas.
    Si ya existe, retorna el existente.
    """
    return await odontogram_service.create_odontogram(
        repo, patient_id=data.patient_id, doctor_id=data.doctor_id
    )


@router.get("/patient/{patient_id}", response_model=OdontogramResponse)
async def get_patient_odontogram(
    patient_id: str,
    repo: OdontogramRepository = Depends(get_odontogram_repository),
):
    """Odontograma actual del paciente."""
    return await odontogram_service.get_by_patient(repo, patient_id)


@router.get("/patient/{patient_id}/history", response_model=list[TreatmentResponse])
async def get_treatment_history(
    patient_id: str,
    limit: int = Query(settings.TREATMENT_HISTORY_LIMIT, ge=0, le=1000),
    repo: OdontogramRepository = Depends(get_odontogram_repository),
):
    """Historial de tratamientos del paciente, del más reciente al más antiguo."""
    return await odontogram_service.get_treatment_history(repo, patient_id, limit)


@router.get(
    "/patient/{patient_id}/tooth/{tooth_number}/history",
    response_model=list[TreatmentResponse],
)
async def get_tooth_history(
    patient_id: str,
    tooth_number: int,
    repo: OdontogramRepository = Depends(get_odontogram_repository),
):
    """Historial de un diente específico."""
    return await odontogram_service.get_tooth_history(repo, patient_id, tooth_number)


@router.get("/{odontogram_id}", response_model=OdontogramResponse)
async def get_odontogram(
    odontogram_id: str,
    repo: OdontogramRepository = Depends(get_odontogram_repository),
):
    return await odontogram_service.get_by_id(repo, odontogram_id)


@router.put("/{odontogram_id}", response_model=OdontogramResponse)
async def update_odontogram(
    odontogram_id: str,
    data: OdontogramUpdate,
    repo: OdontogramRepository = Depends(get_odontogram_repository),
):
    """
    Reemplaza los registros de dientes (last-write-wins).
    Los dientes omitidos se consideran sanos.
    """
    return await odontogram_service.update_odontogram(
        repo,
        odontogram_id,
        teeth=data.teeth,
        general_notes=data.general_notes,
        next_exam_date=data.next_exam_date,
    )


@router.put("/{odontogram_id}/teeth/{tooth_number}", response_model=OdontogramResponse)
async def update_tooth_condition(
    odontogram_id: str,
    tooth_number: int,
    data: ToothConditionUpdate,
    repo: OdontogramRepository = Depends(get_odontogram_repository),
):
    """Actualiza las superficies de un diente."""
    return await odontogram_service.update_tooth_condition(
        repo,
        odontogram_id,
        tooth_number,
        data.surfaces,
        data.doctor_id,
        is_present=data.is_present,
        general_notes=data.general_notes,
    )


@router.post("/{odontogram_id}/assessment", response_model=OdontogramResponse)
async def initial_assessment(
    odontogram_id: str,
    data: InitialAssessment,
    repo: OdontogramRepository = Depends(get_odontogram_repository),
):
    """Carga masiva de hallazgos de la evaluación inicial."""
    return await odontogram_service.generate_initial_assessment(
        repo, odontogram_id, data.findings, data.doctor_id
    )


@router.post(
    "/{odontogram_id}/treatments", response_model=TreatmentResponse, status_code=201
)
async def record_treatment(
    odontogram_id: str,
    data: TreatmentCreate,
    repo: OdontogramRepository = Depends(get_odontogram_repository),
):
    """Registra un tratamiento en el historial (append-only)."""
    return await odontogram_service.record_treatment(repo, odontogram_id, data)


@router.get(
    "/{odontogram_id}/suggested-treatments", response_model=list[SuggestedTreatment]
)
async def suggested_treatments(
    odontogram_id: str,
    repo: OdontogramRepository = Depends(get_odontogram_repository),
):
    """Tratamientos sugeridos según los hallazgos del odontograma."""
    return await odontogram_service.get_suggested_treatments(repo, odontogram_id)
