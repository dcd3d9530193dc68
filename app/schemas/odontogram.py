"""
Schemas del odontograma: formato de cable (camelCase) compartido con el backend.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.services.tooth_taxonomy import VALID_TEETH

WireSurface = Literal["oclusal", "vestibular", "lingual", "mesial", "distal"]


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _check_tooth(v: int) -> int:
    if v not in VALID_TEETH:
        raise ValueError(
            f"Número de diente FDI inválido: {v}. "
            "Permanentes: 11-18, 21-28, 31-38, 41-48. "
            "Temporales: 51-55, 61-65, 71-75, 81-85."
        )
    return v


# ── Registro por diente ──────────────────────────────

class SurfaceRecord(WireModel):
    surface: WireSurface
    condition: str = Field(..., description="healthy | caries | filled")
    severity: int = Field(1, ge=0, le=5)
    notes: str = ""
    last_modified: datetime | None = None
    modified_by: str | None = None


class ToothRecord(WireModel):
    tooth_number: int = Field(..., description="Número FDI del diente")
    is_present: bool = True
    surfaces: list[SurfaceRecord] = Field(default_factory=list)
    general_notes: str = ""
    last_updated: datetime | None = None

    @field_validator("tooth_number")
    @classmethod
    def validate_tooth(cls, v: int) -> int:
        return _check_tooth(v)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


# ── Odontograma ──────────────────────────────────────

class OdontogramCreate(WireModel):
    patient_id: str = Field(..., min_length=1, max_length=64)
    doctor_id: str = Field(..., min_length=1, max_length=64)


class OdontogramUpdate(WireModel):
    teeth: list[ToothRecord] | None = None
    general_notes: str | None = None
    next_exam_date: datetime | None = None


class OdontogramResponse(WireModel):
    id: str
    patient_id: str
    doctor_id: str
    teeth: list[ToothRecord]
    general_notes: str | None = None
    last_exam_date: datetime | None = None
    next_exam_date: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ToothConditionUpdate(WireModel):
    surfaces: list[SurfaceRecord]
    doctor_id: str = Field(..., min_length=1, max_length=64)
    is_present: bool | None = None
    general_notes: str | None = None


class AssessmentFinding(WireModel):
    tooth_number: int
    surfaces: list[SurfaceRecord]

    @field_validator("tooth_number")
    @classmethod
    def validate_tooth(cls, v: int) -> int:
        return _check_tooth(v)


class InitialAssessment(WireModel):
    doctor_id: str = Field(..., min_length=1, max_length=64)
    findings: list[AssessmentFinding]


# ── Tratamientos ─────────────────────────────────────

class TreatmentCreate(WireModel):
    tooth_number: int
    doctor_id: str = Field(..., min_length=1, max_length=64)
    surface: Literal["O", "V", "L", "M", "D"] | None = None
    kind: str = Field("procedure", max_length=40)
    treatment_code: str | None = Field(None, max_length=20)
    description: str | None = Field(None, max_length=2000)
    before_condition: str | None = Field(None, max_length=40)
    after_condition: str | None = Field(None, max_length=40)
    cost: Decimal | None = Field(None, ge=0)
    duration_minutes: int | None = Field(None, ge=0)

    @field_validator("tooth_number")
    @classmethod
    def validate_tooth(cls, v: int) -> int:
        return _check_tooth(v)


class TreatmentResponse(WireModel):
    id: str
    odontogram_id: str
    patient_id: str
    doctor_id: str
    tooth_number: int
    surface: str | None = None
    kind: str
    treatment_code: str | None = None
    description: str | None = None
    before_condition: str | None = None
    after_condition: str | None = None
    cost: Decimal | None = None
    duration_minutes: int | None = None
    completed_at: datetime | None = None
    created_at: datetime


class SuggestedTreatment(WireModel):
    tooth_number: int
    surface: str | None = None
    treatment_code: str
    description: str
    estimated_cost: Decimal
    estimated_minutes: int
    priority: int


# ── Geometría (consumida por el renderer) ────────────

class ArchPositionResponse(WireModel):
    tooth_number: int
    kind: str
    theta: float
    anchor: tuple[float, float, float]
    yaw: float
    width: float
    position: tuple[float, float, float]
    rotation: tuple[float, float, float]


class ArchLayoutResponse(WireModel):
    jaw: Literal["upper", "lower"]
    dentition: Literal["permanent", "primary"]
    positions: list[ArchPositionResponse]
    gum_line: list[tuple[float, float, float]]


class SurfaceMaterial(WireModel):
    surface: str
    condition: str
    color: str
    opacity: float
    roughness: float
    metalness: float


class ToothMeshResponse(WireModel):
    tooth_number: int
    kind: str
    seed: int
    width: float
    depth: float
    crown_height: float
    positions: list[float]
    normals: list[float]
    indices: list[int]
    materials: list[SurfaceMaterial] = Field(default_factory=list)
    override_color: str | None = None


# ── Interacción (clic 2D / menú radial) ──────────────

class SurfaceClick(WireModel):
    tooth_number: int
    surface: Literal["O", "V", "L", "M", "D"]
    doctor_id: str = Field(..., min_length=1, max_length=64)


class MenuSelection(WireModel):
    """Secuencia de ids elegidos en el menú radial (ítem y, si aplica, sub-ítem)."""
    tooth_number: int
    surface: Literal["O", "V", "L", "M", "D"] | None = None
    path: list[str] = Field(..., min_length=1, max_length=3)
    doctor_id: str = Field(..., min_length=1, max_length=64)


class MenuSectorResponse(WireModel):
    id: str
    label: str
    color: str | None = None
    parent: str | None = None
    start: float
    end: float
    path: str


class ChartToothResponse(WireModel):
    tooth_number: int
    is_present: bool
    surfaces: dict[str, str]
    fills: dict[str, str]
    override: str | None = None
    override_color: str | None = None
    odontogram_id: str | None = None
