"""
Paleta del odontograma: colores por condición y parámetros de material
que se entregan al renderer junto con el buffer de la malla.
"""

from dataclasses import dataclass

from app.services.chart_state import Surface, SurfaceCondition, ToothAction
from app.services.tooth_mesh import ToothDimensions
from app.services.tooth_taxonomy import ToothKind

ENAMEL = "#f8f4ec"
GINGIVA = "#e8a0a0"

SURFACE_FILL: dict[SurfaceCondition, str] = {
    SurfaceCondition.NONE: "#ffffff",
    SurfaceCondition.CARIES: "#ef4444",
    SurfaceCondition.RESTORED: "#3b82f6",
    SurfaceCondition.COMPLETED: "#10b981",
}

SURFACE_STROKE: dict[SurfaceCondition, str] = {
    SurfaceCondition.NONE: "#cbd5e1",
    SurfaceCondition.CARIES: "#dc2626",
    SurfaceCondition.RESTORED: "#2563eb",
    SurfaceCondition.COMPLETED: "#059669",
}

INDICATED_COLOR = "#ef4444"
DONE_COLOR = "#2563eb"
MISSING_COLOR = "#94a3b8"
TRANSPARENT = "transparent"

TOOTH_ACTION_COLORS: dict[ToothAction, str] = {
    ToothAction.EXTRACTION_INDICATED: INDICATED_COLOR,
    ToothAction.ENDODONTIC_INDICATED: INDICATED_COLOR,
    ToothAction.CROWN_INDICATED: INDICATED_COLOR,
    ToothAction.IMPLANT_INDICATED: INDICATED_COLOR,
    ToothAction.ERUPTION_ALTERED: INDICATED_COLOR,
    ToothAction.FRACTURE: INDICATED_COLOR,
    ToothAction.EXTRACTION_DONE: DONE_COLOR,
    ToothAction.ENDODONTIC_DONE: DONE_COLOR,
    ToothAction.CROWN_DONE: DONE_COLOR,
    # Corona defectuosa: relleno azul, borde rojo
    ToothAction.CROWN_DEFECTIVE: DONE_COLOR,
    ToothAction.IMPLANT_DONE: DONE_COLOR,
    ToothAction.ERUPTION: DONE_COLOR,
    ToothAction.MISSING: MISSING_COLOR,
}


def surface_fill(condition: SurfaceCondition) -> str:
    return SURFACE_FILL[SurfaceCondition(condition)]


def surface_stroke(condition: SurfaceCondition) -> str:
    return SURFACE_STROKE[SurfaceCondition(condition)]


def tooth_action_color(action: ToothAction | None) -> str:
    if action is None:
        return TRANSPARENT
    return TOOTH_ACTION_COLORS.get(ToothAction(action), TRANSPARENT)


@dataclass(frozen=True)
class MaterialParams:
    color: str
    opacity: float = 0.82
    roughness: float = 0.45
    metalness: float = 0.02
    transparent: bool = True


def surface_material(condition: SurfaceCondition) -> MaterialParams:
    return MaterialParams(color=surface_fill(condition))


ENAMEL_MATERIAL = MaterialParams(
    color=ENAMEL, opacity=1.0, roughness=0.10, metalness=0.06, transparent=False
)


# ── Marcadores de superficie (modo "marcar" 3D) ─────

@dataclass(frozen=True)
class SurfaceMarker:
    surface: Surface
    center: tuple[float, float, float]
    size: tuple[float, float, float]


MARKER_THICKNESS = 0.06


def occlusal_height(kind: ToothKind, crown_height: float) -> float:
    """Altura local de la cara oclusal/incisal (sin el enterrado)."""
    if kind is ToothKind.CANINE:
        return crown_height * 0.59
    if kind in (ToothKind.CENTRAL_INCISOR, ToothKind.LATERAL_INCISOR):
        return crown_height * 0.54
    return crown_height * 0.52


def surface_marker_boxes(kind: ToothKind, dims: ToothDimensions) -> list[SurfaceMarker]:
    """Cajas clicables alrededor de la corona, en coordenadas locales del diente."""
    w, d, h = dims.width, dims.depth, dims.crown_height
    top_y = occlusal_height(kind, h)
    t = MARKER_THICKNESS
    return [
        SurfaceMarker(Surface.OCLUSAL, (0.0, top_y, 0.0), (w * 0.7, t, d * 0.7)),
        SurfaceMarker(Surface.VESTIBULAR, (0.0, 0.0, d * 0.52), (w * 0.7, h * 0.55, t)),
        SurfaceMarker(Surface.LINGUAL, (0.0, 0.0, -d * 0.52), (w * 0.7, h * 0.55, t)),
        SurfaceMarker(Surface.MESIAL, (-w * 0.52, 0.0, 0.0), (t, h * 0.55, d * 0.7)),
        SurfaceMarker(Surface.DISTAL, (w * 0.52, 0.0, 0.0), (t, h * 0.55, d * 0.7)),
    ]
