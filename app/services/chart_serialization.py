"""
Capa de serialización / compatibilidad del odontograma.

Convierte ChartState ↔ registros de diente del formato persistido por el
backend:

    {"toothNumber", "isPresent", "surfaces": [{"surface", "condition",
     "severity", "notes"}], "generalNotes"}

Conviven dos sub-formatos de escritura:
    (a) canónico: un serializer (callable) produce el registro completo.
    (b) abreviado legado: superficies por letra {O,V,L,M,D}; las que están
        en "none" se omiten.

El mapeo de condiciones es deliberadamente con pérdida:
completed → filled → restored. No debe "corregirse": el backend depende de él.
"""

import json
import logging
from typing import Any, Callable, Iterable, Mapping

from app.services.chart_state import (
    SURFACE_ORDER,
    ChartState,
    Surface,
    SurfaceCondition,
    ToothAction,
    ToothState,
)
from app.services.tooth_taxonomy import validate_tooth

logger = logging.getLogger(__name__)

ToothRecord = dict[str, Any]
ToothSerializer = Callable[[int, ToothState, str], ToothRecord]

DEFAULT_SEVERITY = 1

# ── Condición de diente completo ↔ {condition, severity} del backend ──
TOOTH_ACTION_TO_WIRE: dict[ToothAction, tuple[str, int]] = {
    ToothAction.EXTRACTION_INDICATED: ("extracted", 1),
    ToothAction.EXTRACTION_DONE: ("extracted", 2),
    ToothAction.ENDODONTIC_INDICATED: ("endodontic", 1),
    ToothAction.ENDODONTIC_DONE: ("endodontic", 2),
    ToothAction.CROWN_INDICATED: ("crown", 1),
    ToothAction.CROWN_DONE: ("crown", 2),
    ToothAction.CROWN_DEFECTIVE: ("crown", 3),
    ToothAction.IMPLANT_INDICATED: ("implant", 1),
    ToothAction.IMPLANT_DONE: ("implant", 2),
    ToothAction.ERUPTION_ALTERED: ("eruption", 1),
    ToothAction.ERUPTION: ("eruption", 2),
    ToothAction.FRACTURE: ("fracture", 1),
    ToothAction.MISSING: ("missing", 1),
}
WIRE_TO_TOOTH_ACTION: dict[tuple[str, int], ToothAction] = {
    v: k for k, v in TOOTH_ACTION_TO_WIRE.items()
}

TOOTH_LEVEL_CONDITIONS = frozenset(c for c, _ in TOOTH_ACTION_TO_WIRE.values())


# ── Superficies y condiciones ────────────────────────

def surface_key(wire_surface: str) -> Surface | None:
    """Primera letra en mayúscula → clave abreviada ("oclusal" → O)."""
    if not wire_surface:
        return None
    try:
        return Surface(wire_surface[0].upper())
    except ValueError:
        return None


def condition_to_wire(condition: SurfaceCondition | str) -> str:
    if condition == SurfaceCondition.CARIES:
        return "caries"
    if condition in (SurfaceCondition.RESTORED, SurfaceCondition.COMPLETED):
        return "filled"
    return "healthy"


def condition_from_wire(condition: str | None) -> SurfaceCondition:
    if condition == "caries":
        return SurfaceCondition.CARIES
    if condition == "filled":
        return SurfaceCondition.RESTORED
    return SurfaceCondition.NONE


def _surface_record(surface: Surface, condition: SurfaceCondition | str) -> dict[str, Any]:
    return {
        "surface": surface.wire_name,
        "condition": condition_to_wire(condition),
        "severity": DEFAULT_SEVERITY,
        "notes": "",
    }


def override_to_notes(override: ToothAction | None, notes: str = "") -> str:
    """
    generalNotes del diente. Con override se escribe JSON {condition, severity}
    y la nota libre, si existe, viaja en la clave "notes".
    """
    if override is None or override is ToothAction.NONE:
        return notes
    condition, severity = TOOTH_ACTION_TO_WIRE[override]
    payload = {"condition": condition, "severity": severity}
    if notes:
        payload["notes"] = notes
    return json.dumps(payload, ensure_ascii=False)


def override_from_notes(general_notes: str | None) -> tuple[ToothAction | None, str]:
    """
    Interpreta generalNotes: JSON {condition, severity} → override;
    cualquier otro texto se conserva como nota libre.
    """
    if not general_notes:
        return None, ""
    try:
        parsed = json.loads(general_notes)
    except (TypeError, ValueError):
        return None, general_notes
    if not isinstance(parsed, dict) or not parsed.get("condition"):
        return None, general_notes

    condition = parsed["condition"]
    severity = parsed.get("severity", 2)
    action = WIRE_TO_TOOTH_ACTION.get((condition, severity))
    if action is None:
        # Severidad desconocida: se toma la variante "realizada" o la única
        candidates = [a for (c, _), a in WIRE_TO_TOOTH_ACTION.items() if c == condition]
        action = WIRE_TO_TOOTH_ACTION.get((condition, 2)) or (candidates[0] if candidates else None)
    if action is None:
        logger.warning("Condición de diente desconocida en generalNotes: %r", condition)
        return None, general_notes
    free_notes = parsed.get("notes")
    return action, free_notes if isinstance(free_notes, str) else ""


# ── Escritura ────────────────────────────────────────

def canonical_serializer(tooth: int, state: ToothState, notes: str = "") -> ToothRecord:
    """Registro completo: las 5 superficies (incluidas las sanas)."""
    general_notes = override_to_notes(state.override, notes)
    return {
        "toothNumber": tooth,
        "isPresent": state.is_present,
        "surfaces": [
            _surface_record(surface, state.surfaces[surface]) for surface in SURFACE_ORDER
        ],
        "generalNotes": general_notes,
    }


def serialize_legacy(
    tooth: int,
    surfaces: Mapping[str, str],
    is_present: bool = True,
    general_notes: str = "",
) -> ToothRecord:
    """
    Formato abreviado legado: {"O": "caries", "V": "none", ...}.
    Las superficies en "none" se descartan (no se envían como healthy).
    """
    records = []
    for key, condition in surfaces.items():
        if condition == "none":
            continue
        surface = surface_key(key)
        if surface is None:
            logger.warning("Superficie desconocida en formato legado: %r", key)
            continue
        records.append(_surface_record(surface, condition))
    return {
        "toothNumber": tooth,
        "isPresent": is_present,
        "surfaces": records,
        "generalNotes": general_notes,
    }


def to_legacy_shorthand(state: ToothState) -> dict[str, str]:
    return {s.value: state.surfaces[s].value for s in SURFACE_ORDER}


def legacy_serializer(tooth: int, state: ToothState, notes: str = "") -> ToothRecord:
    return serialize_legacy(
        tooth,
        to_legacy_shorthand(state),
        is_present=state.is_present,
        general_notes=override_to_notes(state.override, notes),
    )


SERIALIZERS: dict[str, ToothSerializer] = {
    "canonical": canonical_serializer,
    "legacy": legacy_serializer,
}


def get_serializer(name: str) -> ToothSerializer:
    try:
        return SERIALIZERS[name]
    except KeyError:
        raise ValueError(f"Formato de serialización desconocido: {name}") from None


def serialize_chart(
    chart: ChartState,
    serializer: ToothSerializer = canonical_serializer,
    notes: Mapping[int, str] | None = None,
) -> list[ToothRecord]:
    """Un registro por diente con estado distinto al por defecto."""
    notes = notes or {}
    return [
        serializer(tooth, state, notes.get(tooth, ""))
        for tooth, state in chart.teeth().items()
    ]


# ── Lectura ──────────────────────────────────────────

def deserialize_tooth(record: Mapping[str, Any]) -> tuple[int, ToothState, str]:
    """Registro del backend → (número, ToothState, nota libre)."""
    tooth = validate_tooth(record.get("toothNumber"))

    surfaces: dict[Surface, SurfaceCondition] = {}
    for item in record.get("surfaces") or []:
        surface = surface_key(item.get("surface", ""))
        if surface is None:
            logger.warning("Superficie ignorada en diente %s: %r", tooth, item.get("surface"))
            continue
        surfaces[surface] = condition_from_wire(item.get("condition"))

    override, free_notes = override_from_notes(record.get("generalNotes"))
    if record.get("isPresent") is False and override is None:
        override = ToothAction.MISSING

    return tooth, ToothState.from_surfaces(surfaces, override), free_notes


def load_chart(records: Iterable[Mapping[str, Any]]) -> tuple[ChartState, dict[int, str]]:
    """Reconstruye un ChartState (y las notas libres por diente) desde el backend."""
    chart = ChartState()
    notes: dict[int, str] = {}
    for record in records:
        tooth, state, free_notes = deserialize_tooth(record)
        chart.set_state(tooth, state)
        if free_notes:
            notes[tooth] = free_notes
    return chart, notes
