"""
Endpoints del gráfico del odontograma: disposición de las arcadas,
línea gingival, mallas de dientes listas para el renderer y los gestos
de edición (clic en superficie, menú radial).
"""

import asyncio

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_odontogram_repository
from app.config import get_settings
from app.core.exceptions import ValidationException
from app.schemas.odontogram import (
    ArchLayoutResponse,
    ArchPositionResponse,
    ChartToothResponse,
    MenuSectorResponse,
    MenuSelection,
    SurfaceClick,
    SurfaceMaterial,
    ToothMeshResponse,
)
from app.services.arch_layout import (
    ArchLayout,
    arch_poses,
    config_for,
    gum_line,
    layout_arch,
)
from app.services.chart_interaction import (
    RADIAL_MENU_ITEMS,
    MenuPhase,
    RadialMenu,
    items_for,
    surface_click,
)
from app.services.chart_palette import surface_fill, surface_material, tooth_action_color
from app.services.chart_serialization import load_chart
from app.services.chart_session import ChartSession
from app.services.chart_state import SURFACE_ORDER, Surface, ToothState
from app.services.odontogram_repository import OdontogramRepository
from app.services.tooth_mesh import mesh_for_tooth
from app.services.tooth_taxonomy import (
    Dentition,
    Jaw,
    arch_sequence,
    validate_tooth,
    visible_arches,
    visible_teeth,
)

router = APIRouter()
settings = get_settings()


def _layout_response(layout: ArchLayout, opening: float) -> ArchLayoutResponse:
    poses = {p.tooth_number: p for p in arch_poses(layout, opening=opening)}
    positions = [
        ArchPositionResponse(
            tooth_number=p.tooth_number,
            kind=p.kind.value,
            theta=p.theta,
            anchor=p.anchor,
            yaw=p.yaw,
            width=p.width,
            position=poses[p.tooth_number].position,
            rotation=poses[p.tooth_number].rotation,
        )
        for p in layout
    ]
    gum = gum_line(layout)
    return ArchLayoutResponse(
        jaw=layout.jaw.value,
        dentition=layout.dentition.value,
        positions=positions,
        gum_line=[tuple(point) for point in gum.points.tolist()],
    )


@router.get("/layout", response_model=ArchLayoutResponse)
async def get_arch_layout(
    jaw: Jaw = Query(Jaw.UPPER),
    dentition: Dentition = Query(Dentition.PERMANENT),
    opening: float = Query(0.0, ge=0.0, le=1.0),
):
    """Posiciones de una arcada completa y su línea gingival."""
    numbers = arch_sequence(jaw, dentition)
    layout = layout_arch(numbers, jaw=jaw, config=config_for(dentition))
    return _layout_response(layout, opening)


@router.get("/layout/visible", response_model=list[ArchLayoutResponse])
async def get_visible_layouts(
    patient_age: int | None = Query(None, ge=0, le=130),
    hide_primary: bool | None = Query(None),
    opening: float = Query(0.0, ge=0.0, le=1.0),
):
    """
    Arcadas visibles para el perfil del paciente: temporales para niños,
    permanentes para adultos (o ambas si se pide).
    """
    visibility = visible_arches(patient_age, hide_primary, settings.CHILD_PROFILE_MAX_AGE)
    layouts = []
    for jaw in (Jaw.UPPER, Jaw.LOWER):
        for dentition in (Dentition.PERMANENT, Dentition.PRIMARY):
            if not visibility.get(dentition):
                continue
            numbers = visible_teeth(jaw, {dentition: True})
            layout = layout_arch(numbers, jaw=jaw, config=config_for(dentition))
            layouts.append(_layout_response(layout, opening))
    return layouts


@router.get("/mesh/{tooth_number}", response_model=ToothMeshResponse)
async def get_tooth_mesh(
    tooth_number: int,
    patient_id: str | None = Query(None, max_length=64),
    repo: OdontogramRepository = Depends(get_odontogram_repository),
):
    """
    Malla del diente (posiciones, normales, índices). Con `patient_id`
    incluye los materiales de superficie según el odontograma del paciente.
    """
    validate_tooth(tooth_number)
    mesh = await asyncio.to_thread(
        mesh_for_tooth,
        tooth_number,
        settings.MESH_RADIAL_SEGMENTS,
        settings.MESH_HEIGHT_SEGMENTS,
    )

    state = ToothState.default()
    if patient_id:
        odontogram = await repo.get_by_patient_id(patient_id)
        if odontogram is not None:
            chart, _ = load_chart(odontogram.teeth or [])
            state = chart.get(tooth_number)

    materials = []
    for surface in SURFACE_ORDER:
        condition = state.condition(surface)
        material = surface_material(condition)
        materials.append(
            SurfaceMaterial(
                surface=surface.value,
                condition=condition.value,
                color=material.color,
                opacity=material.opacity,
                roughness=material.roughness,
                metalness=material.metalness,
            )
        )

    data = mesh.to_dict()
    return ToothMeshResponse(
        tooth_number=tooth_number,
        kind=data["kind"],
        seed=data["seed"],
        width=data["width"],
        depth=data["depth"],
        crown_height=data["crownHeight"],
        positions=data["positions"],
        normals=data["normals"],
        indices=data["indices"],
        materials=materials,
        override_color=tooth_action_color(state.override) if state.override else None,
    )


# ── Edición (clic 2D / menú radial) ──────────────────

_MENU_LABELS = {item.id: (item.label, None) for item in RADIAL_MENU_ITEMS}
_MENU_LABELS.update(
    {sub.id: (sub.label, sub.color) for item in RADIAL_MENU_ITEMS for sub in item.sub_items}
)


def _tooth_response(session: ChartSession, tooth_number: int) -> ChartToothResponse:
    state = session.tooth(tooth_number)
    return ChartToothResponse(
        tooth_number=tooth_number,
        is_present=state.is_present,
        surfaces={s.value: state.condition(s).value for s in SURFACE_ORDER},
        fills={s.value: surface_fill(state.condition(s)) for s in SURFACE_ORDER},
        override=state.override.value if state.override else None,
        override_color=session.tooth_color(tooth_number) if state.override else None,
        odontogram_id=session.odontogram_id,
    )


async def _open_session(
    repo: OdontogramRepository, patient_id: str, doctor_id: str
) -> ChartSession:
    session = ChartSession(repo, patient_id, doctor_id)
    await session.load()
    return session


@router.get(
    "/patient/{patient_id}/teeth/{tooth_number}", response_model=ChartToothResponse
)
async def get_chart_tooth(
    patient_id: str,
    tooth_number: int,
    repo: OdontogramRepository = Depends(get_odontogram_repository),
):
    """Estado actual de un diente con los colores de render."""
    validate_tooth(tooth_number)
    session = await _open_session(repo, patient_id, doctor_id="")
    return _tooth_response(session, tooth_number)


@router.post("/patient/{patient_id}/click", response_model=ChartToothResponse)
async def click_surface(
    patient_id: str,
    data: SurfaceClick,
    repo: OdontogramRepository = Depends(get_odontogram_repository),
):
    """
    Clic simple sobre una superficie: avanza el ciclo
    none → caries → restored → completed → none y guarda.
    """
    session = await _open_session(repo, patient_id, data.doctor_id)
    session.dispatch(surface_click(data.tooth_number, Surface(data.surface)))
    if session.dirty:
        await session.save()
    return _tooth_response(session, data.tooth_number)


@router.post("/patient/{patient_id}/menu", response_model=ChartToothResponse)
async def select_menu_action(
    patient_id: str,
    data: MenuSelection,
    repo: OdontogramRepository = Depends(get_odontogram_repository),
):
    """Aplica una selección del menú radial (ítem → sub-ítem) y guarda."""
    menu = RadialMenu(data.tooth_number, Surface(data.surface) if data.surface else None)
    outcome = None
    for item_id in data.path:
        if menu.phase is MenuPhase.CLOSED:
            break
        try:
            outcome = menu.select(item_id)
        except KeyError:
            raise ValidationException(f"Opción de menú inválida: {item_id}") from None

    session = await _open_session(repo, patient_id, data.doctor_id)
    if outcome is not None and outcome.closed:
        session.dispatch_all(outcome.commands)
    if session.dirty:
        await session.save()
    return _tooth_response(session, data.tooth_number)


@router.get("/menu", response_model=list[MenuSectorResponse])
async def get_radial_menu(
    tooth_number: int = Query(...),
    surface: Surface | None = Query(None),
    expanded: str | None = Query(None),
):
    """Sectores del menú radial (paths SVG) para el diente y superficie."""
    menu = RadialMenu(tooth_number, surface)
    if expanded:
        item = next((i for i in items_for(surface) if i.id == expanded), None)
        if item is None or not item.has_sub_items:
            raise ValidationException(f"Opción de menú sin sub-ítems: {expanded}")
        menu.select(expanded)
    sectors = []
    for sector in menu.sectors():
        label, color = _MENU_LABELS[sector.id]
        sectors.append(
            MenuSectorResponse(
                id=sector.id,
                label=label,
                color=color,
                parent=sector.parent,
                start=sector.start,
                end=sector.end,
                path=sector.path(),
            )
        )
    return sectors
