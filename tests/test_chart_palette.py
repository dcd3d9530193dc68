import pytest

from app.services.chart_palette import (
    ENAMEL_MATERIAL,
    MARKER_THICKNESS,
    occlusal_height,
    surface_fill,
    surface_marker_boxes,
    surface_material,
    surface_stroke,
    tooth_action_color,
)
from app.services.chart_state import Surface, SurfaceCondition, ToothAction
from app.services.tooth_mesh import dimensions_for
from app.services.tooth_taxonomy import ToothKind


@pytest.mark.parametrize(
    ("condition", "fill", "stroke"),
    [
        (SurfaceCondition.NONE, "#ffffff", "#cbd5e1"),
        (SurfaceCondition.CARIES, "#ef4444", "#dc2626"),
        (SurfaceCondition.RESTORED, "#3b82f6", "#2563eb"),
        (SurfaceCondition.COMPLETED, "#10b981", "#059669"),
    ],
)
def test_surface_colors(condition, fill, stroke):
    assert surface_fill(condition) == fill
    assert surface_stroke(condition) == stroke


def test_surface_material_parameters():
    material = surface_material(SurfaceCondition.CARIES)
    assert material.color == "#ef4444"
    assert material.opacity == 0.82
    assert material.roughness == 0.45
    assert material.metalness == 0.02
    assert material.transparent
    assert not ENAMEL_MATERIAL.transparent


@pytest.mark.parametrize(
    ("action", "color"),
    [
        (ToothAction.EXTRACTION_INDICATED, "#ef4444"),
        (ToothAction.CROWN_DONE, "#2563eb"),
        (ToothAction.MISSING, "#94a3b8"),
        (None, "transparent"),
        (ToothAction.NONE, "transparent"),
    ],
)
def test_tooth_action_colors(action, color):
    assert tooth_action_color(action) == color


def test_every_tooth_action_has_a_color():
    for action in ToothAction:
        if action is not ToothAction.NONE:
            assert tooth_action_color(action).startswith("#")


def test_marker_boxes_surround_the_crown():
    dims = dimensions_for(ToothKind.MOLAR)
    boxes = {m.surface: m for m in surface_marker_boxes(ToothKind.MOLAR, dims)}
    assert set(boxes) == set(Surface)
    assert boxes[Surface.OCLUSAL].center[1] == pytest.approx(occlusal_height(ToothKind.MOLAR, dims.crown_height))
    assert boxes[Surface.OCLUSAL].size[1] == MARKER_THICKNESS
    assert boxes[Surface.VESTIBULAR].center[2] > 0 > boxes[Surface.LINGUAL].center[2]
    assert boxes[Surface.MESIAL].center[0] < 0 < boxes[Surface.DISTAL].center[0]


def test_canine_tip_is_highest():
    height = 1.0
    assert occlusal_height(ToothKind.CANINE, height) > occlusal_height(ToothKind.CENTRAL_INCISOR, height)
    assert occlusal_height(ToothKind.CENTRAL_INCISOR, height) > occlusal_height(ToothKind.MOLAR, height)
