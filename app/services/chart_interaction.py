"""
Superficie de interacción del odontograma: zonas clicables del gráfico 2D
y menú radial (pie menu). Ambos traducen gestos a comandos del estado
(CycleSurface, SurfaceEdit, ToothEdit, Reset); nunca mutan el estado
directamente.
"""

import enum
import logging
import math
from dataclasses import dataclass, field

from app.services.chart_state import (
    ChartCommand,
    CycleSurface,
    Reset,
    Surface,
    SurfaceCondition,
    SurfaceEdit,
    ToothAction,
    ToothEdit,
)
from app.services.tooth_taxonomy import (
    LOWER_PERMANENT,
    LOWER_PRIMARY,
    UPPER_PERMANENT,
    UPPER_PRIMARY,
    is_primary,
    validate_tooth,
)

logger = logging.getLogger(__name__)

# ── Gráfico 2D ───────────────────────────────────────

VIEWBOX_WIDTH = 64.0
VIEWBOX_HEIGHT = 72.0
TOOTH_SIZE_PERMANENT = 56.0
TOOTH_SIZE_PRIMARY = 44.0

Point = tuple[float, float]

# Polígonos por superficie en coordenadas del viewBox del diente
SURFACE_POLYGONS: dict[Surface, tuple[Point, ...]] = {
    Surface.VESTIBULAR: ((14, 16), (50, 16), (43, 26), (21, 26)),
    Surface.LINGUAL: ((18, 50), (46, 50), (40, 60), (24, 60)),
    Surface.MESIAL: ((14, 16), (21, 26), (24, 50), (18, 60), (12, 50), (10, 30)),
    Surface.DISTAL: ((50, 16), (43, 26), (40, 50), (46, 60), (52, 50), (54, 30)),
    Surface.OCLUSAL: ((22, 27), (42, 27), (42, 49), (22, 49)),
}

# La oclusal (rectángulo central) se prueba primero: las demás la rodean
HIT_TEST_ORDER = (
    Surface.OCLUSAL, Surface.VESTIBULAR, Surface.LINGUAL, Surface.MESIAL, Surface.DISTAL
)


def tooth_size(tooth: int) -> float:
    return TOOTH_SIZE_PRIMARY if is_primary(tooth) else TOOTH_SIZE_PERMANENT


def _viewbox_transform(size: float) -> tuple[float, float]:
    """Escala y desplazamiento X del viewBox 64×72 dentro de un cuadro size×size."""
    scale = min(size / VIEWBOX_WIDTH, size / VIEWBOX_HEIGHT)
    offset_x = (size - VIEWBOX_WIDTH * scale) / 2.0
    return scale, offset_x


def point_in_polygon(x: float, y: float, polygon) -> bool:
    """Ray casting (regla par-impar)."""
    inside = False
    n = len(polygon)
    for i in range(n):
        x1, y1 = polygon[i]
        x2, y2 = polygon[(i + 1) % n]
        if (y1 > y) != (y2 > y):
            x_cross = x1 + (y - y1) * (x2 - x1) / (y2 - y1)
            if x < x_cross:
                inside = not inside
    return inside


@dataclass(frozen=True)
class ClickTarget:
    tooth: int
    surface: Surface
    polygon: tuple[Point, ...]


def click_targets(tooth: int) -> list[ClickTarget]:
    """Polígonos clicables del diente en píxeles (relativos a su caja)."""
    scale, offset_x = _viewbox_transform(tooth_size(tooth))
    return [
        ClickTarget(
            tooth=tooth,
            surface=surface,
            polygon=tuple(
                (offset_x + px * scale, py * scale) for px, py in SURFACE_POLYGONS[surface]
            ),
        )
        for surface in HIT_TEST_ORDER
    ]


def hit_test_surface(tooth: int, x: float, y: float) -> Surface | None:
    """Superficie bajo el punto (píxeles relativos a la caja del diente)."""
    scale, offset_x = _viewbox_transform(tooth_size(tooth))
    vx = (x - offset_x) / scale
    vy = y / scale
    for surface in HIT_TEST_ORDER:
        if point_in_polygon(vx, vy, SURFACE_POLYGONS[surface]):
            return surface
    return None


def surface_click(tooth: int, surface: Surface) -> CycleSurface:
    """Click simple sobre una superficie: avanza el ciclo de condición."""
    return CycleSurface(tooth=validate_tooth(tooth), surface=Surface(surface))


@dataclass(frozen=True)
class ChartRow:
    name: str
    left: tuple[int, ...]
    right: tuple[int, ...]
    primary: bool = False

    @property
    def teeth(self) -> tuple[int, ...]:
        return self.left + self.right


def chart_rows(show_permanent: bool = True, show_primary: bool = False) -> list[ChartRow]:
    """Filas del odontograma clínico 2D: superior, temporales, inferior."""
    rows: list[ChartRow] = []
    if show_permanent:
        rows.append(ChartRow("upper", UPPER_PERMANENT[:8], UPPER_PERMANENT[8:]))
    if show_primary:
        rows.append(ChartRow("primary-upper", UPPER_PRIMARY[:5], UPPER_PRIMARY[5:], True))
        rows.append(ChartRow("primary-lower", LOWER_PRIMARY[:5], LOWER_PRIMARY[5:], True))
    if show_permanent:
        rows.append(ChartRow("lower", LOWER_PERMANENT[:8], LOWER_PERMANENT[8:]))
    return rows


# ── Menú radial ──────────────────────────────────────

INNER_RADIUS = 54.0
OUTER_RADIUS = 168.0
SUB_RADIUS = 245.0
GAP_ANGLE = 0.05
EXPANDED_GROWTH = 12.0
SUB_RING_GAP = 4.0
SUB_MARGIN_START = 0.02
SUB_MARGIN_END = 0.04


class MenuScope(str, enum.Enum):
    SURFACE = "surface"
    TOOTH = "tooth"
    BOTH = "both"


@dataclass(frozen=True)
class MenuSubItem:
    id: str
    label: str
    color: str
    surface_action: SurfaceCondition | None = None
    tooth_action: ToothAction | None = None


@dataclass(frozen=True)
class MenuItem:
    id: str
    label: str
    icon: str
    scope: MenuScope
    surface_action: SurfaceCondition | None = None
    tooth_action: ToothAction | None = None
    sub_items: tuple[MenuSubItem, ...] = ()

    @property
    def has_sub_items(self) -> bool:
        return bool(self.sub_items)


HEALTHY_ITEM = "healthy"
CLEAR_ITEM = "clear"

_RED = "#ef4444"
_BLUE = "#2563eb"
_ORANGE = "#f97316"
_GREEN = "#10b981"

RADIAL_MENU_ITEMS: tuple[MenuItem, ...] = (
    MenuItem(
        HEALTHY_ITEM, "Diente Sano", "✦", MenuScope.BOTH,
        surface_action=SurfaceCondition.NONE, tooth_action=ToothAction.NONE,
    ),
    MenuItem("caries", "Caries", "●", MenuScope.SURFACE, surface_action=SurfaceCondition.CARIES),
    MenuItem("restoration", "Restauración", "◗", MenuScope.SURFACE, sub_items=(
        MenuSubItem("restoration_restored", "Restaurada", _BLUE, surface_action=SurfaceCondition.RESTORED),
        MenuSubItem("restoration_completed", "Completada", _GREEN, surface_action=SurfaceCondition.COMPLETED),
    )),
    MenuItem("extraction", "Exodoncia", "✕", MenuScope.BOTH, sub_items=(
        MenuSubItem("extraction_indicated", "Indicada", _RED, tooth_action=ToothAction.EXTRACTION_INDICATED),
        MenuSubItem("extraction_done", "Realizada", _BLUE, tooth_action=ToothAction.EXTRACTION_DONE),
    )),
    MenuItem("endodontic", "Endodoncia", "│", MenuScope.BOTH, sub_items=(
        MenuSubItem("endodontic_indicated", "Indicada", _RED, tooth_action=ToothAction.ENDODONTIC_INDICATED),
        MenuSubItem("endodontic_done", "Realizada", _BLUE, tooth_action=ToothAction.ENDODONTIC_DONE),
    )),
    MenuItem("crown", "Corona", "⊙", MenuScope.BOTH, sub_items=(
        MenuSubItem("crown_indicated", "Indicada", _RED, tooth_action=ToothAction.CROWN_INDICATED),
        MenuSubItem("crown_done", "Realizada", _BLUE, tooth_action=ToothAction.CROWN_DONE),
        MenuSubItem("crown_defective", "Defectuosa", _ORANGE, tooth_action=ToothAction.CROWN_DEFECTIVE),
    )),
    MenuItem("implant", "Implante", "▼", MenuScope.BOTH, sub_items=(
        MenuSubItem("implant_indicated", "Indicado", _RED, tooth_action=ToothAction.IMPLANT_INDICATED),
        MenuSubItem("implant_done", "Realizado", _BLUE, tooth_action=ToothAction.IMPLANT_DONE),
    )),
    MenuItem("eruption", "Erupción", "○", MenuScope.BOTH, sub_items=(
        MenuSubItem("eruption_altered", "Alterada", _RED, tooth_action=ToothAction.ERUPTION_ALTERED),
        MenuSubItem("eruption_dental", "Dental", _BLUE, tooth_action=ToothAction.ERUPTION),
    )),
    MenuItem("fracture", "Fractura", "⚡", MenuScope.BOTH, tooth_action=ToothAction.FRACTURE),
    MenuItem("missing", "Ausente", "⊘", MenuScope.BOTH, tooth_action=ToothAction.MISSING),
    MenuItem(CLEAR_ITEM, "Borrar todo", "🗑", MenuScope.BOTH),
)


def items_for(surface: Surface | None) -> list[MenuItem]:
    """Ítems visibles según se haya abierto sobre una superficie o sobre el diente."""
    if surface is not None:
        allowed = (MenuScope.SURFACE, MenuScope.BOTH)
    else:
        allowed = (MenuScope.TOOTH, MenuScope.BOTH)
    return [item for item in RADIAL_MENU_ITEMS if item.scope in allowed]


def polar_to_cartesian(cx: float, cy: float, radius: float, angle: float) -> Point:
    return cx + radius * math.cos(angle), cy + radius * math.sin(angle)


def _fmt(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


def describe_arc(
    cx: float, cy: float, inner: float, outer: float, start: float, end: float
) -> str:
    """Path SVG de un sector anular (ángulos en radianes, Y hacia abajo)."""
    start_out = polar_to_cartesian(cx, cy, outer, end)
    end_out = polar_to_cartesian(cx, cy, outer, start)
    start_in = polar_to_cartesian(cx, cy, inner, end)
    end_in = polar_to_cartesian(cx, cy, inner, start)
    large_arc = "0" if end - start <= math.pi else "1"
    parts = [
        "M", _fmt(start_out[0]), _fmt(start_out[1]),
        "A", _fmt(outer), _fmt(outer), "0", large_arc, "0", _fmt(end_out[0]), _fmt(end_out[1]),
        "L", _fmt(end_in[0]), _fmt(end_in[1]),
        "A", _fmt(inner), _fmt(inner), "0", large_arc, "1", _fmt(start_in[0]), _fmt(start_in[1]),
        "Z",
    ]
    return " ".join(parts)


@dataclass(frozen=True)
class Sector:
    id: str
    start: float
    end: float
    inner: float
    outer: float
    parent: str | None = None

    @property
    def mid(self) -> float:
        return (self.start + self.end) / 2.0

    def path(self) -> str:
        return describe_arc(0.0, 0.0, self.inner, self.outer, self.start, self.end)

    def contains(self, radius: float, angle: float) -> bool:
        if not self.inner <= radius <= self.outer:
            return False
        # Normalizar el ángulo al rango [start, start + 2π)
        rel = (angle - self.start) % (2.0 * math.pi)
        return rel <= self.end - self.start


class MenuPhase(str, enum.Enum):
    OPEN = "open"
    EXPANDED = "expanded"
    CLOSED = "closed"


@dataclass(frozen=True)
class MenuOutcome:
    commands: tuple[ChartCommand, ...] = ()
    closed: bool = False
    expanded: str | None = None


@dataclass
class RadialMenu:
    """
    Menú radial abierto sobre un diente (y opcionalmente una superficie).

    Estados: OPEN → (ítem con sub-ítems) EXPANDED ↔ OPEN → CLOSED.
    Las selecciones devuelven comandos; el menú se cierra tras una acción.
    """
    tooth: int
    surface: Surface | None = None
    items: list[MenuItem] = field(init=False)
    expanded_id: str | None = field(default=None, init=False)
    phase: MenuPhase = field(default=MenuPhase.OPEN, init=False)

    def __post_init__(self):
        self.tooth = validate_tooth(self.tooth)
        if self.surface is not None:
            self.surface = Surface(self.surface)
        self.items = items_for(self.surface)

    # ── Geometría ────────────────────────────────────

    @property
    def angle_step(self) -> float:
        return 2.0 * math.pi / len(self.items)

    @property
    def start_angle(self) -> float:
        # Primer ítem centrado arriba
        return -math.pi / 2.0 - self.angle_step / 2.0

    def _outer_for(self, item: MenuItem) -> float:
        if item.id == self.expanded_id:
            return OUTER_RADIUS + EXPANDED_GROWTH
        return OUTER_RADIUS

    def sectors(self) -> list[Sector]:
        result: list[Sector] = []
        step = self.angle_step
        for i, item in enumerate(self.items):
            a0 = self.start_angle + i * step + GAP_ANGLE / 2.0
            a1 = self.start_angle + (i + 1) * step - GAP_ANGLE / 2.0
            outer = self._outer_for(item)
            result.append(Sector(item.id, a0, a1, INNER_RADIUS, outer))
            if item.id == self.expanded_id and item.sub_items:
                sub_span = (a1 - a0) / len(item.sub_items)
                for si, sub in enumerate(item.sub_items):
                    s0 = a0 + si * sub_span + SUB_MARGIN_START
                    s1 = s0 + sub_span - SUB_MARGIN_END
                    result.append(
                        Sector(sub.id, s0, s1, outer + SUB_RING_GAP, SUB_RADIUS, parent=item.id)
                    )
        return result

    def hit_test(self, dx: float, dy: float) -> str | None:
        """Id del ítem / sub-ítem bajo el punto relativo al centro del menú."""
        radius = math.hypot(dx, dy)
        angle = math.atan2(dy, dx)
        for sector in self.sectors():
            if sector.contains(radius, angle):
                return sector.id
        return None

    # ── Transiciones ─────────────────────────────────

    def _find(self, item_id: str) -> tuple[MenuItem | None, MenuSubItem | None]:
        for item in self.items:
            if item.id == item_id:
                return item, None
            if item.id == self.expanded_id:
                for sub in item.sub_items:
                    if sub.id == item_id:
                        return item, sub
        return None, None

    def _close(self, commands: tuple[ChartCommand, ...] = ()) -> MenuOutcome:
        self.phase = MenuPhase.CLOSED
        self.expanded_id = None
        return MenuOutcome(commands=commands, closed=True)

    def select(self, item_id: str) -> MenuOutcome:
        if self.phase is MenuPhase.CLOSED:
            raise RuntimeError("El menú radial está cerrado")

        item, sub = self._find(item_id)
        if item is None:
            raise KeyError(item_id)

        if sub is not None:
            return self._close(self._commands_for(sub.surface_action, sub.tooth_action))

        if item.has_sub_items:
            if self.expanded_id == item.id:
                self.expanded_id = None
                self.phase = MenuPhase.OPEN
            else:
                self.expanded_id = item.id
                self.phase = MenuPhase.EXPANDED
            return MenuOutcome(expanded=self.expanded_id)

        if item.id == CLEAR_ITEM:
            return self._close((Reset(self.tooth),))

        if item.id == HEALTHY_ITEM:
            commands: list[ChartCommand] = []
            if self.surface is not None:
                commands.append(SurfaceEdit(self.tooth, self.surface, SurfaceCondition.NONE))
            commands.append(ToothEdit(self.tooth, ToothAction.NONE))
            return self._close(tuple(commands))

        return self._close(self._commands_for(item.surface_action, item.tooth_action))

    def _commands_for(
        self,
        surface_action: SurfaceCondition | None,
        tooth_action: ToothAction | None,
    ) -> tuple[ChartCommand, ...]:
        commands: list[ChartCommand] = []
        if self.surface is not None and surface_action is not None:
            commands.append(SurfaceEdit(self.tooth, self.surface, surface_action))
        elif tooth_action is not None:
            commands.append(ToothEdit(self.tooth, tooth_action))
        return tuple(commands)

    def click(self, dx: float, dy: float) -> MenuOutcome:
        """Click en coordenadas relativas: selecciona o, fuera de sectores, cierra."""
        item_id = self.hit_test(dx, dy)
        if item_id is None:
            if math.hypot(dx, dy) < INNER_RADIUS:
                return MenuOutcome(expanded=self.expanded_id)
            return self._close()
        return self.select(item_id)

    def escape(self) -> MenuOutcome:
        return self._close()
