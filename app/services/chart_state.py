"""
Máquina de estados de condiciones del odontograma.

ChartState es el único dueño del mapa diente → ToothState de una sesión;
sólo se modifica a través de las transiciones (cycle, set_surface,
set_tooth_condition, reset) o de los comandos que las envuelven.
"""

import enum
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Union

from app.services.tooth_taxonomy import validate_tooth

logger = logging.getLogger(__name__)


class Surface(str, enum.Enum):
    """Superficies dentales en notación compacta."""
    OCLUSAL = "O"
    VESTIBULAR = "V"
    LINGUAL = "L"
    MESIAL = "M"
    DISTAL = "D"

    @property
    def wire_name(self) -> str:
        return SURFACE_WIRE_NAMES[self]


SURFACE_WIRE_NAMES: dict[Surface, str] = {
    Surface.OCLUSAL: "oclusal",
    Surface.VESTIBULAR: "vestibular",
    Surface.LINGUAL: "lingual",
    Surface.MESIAL: "mesial",
    Surface.DISTAL: "distal",
}

SURFACE_ORDER = (
    Surface.OCLUSAL, Surface.VESTIBULAR, Surface.LINGUAL, Surface.MESIAL, Surface.DISTAL
)


class SurfaceCondition(str, enum.Enum):
    NONE = "none"
    CARIES = "caries"
    RESTORED = "restored"
    COMPLETED = "completed"


CONDITION_CYCLE = (
    SurfaceCondition.NONE,
    SurfaceCondition.CARIES,
    SurfaceCondition.RESTORED,
    SurfaceCondition.COMPLETED,
)


def next_condition(condition: SurfaceCondition) -> SurfaceCondition:
    index = CONDITION_CYCLE.index(condition)
    return CONDITION_CYCLE[(index + 1) % len(CONDITION_CYCLE)]


class ToothAction(str, enum.Enum):
    """Condiciones de diente completo (acciones del menú radial)."""
    NONE = "none"
    EXTRACTION_INDICATED = "extraction_indicated"
    EXTRACTION_DONE = "extraction_done"
    ENDODONTIC_INDICATED = "endodontic_indicated"
    ENDODONTIC_DONE = "endodontic_done"
    CROWN_INDICATED = "crown_indicated"
    CROWN_DONE = "crown_done"
    CROWN_DEFECTIVE = "crown_defective"
    IMPLANT_INDICATED = "implant_indicated"
    IMPLANT_DONE = "implant_done"
    ERUPTION_ALTERED = "eruption_altered"
    ERUPTION = "eruption"
    FRACTURE = "fracture"
    MISSING = "missing"


# Acciones que sustituyen a todas las superficies del diente
SUPERSEDING_ACTIONS = frozenset({ToothAction.EXTRACTION_DONE, ToothAction.MISSING})

# Acciones que implican ausencia del diente en boca
ABSENT_ACTIONS = SUPERSEDING_ACTIONS


def _default_surfaces() -> Mapping[Surface, SurfaceCondition]:
    return MappingProxyType({s: SurfaceCondition.NONE for s in SURFACE_ORDER})


@dataclass(frozen=True)
class ToothState:
    """Estado completo de un diente: 5 superficies + override opcional."""
    surfaces: Mapping[Surface, SurfaceCondition] = field(default_factory=_default_surfaces)
    override: ToothAction | None = None

    @classmethod
    def default(cls) -> "ToothState":
        return cls()

    @classmethod
    def from_surfaces(
        cls,
        surfaces: Mapping[Surface | str, SurfaceCondition | str],
        override: ToothAction | None = None,
    ) -> "ToothState":
        full = {s: SurfaceCondition.NONE for s in SURFACE_ORDER}
        for key, value in surfaces.items():
            full[Surface(key)] = SurfaceCondition(value)
        return cls(surfaces=MappingProxyType(full), override=override)

    def condition(self, surface: Surface) -> SurfaceCondition:
        return self.surfaces[Surface(surface)]

    def with_surface(self, surface: Surface, condition: SurfaceCondition) -> "ToothState":
        full = dict(self.surfaces)
        full[Surface(surface)] = SurfaceCondition(condition)
        return ToothState(surfaces=MappingProxyType(full), override=self.override)

    def with_override(self, override: ToothAction | None, clear_surfaces: bool = False) -> "ToothState":
        surfaces = _default_surfaces() if clear_surfaces else self.surfaces
        if override is ToothAction.NONE:
            override = None
        return ToothState(surfaces=surfaces, override=override)

    @property
    def is_default(self) -> bool:
        return self.override is None and all(
            c is SurfaceCondition.NONE for c in self.surfaces.values()
        )

    @property
    def is_present(self) -> bool:
        return self.override not in ABSENT_ACTIONS

    def modified_surfaces(self) -> dict[Surface, SurfaceCondition]:
        return {
            s: c for s, c in self.surfaces.items() if c is not SurfaceCondition.NONE
        }

    def __eq__(self, other) -> bool:
        if not isinstance(other, ToothState):
            return NotImplemented
        return dict(self.surfaces) == dict(other.surfaces) and self.override == other.override

    def __hash__(self) -> int:
        return hash((tuple(self.surfaces[s] for s in SURFACE_ORDER), self.override))


# ── Estado del odontograma ───────────────────────────

class ChartState:
    """
    Mapa explícito e inyectable diente → ToothState.

    Los dientes ausentes del mapa se leen como ToothState por defecto.
    Todo número de diente se valida contra la taxonomía FDI.
    """

    def __init__(self, teeth: Mapping[int, ToothState] | None = None):
        self._teeth: dict[int, ToothState] = {}
        for number, state in (teeth or {}).items():
            self._store(number, state)

    def _store(self, tooth: int, state: ToothState) -> ToothState:
        tooth = validate_tooth(tooth)
        if state.is_default:
            self._teeth.pop(tooth, None)
        else:
            self._teeth[tooth] = state
        return state

    # ── Lecturas ─────────────────────────────────────

    def get(self, tooth: int) -> ToothState:
        return self._teeth.get(validate_tooth(tooth), ToothState.default())

    def __contains__(self, tooth: int) -> bool:
        return tooth in self._teeth

    def __len__(self) -> int:
        return len(self._teeth)

    def teeth(self) -> dict[int, ToothState]:
        """Dientes con estado distinto al por defecto, ordenados por número."""
        return dict(sorted(self._teeth.items()))

    def snapshot(self) -> dict[int, ToothState]:
        return dict(self._teeth)

    # ── Transiciones ─────────────────────────────────

    def cycle(self, tooth: int, surface: Surface) -> ToothState:
        """None → Caries → Restored → Completed → None."""
        current = self.get(tooth)
        surface = Surface(surface)
        return self._store(
            tooth, current.with_surface(surface, next_condition(current.condition(surface)))
        )

    def set_surface(self, tooth: int, surface: Surface, condition: SurfaceCondition) -> ToothState:
        return self._store(tooth, self.get(tooth).with_surface(surface, condition))

    def set_tooth_condition(self, tooth: int, action: ToothAction) -> ToothState:
        """
        Aplica una acción de diente completo. Extracción realizada y ausencia
        sustituyen a las superficies (se limpian); NONE quita el override.
        """
        action = ToothAction(action)
        current = self.get(tooth)
        return self._store(
            tooth,
            current.with_override(action, clear_surfaces=action in SUPERSEDING_ACTIONS),
        )

    def set_state(self, tooth: int, state: ToothState) -> ToothState:
        return self._store(tooth, state)

    def reset(self, tooth: int) -> ToothState:
        self._teeth.pop(validate_tooth(tooth), None)
        return ToothState.default()

    def restore(self, snapshot: Mapping[int, ToothState]) -> None:
        self._teeth = {}
        for number, state in snapshot.items():
            self._store(number, state)

    replace_all = restore


# ── Comandos ─────────────────────────────────────────

@dataclass(frozen=True)
class CycleSurface:
    tooth: int
    surface: Surface


@dataclass(frozen=True)
class SurfaceEdit:
    tooth: int
    surface: Surface
    condition: SurfaceCondition


@dataclass(frozen=True)
class ToothEdit:
    tooth: int
    action: ToothAction


@dataclass(frozen=True)
class Reset:
    tooth: int


ChartCommand = Union[CycleSurface, SurfaceEdit, ToothEdit, Reset]


@dataclass(frozen=True)
class ChangeRecord:
    """Resultado de aplicar un comando: estado antes y después del diente."""
    command: ChartCommand
    tooth: int
    before: ToothState
    after: ToothState

    @property
    def changed(self) -> bool:
        return self.before != self.after


def apply_command(state: ChartState, command: ChartCommand) -> ChangeRecord:
    """Único punto de despacho de comandos sobre un ChartState."""
    if not isinstance(command, (CycleSurface, SurfaceEdit, ToothEdit, Reset)):
        raise TypeError(f"Comando desconocido: {command!r}")
    before = state.get(command.tooth)
    if isinstance(command, CycleSurface):
        after = state.cycle(command.tooth, command.surface)
    elif isinstance(command, SurfaceEdit):
        after = state.set_surface(command.tooth, command.surface, command.condition)
    elif isinstance(command, ToothEdit):
        after = state.set_tooth_condition(command.tooth, command.action)
    else:
        after = state.reset(command.tooth)
    return ChangeRecord(command=command, tooth=command.tooth, before=before, after=after)
