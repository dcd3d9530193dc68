"""
Sesión de edición de un odontograma.

La sesión es la dueña exclusiva del ChartState de un paciente: toda
mutación entra por `dispatch` (comandos), con deshacer/rehacer. El
guardado es asíncrono, cancelable e independiente del estado local:
si falla, el estado NO se revierte, la sesión queda sucia y el error se
expone una sola vez (sin reintentos automáticos).
"""

import asyncio
import logging
from dataclasses import dataclass

from app.config import get_settings
from app.core.exceptions import ChartSaveError
from app.services.chart_palette import (
    MaterialParams,
    surface_material,
    tooth_action_color,
)
from app.services.chart_serialization import (
    ToothSerializer,
    get_serializer,
    load_chart,
    serialize_chart,
)
from app.services.chart_state import (
    ChangeRecord,
    ChartCommand,
    ChartState,
    CycleSurface,
    Surface,
    SurfaceEdit,
    ToothEdit,
    ToothState,
    apply_command,
)
from app.services.odontogram_repository import NewTreatment, OdontogramRepository, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoggedChange:
    kind: str
    change: ChangeRecord


def _command_kind(command: ChartCommand) -> str:
    if isinstance(command, CycleSurface):
        return "cycle"
    if isinstance(command, SurfaceEdit):
        return "surface_edit"
    if isinstance(command, ToothEdit):
        return "tooth_edit"
    return "reset"


def _command_surface(command: ChartCommand) -> Surface | None:
    if isinstance(command, (CycleSurface, SurfaceEdit)):
        return command.surface
    return None


def _describe(state: ToothState, surface: Surface | None) -> str:
    if surface is not None:
        return state.condition(surface).value
    if state.override is not None:
        return state.override.value
    return "none"


class ChartSession:
    """Estado + comandos + guardado de un odontograma de paciente."""

    def __init__(
        self,
        repository: OdontogramRepository,
        patient_id: str,
        doctor_id: str,
        state: ChartState | None = None,
        serializer: ToothSerializer | None = None,
        odontogram_id: str | None = None,
    ):
        self.repository = repository
        self.patient_id = patient_id
        self.doctor_id = doctor_id
        self.state = state if state is not None else ChartState()
        self.serializer = serializer or get_serializer(get_settings().CHART_WIRE_FORMAT)
        self.odontogram_id = odontogram_id
        self.notes: dict[int, str] = {}

        self._undo: list[ChangeRecord] = []
        self._redo: list[ChangeRecord] = []
        self._pending: list[LoggedChange] = []
        self._revision = 0
        self._saved_revision = 0
        self._save_task: asyncio.Task | None = None

    # ── Estado ───────────────────────────────────────

    @property
    def dirty(self) -> bool:
        return self._revision != self._saved_revision

    @property
    def pending_changes(self) -> list[LoggedChange]:
        return list(self._pending)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def tooth(self, number: int) -> ToothState:
        return self.state.get(number)

    def surface_material(self, tooth: int, surface: Surface) -> MaterialParams:
        """Material de render de una superficie según su condición actual."""
        return surface_material(self.state.get(tooth).condition(surface))

    def tooth_color(self, tooth: int) -> str:
        return tooth_action_color(self.state.get(tooth).override)

    def _touch(self, kind: str, change: ChangeRecord) -> None:
        self._pending.append(LoggedChange(kind, change))
        self._revision += 1

    # ── Comandos ─────────────────────────────────────

    def dispatch(self, command: ChartCommand) -> ChangeRecord:
        """Único punto de mutación: aplica el comando y lo registra para deshacer."""
        change = apply_command(self.state, command)
        if change.changed:
            self._undo.append(change)
            self._redo.clear()
            self._touch(_command_kind(command), change)
        return change

    def dispatch_all(self, commands) -> list[ChangeRecord]:
        return [self.dispatch(c) for c in commands]

    def undo(self) -> ChangeRecord | None:
        if not self._undo:
            return None
        change = self._undo.pop()
        self.state.set_state(change.tooth, change.before)
        self._redo.append(change)
        self._touch("undo", ChangeRecord(change.command, change.tooth, change.after, change.before))
        return change

    def redo(self) -> ChangeRecord | None:
        if not self._redo:
            return None
        change = self._redo.pop()
        self.state.set_state(change.tooth, change.after)
        self._undo.append(change)
        self._touch("redo", change)
        return change

    # ── Carga ────────────────────────────────────────

    async def load(self) -> ChartState:
        """Carga el odontograma del paciente; si no existe, el gráfico queda vacío."""
        odontogram = await self.repository.get_by_patient_id(self.patient_id)
        if odontogram is None:
            self.state.restore({})
            self.notes = {}
            self.odontogram_id = None
        else:
            loaded, notes = load_chart(odontogram.teeth or [])
            self.state.restore(loaded.snapshot())
            self.notes = notes
            self.odontogram_id = odontogram.id
        self._undo.clear()
        self._redo.clear()
        self._pending.clear()
        self._saved_revision = self._revision
        return self.state

    # ── Guardado ─────────────────────────────────────

    def _treatment_for(self, logged: LoggedChange) -> NewTreatment:
        change = logged.change
        surface = _command_surface(change.command)
        return NewTreatment(
            tooth_number=change.tooth,
            kind=logged.kind,
            doctor_id=self.doctor_id,
            surface=surface.value if surface else None,
            before_condition=_describe(change.before, surface),
            after_condition=_describe(change.after, surface),
        )

    async def _ensure_odontogram(self, teeth: list[dict]) -> str:
        if self.odontogram_id:
            return self.odontogram_id
        existing = await self.repository.get_by_patient_id(self.patient_id)
        if existing is None:
            existing = await self.repository.create(
                self.patient_id, self.doctor_id, teeth, last_exam_date=utcnow()
            )
        self.odontogram_id = existing.id
        return existing.id

    async def save(self) -> str:
        """
        Persiste el estado actual: crea el odontograma si hace falta,
        reemplaza los dientes y agrega al historial los cambios pendientes.
        """
        revision = self._revision
        teeth = serialize_chart(self.state, self.serializer, self.notes)
        # Sólo los cambios incluidos en este snapshot; los posteriores quedan pendientes
        included = len(self._pending)
        logger.info(
            "Guardando odontograma de paciente %s (%d dientes, %d cambios)",
            self.patient_id, len(teeth), included,
        )
        try:
            odontogram_id = await self._ensure_odontogram(teeth)
            await self.repository.update(odontogram_id, teeth=teeth, last_exam_date=utcnow())
            while included:
                await self.repository.add_treatment(
                    odontogram_id, self._treatment_for(self._pending[0])
                )
                self._pending.pop(0)
                included -= 1
        except asyncio.CancelledError:
            logger.info("Guardado cancelado para paciente %s", self.patient_id)
            raise
        except Exception as exc:
            logger.warning(
                "Error guardando odontograma de paciente %s: %s", self.patient_id, exc
            )
            raise ChartSaveError() from exc

        self._saved_revision = revision
        logger.info("Odontograma %s guardado", odontogram_id)
        return odontogram_id

    def schedule_save(self) -> asyncio.Task:
        """Lanza el guardado en segundo plano, cancelando uno previo en curso."""
        self.cancel_save()
        self._save_task = asyncio.create_task(self.save())
        return self._save_task

    def cancel_save(self) -> bool:
        task = self._save_task
        self._save_task = None
        if task is None or task.done():
            return False
        return task.cancel()
