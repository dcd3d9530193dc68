import asyncio

import pytest

from app.core.exceptions import ChartSaveError
from app.services.chart_serialization import legacy_serializer
from app.services.chart_session import ChartSession
from app.services.chart_state import (
    ChartState,
    CycleSurface,
    Reset,
    Surface,
    SurfaceCondition,
    SurfaceEdit,
    ToothAction,
    ToothEdit,
)
from app.services.odontogram_service import initial_teeth


class FailingRepository:
    """Repositorio que falla al escribir."""

    def __init__(self):
        self.calls = 0

    async def get_by_patient_id(self, patient_id):
        return None

    async def create(self, patient_id, doctor_id, teeth, general_notes=None, last_exam_date=None):
        self.calls += 1
        raise RuntimeError("db down")


class BlockingRepository:
    """Repositorio cuya creación nunca termina (hasta ser cancelada)."""

    def __init__(self):
        self.started = asyncio.Event()

    async def get_by_patient_id(self, patient_id):
        return None

    async def create(self, patient_id, doctor_id, teeth, general_notes=None, last_exam_date=None):
        self.started.set()
        await asyncio.Event().wait()


# ── Comandos / deshacer ──────────────────────────────

def test_dispatch_marks_session_dirty():
    session = ChartSession(FailingRepository(), "pat_1", "doc_1")
    assert not session.dirty
    change = session.dispatch(CycleSurface(16, Surface.OCLUSAL))
    assert change.changed
    assert session.dirty
    assert session.tooth(16).condition(Surface.OCLUSAL) is SurfaceCondition.CARIES
    assert [c.kind for c in session.pending_changes] == ["cycle"]


def test_noop_command_is_not_recorded():
    session = ChartSession(FailingRepository(), "pat_1", "doc_1")
    session.dispatch(SurfaceEdit(16, Surface.OCLUSAL, SurfaceCondition.NONE))
    assert not session.dirty
    assert not session.can_undo
    assert session.pending_changes == []


def test_undo_and_redo():
    session = ChartSession(FailingRepository(), "pat_1", "doc_1")
    session.dispatch(ToothEdit(21, ToothAction.CROWN_INDICATED))
    session.dispatch(SurfaceEdit(21, Surface.MESIAL, SurfaceCondition.CARIES))

    undone = session.undo()
    assert undone.command == SurfaceEdit(21, Surface.MESIAL, SurfaceCondition.CARIES)
    assert session.tooth(21).condition(Surface.MESIAL) is SurfaceCondition.NONE
    assert session.tooth(21).override is ToothAction.CROWN_INDICATED
    assert session.can_redo

    session.redo()
    assert session.tooth(21).condition(Surface.MESIAL) is SurfaceCondition.CARIES
    assert not session.can_redo
    assert [c.kind for c in session.pending_changes] == [
        "tooth_edit", "surface_edit", "undo", "redo"
    ]


def test_new_command_clears_redo():
    session = ChartSession(FailingRepository(), "pat_1", "doc_1")
    session.dispatch(CycleSurface(11, Surface.VESTIBULAR))
    session.undo()
    # Un comando sin efecto no descarta el redo
    session.dispatch(Reset(12))
    assert session.can_redo
    session.dispatch(CycleSurface(12, Surface.LINGUAL))
    assert not session.can_redo


def test_undo_redo_on_empty_stacks():
    session = ChartSession(FailingRepository(), "pat_1", "doc_1")
    assert session.undo() is None
    assert session.redo() is None


def test_surface_material_follows_state():
    session = ChartSession(FailingRepository(), "pat_1", "doc_1")
    session.dispatch(CycleSurface(16, Surface.OCLUSAL))
    assert session.surface_material(16, Surface.OCLUSAL).color == "#ef4444"
    assert session.surface_material(16, Surface.DISTAL).color == "#ffffff"
    session.dispatch(ToothEdit(16, ToothAction.MISSING))
    assert session.tooth_color(16) == "#94a3b8"


def test_injected_state_is_owned_by_session():
    state = ChartState()
    state.set_surface(36, Surface.OCLUSAL, SurfaceCondition.RESTORED)
    session = ChartSession(FailingRepository(), "pat_1", "doc_1", state=state)
    assert session.tooth(36).condition(Surface.OCLUSAL) is SurfaceCondition.RESTORED


# ── Carga / guardado ─────────────────────────────────

async def test_load_without_odontogram_is_empty(repo):
    session = ChartSession(repo, "pat_1", "doc_1")
    state = await session.load()
    assert len(state) == 0
    assert session.odontogram_id is None
    assert not session.dirty


async def test_first_save_creates_odontogram_and_history(repo):
    session = ChartSession(repo, "pat_1", "doc_1")
    await session.load()
    session.dispatch(CycleSurface(16, Surface.OCLUSAL))

    odontogram_id = await session.save()

    assert not session.dirty
    assert session.pending_changes == []
    stored = await repo.get_by_patient_id("pat_1")
    assert stored.id == odontogram_id
    [record] = stored.teeth
    assert record["toothNumber"] == 16
    assert record["surfaces"][0] == {
        "surface": "oclusal", "condition": "caries", "severity": 1, "notes": "",
    }
    assert "lastUpdated" in record

    [entry] = await repo.get_treatment_history("pat_1")
    assert entry.kind == "cycle"
    assert entry.tooth_number == 16
    assert entry.surface == "O"
    assert entry.before_condition == "none"
    assert entry.after_condition == "caries"
    assert entry.doctor_id == "doc_1"


async def test_saved_chart_reloads_with_same_colors(repo):
    session = ChartSession(repo, "pat_1", "doc_1")
    session.dispatch(CycleSurface(16, Surface.OCLUSAL))
    session.dispatch(ToothEdit(26, ToothAction.EXTRACTION_INDICATED))
    await session.save()

    reloaded = ChartSession(repo, "pat_1", "doc_2")
    await reloaded.load()
    assert reloaded.surface_material(16, Surface.OCLUSAL).color == "#ef4444"
    assert reloaded.tooth(26).override is ToothAction.EXTRACTION_INDICATED
    assert reloaded.tooth_color(26) == "#ef4444"
    assert not reloaded.dirty


async def test_save_reuses_existing_odontogram(repo):
    existing = await repo.create("pat_1", "doc_1", initial_teeth())
    session = ChartSession(repo, "pat_1", "doc_1")
    session.dispatch(CycleSurface(46, Surface.DISTAL))
    assert await session.save() == existing.id
    stored = await repo.get_by_id(existing.id)
    # Last-write-wins: sólo los dientes modificados quedan registrados
    assert [t["toothNumber"] for t in stored.teeth] == [46]


async def test_free_notes_survive_save(repo):
    await repo.create("pat_1", "doc_1", [{
        "toothNumber": 11, "isPresent": True,
        "surfaces": [{"surface": "vestibular", "condition": "caries"}],
        "generalNotes": "mancha blanca",
    }])
    session = ChartSession(repo, "pat_1", "doc_1")
    await session.load()
    session.dispatch(CycleSurface(11, Surface.VESTIBULAR))
    await session.save()
    stored = await repo.get_by_patient_id("pat_1")
    assert stored.teeth[0]["generalNotes"] == "mancha blanca"


async def test_legacy_serializer_omits_healthy_surfaces(repo):
    session = ChartSession(repo, "pat_1", "doc_1", serializer=legacy_serializer)
    session.dispatch(SurfaceEdit(36, Surface.MESIAL, SurfaceCondition.COMPLETED))
    await session.save()
    stored = await repo.get_by_patient_id("pat_1")
    assert stored.teeth[0]["surfaces"] == [
        {"surface": "mesial", "condition": "filled", "severity": 1, "notes": ""}
    ]


async def test_failed_save_keeps_local_state():
    repo = FailingRepository()
    session = ChartSession(repo, "pat_1", "doc_1")
    session.dispatch(CycleSurface(16, Surface.OCLUSAL))

    with pytest.raises(ChartSaveError) as exc_info:
        await session.save()

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert exc_info.value.detail == "No se pudo guardar el odontograma"
    assert session.dirty
    assert session.tooth(16).condition(Surface.OCLUSAL) is SurfaceCondition.CARIES
    assert len(session.pending_changes) == 1
    # Sin reintentos automáticos
    assert repo.calls == 1


async def test_edit_during_save_stays_pending(repo, monkeypatch):
    session = ChartSession(repo, "pat_1", "doc_1")
    session.dispatch(CycleSurface(16, Surface.OCLUSAL))

    update = repo.update

    async def update_with_concurrent_edit(*args, **kwargs):
        monkeypatch.setattr(repo, "update", update)
        session.dispatch(CycleSurface(11, Surface.OCLUSAL))
        return await update(*args, **kwargs)

    monkeypatch.setattr(repo, "update", update_with_concurrent_edit)
    await session.save()

    stored = await repo.get_by_patient_id("pat_1")
    assert [t["toothNumber"] for t in stored.teeth] == [16]
    history = await repo.get_treatment_history("pat_1")
    assert [h.tooth_number for h in history] == [16]
    assert session.dirty
    assert [c.change.tooth for c in session.pending_changes] == [11]

    # El siguiente guardado registra el cambio pendiente
    await session.save()
    stored = await repo.get_by_patient_id("pat_1")
    assert [t["toothNumber"] for t in stored.teeth] == [11, 16]
    history = await repo.get_treatment_history("pat_1")
    assert sorted(h.tooth_number for h in history) == [11, 16]
    assert not session.dirty


async def test_schedule_save_runs_in_background(repo):
    session = ChartSession(repo, "pat_1", "doc_1")
    session.dispatch(CycleSurface(16, Surface.OCLUSAL))
    task = session.schedule_save()
    odontogram_id = await task
    assert odontogram_id == session.odontogram_id
    assert not session.dirty
    assert session.cancel_save() is False


async def test_cancel_in_flight_save():
    repo = BlockingRepository()
    session = ChartSession(repo, "pat_1", "doc_1")
    session.dispatch(CycleSurface(16, Surface.OCLUSAL))
    task = session.schedule_save()
    await repo.started.wait()

    assert session.cancel_save() is True
    with pytest.raises(asyncio.CancelledError):
        await task
    assert session.dirty
    assert session.tooth(16).condition(Surface.OCLUSAL) is SurfaceCondition.CARIES


async def test_new_save_cancels_previous_one():
    repo = BlockingRepository()
    session = ChartSession(repo, "pat_1", "doc_1")
    session.dispatch(CycleSurface(16, Surface.OCLUSAL))
    first = session.schedule_save()
    await repo.started.wait()
    second = session.schedule_save()

    with pytest.raises(asyncio.CancelledError):
        await first
    assert not second.done()
    session.cancel_save()
    with pytest.raises(asyncio.CancelledError):
        await second
