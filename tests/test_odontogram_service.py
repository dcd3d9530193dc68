import json
from decimal import Decimal

import pytest

from app.core.exceptions import NotFoundException, ValidationException
from app.schemas.odontogram import (
    AssessmentFinding,
    SurfaceRecord,
    ToothRecord,
    TreatmentCreate,
)
from app.services import odontogram_service
from app.services.tooth_taxonomy import UnknownToothError


async def test_create_starts_with_32_healthy_teeth(repo):
    odontogram = await odontogram_service.create_odontogram(repo, "pat_1", "doc_1")
    assert len(odontogram.teeth) == 32
    assert all(t.is_present for t in odontogram.teeth)
    assert all(
        s.condition == "healthy" for t in odontogram.teeth for s in t.surfaces
    )
    assert odontogram.last_exam_date is not None


async def test_create_is_idempotent(repo):
    first = await odontogram_service.create_odontogram(repo, "pat_1", "doc_1")
    second = await odontogram_service.create_odontogram(repo, "pat_1", "doc_2")
    assert first.id == second.id
    assert second.doctor_id == "doc_1"


async def test_get_missing_patient_raises_404(repo):
    with pytest.raises(NotFoundException) as exc_info:
        await odontogram_service.get_by_patient(repo, "nobody")
    assert exc_info.value.status_code == 404


async def test_update_tooth_condition_stamps_surfaces(repo):
    odontogram = await odontogram_service.create_odontogram(repo, "pat_1", "doc_1")
    updated = await odontogram_service.update_tooth_condition(
        repo,
        odontogram.id,
        16,
        [SurfaceRecord(surface="oclusal", condition="caries", severity=2)],
        "doc_2",
    )
    tooth = next(t for t in updated.teeth if t.tooth_number == 16)
    assert len(tooth.surfaces) == 1
    assert tooth.surfaces[0].condition == "caries"
    assert tooth.surfaces[0].modified_by == "doc_2"
    assert tooth.surfaces[0].last_modified is not None


async def test_update_tooth_condition_adds_primary_tooth(repo):
    odontogram = await odontogram_service.create_odontogram(repo, "pat_1", "doc_1")
    updated = await odontogram_service.update_tooth_condition(
        repo, odontogram.id, 54, [], "doc_1", is_present=False
    )
    tooth = next(t for t in updated.teeth if t.tooth_number == 54)
    assert tooth.is_present is False
    assert len(updated.teeth) == 33


async def test_update_tooth_condition_rejects_unknown_tooth(repo):
    odontogram = await odontogram_service.create_odontogram(repo, "pat_1", "doc_1")
    with pytest.raises(UnknownToothError):
        await odontogram_service.update_tooth_condition(repo, odontogram.id, 19, [], "doc_1")


async def test_update_tooth_condition_missing_odontogram(repo):
    with pytest.raises(NotFoundException):
        await odontogram_service.update_tooth_condition(repo, "no-such-id", 16, [], "doc_1")


async def test_update_odontogram_replaces_teeth(repo):
    odontogram = await odontogram_service.create_odontogram(repo, "pat_1", "doc_1")
    teeth = [ToothRecord(tooth_number=11, surfaces=[SurfaceRecord(surface="vestibular", condition="filled")])]
    updated = await odontogram_service.update_odontogram(
        repo, odontogram.id, teeth=teeth, general_notes="control en 6 meses"
    )
    assert [t.tooth_number for t in updated.teeth] == [11]
    assert updated.general_notes == "control en 6 meses"


async def test_update_odontogram_rejects_duplicate_teeth(repo):
    odontogram = await odontogram_service.create_odontogram(repo, "pat_1", "doc_1")
    teeth = [ToothRecord(tooth_number=11), ToothRecord(tooth_number=11)]
    with pytest.raises(ValidationException):
        await odontogram_service.update_odontogram(repo, odontogram.id, teeth=teeth)


async def test_initial_assessment_bulk_update(repo):
    odontogram = await odontogram_service.create_odontogram(repo, "pat_1", "doc_1")
    findings = [
        AssessmentFinding(tooth_number=16, surfaces=[SurfaceRecord(surface="oclusal", condition="caries")]),
        AssessmentFinding(tooth_number=36, surfaces=[SurfaceRecord(surface="distal", condition="filled")]),
    ]
    updated = await odontogram_service.generate_initial_assessment(
        repo, odontogram.id, findings, "doc_1"
    )
    by_number = {t.tooth_number: t for t in updated.teeth}
    assert by_number[16].surfaces[0].condition == "caries"
    assert by_number[36].surfaces[0].surface == "distal"


async def test_treatment_history_newest_first(repo):
    odontogram = await odontogram_service.create_odontogram(repo, "pat_1", "doc_1")
    await odontogram_service.record_treatment(
        repo, odontogram.id,
        TreatmentCreate(tooth_number=16, doctor_id="doc_1", surface="O",
                        treatment_code="D2140", cost=Decimal("50.00")),
    )
    await odontogram_service.record_treatment(
        repo, odontogram.id,
        TreatmentCreate(tooth_number=26, doctor_id="doc_1", kind="extraction"),
    )

    history = await odontogram_service.get_treatment_history(repo, "pat_1")
    assert [h.tooth_number for h in history] == [26, 16]
    assert history[1].cost == Decimal("50.00")
    assert history[1].completed_at is not None

    limited = await odontogram_service.get_treatment_history(repo, "pat_1", limit=1)
    assert len(limited) == 1

    tooth_history = await odontogram_service.get_tooth_history(repo, "pat_1", 16)
    assert [h.treatment_code for h in tooth_history] == ["D2140"]


async def test_record_treatment_requires_odontogram(repo):
    with pytest.raises(NotFoundException):
        await odontogram_service.record_treatment(
            repo, "no-such-id", TreatmentCreate(tooth_number=16, doctor_id="doc_1")
        )


def test_treatment_schema_rejects_unknown_tooth():
    with pytest.raises(ValueError):
        TreatmentCreate(tooth_number=19, doctor_id="doc_1")


async def test_healthy_chart_has_no_suggestions(repo):
    odontogram = await odontogram_service.create_odontogram(repo, "pat_1", "doc_1")
    assert await odontogram_service.get_suggested_treatments(repo, odontogram.id) == []


async def test_suggestions_follow_chart_order(repo):
    teeth = [
        {"toothNumber": 26, "isPresent": False, "surfaces": [], "generalNotes": ""},
        {"toothNumber": 16, "isPresent": True, "generalNotes": "",
         "surfaces": [{"surface": "oclusal", "condition": "caries", "severity": 1}]},
        {"toothNumber": 11, "isPresent": True, "surfaces": [],
         "generalNotes": json.dumps({"condition": "fracture", "severity": 1})},
    ]
    odontogram = await repo.create("pat_1", "doc_1", teeth)

    suggestions = await odontogram_service.get_suggested_treatments(repo, odontogram.id)

    assert [(s.tooth_number, s.treatment_code) for s in suggestions] == [
        (11, "D2750"), (16, "D2140"), (26, "D6010"),
    ]
    assert [s.priority for s in suggestions] == [1, 2, 3]
    assert suggestions[1].surface == "oclusal"
    assert suggestions[1].estimated_cost == Decimal("50.00")
    assert suggestions[2].estimated_minutes == 120
