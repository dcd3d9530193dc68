import json

import pytest

from app.services.chart_serialization import (
    canonical_serializer,
    condition_from_wire,
    condition_to_wire,
    deserialize_tooth,
    get_serializer,
    legacy_serializer,
    load_chart,
    override_from_notes,
    override_to_notes,
    serialize_chart,
    serialize_legacy,
    surface_key,
    to_legacy_shorthand,
)
from app.services.chart_state import (
    ChartState,
    Surface,
    SurfaceCondition,
    ToothAction,
    ToothState,
)
from app.services.tooth_taxonomy import UnknownToothError


@pytest.mark.parametrize(
    ("wire", "expected"),
    [
        ("oclusal", Surface.OCLUSAL),
        ("Vestibular", Surface.VESTIBULAR),
        ("lingual", Surface.LINGUAL),
        ("M", Surface.MESIAL),
        ("distal", Surface.DISTAL),
        ("palatino", None),
        ("", None),
    ],
)
def test_surface_key_uses_first_letter(wire, expected):
    assert surface_key(wire) is expected


@pytest.mark.parametrize(
    ("condition", "wire"),
    [
        (SurfaceCondition.NONE, "healthy"),
        (SurfaceCondition.CARIES, "caries"),
        (SurfaceCondition.RESTORED, "filled"),
        (SurfaceCondition.COMPLETED, "filled"),
        ("completed", "filled"),
    ],
)
def test_condition_to_wire(condition, wire):
    assert condition_to_wire(condition) == wire


def test_completed_reads_back_as_restored():
    wire = condition_to_wire(SurfaceCondition.COMPLETED)
    assert condition_from_wire(wire) is SurfaceCondition.RESTORED


@pytest.mark.parametrize("wire", ["healthy", "sealant", None, ""])
def test_unknown_wire_condition_reads_as_none(wire):
    assert condition_from_wire(wire) is SurfaceCondition.NONE


def test_canonical_record_has_all_five_surfaces():
    state = ToothState.from_surfaces({"O": "caries"})
    record = canonical_serializer(16, state)
    assert record["toothNumber"] == 16
    assert record["isPresent"] is True
    assert [s["surface"] for s in record["surfaces"]] == [
        "oclusal", "vestibular", "lingual", "mesial", "distal"
    ]
    assert record["surfaces"][0] == {
        "surface": "oclusal", "condition": "caries", "severity": 1, "notes": "",
    }
    assert all(s["condition"] == "healthy" for s in record["surfaces"][1:])
    assert record["generalNotes"] == ""


def test_canonical_record_keeps_free_notes_without_override():
    record = canonical_serializer(11, ToothState.default(), "sensibilidad al frío")
    assert record["generalNotes"] == "sensibilidad al frío"


def test_override_goes_to_general_notes_as_json():
    state = ToothState.default().with_override(ToothAction.CROWN_DEFECTIVE)
    record = canonical_serializer(26, state)
    assert json.loads(record["generalNotes"]) == {"condition": "crown", "severity": 3}


def test_missing_tooth_is_not_present():
    state = ToothState.default().with_override(ToothAction.MISSING, clear_surfaces=True)
    record = canonical_serializer(38, state)
    assert record["isPresent"] is False


def test_legacy_shorthand_drops_none_surfaces():
    record = serialize_legacy(16, {"O": "caries", "V": "none", "M": "completed"})
    assert record["surfaces"] == [
        {"surface": "oclusal", "condition": "caries", "severity": 1, "notes": ""},
        {"surface": "mesial", "condition": "filled", "severity": 1, "notes": ""},
    ]


def test_legacy_shorthand_skips_unknown_keys():
    record = serialize_legacy(16, {"X": "caries"})
    assert record["surfaces"] == []


def test_legacy_serializer_from_state():
    state = ToothState.from_surfaces({"D": "restored"})
    assert to_legacy_shorthand(state)["D"] == "restored"
    record = legacy_serializer(45, state)
    assert [s["surface"] for s in record["surfaces"]] == ["distal"]


def test_get_serializer_by_name():
    assert get_serializer("canonical") is canonical_serializer
    assert get_serializer("legacy") is legacy_serializer
    with pytest.raises(ValueError):
        get_serializer("xml")


@pytest.mark.parametrize("action", [a for a in ToothAction if a is not ToothAction.NONE])
def test_tooth_actions_survive_general_notes(action):
    notes = override_to_notes(action)
    assert override_from_notes(notes) == (action, "")


def test_override_keeps_free_notes_in_json():
    state = ToothState.default().with_override(ToothAction.CROWN_INDICATED)
    record = canonical_serializer(21, state, "fractura previa")
    assert json.loads(record["generalNotes"]) == {
        "condition": "crown", "severity": 1, "notes": "fractura previa",
    }
    tooth, restored, notes = deserialize_tooth(record)
    assert restored.override is ToothAction.CROWN_INDICATED
    assert notes == "fractura previa"


def test_legacy_record_keeps_free_notes_with_override():
    state = ToothState.default().with_override(ToothAction.FRACTURE)
    record = legacy_serializer(11, state, "trauma")
    assert override_from_notes(record["generalNotes"]) == (ToothAction.FRACTURE, "trauma")


def test_free_text_notes_are_not_overrides():
    assert override_from_notes("paciente refiere dolor") == (None, "paciente refiere dolor")
    assert override_from_notes('["a"]') == (None, '["a"]')
    assert override_from_notes("") == (None, "")


def test_unknown_severity_falls_back_to_done_variant():
    notes = json.dumps({"condition": "crown", "severity": 9})
    assert override_from_notes(notes)[0] is ToothAction.CROWN_DONE
    notes = json.dumps({"condition": "fracture", "severity": 4})
    assert override_from_notes(notes)[0] is ToothAction.FRACTURE


def test_unknown_tooth_level_condition_is_kept_as_notes():
    notes = json.dumps({"condition": "sealant", "severity": 1})
    assert override_from_notes(notes) == (None, notes)


def test_serialize_chart_emits_only_modified_teeth():
    chart = ChartState()
    chart.set_surface(36, Surface.OCLUSAL, SurfaceCondition.CARIES)
    chart.set_tooth_condition(11, ToothAction.FRACTURE)
    records = serialize_chart(chart, canonical_serializer, {36: "control"})
    assert [r["toothNumber"] for r in records] == [11, 36]
    assert records[1]["generalNotes"] == "control"


def test_deserialize_tooth_record():
    record = {
        "toothNumber": 16,
        "isPresent": True,
        "surfaces": [
            {"surface": "oclusal", "condition": "caries", "severity": 2},
            {"surface": "mesial", "condition": "filled"},
            {"surface": "cervical", "condition": "caries"},
        ],
        "generalNotes": "revisar",
    }
    tooth, state, notes = deserialize_tooth(record)
    assert tooth == 16
    assert state.condition(Surface.OCLUSAL) is SurfaceCondition.CARIES
    assert state.condition(Surface.MESIAL) is SurfaceCondition.RESTORED
    assert state.condition(Surface.DISTAL) is SurfaceCondition.NONE
    assert state.override is None
    assert notes == "revisar"


def test_not_present_without_override_reads_as_missing():
    _, state, _ = deserialize_tooth({"toothNumber": 47, "isPresent": False, "surfaces": []})
    assert state.override is ToothAction.MISSING


def test_deserialize_rejects_unknown_tooth():
    with pytest.raises(UnknownToothError):
        deserialize_tooth({"toothNumber": 19, "surfaces": []})


def test_load_chart_round_trip_preserves_lossy_mapping():
    chart = ChartState()
    chart.set_surface(16, Surface.OCLUSAL, SurfaceCondition.COMPLETED)
    chart.set_surface(16, Surface.VESTIBULAR, SurfaceCondition.CARIES)
    chart.set_tooth_condition(21, ToothAction.ENDODONTIC_INDICATED)

    loaded, notes = load_chart(serialize_chart(chart))

    assert loaded.get(16).condition(Surface.OCLUSAL) is SurfaceCondition.RESTORED
    assert loaded.get(16).condition(Surface.VESTIBULAR) is SurfaceCondition.CARIES
    assert loaded.get(21).override is ToothAction.ENDODONTIC_INDICATED
    assert notes == {}


def test_healthy_records_load_as_empty_chart():
    records = [canonical_serializer(n, ToothState.default()) for n in (11, 12, 13)]
    loaded, _ = load_chart(records)
    assert len(loaded) == 0
