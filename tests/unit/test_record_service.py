from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from core import settings
from core.schema_anestesia import PreOpAssessment
from services.intra_op import EntryNotFound, UnknownTrackerKind, medication_totals
from services.prescriptions import DraftNotFound
from services.record_service import (
    RecordFormatError,
    RecordNotFound,
    SectionNotFound,
    merge_section,
)
from services.snapshot_store import read_snapshot


# -----------------------------
# Alta y merge
# -----------------------------

def test_create_stamps_date_and_time(service):
    record = service.create()
    assert record.date == "2024-06-14"
    assert record.time == "09:30"
    assert service.get(record.id) is record
    assert record.id in service.list_ids()


def test_unknown_record_and_section(service):
    with pytest.raises(RecordNotFound):
        service.get("nope")
    record = service.create()
    with pytest.raises(SectionNotFound):
        service.update_section(record.id, "billing", {"x": 1})


def test_merge_keeps_untouched_fields():
    current = PreOpAssessment(asa=2, heart="RRR", allergies=["latex"])
    merged = merge_section(current, {"mallampati": 3, "_ui_tab": "airway"})
    assert merged.asa == 2
    assert merged.heart == "RRR"
    assert merged.allergies == ["latex"]
    assert merged.mallampati == 3


def test_bad_field_type_is_rejected(service):
    record = service.create()
    with pytest.raises(ValidationError):
        service.update_section(record.id, "patient", {"weight": "heavy"})


def test_update_header(service):
    record = service.create()
    updated = service.update_header(record.id, {"notes": "Caso 2", "total_pages": 3, "id": "other"})
    assert updated.id == record.id
    assert updated.notes == "Caso 2"
    assert updated.total_pages == 3


# -----------------------------
# Paciente y avisos
# -----------------------------

def test_patient_update_returns_derived_values_and_slot(service, store):
    record = service.create()
    result = service.update_section(record.id, "patient", {"name": "Ana", "weight": 70, "height": 70, "dob": "2000-06-15"})
    assert result.data["bmi"] == 22.1
    assert result.data["bmi_category"] == "Normal"
    assert read_snapshot(store, settings.PATIENT_INFO_KEY)["weight"] == 70.0

    messages = {(m.field, m.severity.value, m.message) for m in result.advisories}
    assert ("bmi", "success", "Normal BMI") in messages


def test_edited_zero_weight_is_an_error(service):
    record = service.create()
    result = service.update_section(record.id, "patient", {"weight": 0})
    errors = [m for m in result.advisories if m.severity.value == "error"]
    assert [m.message for m in errors] == ["Weight must be positive"]


def test_short_npo_is_flagged(service):
    record = service.create()
    result = service.update_section(record.id, "pre_op_assessment", {"npo_hours": 4})
    npo = [m for m in result.advisories if m.field == "npo_hours"]
    assert npo[0].severity.value == "error"
    assert npo[0].message == "NPO time (4h) is less than recommended minimum (6h)"
    # el valor se guardó igual
    assert service.get(record.id).pre_op_assessment.npo_hours == 4


# -----------------------------
# Propagación al montar
# -----------------------------

def test_vitals_mount_hydrates_once(service):
    record = service.create()
    service.update_section(record.id, "pre_op_vitals", {
        "blood_pressure": "120/80", "pulse": "72", "spo2": "98", "respiratory_rate": "16",
    })
    service.update_section(record.id, "pre_op_vitals", {"taken_day_of_procedure": True})

    vitals = service.mount_section(record.id, "vitals")
    assert vitals.blood_pressure == "120/80"
    assert vitals.pulse == 72.0

    service.update_section(record.id, "vitals", {"pulse": 80})
    service.update_section(record.id, "pre_op_vitals", {"pulse": "65", "taken_day_of_procedure": True})
    again = service.mount_section(record.id, "vitals")
    assert again.pulse == 80


def test_pre_op_vitals_mount_reads_patient(service):
    record = service.create()
    service.update_section(record.id, "patient", {"weight": 70, "height": 70})
    vitals = service.mount_section(record.id, "pre_op_vitals")
    assert (vitals.height, vitals.weight_lbs, vitals.weight_kg) == ("70", "154", "70")


def test_pre_op_weight_in_lbs_updates_kg(service, store):
    record = service.create()
    result = service.update_section(record.id, "pre_op_vitals", {"weight_lbs": "154"})
    assert result.data["weight_kg"] == "69.9"
    assert read_snapshot(store, settings.PATIENT_INFO_KEY)["weight"] == 69.9


def test_mount_other_section_is_plain_read(service):
    record = service.create()
    assert service.mount_section(record.id, "monitoring") == service.get(record.id).monitoring


# -----------------------------
# Checklists
# -----------------------------

def test_checklist_completion(service):
    record = service.create()
    service.update_section(record.id, "pre_op_checklist", {"monitors": True, "suction": True, "airway": True})
    completion = service.checklist_completion(record.id, "pre_op_checklist")
    assert (completion.completed, completion.total, completion.percentage) == (3, 9, 33)

    service.update_section(record.id, "anesthesia_type", {"iv_sedation": True})
    assert service.checklist_completion(record.id, "anesthesia_type").percentage == 25

    with pytest.raises(SectionNotFound):
        service.checklist_completion(record.id, "patient")


def test_assessment_checklist_counts_declared_items(service):
    record = service.create()
    service.update_section(record.id, "pre_op_assessment", {"patient_identified": True, "lungs_ctab": True})
    completion = service.checklist_completion(record.id, "pre_op_assessment")
    assert completion.total == 11
    assert completion.completed == 1


# -----------------------------
# Recetas
# -----------------------------

def test_draft_submit_moves_to_log(service):
    record = service.create()
    draft = service.add_draft_prescription(record.id, "pain")
    assert draft.name == "Norco 5/325mg Tab # 20 Ṫ-ṪṪ PO QID prn pain"
    assert draft.quantity == 20

    rx = service.get(record.id).medication_prescriptions
    assert rx.selected_category == "pain"
    assert [d.id for d in rx.draft_medications] == [draft.id]

    entry = service.submit_prescription(record.id, draft.id)
    rx = service.get(record.id).medication_prescriptions
    assert rx.draft_medications == []
    assert [e.id for e in rx.medication_log] == [entry.id]
    assert entry.id != draft.id
    assert entry.name == draft.name


def test_draft_edit_and_remove(service):
    record = service.create()
    draft = service.add_draft_prescription(record.id, "antibiotic", {"refills": 1})
    assert draft.refills == 1
    edited = service.update_draft_prescription(record.id, draft.id, {"quantity": 21})
    assert edited.quantity == 21
    assert edited.id == draft.id

    service.remove_draft_prescription(record.id, draft.id)
    assert service.get(record.id).medication_prescriptions.draft_medications == []
    with pytest.raises(DraftNotFound):
        service.submit_prescription(record.id, draft.id)


# -----------------------------
# Alta
# -----------------------------

def test_discharge_total_and_alias(service):
    record = service.create()
    result = service.update_section(record.id, "discharge_score", {
        "vitals": 2, "ambulation": 2, "respiration": 2, "consciousness": 2, "color": 1,
    })
    assert result.data["circulation"] == 2
    assert result.data["total"] == 9
    # misma entrada, mismo total
    again = service.update_section(record.id, "discharge_score", {"color": 1})
    assert again.data["total"] == 9


def test_discharge_bp_then_manual_override(service):
    record = service.create()
    service.update_section(record.id, "pre_op_vitals", {"blood_pressure": "120/80", "taken_day_of_procedure": True})

    auto = service.update_section(record.id, "discharge_score", {"discharge_blood_pressure": "95/60"})
    assert auto.data["circulation"] == 1
    assert auto.data["circulation_auto"] is True

    manual = service.select_circulation_score(record.id, 2)
    assert manual.circulation == 2
    assert manual.circulation_auto is False


# -----------------------------
# Carga intraoperatoria
# -----------------------------

def test_medication_entry_defaults(service):
    record = service.create()
    entry = service.add_intra_op_entry(record.id, "medications", {"dose": 2, "unit": "mg"})
    assert entry.time == "0930"
    assert entry.used == "2"
    assert entry.wasted == "0"
    assert entry.total == 2.0

    updated = service.update_intra_op_entry(record.id, "medications", entry.id, {"dose": 3})
    assert updated.used == "3"
    assert updated.total == 3.0

    totals = medication_totals(service.get(record.id).intra_op_tracker.medications)
    assert [(t.medication, t.grand_total) for t in totals] == [("Midazolam", 3.0)]


def test_local_anesthetic_and_consciousness_entries(service):
    record = service.create()
    la = service.add_intra_op_entry(record.id, "local-anesthetics", {"type": "articaine", "carpules": 2})
    assert la.total_volume == 3.4

    level = service.add_intra_op_entry(record.id, "consciousness", {"score": 4})
    assert level.description == "Alert but confused"

    with pytest.raises(UnknownTrackerKind):
        service.add_intra_op_entry(record.id, "gases", {})
    with pytest.raises(EntryNotFound):
        service.remove_intra_op_entry(record.id, "consciousness", "missing")

    service.clear_intra_op(record.id)
    tracker = service.get(record.id).intra_op_tracker
    assert tracker.local_anesthetics == []
    assert tracker.consciousness_levels == []


# -----------------------------
# Libro de drogas
# -----------------------------

def test_drug_log_stamps_and_revalidates(service, clock):
    record = service.create()
    entry, advisories = service.add_drug(record.id, {"name": "Midazolam", "dose": "5", "used": True})
    assert entry.time == "09:30"
    assert advisories[0].severity.value == "success"

    clock.advance(minutes=15)
    bad, advisories = service.update_drug(record.id, entry.id, {"dose": "abc"})
    assert bad.time == "09:45"
    assert bad.is_valid is False
    assert advisories[0].message == "Invalid dose amount"

    # cambios que no tocan nombre ni dosis no re-estampan
    clock.advance(minutes=15)
    witnessed, _ = service.update_drug(record.id, entry.id, {"witness": "RN"})
    assert witnessed.time == "09:45"


def test_drug_log_totals(service):
    record = service.create()
    service.add_drug(record.id, {"dose": "5", "used": True})
    service.add_drug(record.id, {"dose": "2", "wasted": True})
    third, _ = service.add_drug(record.id, {"dose": "3", "used": True, "wasted": True})
    totals = service.drug_log_totals(record.id)
    assert (totals.total_used, totals.total_wasted, totals.total_dispensed) == (8, 5, 13)

    service.remove_drug(record.id, third.id)
    assert service.drug_log_totals(record.id).total_dispensed == 7


def test_blank_drug_row_has_no_advisory(service):
    record = service.create()
    entry, advisories = service.add_drug(record.id)
    assert entry.time == "09:30"
    assert advisories == []


# -----------------------------
# Guardado / impresión
# -----------------------------

def test_save_and_load(service, tmp_path):
    record = service.create()
    service.update_section(record.id, "patient", {"name": "Ana", "weight": 70, "height": 70, "dob": "2000-06-15"})
    path = service.save(record.id)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["format"] == settings.RECORD_FORMAT
    assert payload["record"]["patient"]["dob"] == "2000-06-15"
    assert "bmi" not in payload["record"]["patient"]

    loaded = service.load(record.id)
    assert loaded.patient.name == "Ana"
    assert loaded.patient.bmi == 22.1


def test_load_errors(service, tmp_path):
    with pytest.raises(RecordNotFound):
        service.load("missing")

    records_dir = tmp_path / "records"
    records_dir.mkdir(parents=True, exist_ok=True)
    (records_dir / "legacy.json").write_text(json.dumps({"format": "other", "record": {}}), encoding="utf-8")
    with pytest.raises(RecordFormatError):
        service.load("legacy")


def test_export_pdf_leaves_record_untouched(service):
    record = service.create()
    service.update_section(record.id, "patient", {"name": "Ana Pérez", "weight": 70, "height": 70})
    before = service.get(record.id).model_dump()

    path = service.export_pdf(record.id)
    with open(path, "rb") as f:
        assert f.read(4) == b"%PDF"
    assert service.get(record.id).model_dump() == before


# -----------------------------
# Valores fuera de dominio
# -----------------------------

def test_non_finite_values_never_crash_propagation(service, store):
    record = service.create()
    store.set(settings.PATIENT_INFO_KEY, '{"height": NaN, "weight": 70}')
    vitals = service.mount_section(record.id, "pre_op_vitals")
    assert vitals.height == ""
    assert vitals.weight_kg == "70"

    result = service.update_section(record.id, "pre_op_vitals", {"weight_kg": "1e999"})
    assert result.data["weight_kg"] == "1e999"
    assert result.data["weight_lbs"] == "0"


def test_non_finite_patient_weight_is_rejected(service):
    record = service.create()
    with pytest.raises(ValidationError):
        service.update_section(record.id, "patient", {"weight": float("inf")})


def test_discharge_sub_scores_stay_in_range(service):
    record = service.create()
    with pytest.raises(ValidationError):
        service.update_section(record.id, "discharge_score", {"circulation": 7, "color": 9})
    assert service.get(record.id).discharge_score.total == 0

    with pytest.raises(ValidationError):
        service.select_circulation_score(record.id, 3)


def test_manual_circulation_wins_over_discharge_bp_in_same_patch(service):
    record = service.create()
    service.update_section(record.id, "pre_op_vitals", {"blood_pressure": "120/80", "taken_day_of_procedure": True})

    result = service.update_section(record.id, "discharge_score", {"discharge_blood_pressure": "95/60", "circulation": 2})
    assert result.data["discharge_blood_pressure"] == "95/60"
    assert result.data["circulation"] == 2
    assert result.data["circulation_auto"] is False


def test_echoed_circulation_keeps_auto_flag(service):
    record = service.create()
    service.update_section(record.id, "pre_op_vitals", {"blood_pressure": "120/80", "taken_day_of_procedure": True})
    service.update_section(record.id, "discharge_score", {"discharge_blood_pressure": "95/60"})

    echoed = service.update_section(record.id, "discharge_score", {"circulation": 1, "ambulation": 2})
    assert echoed.data["circulation"] == 1
    assert echoed.data["circulation_auto"] is True
    assert echoed.data["total"] == 3


# -----------------------------
# Reloj del registro
# -----------------------------

def test_patient_age_uses_service_clock(service):
    record = service.create()
    result = service.update_section(record.id, "patient", {"dob": "2000-06-15"})
    assert result.data["age"] == 23
    assert result.data["age_in_months"] == 287
    assert result.data["is_minor"] is False

    # sigue igual después de otras ediciones del registro
    service.update_header(record.id, {"notes": "control"})
    service.update_section(record.id, "monitoring", {"ecg": True})
    assert service.get(record.id).patient.age == 23


def test_infant_flag_follows_service_clock(service, clock):
    record = service.create()
    service.update_section(record.id, "patient", {"dob": "2023-07-01"})
    assert service.get(record.id).patient.is_infant is True

    clock.advance(days=30)
    assert service.get(record.id).patient.is_infant is False


# -----------------------------
# Talla en pies + pulgadas
# -----------------------------

def test_pre_op_height_in_feet_and_inches(service, store):
    record = service.create()
    result = service.update_section(record.id, "pre_op_vitals", {"height_feet": 5, "height_inches": 10})
    assert result.data["height"] == "70"
    assert read_snapshot(store, settings.PATIENT_INFO_KEY)["height"] == 70


def test_tri_state_flags_accept_booleans(service):
    record = service.create()
    result = service.update_section(record.id, "medical_review", {
        "allergies_reviewed": True, "medications_reviewed": False, "family_history_reviewed": None,
    })
    assert result.data["allergies_reviewed"] == "yes"
    assert result.data["medications_reviewed"] == "no"
    assert result.data["family_history_reviewed"] == "unset"
