from __future__ import annotations

from core import settings


def _new_record(client) -> str:
    res = client.post("/records", json={})
    assert res.status_code == 201
    return res.json()["id"]


def test_health(client):
    res = client.get("/api/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert body["services"]["snapshot_store"] is True
    assert body["services"]["records_dir"] is True


def test_create_and_get(client):
    record_id = _new_record(client)
    res = client.get(f"/records/{record_id}")
    assert res.status_code == 200
    body = res.json()
    assert body["date"] == "2024-06-14"
    assert body["time"] == "09:30"
    assert body["discharge_score"]["total"] == 0


def test_unknown_record_is_404(client):
    assert client.get("/records/does-not-exist").status_code == 404
    assert client.patch("/records/does-not-exist/sections/patient", json={"name": "x"}).status_code == 404


def test_patient_section_returns_derived_values(client):
    record_id = _new_record(client)
    res = client.patch(f"/records/{record_id}/sections/patient", json={
        "name": "Ana", "dob": "2000-06-15", "weight": 70, "height": 70, "sex": "F",
    })
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["bmi"] == 22.1
    assert data["bmi_category"] == "Normal"
    assert data["is_minor"] is False


def test_unknown_section_is_404(client):
    record_id = _new_record(client)
    assert client.patch(f"/records/{record_id}/sections/billing", json={"a": 1}).status_code == 404


def test_bad_value_is_422(client):
    record_id = _new_record(client)
    res = client.patch(f"/records/{record_id}/sections/patient", json={"weight": "heavy"})
    assert res.status_code == 422
    # el registro no cambió
    assert client.get(f"/records/{record_id}").json()["patient"]["weight"] == 0


def test_pre_op_vitals_flow_to_intra_op_and_discharge(client):
    record_id = _new_record(client)
    client.patch(f"/records/{record_id}/sections/pre_op_vitals", json={
        "blood_pressure": "120/80", "pulse": "72", "spo2": "98", "respiratory_rate": "16",
        "taken_day_of_procedure": True,
    })

    mounted = client.post(f"/records/{record_id}/sections/vitals/mount").json()
    assert mounted["section"] == "vitals"
    assert mounted["data"]["blood_pressure"] == "120/80"
    assert mounted["data"]["pulse"] == 72.0
    assert mounted["data"]["respiration"] == 16.0

    res = client.patch(f"/records/{record_id}/sections/discharge_score", json={"discharge_blood_pressure": "95/60"})
    data = res.json()["data"]
    assert data["circulation"] == 1
    assert data["circulation_auto"] is True
    assert data["total"] == 1

    manual = client.post(f"/records/{record_id}/discharge/circulation", json={"value": 2}).json()
    assert manual["circulation"] == 2
    assert manual["circulation_auto"] is False

    assert client.post(f"/records/{record_id}/discharge/circulation", json={"value": 3}).status_code == 422


def test_checklist_completion(client):
    record_id = _new_record(client)
    client.patch(f"/records/{record_id}/sections/monitoring", json={"ecg": True, "pulse_oximetry": True})
    res = client.get(f"/records/{record_id}/checklists/monitoring/completion")
    assert res.json() == {"section": "monitoring", "completed": 2, "total": 5, "percentage": 40}


def test_prescription_drafts(client):
    record_id = _new_record(client)
    res = client.post(f"/records/{record_id}/prescriptions/drafts", json={"category": "pain"})
    assert res.status_code == 201
    draft = res.json()
    assert draft["name"].startswith("Norco 5/325mg")

    res = client.post(f"/records/{record_id}/prescriptions/drafts/{draft['id']}/submit")
    assert res.status_code == 201

    rx = client.get(f"/records/{record_id}").json()["medication_prescriptions"]
    assert rx["draft_medications"] == []
    assert len(rx["medication_log"]) == 1

    assert client.delete(f"/records/{record_id}/prescriptions/drafts/{draft['id']}").status_code == 404


def test_intra_op_tracker(client):
    record_id = _new_record(client)
    res = client.post(f"/records/{record_id}/intra-op/medications", json={"dose": 50, "unit": "mcg"})
    assert res.status_code == 201
    entry = res.json()
    assert entry["time"] == "0930"
    assert entry["total"] == 50.0

    res = client.patch(f"/records/{record_id}/intra-op/medications/{entry['id']}", json={"wasted": "10"})
    assert res.json()["total"] == 60.0

    assert client.post(f"/records/{record_id}/intra-op/unknown", json={}).status_code == 404
    assert client.delete(f"/records/{record_id}/intra-op").status_code == 204
    assert client.get(f"/records/{record_id}").json()["intra_op_tracker"]["medications"] == []


def test_drug_log(client):
    record_id = _new_record(client)
    res = client.post(f"/records/{record_id}/drug-log", json={"name": "Fentanyl", "dose": "5", "used": True})
    assert res.status_code == 201
    body = res.json()
    assert body["entry"]["time"] == "09:30"
    assert body["advisories"][0]["severity"] == "success"

    client.post(f"/records/{record_id}/drug-log", json={"dose": "3", "wasted": True})
    totals = client.get(f"/records/{record_id}/drug-log/totals").json()
    assert totals == {"total_used": 5.0, "total_wasted": 3.0, "total_dispensed": 8.0}

    res = client.patch(f"/records/{record_id}/drug-log/{body['entry']['id']}", json={"dose": "-1"})
    assert res.json()["advisories"][0]["message"] == "Invalid dose amount"


def test_save_and_load(client):
    record_id = _new_record(client)
    client.patch(f"/records/{record_id}/sections/patient", json={"name": "Ana"})
    res = client.post(f"/records/{record_id}/save")
    assert res.status_code == 200
    assert res.json()["path"].endswith(f"{record_id}.json")

    loaded = client.post(f"/records/{record_id}/load").json()
    assert loaded["patient"]["name"] == "Ana"
    assert client.post("/records/never-saved/load").status_code == 404


def test_print_returns_pdf(client):
    record_id = _new_record(client)
    res = client.get(f"/records/{record_id}/print")
    assert res.status_code == 200
    assert res.headers["content-type"] == "application/pdf"
    assert res.content.startswith(b"%PDF")


def test_calculators(client):
    assert client.post("/calc/weight", json={"value": 70, "from_unit": "kg", "to_unit": "lbs"}).json() == {
        "value": 154.3, "unit": "lbs",
    }
    assert client.post("/calc/bmi", json={"weight_kg": 70, "height_inches": 70}).json() == {
        "bmi": 22.1, "category": "Normal",
    }
    assert client.post("/calc/age", json={"dob": "2000-06-15"}).json() == {"age": 23, "age_in_months": 287}
    assert client.post("/calc/age", json={"dob": "someday"}).status_code == 422

    npo = client.post("/calc/npo", json={"npo_hours": 4}).json()
    assert npo["is_valid"] is False

    dose = client.post("/calc/drug-dose", json={"name": "Propofol", "dose": 5}).json()
    assert dose["formatted_dose"] == "09:30 5 mg"

    aldrete = client.post("/calc/aldrete", json={"vitals": 2, "ambulation": 2, "nv": 2, "pain": 2}).json()
    assert aldrete["total"] == 8
    assert aldrete["is_ready_for_discharge"] is True


def test_validate_field(client):
    res = client.post("/validate/field", json={"field": "email", "value": "x", "rule": {"type": "email"}})
    assert res.json() == {"field": "email", "severity": "error", "message": "Must be a valid email address"}
    bad = client.post("/validate/field", json={"field": "zip", "value": "1", "rule": {"type": "postcode"}})
    assert bad.status_code == 422


def test_oversized_payload_is_rejected(client):
    record_id = _new_record(client)
    res = client.patch(
        f"/records/{record_id}/sections/surgical_procedure",
        json={"notes": "x" * (settings.MAX_PAYLOAD_SIZE + 1)},
    )
    assert res.status_code == 413
    assert res.json() == {"detail": "Request payload too large"}


def test_patient_age_follows_app_clock(client):
    record_id = _new_record(client)
    res = client.patch(f"/records/{record_id}/sections/patient", json={"dob": "2000-06-15"})
    assert res.json()["data"]["age"] == 23
    assert client.get(f"/records/{record_id}").json()["patient"]["age"] == 23


def test_discharge_sub_score_out_of_range_is_422(client):
    record_id = _new_record(client)
    res = client.patch(f"/records/{record_id}/sections/discharge_score", json={"circulation": 7, "color": 9})
    assert res.status_code == 422
    assert client.get(f"/records/{record_id}").json()["discharge_score"]["total"] == 0


def test_non_finite_patient_weight_is_422(client):
    record_id = _new_record(client)
    res = client.patch(
        f"/records/{record_id}/sections/patient",
        content='{"weight": Infinity}',
        headers={"content-type": "application/json"},
    )
    assert res.status_code == 422
