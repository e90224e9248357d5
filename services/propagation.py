# services/propagation.py
"""
Copias entre secciones vía snapshot store.

Ninguna es un binding en vivo: se copia al dispararse el evento (check de
"tomados el día del procedimiento", cambio de talla/peso, PA de alta) y la
sección destino lee el slot al montarse.
"""
from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from core import settings
from core.calculations import (
    circulation_score,
    cm_to_inches,
    feet_inches_to_inches,
    format_number,
    parse_number,
    parse_systolic,
    round_half_up,
)
from core.logger import LoggerManager
from core.schema_anestesia import DischargeScore, PatientInfo, PreOpVitals, Vitals
from services.snapshot_store import SnapshotStore, clear_snapshot, read_snapshot, write_snapshot

log = LoggerManager(name="propagation", level=settings.LOG_LEVEL, log_to_file=False).get_logger()


def _as_text(value):
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_number(value)
    return str(value)


SnapshotText = Annotated[Optional[str], BeforeValidator(_as_text)]


class PreOpVitalsSnapshot(BaseModel):
    """Lo que viaja en el slot preOpVitalsSnapshot (claves camelCase en el JSON)."""
    model_config = ConfigDict(populate_by_name=True)

    blood_pressure: SnapshotText = Field(default=None, alias="bloodPressure")
    pulse: SnapshotText = None
    spo2: SnapshotText = None
    respiratory_rate: SnapshotText = Field(default=None, alias="respiratoryRate")


# ============================================================================
# Pre-op -> Intra-op (signos vitales)
# ============================================================================

def capture_pre_op_vitals(store: SnapshotStore, vitals: PreOpVitals) -> bool:
    snapshot = PreOpVitalsSnapshot(
        blood_pressure=vitals.blood_pressure,
        pulse=vitals.pulse,
        spo2=vitals.spo2,
        respiratory_rate=vitals.respiratory_rate,
    )
    ok = write_snapshot(store, settings.PRE_OP_VITALS_SNAPSHOT_KEY, snapshot.model_dump(by_alias=True))
    if ok:
        log.info(f"📸 Snapshot de signos pre-op guardado (PA {vitals.blood_pressure or '-'})")
    return ok


def set_taken_day_of_procedure(store: SnapshotStore, vitals: PreOpVitals, taken: bool) -> PreOpVitals:
    """
    Marca/desmarca el check. Al marcar se copia el snapshot; al desmarcar se
    borra el slot (lo ya copiado al intra-op no se revierte).
    """
    updated = vitals.model_copy(update={"taken_day_of_procedure": bool(taken)})
    if taken:
        capture_pre_op_vitals(store, updated)
    elif clear_snapshot(store, settings.PRE_OP_VITALS_SNAPSHOT_KEY):
        log.info("🧹 Snapshot de signos pre-op eliminado")
    return updated


def read_pre_op_vitals_snapshot(store: SnapshotStore) -> Optional[PreOpVitalsSnapshot]:
    data = read_snapshot(store, settings.PRE_OP_VITALS_SNAPSHOT_KEY)
    if data is None:
        return None
    try:
        return PreOpVitalsSnapshot.model_validate(data)
    except ValidationError as e:
        log.warning(f"⚠️ Snapshot pre-op con forma inesperada, se ignora: {e}")
        return None


def hydrate_intra_op_vitals(store: SnapshotStore, vitals: Vitals) -> Vitals:
    """Pisa PA/pulso/SpO2/FR del intra-op con lo que traiga el snapshot (campo a campo)."""
    snap = read_pre_op_vitals_snapshot(store)
    if snap is None:
        return vitals

    updates: Dict[str, Any] = {}
    if snap.blood_pressure:
        updates["blood_pressure"] = snap.blood_pressure
    for target, value in (
        ("pulse", snap.pulse),
        ("spo2", snap.spo2),
        ("respiration", snap.respiratory_rate),
    ):
        number = parse_number(value)
        if number is not None:
            updates[target] = number

    if updates:
        log.info(f"🔁 Signos intra-op completados desde pre-op: {sorted(updates)}")
    return vitals.model_copy(update=updates)


# ============================================================================
# Paciente -> Pre-op (talla / peso)
# ============================================================================

def persist_patient_info(store: SnapshotStore, patient: PatientInfo) -> bool:
    return write_snapshot(store, settings.PATIENT_INFO_KEY, patient.model_dump(mode="json"))


def _merge_patient_slot(store: SnapshotStore, changes: Dict[str, Any]) -> bool:
    current = read_snapshot(store, settings.PATIENT_INFO_KEY) or {}
    current.update(changes)
    return write_snapshot(store, settings.PATIENT_INFO_KEY, current)


def hydrate_pre_op_vitals_from_patient(store: SnapshotStore, vitals: PreOpVitals) -> PreOpVitals:
    data = read_snapshot(store, settings.PATIENT_INFO_KEY)
    if not data:
        return vitals

    height = parse_number(data.get("height"))
    weight = parse_number(data.get("weight"))
    updates: Dict[str, str] = {}
    if height:
        updates["height"] = format_number(round_half_up(height))
    if weight:
        updates["weight_lbs"] = format_number(round_half_up(weight * settings.LBS_PER_KG))
        updates["weight_kg"] = format_number(weight)
    return vitals.model_copy(update=updates)


def record_pre_op_weight(store: SnapshotStore, vitals: PreOpVitals, value: str, unit: str) -> PreOpVitals:
    number = parse_number(value) or 0.0
    if unit == "kg":
        weight_kg = number
        updates = {
            "weight_kg": value,
            "weight_lbs": format_number(round_half_up(number * settings.LBS_PER_KG)),
        }
    else:
        weight_kg = number / settings.LBS_PER_KG
        updates = {
            "weight_lbs": value,
            "weight_kg": format_number(round_half_up(weight_kg, 1)),
        }
    _merge_patient_slot(store, {"weight": max(0.0, round_half_up(weight_kg, 1))})
    return vitals.model_copy(update=updates)


def record_pre_op_height(store: SnapshotStore, vitals: PreOpVitals, value: str, unit: str) -> PreOpVitals:
    number = parse_number(value) or 0.0
    inches = number if unit == "inches" else cm_to_inches(number)
    rounded = round_half_up(inches)
    _merge_patient_slot(store, {"height": max(0.0, rounded)})
    return vitals.model_copy(update={"height": format_number(rounded)})


def record_pre_op_feet_inches(store: SnapshotStore, vitals: PreOpVitals, feet: int, inches: int) -> PreOpVitals:
    total = feet_inches_to_inches(feet, inches)
    _merge_patient_slot(store, {"height": total})
    return vitals.model_copy(update={"height": str(total)})


# ============================================================================
# PA de alta -> sub-puntaje de circulación
# ============================================================================

def derive_circulation_from_bp(store: SnapshotStore, discharge_bp: str) -> Optional[int]:
    snap = read_pre_op_vitals_snapshot(store)
    if snap is None:
        return None
    return circulation_score(parse_systolic(snap.blood_pressure), parse_systolic(discharge_bp))


def apply_discharge_blood_pressure(store: SnapshotStore, score: DischargeScore, discharge_bp: str) -> DischargeScore:
    updates: Dict[str, Any] = {"discharge_blood_pressure": discharge_bp}
    auto = derive_circulation_from_bp(store, discharge_bp)
    if auto is not None:
        updates["circulation"] = auto
        updates["circulation_auto"] = True
        log.info(f"🩺 Circulación auto-calculada = {auto} (PA alta {discharge_bp})")
    return score.model_copy(update=updates)


def select_circulation(score: DischargeScore, value: int) -> DischargeScore:
    """Selección manual: pisa el valor y limpia la marca de auto. Fuera de 0-2 -> ValidationError."""
    return DischargeScore.model_validate({**score.model_dump(), "circulation": value, "circulation_auto": False})
