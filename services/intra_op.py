# services/intra_op.py
"""
Carga rápida intraoperatoria (medicación, nivel de conciencia, anestesia
local) y libro de drogas. Las funciones devuelven copias nuevas; la hora
de cada entrada sale del reloj inyectado.
"""
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel

from core.calculations import (
    DrugTotals,
    calculate_drug_totals,
    format_number,
    parse_number,
    to_hhmm,
    to_hhmm_compact,
    validate_drug_dose,
)
from core.clock import Clock, resolve
from core.schema_anestesia import (
    ConsciousnessEntry,
    DrugLogEntry,
    IntraOpTracker,
    LocalAnestheticEntry,
    MedicationEntry,
)


class EntryNotFound(KeyError):
    pass


class UnknownTrackerKind(KeyError):
    pass


# kind (URL) -> (lista en IntraOpTracker, modelo)
TRACKER_KINDS: Dict[str, Tuple[str, Type[BaseModel]]] = {
    "medications": ("medications", MedicationEntry),
    "consciousness": ("consciousness_levels", ConsciousnessEntry),
    "local-anesthetics": ("local_anesthetics", LocalAnestheticEntry),
}


def _kind(kind: str) -> Tuple[str, Type[BaseModel]]:
    try:
        return TRACKER_KINDS[kind]
    except KeyError:
        raise UnknownTrackerKind(kind) from None


def _index(entries: List[Any], entry_id: str) -> int:
    for idx, entry in enumerate(entries):
        if entry.id == entry_id:
            return idx
    raise EntryNotFound(entry_id)


def add_tracker_entry(tracker: IntraOpTracker, kind: str, data: Dict[str, Any], clock: Optional[Clock] = None) -> Tuple[IntraOpTracker, BaseModel]:
    field, model = _kind(kind)
    data = dict(data)
    data.pop("id", None)
    data.setdefault("time", to_hhmm_compact(resolve(clock).now()))
    if model is MedicationEntry:
        # lo usado arranca igual a la dosis; desecho en 0
        data.setdefault("used", format_number(parse_number(data.get("dose")) or 0))
        data.setdefault("wasted", "0")
    entry = model.model_validate(data)
    updated = tracker.model_copy(update={field: [*getattr(tracker, field), entry]})
    return updated, entry


def update_tracker_entry(tracker: IntraOpTracker, kind: str, entry_id: str, changes: Dict[str, Any]) -> Tuple[IntraOpTracker, BaseModel]:
    field, model = _kind(kind)
    entries = list(getattr(tracker, field))
    idx = _index(entries, entry_id)
    changes = dict(changes)
    if model is MedicationEntry and "dose" in changes and "used" not in changes:
        changes["used"] = format_number(parse_number(changes["dose"]) or 0)
    merged = model.model_validate({**entries[idx].model_dump(), **changes, "id": entry_id})
    entries[idx] = merged
    return tracker.model_copy(update={field: entries}), merged


def remove_tracker_entry(tracker: IntraOpTracker, kind: str, entry_id: str) -> IntraOpTracker:
    field, _ = _kind(kind)
    entries = list(getattr(tracker, field))
    del entries[_index(entries, entry_id)]
    return tracker.model_copy(update={field: entries})


def clear_tracker() -> IntraOpTracker:
    return IntraOpTracker()


# -----------------------------
# Totales de medicación por droga
# -----------------------------

class MedicationTotal(BaseModel):
    medication: str
    unit: str
    used: float = 0
    wasted: float = 0
    grand_total: float = 0


def guess_medication_name(dose: float, unit: str) -> str:
    """Rótulo aproximado por rango de dosis; la planilla no guarda el nombre."""
    if unit == "mg":
        if 0.5 <= dose <= 10:
            return "Midazolam"
        if 10 <= dose <= 200:
            return "Propofol"
    if unit == "mcg":
        if 25 <= dose <= 200:
            return "Fentanyl"
        if 0.1 <= dose <= 2:
            return "Dexmedetomidine"
    if unit == "units":
        return "Heparin"
    if unit == "g":
        return "Antibiotic"
    return f"Medication ({format_number(dose)} {unit})"


def medication_totals(entries: List[MedicationEntry]) -> List[MedicationTotal]:
    totals: Dict[Tuple[str, str], MedicationTotal] = {}
    for entry in entries:
        name = guess_medication_name(entry.dose, entry.unit)
        row = totals.setdefault((name, entry.unit), MedicationTotal(medication=name, unit=entry.unit))
        row.used += parse_number(entry.used) or 0
        row.wasted += parse_number(entry.wasted) or 0
        row.grand_total += entry.total
    return list(totals.values())


# ============================================================================
# Libro de drogas
# ============================================================================

def _validated(entry: DrugLogEntry, clock: Optional[Clock]) -> DrugLogEntry:
    result = validate_drug_dose(entry.name, entry.dose, entry.unit, clock)
    return entry.model_copy(update={"time": result.timestamp})


def add_drug_entry(entries: List[DrugLogEntry], data: Optional[Dict[str, Any]] = None, clock: Optional[Clock] = None) -> Tuple[List[DrugLogEntry], DrugLogEntry]:
    data = dict(data or {})
    data.pop("id", None)
    data.setdefault("time", to_hhmm(resolve(clock).now()))
    entry = DrugLogEntry.model_validate(data)
    if entry.dose:
        entry = _validated(entry, clock)
    return [*entries, entry], entry


def update_drug_entry(entries: List[DrugLogEntry], entry_id: str, changes: Dict[str, Any], clock: Optional[Clock] = None) -> Tuple[List[DrugLogEntry], DrugLogEntry]:
    entries = list(entries)
    idx = _index(entries, entry_id)
    merged = DrugLogEntry.model_validate({**entries[idx].model_dump(), **changes, "id": entry_id})
    # nombre o dosis nuevos -> se revalida y se re-estampa la hora
    if "dose" in changes or "name" in changes:
        merged = _validated(merged, clock)
    entries[idx] = merged
    return entries, merged


def remove_drug_entry(entries: List[DrugLogEntry], entry_id: str) -> List[DrugLogEntry]:
    entries = list(entries)
    del entries[_index(entries, entry_id)]
    return entries


def drug_totals(entries: List[DrugLogEntry]) -> DrugTotals:
    return calculate_drug_totals(entry.model_dump() for entry in entries)
