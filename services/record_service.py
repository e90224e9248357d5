# services/record_service.py
"""
Registro de anestesia en memoria + guardado a disco.

Cada edición de sección es un merge superficial del parcial recibido sobre la
sección actual (lo que no viene se conserva). Después del merge corren los
disparadores de snapshots (paciente -> slot patientInfo, check "tomados el día
del procedimiento", PA de alta -> circulación) y se devuelven los avisos de la
sección.
"""
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel

from core import settings
from core.calculations import DrugTotals, parse_number, round_half_up, to_hhmm
from core.clock import Clock, resolve
from core.logger import LoggerManager
from core.schema_anestesia import (
    CHECKLIST_SECTIONS,
    SECTION_MODELS,
    AnesthesiaRecord,
    DrugLogEntry,
    MedicationLogEntry,
    PrescribedMedication,
    checklist_fields,
    dump_inputs,
)
from services import intra_op, prescriptions, propagation
from services.advisories import drug_log_advisories, section_advisories
from services.pdf import build_anesthesia_pdf
from services.snapshot_store import SnapshotStore
from services.validators import FieldMessage

log = LoggerManager(name="records", level=settings.LOG_LEVEL, log_to_file=False).get_logger()

HEADER_FIELDS = ("date", "time", "notes", "page_number", "total_pages")
MOUNTABLE_SECTIONS = ("vitals", "pre_op_vitals")


class RecordNotFound(KeyError):
    pass


class SectionNotFound(KeyError):
    pass


class RecordFormatError(ValueError):
    pass


class ChecklistCompletion(BaseModel):
    section: str
    completed: int
    total: int
    percentage: int


class SectionUpdate(BaseModel):
    section: str
    data: Dict[str, Any]
    advisories: List[FieldMessage] = []


# ============================================================================
# Merge
# ============================================================================

def merge_section(current: BaseModel, patch: Dict[str, Any]) -> BaseModel:
    """
    Merge superficial: las claves del parche pisan las de la sección, el resto
    se conserva. Ignora claves internas (empiezan con '_').
    """
    patch = {k: v for k, v in (patch or {}).items() if not (isinstance(k, str) and k.startswith("_"))}
    merged = {**current.model_dump(), **patch}
    return type(current).model_validate(merged)


def _normalize_patch(section: str, patch: Dict[str, Any]) -> Dict[str, Any]:
    patch = dict(patch or {})
    # la planilla llamaba "vitals" al sub-puntaje de circulación
    if section == "discharge_score" and "vitals" in patch:
        value = patch.pop("vitals")
        patch.setdefault("circulation", value)
    return patch


# ============================================================================
# Servicio
# ============================================================================

class RecordService:
    def __init__(self, store: Optional[SnapshotStore], records_dir: str = settings.RECORDS_DIR, clock: Optional[Clock] = None, pdf_dir: str = settings.PDF_TMP_DIR):
        self.store = store
        self.records_dir = Path(records_dir)
        self.pdf_dir = pdf_dir
        self.clock = clock
        self._records: Dict[str, AnesthesiaRecord] = {}
        self._mounted: Dict[str, Set[str]] = {}

    # -----------------------------
    # Alta / lectura
    # -----------------------------

    def create(self, data: Optional[Dict[str, Any]] = None) -> AnesthesiaRecord:
        now = resolve(self.clock).now()
        base = {"date": now.date().isoformat(), "time": to_hhmm(now)}
        record = self._put(AnesthesiaRecord.model_validate({**base, **(data or {})}))
        self._mounted[record.id] = set()
        log.info(f"🆕 Registro creado: {record.id}")
        return record

    def get(self, record_id: str) -> AnesthesiaRecord:
        try:
            return self._records[record_id]
        except KeyError:
            raise RecordNotFound(record_id) from None

    def list_ids(self) -> List[str]:
        return list(self._records)

    def _put(self, record: AnesthesiaRecord) -> AnesthesiaRecord:
        # edad y derivados del paciente con el reloj del servicio
        record.patient.use_clock(self.clock)
        self._records[record.id] = record
        return record

    def _replace(self, record_id: str, **sections) -> AnesthesiaRecord:
        return self._put(self.get(record_id).model_copy(update=sections))

    def update_header(self, record_id: str, changes: Dict[str, Any]) -> AnesthesiaRecord:
        record = self.get(record_id)
        data = {k: v for k, v in changes.items() if k in HEADER_FIELDS}
        return self._put(AnesthesiaRecord.model_validate({**record.model_dump(), **data}))

    # -----------------------------
    # Secciones
    # -----------------------------

    def _section_model(self, section: str):
        model = SECTION_MODELS.get(section)
        if model is None:
            raise SectionNotFound(section)
        return model

    def update_section(self, record_id: str, section: str, patch: Dict[str, Any]) -> SectionUpdate:
        record = self.get(record_id)
        self._section_model(section)
        patch = _normalize_patch(section, patch)

        current = getattr(record, section)
        merged = merge_section(current, patch)
        merged = self._after_merge(section, current, merged, patch)

        record = self._put(record.model_copy(update={section: merged}))
        log.info(f"✏️ {record_id} · {section}: {sorted(patch)}")
        return SectionUpdate(
            section=section,
            data=getattr(record, section).model_dump(mode="json"),
            advisories=section_advisories(record, section, patch.keys(), self.clock),
        )

    def _after_merge(self, section: str, current: BaseModel, merged: BaseModel, patch: Dict[str, Any]) -> BaseModel:
        if section == "patient":
            propagation.persist_patient_info(self.store, merged.use_clock(self.clock))

        elif section == "pre_op_vitals":
            if "weight_kg" in patch:
                merged = propagation.record_pre_op_weight(self.store, merged, merged.weight_kg, "kg")
            elif "weight_lbs" in patch:
                merged = propagation.record_pre_op_weight(self.store, merged, merged.weight_lbs, "lbs")
            if "height_feet" in patch or "height_inches" in patch:
                # talla cargada como pies + pulgadas
                merged = propagation.record_pre_op_feet_inches(
                    self.store,
                    merged,
                    int(parse_number(patch.get("height_feet")) or 0),
                    int(parse_number(patch.get("height_inches")) or 0),
                )
            elif "height" in patch:
                merged = propagation.record_pre_op_height(self.store, merged, merged.height, "inches")
            if "taken_day_of_procedure" in patch:
                merged = propagation.set_taken_day_of_procedure(self.store, merged, merged.taken_day_of_procedure)

        elif section == "discharge_score":
            # la selección manual manda sobre la PA de alta del mismo parche
            if "circulation" in patch:
                if merged.circulation != current.circulation:
                    merged = propagation.select_circulation(merged, merged.circulation)
            elif "discharge_blood_pressure" in patch:
                merged = propagation.apply_discharge_blood_pressure(self.store, merged, merged.discharge_blood_pressure)
        return merged

    def mount_section(self, record_id: str, section: str) -> BaseModel:
        """
        Hidratación al montar: solo la primera vez por registro. Después el
        slot se ignora aunque cambie.
        """
        record = self.get(record_id)
        self._section_model(section)
        current = getattr(record, section)
        mounted = self._mounted.setdefault(record_id, set())
        if section not in MOUNTABLE_SECTIONS or section in mounted:
            return current

        if section == "vitals":
            hydrated = propagation.hydrate_intra_op_vitals(self.store, current)
        else:
            hydrated = propagation.hydrate_pre_op_vitals_from_patient(self.store, current)
        mounted.add(section)
        self._put(record.model_copy(update={section: hydrated}))
        return hydrated

    def checklist_completion(self, record_id: str, section: str) -> ChecklistCompletion:
        if section not in CHECKLIST_SECTIONS:
            raise SectionNotFound(section)
        model = getattr(self.get(record_id), section)
        fields = checklist_fields(model)
        completed = sum(1 for name in fields if getattr(model, name) is True)
        total = len(fields)
        percentage = int(round_half_up(completed / total * 100)) if total else 0
        return ChecklistCompletion(section=section, completed=completed, total=total, percentage=percentage)

    # -----------------------------
    # Recetas
    # -----------------------------

    def add_draft_prescription(self, record_id: str, category: str, overrides: Optional[Dict[str, Any]] = None) -> PrescribedMedication:
        rx, draft = prescriptions.add_draft(self.get(record_id).medication_prescriptions, category, overrides)
        self._replace(record_id, medication_prescriptions=rx)
        return draft

    def update_draft_prescription(self, record_id: str, draft_id: str, changes: Dict[str, Any]) -> PrescribedMedication:
        rx, draft = prescriptions.update_draft(self.get(record_id).medication_prescriptions, draft_id, changes)
        self._replace(record_id, medication_prescriptions=rx)
        return draft

    def remove_draft_prescription(self, record_id: str, draft_id: str) -> None:
        rx = prescriptions.remove_draft(self.get(record_id).medication_prescriptions, draft_id)
        self._replace(record_id, medication_prescriptions=rx)

    def submit_prescription(self, record_id: str, draft_id: str) -> MedicationLogEntry:
        rx, entry = prescriptions.submit_draft(self.get(record_id).medication_prescriptions, draft_id)
        self._replace(record_id, medication_prescriptions=rx)
        log.info(f"💊 Receta emitida en {record_id}: {entry.name}")
        return entry

    # -----------------------------
    # Intraoperatorio
    # -----------------------------

    def add_intra_op_entry(self, record_id: str, kind: str, data: Dict[str, Any]) -> BaseModel:
        tracker, entry = intra_op.add_tracker_entry(self.get(record_id).intra_op_tracker, kind, data, self.clock)
        self._replace(record_id, intra_op_tracker=tracker)
        return entry

    def update_intra_op_entry(self, record_id: str, kind: str, entry_id: str, changes: Dict[str, Any]) -> BaseModel:
        tracker, entry = intra_op.update_tracker_entry(self.get(record_id).intra_op_tracker, kind, entry_id, changes)
        self._replace(record_id, intra_op_tracker=tracker)
        return entry

    def remove_intra_op_entry(self, record_id: str, kind: str, entry_id: str) -> None:
        tracker = intra_op.remove_tracker_entry(self.get(record_id).intra_op_tracker, kind, entry_id)
        self._replace(record_id, intra_op_tracker=tracker)

    def clear_intra_op(self, record_id: str) -> None:
        self._replace(record_id, intra_op_tracker=intra_op.clear_tracker())
        log.info(f"🧹 Carga intraoperatoria vaciada en {record_id}")

    # -----------------------------
    # Libro de drogas
    # -----------------------------

    def add_drug(self, record_id: str, data: Optional[Dict[str, Any]] = None) -> Tuple[DrugLogEntry, List[FieldMessage]]:
        entries, entry = intra_op.add_drug_entry(self.get(record_id).drug_log, data, self.clock)
        self._replace(record_id, drug_log=entries)
        return entry, drug_log_advisories([entry])

    def update_drug(self, record_id: str, entry_id: str, changes: Dict[str, Any]) -> Tuple[DrugLogEntry, List[FieldMessage]]:
        entries, entry = intra_op.update_drug_entry(self.get(record_id).drug_log, entry_id, changes, self.clock)
        self._replace(record_id, drug_log=entries)
        return entry, drug_log_advisories([entry])

    def remove_drug(self, record_id: str, entry_id: str) -> None:
        self._replace(record_id, drug_log=intra_op.remove_drug_entry(self.get(record_id).drug_log, entry_id))

    def drug_log_totals(self, record_id: str) -> DrugTotals:
        return intra_op.drug_totals(self.get(record_id).drug_log)

    # -----------------------------
    # Alta
    # -----------------------------

    def select_circulation_score(self, record_id: str, value: int) -> BaseModel:
        score = propagation.select_circulation(self.get(record_id).discharge_score, value)
        self._replace(record_id, discharge_score=score)
        return score

    # -----------------------------
    # Guardado / impresión
    # -----------------------------

    def _record_file(self, record_id: str) -> Path:
        return self.records_dir / f"{record_id}.json"

    def save(self, record_id: str) -> Path:
        record = self.get(record_id)
        self.records_dir.mkdir(parents=True, exist_ok=True)
        payload = {
            "format": settings.RECORD_FORMAT,
            "saved_at": resolve(self.clock).now().isoformat(),
            "record": dump_inputs(record),
        }
        path = self._record_file(record_id)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        log.info(f"💾 Registro {record_id} guardado en {path}")
        return path

    def load(self, record_id: str) -> AnesthesiaRecord:
        path = self._record_file(record_id)
        if not path.exists():
            raise RecordNotFound(record_id)
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        if not isinstance(payload, dict) or payload.get("format") != settings.RECORD_FORMAT:
            raise RecordFormatError(f"{path} no es un {settings.RECORD_FORMAT}")
        record = AnesthesiaRecord.model_validate(payload.get("record") or {})
        self._put(record)
        self._mounted.setdefault(record.id, set())
        log.info(f"📂 Registro {record.id} cargado desde {path}")
        return record

    def export_pdf(self, record_id: str) -> str:
        # se imprime sobre una copia: el registro no se toca
        snapshot = self.get(record_id).model_copy(deep=True)
        path = build_anesthesia_pdf(snapshot, out_dir=self.pdf_dir, clock=self.clock)
        log.info(f"🖨️ PDF de {record_id} generado: {path}")
        return path
