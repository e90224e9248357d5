# core/schema_anestesia.py
## Modelos Pydantic del registro de anestesia. Solo se guardan entradas;
## edad, IMC, totales y puntajes se calculan al leer (computed_field).
from __future__ import annotations

import uuid
from datetime import date
from enum import Enum
from typing import Annotated, ClassVar, List, Literal, Optional, Tuple

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    Field,
    FiniteFloat,
    PrivateAttr,
    computed_field,
)

from core.calculations import (
    bmi_value,
    calculate_age,
    calculate_bmi,
    carpule_volume,
    consciousness_description,
    consciousness_response,
    parse_date,
    parse_number,
)
from core.clock import Clock


def new_id() -> str:
    return uuid.uuid4().hex


# --- Tri-estado (sí / no / sin marcar) ---

class TriState(str, Enum):
    YES = "yes"
    NO = "no"
    UNSET = "unset"

    @classmethod
    def from_bool(cls, value: Optional[bool]) -> "TriState":
        if value is None:
            return cls.UNSET
        return cls.YES if value else cls.NO


def _coerce_tristate(value):
    if value is None or isinstance(value, bool):
        return TriState.from_bool(value)
    return value


TriStateField = Annotated[TriState, BeforeValidator(_coerce_tristate)]
DateField = Annotated[Optional[date], BeforeValidator(parse_date)]
SubScore = Annotated[int, Field(ge=0, le=2)]


def checklist_fields(model: BaseModel) -> Tuple[str, ...]:
    """Campos que cuentan para el % de completitud de una sección."""
    declared = getattr(model, "CHECKLIST_FIELDS", None)
    if declared:
        return tuple(declared)
    return tuple(
        name for name, field in type(model).model_fields.items()
        if field.annotation is bool
    )


# ============================================================================
# Paciente
# ============================================================================

class PatientInfo(BaseModel):
    name: str = ""
    dob: DateField = None
    weight: FiniteFloat = 0          # kg
    height: FiniteFloat = 0          # pulgadas
    sex: Literal["M", "F"] = "M"
    lmp_date: DateField = None  # solo pacientes femeninas

    # reloj del registro; None = hora del sistema
    _clock: Optional[Clock] = PrivateAttr(default=None)

    def use_clock(self, clock: Optional[Clock]) -> "PatientInfo":
        self._clock = clock
        return self

    @computed_field
    @property
    def age(self) -> int:
        return calculate_age(self.dob, self._clock).age

    @computed_field
    @property
    def age_in_months(self) -> int:
        return calculate_age(self.dob, self._clock).age_in_months

    @computed_field
    @property
    def bmi(self) -> float:
        return bmi_value(self.weight, self.height)

    @computed_field
    @property
    def bmi_category(self) -> str:
        return calculate_bmi(self.weight, self.height).category

    @computed_field
    @property
    def is_minor(self) -> bool:
        return self.dob is not None and self.age < 18

    @computed_field
    @property
    def is_infant(self) -> bool:
        return self.dob is not None and self.age < 1


# ============================================================================
# Preoperatorio
# ============================================================================

class PatientAssessment(BaseModel):
    asa: int = 1
    mallampati: int = 1
    npo_hours: float = 0
    npo_intake_type: str = "general"
    heart: str = ""
    lungs: str = ""
    allergies: List[str] = Field(default_factory=list)
    medications: List[str] = Field(default_factory=list)

    medical_clearance: bool = False
    consent_signed: bool = False
    questions_answered: bool = False
    informed_consent_video: bool = False
    post_op_video: bool = False
    pre_procedure_time_out: bool = False

    # Consideraciones especiales
    pediatric_patient: TriStateField = TriState.UNSET
    high_risk_patient: TriStateField = TriState.UNSET
    lungs_auscultated: TriStateField = TriState.UNSET
    lungs_ctab: bool = False
    lungs_other: str = ""
    heart_auscultated: TriStateField = TriState.UNSET
    heart_rrr: bool = False
    heart_other: str = ""
    npo_status_verified: TriStateField = TriState.UNSET
    npo_eight_hours: bool = False
    npo_six_hours: bool = False
    npo_other: str = ""
    notes: str = ""

    CHECKLIST_FIELDS: ClassVar[Tuple[str, ...]] = (
        "medical_clearance",
        "consent_signed",
        "questions_answered",
        "informed_consent_video",
        "post_op_video",
        "pre_procedure_time_out",
    )


class PreOpAssessment(PatientAssessment):
    patient_identified: bool = False
    rbc_alt_reviewed: bool = False              # riesgos/beneficios/alternativas revisados
    written_verbal_consents_given: bool = False
    reviewed_procedure_iv_pre_op: bool = False
    pre_rinse_peridex: bool = False
    special_considerations_notes: str = ""

    CHECKLIST_FIELDS: ClassVar[Tuple[str, ...]] = (
        "patient_identified",
        "rbc_alt_reviewed",
        "written_verbal_consents_given",
        "reviewed_procedure_iv_pre_op",
        "pre_rinse_peridex",
    ) + PatientAssessment.CHECKLIST_FIELDS


class MedicalReview(BaseModel):
    medical_history_reviewed: TriStateField = TriState.UNSET
    allergies_reviewed: TriStateField = TriState.UNSET
    surgical_anesthesia_history_reviewed: TriStateField = TriState.UNSET
    family_history_reviewed: TriStateField = TriState.UNSET
    medications_reviewed: TriStateField = TriState.UNSET
    diabetic_medication: bool = False
    anticoagulant: bool = False
    immunosuppressive: bool = False
    bisphosphonates: bool = False
    medication_modifications: TriStateField = TriState.UNSET
    medical_consult_reviewed: TriStateField = TriState.UNSET
    medical_consult_na: bool = False
    notes: str = ""


class PreOpVitals(BaseModel):
    timeout_verification: bool = False
    surgeon_name: str = ""
    sedation_by_surgeon: bool = False
    sedation_level: Literal["nitrous", "level1", "level2", "level3", ""] = ""
    taken_day_of_procedure: bool = False
    # Campos de pantalla (texto, en las unidades mostradas)
    height: str = ""
    weight_lbs: str = ""
    weight_kg: str = ""
    blood_pressure: str = ""
    pulse: str = ""
    spo2: str = ""
    respiratory_rate: str = ""
    fsbg: str = ""
    time: str = ""
    equipment_date: str = ""
    equipment_completed_by: str = ""
    equipment_notes: str = ""


class PreOpInstructions(BaseModel):
    pre_op_instructions: bool = False
    post_op_instructions: bool = False
    additional_notes: str = ""


class AnesthesiaType(BaseModel):
    iv_sedation: bool = False
    oral_sedation: bool = False
    nitrous_oxide: bool = False
    local_anesthesia: bool = False


class PreOpChecklist(BaseModel):
    monitors: bool = False
    suction: bool = False
    airway: bool = False
    iv_setup: bool = False
    emergency_kit: bool = False
    nitrous_oxide: bool = False
    emergency_meds: bool = False
    oxygen: bool = False
    anesthesia_monitors: bool = False


# --- Recetas ---

PrescriptionCategory = Literal["antibiotic", "pain", "other"]


class PrescribedMedication(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = ""
    category: PrescriptionCategory = "other"
    prescribed: bool = True
    quantity: int = 0
    refills: int = 0
    notes: Optional[str] = None


class MedicationLogEntry(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    category: PrescriptionCategory
    quantity: int = 0
    refills: int = 0
    notes: Optional[str] = None


class MedicationPrescriptions(BaseModel):
    pmp_report_verified: bool = False
    selected_category: Literal["antibiotic", "pain", "other", ""] = ""
    draft_medications: List[PrescribedMedication] = Field(default_factory=list)
    medication_log: List[MedicationLogEntry] = Field(default_factory=list)


# ============================================================================
# Intraoperatorio
# ============================================================================

class Vitals(BaseModel):
    blood_pressure: str = ""   # "sistólica/diastólica"
    pulse: FiniteFloat = 0
    spo2: FiniteFloat = 0
    respiration: FiniteFloat = 0
    etco2: Optional[float] = None
    fbg: Optional[float] = None


class Monitoring(BaseModel):
    blood_pressure_cuff: bool = False
    ecg: bool = False
    pulse_oximetry: bool = False
    respiration: bool = False
    etco2: bool = False


class NitrousOxide(BaseModel):
    start_time: str = ""
    induct_time: str = ""
    end_time: str = ""
    maintenance: str = ""  # 70/30, 60/40, ...
    recovered: bool = False


class IVAccess(BaseModel):
    gauge: Literal["18g", "20g", "22g", "24g"] = "22g"
    location: Literal["ACF", "Hand", "Other"] = "ACF"
    side: Literal["L", "R"] = "L"
    route: Literal["IV", "IM"] = "IV"


class PreSedMeds(BaseModel):
    halcion: bool = False
    dose: str = ""
    time: str = ""


class Antiemetics(BaseModel):
    zofran: bool = False
    other1: str = ""
    other2: str = ""


class OxygenRate(BaseModel):
    rate: Literal["3.0", "5.0", "Other"] = "3.0"
    other: str = ""


class Medications(BaseModel):
    pre_sed_meds: PreSedMeds = Field(default_factory=PreSedMeds)
    antiemetics: Antiemetics = Field(default_factory=Antiemetics)
    oxygen: OxygenRate = Field(default_factory=OxygenRate)


class SurgicalProcedure(BaseModel):
    procedure: str = ""
    teeth: List[str] = Field(default_factory=list)
    technique: List[str] = Field(default_factory=list)
    complications: str = ""
    notes: str = ""


class LocalAnestheticSelection(BaseModel):
    articaine: bool = False
    bupivicaine: bool = False
    mepivicaine: bool = False
    lidocaine: bool = False
    carpules: int = 0


class FluidManagement(BaseModel):
    lactated_ringer: float = 0
    normal_saline: float = 0
    dextrose5: float = 0
    ebl: float = 0  # pérdida estimada de sangre


class AirwayProtection(BaseModel):
    oropharyngeal_drape: bool = False
    gauze_pack: bool = False
    bite_block: bool = False
    tmj_stabilization: bool = False


class TimeSummary(BaseModel):
    anesthesia_start: str = ""
    anesthesia_end: str = ""
    operation_start: str = ""
    operation_end: str = ""
    airway_maintenance: str = ""


# --- Carga rápida intraoperatoria ---

class MedicationEntry(BaseModel):
    id: str = Field(default_factory=new_id)
    time: str = ""
    dose: float = 0
    unit: str = "mg"
    route: str = "IV"
    used: str = "0"
    wasted: str = "0"
    witness: str = ""
    notes: str = ""

    @computed_field
    @property
    def total(self) -> float:
        return (parse_number(self.used) or 0) + (parse_number(self.wasted) or 0)


AnestheticType = Literal["articaine", "bupivicaine", "mepivicaine", "lidocaine"]


class LocalAnestheticEntry(BaseModel):
    id: str = Field(default_factory=new_id)
    time: str = ""
    type: AnestheticType = "articaine"
    concentration: str = ""
    epinephrine: str = ""
    carpules: int = 0
    notes: str = ""

    @computed_field
    @property
    def total_volume(self) -> float:
        return round(self.carpules * carpule_volume(self.type), 2)


class ConsciousnessEntry(BaseModel):
    id: str = Field(default_factory=new_id)
    time: str = ""
    score: int = 5

    @computed_field
    @property
    def description(self) -> str:
        return consciousness_description(self.score)

    @computed_field
    @property
    def response(self) -> str:
        return consciousness_response(self.score)


class OxygenLog(BaseModel):
    flow_rate: Optional[float] = None


class NitrousLog(BaseModel):
    start_time: str = ""
    end_time: str = ""
    induction: str = ""
    maintenance: str = ""
    recovery: bool = False


class GasLog(BaseModel):
    oxygen: OxygenLog = Field(default_factory=OxygenLog)
    nitrous: NitrousLog = Field(default_factory=NitrousLog)


class IntraOpTracker(BaseModel):
    medications: List[MedicationEntry] = Field(default_factory=list)
    gases: GasLog = Field(default_factory=GasLog)
    consciousness_levels: List[ConsciousnessEntry] = Field(default_factory=list)
    local_anesthetics: List[LocalAnestheticEntry] = Field(default_factory=list)


# --- Libro de drogas controladas ---

class DrugLogEntry(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = ""
    time: str = ""
    dose: str = ""
    unit: str = "mg"
    used: bool = False
    wasted: bool = False
    witness: str = ""
    initials: str = ""

    @computed_field
    @property
    def is_valid(self) -> bool:
        dose = parse_number(self.dose)
        return dose is not None and dose > 0


# ============================================================================
# Postoperatorio
# ============================================================================

class DischargeScore(BaseModel):
    # Cada sub-puntaje 0-2; "circulation" se llamaba "vitals" en la planilla
    circulation: SubScore = Field(default=0, validation_alias=AliasChoices("circulation", "vitals"))
    ambulation: SubScore = 0
    respiration: SubScore = 0
    consciousness: SubScore = 0
    color: SubScore = 0
    circulation_auto: bool = False
    time_discharged: str = ""
    discharge_blood_pressure: str = ""
    discharge_pulse: str = ""
    discharge_spo2: str = ""
    discharge_respirations: str = ""

    SUB_SCORES: ClassVar[Tuple[str, ...]] = (
        "circulation", "ambulation", "respiration", "consciousness", "color",
    )

    @computed_field
    @property
    def total(self) -> int:
        return sum(int(getattr(self, name) or 0) for name in self.SUB_SCORES)


class PostOpPrescription(BaseModel):
    medication: str = ""
    dosage: str = ""
    instructions: str = ""
    refill: bool = False


class FollowUp(BaseModel):
    prn: bool = False
    one_week: bool = False
    two_weeks: bool = False
    one_month: bool = False
    other: str = ""


class PostOpInstructions(BaseModel):
    prescriptions: List[PostOpPrescription] = Field(default_factory=list)
    follow_up: FollowUp = Field(default_factory=FollowUp)
    objectives: str = ""


class Signatures(BaseModel):
    surgeon_name: str = ""
    surgeon_signature: str = ""
    anesthesia_provider_name: str = ""
    anesthesia_provider_signature: str = ""
    surgical_assistant_name: str = ""
    surgical_assistant_signature: str = ""


# ============================================================================
# Registro completo
# ============================================================================

class AnesthesiaRecord(BaseModel):
    id: str = Field(default_factory=new_id)
    date: str = ""
    time: str = ""

    patient: PatientInfo = Field(default_factory=PatientInfo)

    # Pre-Op
    pre_op_assessment: PreOpAssessment = Field(default_factory=PreOpAssessment)
    medical_review: MedicalReview = Field(default_factory=MedicalReview)
    pre_op_vitals: PreOpVitals = Field(default_factory=PreOpVitals)
    pre_op_instructions: PreOpInstructions = Field(default_factory=PreOpInstructions)
    anesthesia_type: AnesthesiaType = Field(default_factory=AnesthesiaType)
    pre_op_checklist: PreOpChecklist = Field(default_factory=PreOpChecklist)
    medication_prescriptions: MedicationPrescriptions = Field(default_factory=MedicationPrescriptions)

    # Intra-Op
    vitals: Vitals = Field(default_factory=Vitals)
    monitoring: Monitoring = Field(default_factory=Monitoring)
    nitrous_oxide: NitrousOxide = Field(default_factory=NitrousOxide)
    iv_access: IVAccess = Field(default_factory=IVAccess)
    medications: Medications = Field(default_factory=Medications)
    surgical_procedure: SurgicalProcedure = Field(default_factory=SurgicalProcedure)
    local_anesthetic: LocalAnestheticSelection = Field(default_factory=LocalAnestheticSelection)
    fluid_management: FluidManagement = Field(default_factory=FluidManagement)
    airway_protection: AirwayProtection = Field(default_factory=AirwayProtection)
    time_summary: TimeSummary = Field(default_factory=TimeSummary)
    intra_op_tracker: IntraOpTracker = Field(default_factory=IntraOpTracker)
    drug_log: List[DrugLogEntry] = Field(default_factory=list)

    # Post-Op
    discharge_score: DischargeScore = Field(default_factory=DischargeScore)
    post_op_instructions: PostOpInstructions = Field(default_factory=PostOpInstructions)

    signatures: Signatures = Field(default_factory=Signatures)
    notes: str = ""
    page_number: int = 1
    total_pages: int = 1


# Secciones editables por merge superficial
SECTION_MODELS = {
    name: field.annotation
    for name, field in AnesthesiaRecord.model_fields.items()
    if isinstance(field.annotation, type) and issubclass(field.annotation, BaseModel)
}

CHECKLIST_SECTIONS = (
    "pre_op_assessment",
    "pre_op_checklist",
    "anesthesia_type",
    "monitoring",
    "airway_protection",
)


def dump_inputs(value):
    """Dump JSON-compatible sin los computed_field (solo lo cargado a mano)."""
    if isinstance(value, BaseModel):
        return {name: dump_inputs(getattr(value, name)) for name in type(value).model_fields}
    if isinstance(value, (list, tuple)):
        return [dump_inputs(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    return value
