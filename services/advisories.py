# services/advisories.py
"""
Avisos por sección. Son solo informativos: el valor ya quedó guardado cuando
se calculan.
"""
from typing import Callable, Dict, Iterable, List, Optional

from core.calculations import (
    bmi_asa_hint,
    calculate_age,
    calculate_bmi,
    parse_date,
    validate_asa_classification,
    validate_npo,
)
from core.clock import Clock, resolve
from core.schema_anestesia import (
    AnesthesiaRecord,
    DrugLogEntry,
    PatientInfo,
    PreOpAssessment,
    Vitals,
)
from services.validators import FieldMessage, FieldRule, Severity, check_field


def patient_advisories(patient: PatientInfo, edited: Iterable[str] = (), clock: Optional[Clock] = None) -> List[FieldMessage]:
    edited = set(edited)
    out: List[FieldMessage] = []

    for field, label in (("weight", "Weight"), ("height", "Height")):
        value = getattr(patient, field)
        if value < 0 or (value == 0 and field in edited):
            out.append(FieldMessage(field=field, severity=Severity.ERROR, message=f"{label} must be positive"))

    if patient.dob is not None and patient.dob > resolve(clock).today():
        out.append(FieldMessage(field="dob", severity=Severity.WARNING, message="Date of birth is in the future"))

    bmi = calculate_bmi(patient.weight, patient.height)
    if bmi.bmi > 0:
        if bmi.category != "Normal":
            out.append(FieldMessage(field="bmi", severity=Severity.WARNING, message=f"{bmi.category} BMI"))
        else:
            out.append(FieldMessage(field="bmi", severity=Severity.SUCCESS, message="Normal BMI"))
        hint = bmi_asa_hint(bmi.bmi)
        if hint:
            out.append(FieldMessage(field="asa", severity=Severity.WARNING, message=hint))

    if patient.lmp_date is not None and patient.sex != "F":
        out.append(FieldMessage(field="lmp_date", severity=Severity.WARNING, message="LMP date recorded for a non-female patient"))
    return out


def pre_op_assessment_advisories(assessment: PreOpAssessment, patient_age: Optional[float]) -> List[FieldMessage]:
    out: List[FieldMessage] = []
    # sin fecha de nacimiento no se asume lactante
    age = patient_age if patient_age is not None else 1

    out.append(check_field("asa", assessment.asa, FieldRule(type="range", min=1, max=5)))
    out.append(check_field("mallampati", assessment.mallampati, FieldRule(type="range", min=1, max=4)))

    asa = validate_asa_classification(assessment.asa, age, assessment.medications)
    if not asa.is_valid:
        out.append(FieldMessage(field="asa", severity=Severity.ERROR, message=asa.warning or ""))
    elif asa.recommendation:
        out.append(FieldMessage(field="asa", severity=Severity.SUCCESS, message=asa.recommendation))

    npo = validate_npo(assessment.npo_hours, assessment.npo_intake_type)
    if not npo.is_valid:
        out.append(FieldMessage(field="npo_hours", severity=Severity.ERROR, message=npo.warning or ""))
    elif npo.warning:
        out.append(FieldMessage(field="npo_hours", severity=Severity.WARNING, message=npo.warning))
    else:
        out.append(FieldMessage(field="npo_hours", severity=Severity.SUCCESS, message=npo.recommendation))
    return out


def vitals_advisories(vitals: Vitals) -> List[FieldMessage]:
    out: List[FieldMessage] = []
    if vitals.spo2:
        msg = check_field("spo2", vitals.spo2, FieldRule(type="range", min=0, max=100))
        if msg.severity is Severity.ERROR:
            out.append(msg)
    for field in ("pulse", "respiration"):
        if getattr(vitals, field) < 0:
            out.append(FieldMessage(field=field, severity=Severity.ERROR, message="Must be a positive number"))
    return out


def drug_log_advisories(entries: Iterable[DrugLogEntry]) -> List[FieldMessage]:
    out: List[FieldMessage] = []
    for entry in entries:
        field = f"drug_log.{entry.id}.dose"
        if not entry.dose:
            continue
        if entry.is_valid:
            out.append(FieldMessage(field=field, severity=Severity.SUCCESS))
        else:
            out.append(FieldMessage(field=field, severity=Severity.ERROR, message="Invalid dose amount"))
    return out


# sección -> avisos a partir del registro completo
SECTION_ADVISORIES: Dict[str, Callable[[AnesthesiaRecord, Iterable[str], Optional[Clock]], List[FieldMessage]]] = {
    "patient": lambda record, edited, clock: patient_advisories(record.patient, edited, clock),
    "pre_op_assessment": lambda record, edited, clock: pre_op_assessment_advisories(
        record.pre_op_assessment,
        calculate_age(record.patient.dob, clock).age if parse_date(record.patient.dob) else None,
    ),
    "vitals": lambda record, edited, clock: vitals_advisories(record.vitals),
}


def section_advisories(record: AnesthesiaRecord, section: str, edited: Iterable[str] = (), clock: Optional[Clock] = None) -> List[FieldMessage]:
    builder = SECTION_ADVISORIES.get(section)
    if builder is None:
        return []
    return builder(record, edited, clock)
