# core/calculations.py
"""
Cálculos clínicos del registro de anestesia.

Funciones puras salvo `validate_drug_dose`, que toma la hora del reloj
inyectado en el momento de la llamada.
"""
from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel

from core import settings
from core.clock import Clock, resolve

# ============================================================================
# Helpers numéricos
# ============================================================================

_FLOAT_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def round_half_up(value: float, digits: int = 0) -> float:
    """Mismo redondeo que la planilla: Math.round(x * 10**d) / 10**d."""
    # NaN / infinito no se redondean (math.floor lanzaría)
    if not math.isfinite(value):
        return value
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def parse_number(value) -> Optional[float]:
    """
    Lee el número inicial de un texto ("2.5 mg" -> 2.5).
    Devuelve None si no hay número o si no es finito (NaN, 1e999).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        text = value
    else:
        m = _FLOAT_PREFIX.match(str(value))
        if not m:
            return None
        text = m.group(0)
    try:
        number = float(text)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def format_number(value: float) -> str:
    """70.0 -> '70', 70.5 -> '70.5'."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ============================================================================
# Peso / talla
# ============================================================================

def kg_to_lbs(kg: float) -> float:
    return round_half_up(kg * settings.LBS_PER_KG, 1)


def lbs_to_kg(lbs: float) -> float:
    return round_half_up(lbs / settings.LBS_PER_KG, 1)


def convert_weight(value: float, from_unit: str, to_unit: str) -> float:
    if from_unit == to_unit:
        return value
    return kg_to_lbs(value) if from_unit == "kg" else lbs_to_kg(value)


def inches_to_cm(inches: float) -> float:
    return inches * settings.CM_PER_INCH


def cm_to_inches(cm: float) -> float:
    return cm / settings.CM_PER_INCH


def feet_inches_to_inches(feet: int, inches: int) -> int:
    return feet * 12 + inches


def inches_to_feet_inches(total_inches: float) -> Tuple[int, int]:
    total = int(round_half_up(total_inches))
    return total // 12, total % 12


# ============================================================================
# IMC
# ============================================================================

class BMICalculation(BaseModel):
    bmi: float
    category: str


# (límite superior exclusivo, categoría, sugerencia ASA)
_BMI_BANDS: List[Tuple[float, str, str]] = [
    (18.5, "Underweight", "Consider ASA II for severe malnutrition"),
    (25.0, "Normal", ""),
    (30.0, "Overweight", "Consider ASA II if associated comorbidities"),
    (35.0, "Obese Class I", "Consider ASA II-III for obesity-related comorbidities"),
    (40.0, "Obese Class II", "Consider ASA III for significant obesity-related comorbidities"),
    (math.inf, "Obese Class III", "Consider ASA III-IV for severe obesity with comorbidities"),
]


def _bmi_band(bmi: float) -> Tuple[float, str, str]:
    for band in _BMI_BANDS:
        if bmi < band[0]:
            return band
    return _BMI_BANDS[-1]


def bmi_value(weight_kg: Optional[float], height_inches: Optional[float]) -> float:
    if not weight_kg or not height_inches or weight_kg <= 0 or height_inches <= 0:
        return 0.0
    m = height_inches * settings.METERS_PER_INCH
    return round_half_up(weight_kg / (m * m), 1)


def calculate_bmi(weight_kg: float, height_inches: float) -> BMICalculation:
    if weight_kg <= 0 or height_inches <= 0:
        return BMICalculation(bmi=0, category="Invalid")
    bmi = bmi_value(weight_kg, height_inches)
    return BMICalculation(bmi=bmi, category=_bmi_band(bmi)[1])


def bmi_asa_hint(bmi: float) -> str:
    """Sugerencia de ASA según banda de IMC ('' para peso normal o IMC 0)."""
    if bmi <= 0:
        return ""
    return _bmi_band(bmi)[2]


# ============================================================================
# Fechas / Edad
# ============================================================================

_DDMMYYYY = re.compile(r"^\s*(0?[1-9]|[12]\d|3[01])[-/](0?[1-9]|1[0-2])[-/](\d{4})\s*$")


def parse_date(value) -> Optional[date]:
    """Acepta date/datetime, 'YYYY-MM-DD' o 'DD/MM/YYYY'."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    m = _DDMMYYYY.match(text)
    if not m:
        return None
    try:
        return date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
    except ValueError:
        return None


class AgeCalculation(BaseModel):
    age: int
    age_in_months: int


def calculate_age(dob, clock: Optional[Clock] = None) -> AgeCalculation:
    born = parse_date(dob)
    if born is None:
        return AgeCalculation(age=0, age_in_months=0)
    today = resolve(clock).today()
    if born > today:
        return AgeCalculation(age=0, age_in_months=0)

    before_birthday = (today.month, today.day) < (born.month, born.day)
    age = today.year - born.year - (1 if before_birthday else 0)
    months = (today.year - born.year) * 12 + (today.month - born.month)
    if today.day < born.day:
        months -= 1
    return AgeCalculation(age=age, age_in_months=max(0, months))


# ============================================================================
# Ayuno (NPO)
# ============================================================================

class Advisory(BaseModel):
    is_valid: bool
    warning: Optional[str] = None
    recommendation: str = ""


NPO_GUIDELINES: Dict[str, Dict] = {
    "clear_liquids": {"min": 2, "max": 4, "text": "Clear liquids: 2-4 hours"},
    "light_meal": {"min": 6, "max": 8, "text": "Light meal: 6-8 hours"},
    "heavy_meal": {"min": 8, "max": 12, "text": "Heavy meal: 8-12 hours"},
    "general": {"min": 6, "max": 8, "text": "General: 6-8 hours"},
}


def validate_npo(npo_hours: float, procedure_type: str = "general") -> Advisory:
    rec = NPO_GUIDELINES.get(procedure_type) or NPO_GUIDELINES["general"]
    hours = format_number(npo_hours)

    if npo_hours < rec["min"]:
        return Advisory(
            is_valid=False,
            warning=f"NPO time ({hours}h) is less than recommended minimum ({rec['min']}h)",
            recommendation=rec["text"],
        )
    if npo_hours > rec["max"]:
        return Advisory(
            is_valid=True,
            warning=f"NPO time ({hours}h) exceeds recommended maximum ({rec['max']}h)",
            recommendation=rec["text"],
        )
    return Advisory(is_valid=True, recommendation=rec["text"])


# ============================================================================
# ASA
# ============================================================================

ASA_DESCRIPTIONS: Dict[int, str] = {
    1: "Normal healthy patient",
    2: "Mild systemic disease",
    3: "Severe systemic disease",
    4: "Severe systemic disease that is a constant threat to life",
    5: "Moribund patient not expected to survive",
}


def validate_asa_classification(asa: int, age: float, comorbidities: Iterable[str]) -> Advisory:
    description = ASA_DESCRIPTIONS.get(asa, "")
    if age < 1 and asa > 2:
        return Advisory(
            is_valid=False,
            warning="ASA classification may be too high for infant age",
            recommendation=description,
        )
    if len(list(comorbidities)) == 0 and asa > 2:
        return Advisory(
            is_valid=False,
            warning="ASA classification may be too high without documented comorbidities",
            recommendation=description,
        )
    return Advisory(is_valid=True, recommendation=description)


# ============================================================================
# Drogas
# ============================================================================

class DrugDoseValidation(BaseModel):
    is_valid: bool
    formatted_dose: str = ""
    timestamp: str
    error: Optional[str] = None


class DrugTotals(BaseModel):
    total_used: float = 0
    total_wasted: float = 0
    total_dispensed: float = 0


def to_hhmm(moment: datetime) -> str:
    return moment.strftime("%H:%M")


def to_hhmmss(moment: datetime) -> str:
    return moment.strftime("%H:%M:%S")


def to_hhmm_compact(moment: datetime) -> str:
    """Formato de planilla: '0930'."""
    return moment.strftime("%H%M")


def parse_hhmm(text: str, clock: Optional[Clock] = None) -> Optional[datetime]:
    try:
        hours, minutes = (int(p) for p in text.split(":"))
        return resolve(clock).now().replace(hour=hours, minute=minutes, second=0, microsecond=0)
    except (ValueError, AttributeError):
        return None


def validate_drug_dose(name: str, dose, unit: str = "mg", clock: Optional[Clock] = None) -> DrugDoseValidation:
    timestamp = to_hhmm(resolve(clock).now())
    number = parse_number(dose)
    if number is None or not math.isfinite(number) or number <= 0:
        return DrugDoseValidation(is_valid=False, timestamp=timestamp, error="Invalid dose amount")
    return DrugDoseValidation(
        is_valid=True,
        formatted_dose=f"{timestamp} {format_number(number)} {unit}",
        timestamp=timestamp,
    )


def calculate_drug_totals(entries: Iterable[Mapping]) -> DrugTotals:
    """
    entries: [{"used": bool, "wasted": bool, "dose": number}]
    Una entrada usada y desechada cuenta en ambos totales.
    """
    total_used = 0.0
    total_wasted = 0.0
    for entry in entries:
        dose = parse_number(entry.get("dose")) or 0.0
        if entry.get("used"):
            total_used += dose
        if entry.get("wasted"):
            total_wasted += dose
    return DrugTotals(
        total_used=total_used,
        total_wasted=total_wasted,
        total_dispensed=total_used + total_wasted,
    )


# ============================================================================
# Anestesia local
# ============================================================================

CARPULE_VOLUMES_ML: Dict[str, float] = {
    "articaine": settings.CARPULE_VOLUME_ML,
    "bupivicaine": settings.CARPULE_VOLUME_ML,
    "mepivicaine": settings.CARPULE_VOLUME_ML,
    "lidocaine": settings.CARPULE_VOLUME_ML,
}


def carpule_volume(anesthetic_type: str) -> float:
    return CARPULE_VOLUMES_ML.get(anesthetic_type, settings.CARPULE_VOLUME_ML)


# ============================================================================
# Nivel de conciencia
# ============================================================================

CONSCIOUSNESS_LEVELS: Dict[int, Tuple[str, str]] = {
    1: ("Unresponsive", "No response to stimuli"),
    2: ("Responds to pain", "Withdraws from painful stimuli"),
    3: ("Responds to voice", "Opens eyes to voice"),
    4: ("Alert but confused", "Awakens easily, follows commands"),
    5: ("Fully alert", "Alert, oriented, follows commands"),
}


def consciousness_description(score: int) -> str:
    return CONSCIOUSNESS_LEVELS.get(score, ("Unknown", ""))[0]


def consciousness_response(score: int) -> str:
    return CONSCIOUSNESS_LEVELS.get(score, ("", "Unknown response"))[1]


# ============================================================================
# Aldrete (variante genérica de 6 ítems)
# ============================================================================

class AldreteScore(BaseModel):
    total: int
    is_ready_for_discharge: bool
    recommendation: str


ALDRETE_ITEMS = ("vitals", "ambulation", "nv", "pain", "consciousness", "color")


def calculate_aldrete_score(scores: Mapping[str, int]) -> AldreteScore:
    total = sum(int(scores.get(item) or 0) for item in ALDRETE_ITEMS)

    if total >= settings.ALDRETE_DISCHARGE_THRESHOLD:
        return AldreteScore(total=total, is_ready_for_discharge=True, recommendation="Patient ready for discharge")
    if total >= settings.ALDRETE_MONITOR_THRESHOLD:
        return AldreteScore(total=total, is_ready_for_discharge=False, recommendation="Monitor closely, may be ready soon")
    return AldreteScore(total=total, is_ready_for_discharge=False, recommendation="Patient not ready for discharge")


# ============================================================================
# Circulación (PA de alta vs. PA preoperatoria)
# ============================================================================

_SYSTOLIC_RE = re.compile(r"\s*(\d{2,3})\s*/?")


def parse_systolic(blood_pressure: Optional[str]) -> Optional[int]:
    """'120/80' -> 120. Busca el primer número de 2-3 dígitos."""
    if not blood_pressure:
        return None
    m = _SYSTOLIC_RE.search(str(blood_pressure))
    return int(m.group(1)) if m else None


def circulation_score(pre_op_systolic: Optional[int], post_op_systolic: Optional[int]) -> Optional[int]:
    if pre_op_systolic is None or post_op_systolic is None or pre_op_systolic <= 0:
        return None
    diff_pct = abs(post_op_systolic - pre_op_systolic) / pre_op_systolic * 100
    if diff_pct <= settings.CIRCULATION_FULL_SCORE_MAX_PCT:
        return 2
    if diff_pct <= settings.CIRCULATION_PARTIAL_SCORE_MAX_PCT:
        return 1
    return 0
