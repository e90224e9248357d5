# schemas.py
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from core.schema_anestesia import PrescriptionCategory
from services.validators import FieldRule

# ===== Registro =====

class HeaderUpdate(BaseModel):
    date: Optional[str] = None
    time: Optional[str] = None
    notes: Optional[str] = None
    page_number: Optional[int] = None
    total_pages: Optional[int] = None


class DraftCreate(BaseModel):
    category: PrescriptionCategory
    name: Optional[str] = None
    quantity: Optional[int] = None
    refills: Optional[int] = None
    notes: Optional[str] = None


class CirculationSelection(BaseModel):
    value: int = Field(ge=0, le=2)


class SaveResponse(BaseModel):
    record_id: str
    path: str


class DrugEntryResponse(BaseModel):
    entry: Dict[str, Any]
    advisories: List[Dict[str, Any]] = Field(default_factory=list)


# ===== Calculadoras =====

class WeightConversionRequest(BaseModel):
    value: float
    from_unit: Literal["kg", "lbs"]
    to_unit: Literal["kg", "lbs"]


class WeightConversionResponse(BaseModel):
    value: float
    unit: Literal["kg", "lbs"]


class BMIRequest(BaseModel):
    weight_kg: float
    height_inches: float


class AgeRequest(BaseModel):
    dob: str


class NPORequest(BaseModel):
    npo_hours: float
    procedure_type: str = "general"


class ASARequest(BaseModel):
    asa: int
    age: float
    comorbidities: List[str] = Field(default_factory=list)


class DrugDoseRequest(BaseModel):
    name: str = ""
    dose: Union[float, str, None] = None
    unit: str = "mg"


class DrugTotalsItem(BaseModel):
    used: bool = False
    wasted: bool = False
    dose: Union[float, str, None] = None


class DrugTotalsRequest(BaseModel):
    entries: List[DrugTotalsItem] = Field(default_factory=list)


class AldreteRequest(BaseModel):
    vitals: int = 0
    ambulation: int = 0
    nv: int = 0
    pain: int = 0
    consciousness: int = 0
    color: int = 0


class FieldCheckRequest(BaseModel):
    field: str
    value: Any = None
    rule: FieldRule
