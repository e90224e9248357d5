from fastapi import APIRouter, HTTPException, Request

from core.calculations import (
    calculate_age,
    calculate_aldrete_score,
    calculate_bmi,
    calculate_drug_totals,
    convert_weight,
    parse_date,
    validate_asa_classification,
    validate_drug_dose,
    validate_npo,
)
from models.schemas import (
    AgeRequest,
    AldreteRequest,
    ASARequest,
    BMIRequest,
    DrugDoseRequest,
    DrugTotalsRequest,
    FieldCheckRequest,
    NPORequest,
    WeightConversionRequest,
    WeightConversionResponse,
)
from services.validators import check_field

router = APIRouter(tags=["Calculators"])


def _clock(request: Request):
    return getattr(request.app.state, "clock", None)


@router.post("/calc/weight", response_model=WeightConversionResponse)
def calc_weight(body: WeightConversionRequest):
    value = convert_weight(body.value, body.from_unit, body.to_unit)
    return WeightConversionResponse(value=value, unit=body.to_unit)


@router.post("/calc/bmi")
def calc_bmi(body: BMIRequest):
    return calculate_bmi(body.weight_kg, body.height_inches).model_dump()


@router.post("/calc/age")
def calc_age(body: AgeRequest, request: Request):
    if parse_date(body.dob) is None:
        raise HTTPException(status_code=422, detail="Invalid date of birth")
    return calculate_age(body.dob, _clock(request)).model_dump()


@router.post("/calc/npo")
def calc_npo(body: NPORequest):
    return validate_npo(body.npo_hours, body.procedure_type).model_dump()


@router.post("/calc/asa")
def calc_asa(body: ASARequest):
    return validate_asa_classification(body.asa, body.age, body.comorbidities).model_dump()


@router.post("/calc/drug-dose")
def calc_drug_dose(body: DrugDoseRequest, request: Request):
    return validate_drug_dose(body.name, body.dose, body.unit, _clock(request)).model_dump()


@router.post("/calc/drug-totals")
def calc_drug_totals(body: DrugTotalsRequest):
    return calculate_drug_totals(item.model_dump() for item in body.entries).model_dump()


@router.post("/calc/aldrete")
def calc_aldrete(body: AldreteRequest):
    return calculate_aldrete_score(body.model_dump()).model_dump()


@router.post("/validate/field")
def validate_field(body: FieldCheckRequest):
    try:
        return check_field(body.field, body.value, body.rule).model_dump(mode="json")
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
