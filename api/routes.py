import os
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Request
from fastapi.responses import FileResponse

from models.schemas import (
    CirculationSelection,
    DraftCreate,
    DrugEntryResponse,
    HeaderUpdate,
    SaveResponse,
)
from services.record_service import RecordService

router = APIRouter(prefix="/records", tags=["Records"])


def _service(request: Request) -> RecordService:
    return request.app.state.records


# ====== Registro ======

@router.post("", status_code=201)
def create_record(request: Request, data: Optional[Dict[str, Any]] = Body(default=None)):
    record = _service(request).create(data)
    return record.model_dump(mode="json")


@router.get("/{record_id}")
def get_record(record_id: str, request: Request):
    return _service(request).get(record_id).model_dump(mode="json")


@router.patch("/{record_id}")
def update_header(record_id: str, body: HeaderUpdate, request: Request):
    record = _service(request).update_header(record_id, body.model_dump(exclude_none=True))
    return record.model_dump(mode="json")


# ====== Secciones ======

@router.patch("/{record_id}/sections/{section}")
def update_section(record_id: str, section: str, request: Request, patch: Dict[str, Any] = Body(...)):
    result = _service(request).update_section(record_id, section, patch)
    return result.model_dump(mode="json")


@router.post("/{record_id}/sections/{section}/mount")
def mount_section(record_id: str, section: str, request: Request):
    data = _service(request).mount_section(record_id, section)
    return {"section": section, "data": data.model_dump(mode="json")}


@router.get("/{record_id}/checklists/{section}/completion")
def checklist_completion(record_id: str, section: str, request: Request):
    return _service(request).checklist_completion(record_id, section).model_dump()


# ====== Recetas ======

@router.post("/{record_id}/prescriptions/drafts", status_code=201)
def add_draft(record_id: str, body: DraftCreate, request: Request):
    overrides = body.model_dump(exclude_none=True, exclude={"category"})
    draft = _service(request).add_draft_prescription(record_id, body.category, overrides)
    return draft.model_dump(mode="json")


@router.patch("/{record_id}/prescriptions/drafts/{draft_id}")
def update_draft(record_id: str, draft_id: str, request: Request, changes: Dict[str, Any] = Body(...)):
    draft = _service(request).update_draft_prescription(record_id, draft_id, changes)
    return draft.model_dump(mode="json")


@router.delete("/{record_id}/prescriptions/drafts/{draft_id}", status_code=204)
def remove_draft(record_id: str, draft_id: str, request: Request):
    _service(request).remove_draft_prescription(record_id, draft_id)


@router.post("/{record_id}/prescriptions/drafts/{draft_id}/submit", status_code=201)
def submit_draft(record_id: str, draft_id: str, request: Request):
    entry = _service(request).submit_prescription(record_id, draft_id)
    return entry.model_dump(mode="json")


# ====== Carga intraoperatoria ======

@router.post("/{record_id}/intra-op/{kind}", status_code=201)
def add_intra_op_entry(record_id: str, kind: str, request: Request, data: Optional[Dict[str, Any]] = Body(default=None)):
    entry = _service(request).add_intra_op_entry(record_id, kind, data or {})
    return entry.model_dump(mode="json")


@router.patch("/{record_id}/intra-op/{kind}/{entry_id}")
def update_intra_op_entry(record_id: str, kind: str, entry_id: str, request: Request, changes: Dict[str, Any] = Body(...)):
    entry = _service(request).update_intra_op_entry(record_id, kind, entry_id, changes)
    return entry.model_dump(mode="json")


@router.delete("/{record_id}/intra-op/{kind}/{entry_id}", status_code=204)
def remove_intra_op_entry(record_id: str, kind: str, entry_id: str, request: Request):
    _service(request).remove_intra_op_entry(record_id, kind, entry_id)


@router.delete("/{record_id}/intra-op", status_code=204)
def clear_intra_op(record_id: str, request: Request):
    _service(request).clear_intra_op(record_id)


# ====== Libro de drogas ======

@router.post("/{record_id}/drug-log", status_code=201, response_model=DrugEntryResponse)
def add_drug(record_id: str, request: Request, data: Optional[Dict[str, Any]] = Body(default=None)):
    entry, advisories = _service(request).add_drug(record_id, data)
    return DrugEntryResponse(
        entry=entry.model_dump(mode="json"),
        advisories=[a.model_dump(mode="json") for a in advisories],
    )


@router.get("/{record_id}/drug-log/totals")
def drug_log_totals(record_id: str, request: Request):
    return _service(request).drug_log_totals(record_id).model_dump()


@router.patch("/{record_id}/drug-log/{entry_id}", response_model=DrugEntryResponse)
def update_drug(record_id: str, entry_id: str, request: Request, changes: Dict[str, Any] = Body(...)):
    entry, advisories = _service(request).update_drug(record_id, entry_id, changes)
    return DrugEntryResponse(
        entry=entry.model_dump(mode="json"),
        advisories=[a.model_dump(mode="json") for a in advisories],
    )


@router.delete("/{record_id}/drug-log/{entry_id}", status_code=204)
def remove_drug(record_id: str, entry_id: str, request: Request):
    _service(request).remove_drug(record_id, entry_id)


# ====== Alta ======

@router.post("/{record_id}/discharge/circulation")
def select_circulation(record_id: str, body: CirculationSelection, request: Request):
    score = _service(request).select_circulation_score(record_id, body.value)
    return score.model_dump(mode="json")


# ====== Guardado / impresión ======

@router.post("/{record_id}/save", response_model=SaveResponse)
def save_record(record_id: str, request: Request):
    path = _service(request).save(record_id)
    return SaveResponse(record_id=record_id, path=str(path))


@router.post("/{record_id}/load")
def load_record(record_id: str, request: Request):
    return _service(request).load(record_id).model_dump(mode="json")


@router.get("/{record_id}/print")
def print_record(record_id: str, request: Request):
    path = _service(request).export_pdf(record_id)
    return FileResponse(path, media_type="application/pdf", filename=os.path.basename(path))
