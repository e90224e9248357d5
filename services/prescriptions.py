# services/prescriptions.py
"""
Recetas: borradores editables y libro de recetas emitidas.

Pasar un borrador al libro es un movimiento único (se agrega al libro y se
quita de borradores en la misma copia del modelo); no hay vuelta atrás.
"""
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from core.schema_anestesia import (
    MedicationLogEntry,
    MedicationPrescriptions,
    PrescribedMedication,
    new_id,
)


class PrescriptionTemplate(BaseModel):
    name: str
    quantity: int


PRESCRIPTION_TEMPLATES: Dict[str, List[PrescriptionTemplate]] = {
    "antibiotic": [
        PrescriptionTemplate(name="Amoxicillin 500mg # Ṫ PO TID until gone", quantity=30),
        PrescriptionTemplate(name="Keflex 500mg # Ṫ PO QID until gone", quantity=28),
        PrescriptionTemplate(name="Z-pak #1 Pack Take as Directed", quantity=1),
        PrescriptionTemplate(name="Clindamycin 300mg # Ṫ PO QID until gone", quantity=28),
        PrescriptionTemplate(name="Azithromycin 250mg # ṪṪ PO stat then Ṫ PO QID until gone", quantity=6),
        PrescriptionTemplate(name="Augmentin 500mg # Ṫ PO TID until gone", quantity=30),
        PrescriptionTemplate(name="Keflex Susp 250mg/5cc 2 teaspoons PO QID until gone # CC", quantity=100),
    ],
    "pain": [
        PrescriptionTemplate(name="Norco 5/325mg Tab # 20 Ṫ-ṪṪ PO QID prn pain", quantity=20),
        PrescriptionTemplate(name="Norco 7.5/325mg Tab # Ṫ-ṪṪ PO QID prn pain", quantity=20),
        PrescriptionTemplate(name="Hydrocodone/Tylenol Susp 1-2 Tbsp PO QID prn pain 7.5mg/325mg/15mL CC", quantity=120),
        PrescriptionTemplate(name="Ultram 50mg Tab # Ṫ PO QID prn pain", quantity=30),
        PrescriptionTemplate(name="Tylenol #3 # Ṫ-ṪṪ PO QID prn pain", quantity=30),
        PrescriptionTemplate(name="Motrin 800mg Tab # 50 Ṫ PO TID prn pain", quantity=50),
    ],
    "other": [
        PrescriptionTemplate(name="Peridex 0.12% Oral Rinse Rinse c T TBSP PO for one #473 CC min, then spit BID", quantity=473),
        PrescriptionTemplate(name="Zofran 8mg ODT # Dissolve Ṫ SL Q8° prn N/V", quantity=10),
        PrescriptionTemplate(name="Sudafed 120mg Tab # 14 Ṫ PO Q12° prn congestion", quantity=14),
        PrescriptionTemplate(name="Afrin Nasal Spray 2 sprays each nostril BID # 1 bottle x3-5 days prn congestion", quantity=1),
    ],
}


class DraftNotFound(KeyError):
    pass


def default_draft(category: str) -> PrescribedMedication:
    """Borrador nuevo con la primera plantilla de la categoría."""
    template = PRESCRIPTION_TEMPLATES[category][0]
    return PrescribedMedication(
        name=template.name,
        category=category,
        quantity=template.quantity,
    )


def _find(drafts: List[PrescribedMedication], draft_id: str) -> int:
    for idx, draft in enumerate(drafts):
        if draft.id == draft_id:
            return idx
    raise DraftNotFound(draft_id)


def add_draft(rx: MedicationPrescriptions, category: str, overrides: Optional[Dict[str, Any]] = None) -> Tuple[MedicationPrescriptions, PrescribedMedication]:
    draft = default_draft(category)
    if overrides:
        draft = PrescribedMedication.model_validate({**draft.model_dump(), **overrides, "id": draft.id, "category": category})
    updated = rx.model_copy(update={
        "draft_medications": [*rx.draft_medications, draft],
        "selected_category": category,
    })
    return updated, draft


def update_draft(rx: MedicationPrescriptions, draft_id: str, changes: Dict[str, Any]) -> Tuple[MedicationPrescriptions, PrescribedMedication]:
    drafts = list(rx.draft_medications)
    idx = _find(drafts, draft_id)
    merged = PrescribedMedication.model_validate({**drafts[idx].model_dump(), **changes, "id": draft_id})
    drafts[idx] = merged
    return rx.model_copy(update={"draft_medications": drafts}), merged


def remove_draft(rx: MedicationPrescriptions, draft_id: str) -> MedicationPrescriptions:
    drafts = list(rx.draft_medications)
    del drafts[_find(drafts, draft_id)]
    return rx.model_copy(update={"draft_medications": drafts})


def submit_draft(rx: MedicationPrescriptions, draft_id: str) -> Tuple[MedicationPrescriptions, MedicationLogEntry]:
    drafts = list(rx.draft_medications)
    draft = drafts.pop(_find(drafts, draft_id))
    entry = MedicationLogEntry(
        id=new_id(),
        name=draft.name,
        category=draft.category,
        quantity=draft.quantity,
        refills=draft.refills,
        notes=draft.notes,
    )
    updated = rx.model_copy(update={
        "draft_medications": drafts,
        "medication_log": [*rx.medication_log, entry],
    })
    return updated, entry
