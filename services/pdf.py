import os
import re
from typing import Any, List, Optional, Tuple

from reportlab.lib.pagesizes import LETTER
from reportlab.pdfgen import canvas

from core.clock import Clock, resolve
from core.settings import ALDRETE_DISCHARGE_THRESHOLD, PDF_TMP_DIR
from core.schema_anestesia import AnesthesiaRecord
from services.intra_op import drug_totals, medication_totals

# Explicación: PDF plano de todo el registro, sección por sección, con los
# valores derivados (edad, IMC, totales, puntaje de alta) calculados al leer.

PAGE_BOTTOM = 120


def ensure_tmp_dir(out_dir: str = PDF_TMP_DIR):
    os.makedirs(out_dir, exist_ok=True)


def _label(key: str) -> str:
    return key.replace("_", " ").capitalize()


def _fmt(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Sí" if value else "No"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _draw_kv(c: canvas.Canvas, x: int, y: int, key: str, value: str):
    c.setFont("Helvetica-Bold", 9)
    c.drawString(x, y, f"{key}:")
    c.setFont("Helvetica", 9)
    c.drawString(x + 170, y, value if value is not None else "")


def _sections(record: AnesthesiaRecord) -> List[Tuple[str, Any]]:
    data = record.model_dump(mode="json")
    totals = drug_totals(record.drug_log)
    discharge = record.discharge_score
    return [
        ("Paciente", data["patient"]),
        ("Evaluación preoperatoria", data["pre_op_assessment"]),
        ("Revisión médica", data["medical_review"]),
        ("Signos vitales pre-op", data["pre_op_vitals"]),
        ("Instrucciones pre-op", data["pre_op_instructions"]),
        ("Tipo de anestesia", data["anesthesia_type"]),
        ("Checklist de equipamiento", data["pre_op_checklist"]),
        ("Recetas", {
            "pmp_report_verified": data["medication_prescriptions"]["pmp_report_verified"],
            "emitidas": [f"{m['name']} (#{m['quantity']}, refills {m['refills']})" for m in data["medication_prescriptions"]["medication_log"]],
        }),
        ("Signos vitales intra-op", data["vitals"]),
        ("Monitoreo", data["monitoring"]),
        ("Óxido nitroso", data["nitrous_oxide"]),
        ("Acceso IV", data["iv_access"]),
        ("Medicación", data["medications"]),
        ("Procedimiento", data["surgical_procedure"]),
        ("Anestesia local", data["local_anesthetic"]),
        ("Fluidos", data["fluid_management"]),
        ("Protección de vía aérea", data["airway_protection"]),
        ("Tiempos", data["time_summary"]),
        ("Carga intra-op", {
            "medicación": [f"{m['time']} {_fmt(m['dose'])} {m['unit']} {m['route']} (total {_fmt(m['total'])})" for m in data["intra_op_tracker"]["medications"]],
            "totales": [f"{t.medication}: usado {_fmt(t.used)} / desechado {_fmt(t.wasted)} {t.unit}" for t in medication_totals(record.intra_op_tracker.medications)],
            "conciencia": [f"{e['time']} {e['score']} - {e['description']}" for e in data["intra_op_tracker"]["consciousness_levels"]],
            "anestesia local": [f"{e['time']} {e['type']} x{e['carpules']} = {_fmt(e['total_volume'])} mL" for e in data["intra_op_tracker"]["local_anesthetics"]],
        }),
        ("Libro de drogas", {
            "entradas": [f"{d['time']} {d['name']} {d['dose']} {d['unit']}" for d in data["drug_log"]],
            "total usado": totals.total_used,
            "total desechado": totals.total_wasted,
            "total dispensado": totals.total_dispensed,
        }),
        ("Puntaje de alta", {**data["discharge_score"], "listo para alta": discharge.total >= ALDRETE_DISCHARGE_THRESHOLD}),
        ("Instrucciones post-op", data["post_op_instructions"]),
        ("Firmas", data["signatures"]),
        ("Notas", {"texto": record.notes}),
    ]


def build_anesthesia_pdf(record: AnesthesiaRecord, out_dir: Optional[str] = None, clock: Optional[Clock] = None) -> str:
    """
    Genera el PDF del registro. Devuelve la ruta del archivo.
    Solo lee el registro; nunca lo modifica.
    """
    out_dir = out_dir or PDF_TMP_DIR
    ensure_tmp_dir(out_dir)
    now = resolve(clock).now()

    name = re.sub(r"[^A-Za-z0-9_-]", "_", record.patient.name or "Paciente")
    ts = now.strftime("%Y%m%d-%H%M")
    filename = f"Anestesia_{name}_{ts}.pdf"
    filepath = os.path.join(out_dir, filename)

    c = canvas.Canvas(filepath, pagesize=LETTER)
    width, height = LETTER

    # Título
    c.setFont("Helvetica-Bold", 16)
    c.drawString(40, height - 60, "Registro de Anestesia")

    c.setFont("Helvetica", 9)
    c.drawString(40, height - 75, f"Fecha: {record.date}  Hora: {record.time}  Página {record.page_number} de {record.total_pages}")
    c.drawString(40, height - 87, f"Generado: {now.strftime('%d/%m/%Y %H:%M')}")

    y = height - 115

    def new_page_if_needed(y: float) -> float:
        if y < PAGE_BOTTOM:  # salto de página si falta espacio
            c.showPage()
            return height - 60
        return y

    for title, content in _sections(record):
        c.setFont("Helvetica-Bold", 12)
        c.drawString(40, y, title)
        y -= 16

        if isinstance(content, dict):
            for k, v in content.items():
                if isinstance(v, dict):
                    _draw_kv(c, 40, y, _label(k), "")
                    y -= 13
                    for sk, sv in v.items():
                        _draw_kv(c, 60, y, _label(sk), _fmt(sv))
                        y -= 12
                        y = new_page_if_needed(y)
                elif isinstance(v, list):
                    _draw_kv(c, 40, y, _label(k), "" if v else "-")
                    y -= 13
                    c.setFont("Helvetica", 9)
                    for item in v:
                        c.drawString(60, y, f"- {_fmt(item)}")
                        y -= 12
                        y = new_page_if_needed(y)
                else:
                    _draw_kv(c, 40, y, _label(k), _fmt(v))
                    y -= 13
                y = new_page_if_needed(y)
        else:
            c.setFont("Helvetica", 9)
            c.drawString(40, y, _fmt(content))
            y -= 13

        y -= 6
        y = new_page_if_needed(y)

    c.showPage()
    c.save()
    return filepath
