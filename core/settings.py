import os
from dotenv import load_dotenv

# 1) Cargar .env ANTES de leer variables
load_dotenv()

# === Logging ===
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "logs/app.log")

# === Snapshot store (copias entre secciones) ===
SNAPSHOT_BACKEND = os.getenv("SNAPSHOT_BACKEND", "file").strip().lower()
SNAPSHOT_DIR = os.getenv("SNAPSHOT_DIR", "data/snapshots")

# Nombres de los slots que comparten las secciones
PRE_OP_VITALS_SNAPSHOT_KEY = "preOpVitalsSnapshot"
PATIENT_INFO_KEY = "patientInfo"

# === Registros (guardado) ===
RECORDS_DIR = os.getenv("RECORDS_DIR", "data/records")
RECORD_FORMAT = "anesthesia-record/v1"

# Dónde guardamos temporales de PDF (local)
PDF_TMP_DIR = os.getenv("PDF_TMP_DIR", "tmp_pdfs")

# === HTTP ===
MAX_PAYLOAD_SIZE = int(os.getenv("MAX_PAYLOAD_SIZE", str(50 * 1024)))  # 50 KB
APP_TITLE = os.getenv("APP_TITLE", "Registro de anestesia")

# === Constantes clínicas ===
LBS_PER_KG = 2.20462
METERS_PER_INCH = 0.0254
CM_PER_INCH = 2.54
CARPULE_VOLUME_ML = 1.7

ALDRETE_DISCHARGE_THRESHOLD = 8
ALDRETE_MONITOR_THRESHOLD = 6

# Bandas del sub-puntaje de circulación (% de cambio de la sistólica vs. pre-op)
CIRCULATION_FULL_SCORE_MAX_PCT = 20.0
CIRCULATION_PARTIAL_SCORE_MAX_PCT = 50.0
