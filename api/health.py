import os
import shutil

from fastapi import APIRouter, Request

from core import settings
from core.logger import LoggerManager
from services.snapshot_store import clear_snapshot, read_snapshot, write_snapshot

router = APIRouter()

# Instanciar el logger
log = LoggerManager(name="health", level=settings.LOG_LEVEL, log_to_file=False).get_logger()

HEALTH_PROBE_KEY = "__health__"
MIN_FREE_BYTES = 50 * 1024 * 1024


def check_snapshot_store(store) -> bool:
    """Escribe, lee y borra un slot de prueba."""
    if not write_snapshot(store, HEALTH_PROBE_KEY, {"ok": True}):
        return False
    ok = (read_snapshot(store, HEALTH_PROBE_KEY) or {}).get("ok") is True
    clear_snapshot(store, HEALTH_PROBE_KEY)
    return ok


def check_records_dir(path: str) -> bool:
    """Verifica que el directorio de registros exista (o se pueda crear) y sea escribible."""
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as e:
        log.warning(f"⚠️ No se pudo crear {path}: {e}")
        return False
    return os.access(path, os.W_OK)


def check_disk_space(path: str) -> bool:
    """Verifica espacio en disco donde se guardan los registros."""
    try:
        return shutil.disk_usage(path).free >= MIN_FREE_BYTES
    except OSError as e:
        log.warning(f"⚠️ No se pudo medir espacio en disco: {e}")
        return False


@router.get("/health", tags=["Health"])
def healthcheck(request: Request):
    service = request.app.state.records
    records_dir = str(service.records_dir)

    services = {
        "snapshot_backend": settings.SNAPSHOT_BACKEND,
        "snapshot_store": check_snapshot_store(service.store),
        "records_dir": check_records_dir(records_dir),
    }
    services["disk_space_ok"] = check_disk_space(records_dir) if services["records_dir"] else False
    status = "ok" if services["snapshot_store"] and services["records_dir"] else "degraded"

    log.info(f"🔍 Healthcheck: {status}")
    return {"status": status, "services": services}
