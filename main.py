from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError

# --- Logging primero ---
from core import settings
from core.logger import LoggerManager, setup_logging
setup_logging(settings.LOG_LEVEL, log_to_file=bool(settings.LOG_FILE))
log = LoggerManager(name="main", level=settings.LOG_LEVEL, log_to_file=False).get_logger()

# --- FastAPI app ---
from api.calculators import router as calculators_router
from api.health import router as health_router
from api.routes import router as records_router
from core.clock import Clock
from middlewares.payload_limiters import limit_payload_size
from services import RecordService, build_snapshot_store
from services.intra_op import EntryNotFound, UnknownTrackerKind
from services.prescriptions import DraftNotFound
from services.record_service import RecordFormatError, RecordNotFound, SectionNotFound
from services.snapshot_store import SnapshotStore

NOT_FOUND_ERRORS = (RecordNotFound, SectionNotFound, DraftNotFound, EntryNotFound, UnknownTrackerKind)


async def not_found_handler(request: Request, exc: KeyError):
    log.warning(f"⚠️ {request.method} {request.url.path}: {type(exc).__name__} {exc.args[0] if exc.args else ''}")
    return JSONResponse(status_code=404, content={"detail": f"{type(exc).__name__}: {exc.args[0] if exc.args else ''}"})


async def validation_handler(request: Request, exc: Exception):
    log.warning(f"⚠️ {request.method} {request.url.path}: datos inválidos")
    detail = jsonable_encoder(exc.errors(include_url=False, include_context=False, include_input=False)) if isinstance(exc, ValidationError) else str(exc)
    return JSONResponse(status_code=422, content={"detail": detail})


def create_app(
    store: Optional[SnapshotStore] = None,
    records_dir: str = settings.RECORDS_DIR,
    pdf_dir: str = settings.PDF_TMP_DIR,
    clock: Optional[Clock] = None,
) -> FastAPI:
    app = FastAPI(title=settings.APP_TITLE)

    # Store de snapshots y servicio de registros (uno por app)
    if store is None:
        store = build_snapshot_store(settings.SNAPSHOT_BACKEND, settings.SNAPSHOT_DIR)
    app.state.clock = clock
    app.state.records = RecordService(store, records_dir=records_dir, clock=clock, pdf_dir=pdf_dir)

    # Middlewares
    app.middleware("http")(limit_payload_size)

    # Errores
    for error in NOT_FOUND_ERRORS:
        app.add_exception_handler(error, not_found_handler)
    app.add_exception_handler(ValidationError, validation_handler)
    app.add_exception_handler(RecordFormatError, validation_handler)

    # Routers
    app.include_router(health_router, prefix="/api")
    app.include_router(records_router)
    app.include_router(calculators_router)

    log.info("Aplicación iniciada")
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
