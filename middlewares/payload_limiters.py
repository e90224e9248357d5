from fastapi import Request
from fastapi.responses import JSONResponse

from core.logger import LoggerManager
from core.settings import LOG_LEVEL, MAX_PAYLOAD_SIZE

# Instanciar logger
log = LoggerManager(name="payload_limiter", level=LOG_LEVEL, log_to_file=False).get_logger()


async def limit_payload_size(request: Request, call_next):
    """
    Middleware para limitar el tamaño del payload entrante.
    Rechaza ediciones de sección demasiado grandes antes de tocar el registro.
    """
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > MAX_PAYLOAD_SIZE:
        log.warning(f"🚨 Payload rechazado por Content-Length: {declared} bytes (límite {MAX_PAYLOAD_SIZE} bytes)")
        return JSONResponse(status_code=413, content={"detail": "Request payload too large"})

    body = await request.body()

    if len(body) > MAX_PAYLOAD_SIZE:
        log.warning(f"🚨 Payload rechazado: {len(body)} bytes (límite {MAX_PAYLOAD_SIZE} bytes)")
        return JSONResponse(
            status_code=413,  # HTTP 413 Payload Too Large
            content={"detail": "Request payload too large"}
        )

    response = await call_next(request)
    return response
