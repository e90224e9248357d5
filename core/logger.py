# core/logger.py
import os
import sys
import logging
from logging.handlers import RotatingFileHandler

from core import settings

LOG_LEVEL = settings.LOG_LEVEL
LOG_FILE = settings.LOG_FILE
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _build_handlers(level: str = LOG_LEVEL, log_file: str = LOG_FILE):
    handlers = []

    # Console
    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(level)
    ch.setFormatter(logging.Formatter(LOG_FORMAT))
    handlers.append(ch)

    # File (rotativo)
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        fh = RotatingFileHandler(
            log_file, maxBytes=2_000_000, backupCount=3, encoding="utf-8"
        )
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(fh)

    return handlers


def setup_logging(level: str = LOG_LEVEL, log_to_file: bool = True):
    """
    Configura logging global y loguea temprano dónde viven los snapshots y registros.
    Llamar esto APENAS arranca la app (antes de crear el snapshot store).
    """
    # force=True para reemplazar configuraciones previas (útil en entornos que ya tocan logging)
    handlers = _build_handlers(level, LOG_FILE if log_to_file else "")
    logging.basicConfig(level=level, handlers=handlers, force=True)

    log = logging.getLogger("anestesia")
    log.info(f"SNAPSHOT_BACKEND={settings.SNAPSHOT_BACKEND} SNAPSHOT_DIR={settings.SNAPSHOT_DIR}")
    log.info(f"RECORDS_DIR={settings.RECORDS_DIR}")
    return log


def get_logger(name: str = "anestesia"):
    """
    Obtiene un logger con la configuración global asegurada.
    """
    root = logging.getLogger()
    if not root.handlers:
        # Si alguien importó este módulo sin llamar setup_logging(), garantizamos config mínima
        setup_logging(log_to_file=False)
    return logging.getLogger(name)


class LoggerManager:
    """Logger con nombre propio sobre la configuración global."""

    def __init__(self, name: str = "anestesia", level: str = LOG_LEVEL, log_to_file: bool = False):
        self.name = name
        self.level = level.upper()
        self.log_to_file = log_to_file

    def get_logger(self) -> logging.Logger:
        root = logging.getLogger()
        if not root.handlers:
            setup_logging(self.level, self.log_to_file)
        log = logging.getLogger(self.name)
        log.setLevel(self.level)
        return log
