# services/snapshot_store.py
"""
Almacén clave/valor compartido entre secciones (snapshots).

El store crudo maneja strings; `read_snapshot` / `write_snapshot` /
`clear_snapshot` son la única puerta de entrada para las secciones y nunca
lanzan: un slot ausente, ilegible o con JSON roto se trata como ausente.
"""
import json
import re
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from core import settings
from core.logger import LoggerManager

log = LoggerManager(name="snapshots", level=settings.LOG_LEVEL, log_to_file=False).get_logger()


class SnapshotStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemorySnapshotStore:
    """Store en memoria; vive lo que vive el proceso."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileSnapshotStore:
    """Un archivo .json por clave dentro de `root`. Última escritura gana."""

    def __init__(self, root: str = settings.SNAPSHOT_DIR):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return self.root / f"{safe}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self._path(key).write_text(value, encoding="utf-8")

    def remove(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()


def build_snapshot_store(backend: str = settings.SNAPSHOT_BACKEND, root: str = settings.SNAPSHOT_DIR):
    if backend == "memory":
        return InMemorySnapshotStore()
    return JsonFileSnapshotStore(root)


# -----------------------------
# Acceso tolerante
# -----------------------------

def read_snapshot(store: Optional[SnapshotStore], key: str) -> Optional[Dict[str, Any]]:
    """Devuelve el dict guardado en `key` o None (ausente, roto o store caído)."""
    if store is None:
        return None
    try:
        raw = store.get(key)
    except Exception as e:
        log.warning(f"⚠️ No se pudo leer el snapshot '{key}': {e}")
        return None
    if not raw:
        log.debug(f"Snapshot '{key}' ausente")
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        log.warning(f"⚠️ Snapshot '{key}' con JSON inválido, se ignora: {e}")
        return None
    if not isinstance(data, dict):
        log.warning(f"⚠️ Snapshot '{key}' no es un objeto JSON, se ignora")
        return None
    return data


def write_snapshot(store: Optional[SnapshotStore], key: str, value: Dict[str, Any]) -> bool:
    if store is None:
        return False
    try:
        store.set(key, json.dumps(value, ensure_ascii=False, default=str))
        return True
    except Exception as e:
        log.warning(f"⚠️ No se pudo escribir el snapshot '{key}': {e}")
        return False


def clear_snapshot(store: Optional[SnapshotStore], key: str) -> bool:
    if store is None:
        return False
    try:
        store.remove(key)
        return True
    except Exception as e:
        log.warning(f"⚠️ No se pudo borrar el snapshot '{key}': {e}")
        return False
