from __future__ import annotations

import os
from datetime import datetime

import pytest

# Antes de importar core.settings: nada de archivos de log ni store en disco
os.environ["LOG_FILE"] = ""
os.environ["SNAPSHOT_BACKEND"] = "memory"

from core.clock import FixedClock  # noqa: E402
from services.record_service import RecordService  # noqa: E402
from services.snapshot_store import InMemorySnapshotStore  # noqa: E402


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 6, 14, 9, 30))


@pytest.fixture
def store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def service(store, clock, tmp_path) -> RecordService:
    return RecordService(
        store,
        records_dir=str(tmp_path / "records"),
        clock=clock,
        pdf_dir=str(tmp_path / "pdf"),
    )


@pytest.fixture
def client(store, clock, tmp_path):
    from fastapi.testclient import TestClient

    from main import create_app

    app = create_app(
        store=store,
        records_dir=str(tmp_path / "records"),
        pdf_dir=str(tmp_path / "pdf"),
        clock=clock,
    )
    with TestClient(app) as test_client:
        yield test_client
