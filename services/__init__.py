from .snapshot_store import build_snapshot_store
from .record_service import RecordService

__all__ = [
    'build_snapshot_store',
    'RecordService'
]
