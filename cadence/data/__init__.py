from .catalog import Catalog
from .database import Database
from .models import Context, PerformanceRecord, Session, SessionPhase, WorkRestModel
from .storage import Storage

__all__ = [
    "Catalog", "Context", "Database", "PerformanceRecord", "Session",
    "SessionPhase", "Storage", "WorkRestModel",
]
