"""
Strava sync services.

Provides:
- StravaSyncService: Sync orchestrator shared by all entry points
- ReconciliationScheduler: Periodic sweep over connected accounts
"""

from .service import StravaSyncService, SyncResult
from .background import ReconciliationScheduler, SweepReport
from .config import SyncConfig

__all__ = [
    # Services
    "StravaSyncService",
    "SyncResult",
    # Background
    "ReconciliationScheduler",
    "SweepReport",
    # Config
    "SyncConfig",
]
