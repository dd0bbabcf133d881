"""
Shared utilities (NOT business logic).

Usage:
    from runsync.shared import BaseRepository
"""
from .repository import BaseRepository

__all__ = [
    # repository
    "BaseRepository",
]
