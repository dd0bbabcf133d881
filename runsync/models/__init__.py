"""
Database Models

Feature models live next to their feature (features/<name>/models.py)
and register on the shared Base.
"""

from runsync.models.base import Base

__all__ = [
    "Base",
]
