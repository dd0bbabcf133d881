"""
Feature modules for RunSync.

Each feature is a self-contained module with:
- models.py - SQLAlchemy models
- schemas.py - Pydantic schemas
- repository.py - Data access
- sync/ - Sync orchestration and background work (optional)
"""
