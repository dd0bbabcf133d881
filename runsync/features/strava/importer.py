"""
Activity import.

Converts a Strava activity into the internal workout shape and stores it
at most once per (owner, provider, external id). Import never raises past
this module: persistence problems come back as a FAILED result so a batch
can carry on.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .exceptions import ImportConflictError
from .models import PROVIDER_STRAVA
from .repository import ImportedActivityRepository
from .schemas import StravaActivityPayload

logger = logging.getLogger(__name__)


# Strava types that count as a run
RUN_SPORT_TYPES = frozenset({"Run", "TrailRun", "VirtualRun"})

# Internal workout types
WORKOUT_TYPES = ("base", "pace", "interval", "long_run", "recovery", "strength")
DEFAULT_WORKOUT_TYPE = "base"

WORKOUT_TYPE_BY_STRAVA_TYPE = {
    "Run": "base",
    "VirtualRun": "base",
    "TrailRun": "long_run",
    "Walk": "recovery",
    "Workout": "strength",
}


class ImportStatus(str, enum.Enum):
    IMPORTED = "imported"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ImportResult:
    status: ImportStatus
    external_id: str
    reason: Optional[str] = None
    activity_id: Optional[int] = None

    @property
    def imported(self) -> bool:
        return self.status is ImportStatus.IMPORTED


def is_run(activity: StravaActivityPayload) -> bool:
    """True when the provider category says the activity is a run."""
    return activity.type == "Run" or activity.sport_type in RUN_SPORT_TYPES


def map_workout_type(activity: StravaActivityPayload) -> str:
    """Map sport_type (then legacy type) to a workout type; unknown -> base."""
    for strava_type in (activity.sport_type, activity.type):
        if strava_type in WORKOUT_TYPE_BY_STRAVA_TYPE:
            return WORKOUT_TYPE_BY_STRAVA_TYPE[strava_type]
    return DEFAULT_WORKOUT_TYPE


def calculate_pace(duration_seconds: int, distance_km: float) -> int:
    """Seconds per km, rounded. Zero distance gives 0."""
    if not distance_km or distance_km <= 0:
        return 0
    return round(duration_seconds / distance_km)


def to_workout_fields(activity: StravaActivityPayload) -> dict:
    """
    Convert a provider activity to ImportedActivity column values.

    Distance arrives in meters and is stored in kilometers.
    """
    distance_km = (activity.distance or 0) / 1000
    duration_seconds = activity.moving_time or 0
    started = activity.start_date_local or activity.start_date

    return {
        "date": started.replace(tzinfo=None),
        "distance_km": distance_km,
        "duration_seconds": duration_seconds,
        "pace_sec_per_km": calculate_pace(duration_seconds, distance_km),
        "workout_type": map_workout_type(activity),
        "notes": activity.name,
    }


class ActivityImporter:
    """
    Idempotent insert-if-absent of provider activities.

    Commits after every successful insert so one bad row cannot roll back
    the rest of a batch.

    Usage:
        importer = ActivityImporter(db)
        result = await importer.import_activity(user_id, activity)
    """

    def __init__(self, db: AsyncSession, provider: str = PROVIDER_STRAVA):
        self.db = db
        self.provider = provider
        self.activities = ImportedActivityRepository(db, provider)

    async def import_activity(
        self,
        user_id: str,
        activity: StravaActivityPayload
    ) -> ImportResult:
        external_id = str(activity.id)

        try:
            if await self.activities.is_imported(user_id, external_id):
                return ImportResult(ImportStatus.SKIPPED, external_id, reason="already_imported")

            created = await self._insert(user_id, external_id, activity)
            activity_id = created.id
            await self.db.commit()

        except ImportConflictError as e:
            await self.db.rollback()
            logger.warning(f"Import conflict for user {user_id}: {e}")
            return ImportResult(ImportStatus.SKIPPED, external_id, reason="conflict")

        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"Failed to import activity {external_id} for user {user_id}: "
                f"{e.__class__.__name__}: {e}"
            )
            return ImportResult(ImportStatus.FAILED, external_id, reason=e.__class__.__name__)

        logger.info(f"Imported Strava activity {external_id} for user {user_id}")
        return ImportResult(ImportStatus.IMPORTED, external_id, activity_id=activity_id)

    async def _insert(self, user_id: str, external_id: str, activity: StravaActivityPayload):
        try:
            return await self.activities.create(
                owner_id=user_id,
                provider=self.provider,
                external_id=external_id,
                imported_at=datetime.utcnow(),
                **to_workout_fields(activity)
            )
        except IntegrityError as e:
            raise ImportConflictError(
                f"Activity {external_id} already stored for user {user_id}"
            ) from e
