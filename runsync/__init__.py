"""RunSync: Strava activity integration for the training platform."""

__version__ = "0.1.0"
