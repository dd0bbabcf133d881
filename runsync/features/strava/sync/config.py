"""
Strava sync configuration constants.

Runtime-tunable values (intervals, queue sizes) live in Settings;
these are fixed behaviour constants.
"""


class SyncConfig:
    """Configuration for sync behavior."""

    # Page size for /athlete/activities (Strava max is 200)
    ACTIVITIES_PER_PAGE = 100

    # Upper bound on pages per listing call
    MAX_PAGES_PER_SYNC = 10

    # Manual sync lookback (days)
    MANUAL_SYNC_DEFAULT_DAYS = 7
    MANUAL_SYNC_MAX_DAYS = 90

    # Delay between accounts in a reconciliation sweep (seconds)
    ACCOUNT_DELAY_SECONDS = 1.5

    # How long shutdown waits for queued webhook work (seconds)
    WEBHOOK_DRAIN_TIMEOUT_SECONDS = 10.0
