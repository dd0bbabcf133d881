"""Dependency injection for API routes."""

from typing import Optional

from fastapi import Header, HTTPException, Request

from runsync.features.strava import StravaIntegration, WebhookDispatcher


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")
) -> str:
    """
    Local user id of the authenticated caller.

    Authentication happens upstream; the gateway forwards the
    verified identity in X-User-Id.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id.strip()


def get_strava_integration(request: Request) -> StravaIntegration:
    """Integration components built at startup."""
    integration = getattr(request.app.state, "strava", None)
    if integration is None:
        raise HTTPException(status_code=503, detail="Strava integration not configured")
    return integration


def get_webhook_dispatcher(request: Request) -> Optional[WebhookDispatcher]:
    """Webhook dispatcher, or None before startup finished."""
    return getattr(request.app.state, "webhook_dispatcher", None)
