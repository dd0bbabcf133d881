"""
Strava Integration Routes

Endpoints:
- /authorize - Authorization URL for the current user
- /callback - OAuth callback (public, redirected to by Strava)
- /disconnect - Revoke and clear the connection
- /status - Connection status
- /sync - Manual sync over a lookback window
- /webhook - Subscription handshake (GET) and event delivery (POST)
"""

import logging
import re
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from runsync.api.deps import (
    get_current_user_id,
    get_strava_integration,
    get_webhook_dispatcher,
)
from runsync.config import settings
from runsync.db.session import get_async_db
from runsync.features.strava import (
    StravaIntegration,
    WebhookDispatcher,
    CredentialRepository,
    AuditEventRepository,
    IntegrationError,
    NotConnectedError,
    DecryptionError,
    ProviderError,
)
from runsync.features.strava.schemas import (
    AuthorizeResponse,
    StravaStatus,
    ManualSyncResponse,
    DisconnectResponse,
    WebhookAck,
    WebhookEvent,
)
from runsync.features.strava.sync import SyncConfig
from runsync.features.strava.webhooks import verify_subscription, should_import

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_CODE_RE = re.compile(r"^[a-z_]{1,64}$")


# =============================================================================
# OAuth Flow
# =============================================================================

@router.get("/authorize", response_model=AuthorizeResponse)
async def strava_authorize(
    user_id: str = Depends(get_current_user_id),
    integration: StravaIntegration = Depends(get_strava_integration)
):
    """
    Build the Strava authorization URL.

    The user id travels in `state` and comes back on the callback.
    """
    auth_url = integration.oauth.get_authorization_url(state=user_id)
    logger.info(f"Strava OAuth initiated for user {user_id}")
    return AuthorizeResponse(auth_url=auth_url)


@router.get("/callback")
async def strava_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    scope: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_async_db),
    integration: StravaIntegration = Depends(get_strava_integration)
):
    """
    Handle Strava OAuth callback.

    Exchanges the code, stores the encrypted tokens and redirects to the
    frontend. Failures redirect with a machine-readable error code.
    """
    if error:
        logger.warning(f"Strava OAuth error: {error}")
        return _error_redirect(error if _ERROR_CODE_RE.match(error) else "provider_error")

    if not code:
        return _error_redirect("missing_code")

    if not state or len(state) > 36:
        logger.warning("Strava callback without a valid state")
        return _error_redirect("invalid_state")

    user_id = state

    try:
        grant = await integration.oauth.exchange_code(code)
    except ProviderError as e:
        logger.error(f"Token exchange failed for user {user_id}: {e}")
        return _error_redirect("token_exchange_failed")

    credentials = CredentialRepository(db)
    audit = AuditEventRepository(db)
    cipher = integration.cipher

    try:
        displaced = await credentials.disconnect_other_links(
            grant.external_account_id, keep_user_id=user_id
        )
        for other_user_id in displaced:
            await audit.record(
                other_user_id,
                "disconnect",
                {"reason": "account_linked_elsewhere"},
            )

        await credentials.save_connection(
            user_id=user_id,
            external_account_id=grant.external_account_id,
            access_token_encrypted=cipher.encrypt(grant.access_token),
            refresh_token_encrypted=cipher.encrypt(grant.refresh_token),
            expires_at=grant.expires_at,
            scope=scope,
        )
        await audit.record(
            user_id,
            "connect",
            {"external_account_id": grant.external_account_id, "scope": scope},
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to store Strava credential for user {user_id}: {e}")
        return _error_redirect("server_error")

    logger.info(
        f"Strava connected: user_id={user_id}, "
        f"athlete_id={grant.external_account_id}"
    )
    return _redirect({"success": "strava_connected"})


# =============================================================================
# Status & Disconnect
# =============================================================================

@router.get("/status", response_model=StravaStatus)
async def strava_status(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db)
):
    """Check Strava connection status for the current user."""
    credential = await CredentialRepository(db).get_for_user(user_id)

    if not credential:
        return StravaStatus(connected=False)

    return StravaStatus(
        connected=bool(credential.connected),
        last_synced_at=credential.last_synced_at,
        external_account_id=credential.external_account_id,
    )


@router.post("/disconnect", response_model=DisconnectResponse)
async def strava_disconnect(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
    integration: StravaIntegration = Depends(get_strava_integration)
):
    """
    Disconnect Strava.

    - Revokes access at Strava (best effort)
    - Clears both stored tokens, whatever the revoke outcome
    """
    credentials = CredentialRepository(db)
    credential = await credentials.get_for_user(user_id)

    if not credential:
        return DisconnectResponse()

    if credential.connected and credential.access_token_encrypted:
        try:
            access_token = integration.cipher.decrypt(credential.access_token_encrypted)
        except DecryptionError as e:
            logger.error(f"Cannot revoke corrupted Strava credential for user {user_id}: {e}")
        else:
            await integration.oauth.revoke(access_token)

    await credentials.disconnect(credential)
    await AuditEventRepository(db).record(user_id, "disconnect", {"reason": "user_request"})
    await db.commit()

    logger.info(f"Strava disconnected for user {user_id}")
    return DisconnectResponse()


# =============================================================================
# Manual Sync
# =============================================================================

@router.post("/sync", response_model=ManualSyncResponse)
async def strava_sync(
    days: int = Query(
        SyncConfig.MANUAL_SYNC_DEFAULT_DAYS,
        ge=1,
        le=SyncConfig.MANUAL_SYNC_MAX_DAYS,
        description="Lookback window in days"
    ),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
    integration: StravaIntegration = Depends(get_strava_integration)
):
    """Import runs from the last `days` days right now."""
    service = integration.sync_service(db)

    try:
        result = await service.sync_user(user_id, timedelta(days=days))
    except NotConnectedError:
        raise HTTPException(status_code=400, detail="Strava not connected")
    except IntegrationError as e:
        logger.error(
            f"Manual Strava sync failed for user {user_id}: "
            f"{e.__class__.__name__}: {e}"
        )
        raise HTTPException(status_code=502, detail="Failed to sync activities")

    return ManualSyncResponse(
        imported_count=result.imported,
        considered_count=result.considered,
    )


# =============================================================================
# Webhook
# =============================================================================

@router.get("/webhook")
async def strava_webhook_verify(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token")
):
    """Subscription handshake: echo the challenge if the token matches."""
    challenge = verify_subscription(
        settings.strava_webhook_verify_token,
        hub_mode,
        hub_challenge,
        hub_verify_token,
    )
    if challenge is None:
        logger.warning("Strava webhook verification failed")
        return JSONResponse(status_code=403, content={"error": "Verification failed"})

    logger.info("Strava webhook subscription verified")
    return {"hub.challenge": challenge}


@router.post("/webhook", response_model=WebhookAck)
async def strava_webhook_event(
    request: Request,
    dispatcher: Optional[WebhookDispatcher] = Depends(get_webhook_dispatcher)
):
    """
    Event delivery.

    Always answers 200 {"received": true}; import work is queued and
    runs after the response.
    """
    try:
        event = WebhookEvent.model_validate(await request.json())
        logger.info(
            f"Strava webhook: {event.object_type}/{event.aspect_type} "
            f"object={event.object_id} owner={event.owner_id}"
        )
        if not should_import(event):
            logger.debug("Ignoring Strava event that is not an activity create")
        elif dispatcher is None:
            logger.warning(f"Webhook dispatcher not running, event {event.object_id} left for reconciliation")
        else:
            dispatcher.submit(event)
    except Exception as e:
        logger.error(f"Strava webhook handling error: {e.__class__.__name__}: {e}")

    return WebhookAck()


# =============================================================================
# Helper Functions
# =============================================================================

def _redirect(params: dict) -> RedirectResponse:
    base = settings.frontend_url.rstrip("/")
    return RedirectResponse(url=f"{base}/integrations?{urlencode(params)}")


def _error_redirect(code: str) -> RedirectResponse:
    return _redirect({"error": code})
