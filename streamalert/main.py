"""
streamalert - FastAPI Application

This service:
- Receives Twitch EventSub and Kick webhooks
- Verifies their signatures and acknowledges immediately
- Enriches "went live" events and posts them to a Discord webhook
- Serves a small dashboard for connecting a Kick account (PKCE)
"""

import hmac
import sys
from pathlib import Path
from typing import List, Optional

import httpx
import uvicorn
from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.responses import FileResponse, PlainTextResponse, RedirectResponse

from streamalert import __version__
from streamalert.auth.kick import KickApiClient
from streamalert.auth.oauth_state import PkceStateStore
from streamalert.auth.twitch import TwitchApiClient
from streamalert.config import Settings, settings
from streamalert.errors import AuthenticationError, ConfigurationError, StreamAlertError
from streamalert.ingest.dispatcher import TaskRunner, WebhookDispatcher, WebhookResult
from streamalert.ingest.subscriptions import (
    SUBSCRIPTION_ERRORS,
    report_subscription_count,
    sync_kick_subscriptions,
    sync_twitch_subscriptions,
)
from streamalert.notify.discord import DiscordNotifier
from streamalert.notify.pipeline import NotificationPipeline
from streamalert.schemas.events import Platform
from streamalert.utils.channels import KICK_CHANNELS_FILE, TWITCH_CHANNELS_FILE, load_channels
from streamalert.utils.logging import configure_logging, get_logger

STATIC_DIR = Path(__file__).resolve().parent / "static"

configure_logging(settings.log_level)

logger = get_logger(__name__, category="system")
kick_logger = get_logger(f"{__name__}.kick", category="kick")

router = APIRouter()


# ============================================================================
# HELPERS
# ============================================================================


def _config(request: Request) -> Settings:
    return request.app.state.config


def _dispatcher(request: Request) -> WebhookDispatcher:
    dispatcher = request.app.state.dispatcher
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Service starting")
    return dispatcher


def _kick(request: Request) -> KickApiClient:
    kick = request.app.state.kick
    if kick is None or not kick.enabled:
        raise HTTPException(status_code=503, detail="Kick integration disabled")
    return kick


def _require_dashboard_secret(config: Settings, secret: Optional[str]) -> None:
    if not config.oauth_enabled:
        raise HTTPException(status_code=404, detail="Not found")
    if not secret or not hmac.compare_digest(
        secret.encode("utf-8"), config.dashboard_secret.encode("utf-8")
    ):
        raise HTTPException(status_code=403, detail="Forbidden")


def _as_response(result: WebhookResult) -> PlainTextResponse:
    return PlainTextResponse(result.body, status_code=result.status_code)


# ============================================================================
# WEBHOOK ENDPOINTS
# ============================================================================


@router.post("/events/twitch")
async def twitch_webhook(request: Request):
    """
    Twitch EventSub webhook.

    The signature is computed over the raw body, so it is read as bytes and
    never re-serialized.
    """
    dispatcher = _dispatcher(request)
    body = await request.body()
    return _as_response(await dispatcher.handle_twitch(request.headers, body))


@router.post("/events/kick")
async def kick_webhook(request: Request):
    """Kick webhook (RSA signed)."""
    dispatcher = _dispatcher(request)
    body = await request.body()
    return _as_response(await dispatcher.handle_kick(request.headers, body))


@router.get("/events/twitch")
async def twitch_webhook_probe():
    return PlainTextResponse("Listening for Twitch events")


@router.get("/events/kick")
async def kick_webhook_probe():
    return PlainTextResponse("Listening for Kick events")


@router.get("/health")
async def health_check():
    return PlainTextResponse("OK")


# ============================================================================
# DASHBOARD / KICK OAUTH
# ============================================================================


@router.get("/dashboard")
async def dashboard(request: Request, secret: Optional[str] = Query(default=None)):
    _require_dashboard_secret(_config(request), secret)
    return FileResponse(STATIC_DIR / "dashboard.html", media_type="text/html")


@router.get("/login/kick")
async def login_kick(request: Request, secret: Optional[str] = Query(default=None)):
    """Start the Kick authorization-code flow with PKCE."""
    config = _config(request)
    _require_dashboard_secret(config, secret)
    kick = _kick(request)

    redirect_uri = f"{config.public_base_url()}/callback/kick"
    url, code_verifier, state = kick.generate_auth_url(redirect_uri, config.kick_scopes)
    request.app.state.pkce_states.add(state, code_verifier)
    kick_logger.info("[Kick] Starting OAuth flow")
    return RedirectResponse(url, status_code=302)


@router.get("/callback/kick")
async def callback_kick(
    request: Request,
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
):
    """Finish the Kick OAuth flow and keep the token only for allowlisted users."""
    config = _config(request)
    if not config.oauth_enabled:
        raise HTTPException(status_code=404, detail="Not found")
    kick = _kick(request)

    if error:
        kick_logger.warning("[Kick] Authorization denied: %s", error)
        raise HTTPException(status_code=400, detail="Authorization denied")

    code_verifier = request.app.state.pkce_states.consume(state)
    if not code or code_verifier is None:
        kick_logger.warning("[Kick] Callback with unknown or expired state")
        raise HTTPException(status_code=400, detail="Invalid or expired state")

    redirect_uri = f"{config.public_base_url()}/callback/kick"
    try:
        await kick.exchange_code(code, redirect_uri, code_verifier)
    except AuthenticationError as exc:
        kick_logger.error("[Kick] %s", exc)
        raise HTTPException(status_code=502, detail="Authorization failed") from exc

    try:
        user = await kick.get_authorized_user()
    except (StreamAlertError, httpx.HTTPError) as exc:
        kick_logger.error("[Kick] Could not look up authorized user: %s", exc)
        await kick.revoke_token()
        raise HTTPException(status_code=502, detail="Authorization failed") from exc

    user_id = str((user or {}).get("user_id", ""))
    if not user_id or user_id not in config.authorized_kick_user_ids:
        kick_logger.warning("[Kick] User %s is not authorized, revoking token", user_id or "unknown")
        await kick.revoke_token()
        raise HTTPException(status_code=403, detail="User not authorized")

    kick_logger.info("[Kick] User %s authorized", user_id)
    kick_channels: List[str] = request.app.state.kick_channels
    if kick_channels and not config.is_development:
        request.app.state.runner.spawn(
            sync_kick_subscriptions(kick, kick_channels), name="sync-kick-subscriptions"
        )
    return PlainTextResponse("Kick account connected. You can close this window.")


@router.post("/logout/kick")
async def logout_kick(request: Request, secret: Optional[str] = Query(default=None)):
    _require_dashboard_secret(_config(request), secret)
    await _kick(request).revoke_token()
    return PlainTextResponse("Kick account disconnected")


# ============================================================================
# STARTUP/SHUTDOWN
# ============================================================================


async def bootstrap_subscriptions(
    config: Settings,
    twitch: TwitchApiClient,
    kick: Optional[KickApiClient],
    twitch_channels: List[str],
    kick_channels: List[str],
) -> None:
    """Recreate webhook subscriptions once the server is accepting requests."""
    callback_url = config.callback_url(Platform.TWITCH.value)
    try:
        await sync_twitch_subscriptions(twitch, twitch_channels, callback_url)
    except SUBSCRIPTION_ERRORS as exc:
        logger.error("[Twitch] Subscription setup failed: %s", exc)

    if kick is not None and kick_channels:
        try:
            await sync_kick_subscriptions(kick, kick_channels)
        except SUBSCRIPTION_ERRORS as exc:
            logger.error("[Kick] Subscription setup failed: %s", exc)

    await report_subscription_count(
        twitch, len(twitch_channels), config.subscription_check_delay_seconds
    )


def create_app(config: Optional[Settings] = None) -> FastAPI:
    config = config or settings
    app = FastAPI(
        title="streamalert",
        description="Twitch and Kick go-live notifications for Discord",
        version=__version__,
    )
    app.include_router(router)

    app.state.config = config
    app.state.twitch = None
    app.state.kick = None
    app.state.notifier = None
    app.state.dispatcher = None
    app.state.runner = TaskRunner()
    app.state.pkce_states = PkceStateStore()
    app.state.kick_channels = []

    @app.on_event("startup")
    async def startup_event():
        """
        Build the platform clients, wire the pipeline and, outside development,
        schedule subscription setup. Configuration errors abort startup.
        """
        logger.info("streamalert starting on %s:%s", config.host, config.port)
        config.validate_required()

        twitch = await TwitchApiClient.get_instance(config)
        kick = await KickApiClient.get_instance(config)

        notifier = DiscordNotifier(
            config.discord_webhook_url,
            username=config.discord_username,
            avatar_url=config.discord_avatar_url,
        )
        pipeline = NotificationPipeline(
            notifier,
            twitch_client=twitch,
            kick_client=kick,
            retries=config.notify_retries,
            delay=config.notify_retry_delay_seconds,
        )
        app.state.twitch = twitch
        app.state.kick = kick
        app.state.notifier = notifier
        app.state.dispatcher = WebhookDispatcher(
            pipeline, twitch_client=twitch, kick_client=kick, runner=app.state.runner
        )

        if config.is_development:
            logger.info("Development mode: Skipping subscription setup.")
            return

        twitch_channels = load_channels(config.data_path / TWITCH_CHANNELS_FILE)
        kick_channels = load_channels(config.data_path / KICK_CHANNELS_FILE, required=False)
        app.state.kick_channels = kick_channels
        app.state.runner.spawn(
            bootstrap_subscriptions(config, twitch, kick, twitch_channels, kick_channels),
            name="bootstrap-subscriptions",
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("streamalert shutting down")
        await app.state.runner.cancel_all()
        app.state.pkce_states.clear()

        if app.state.notifier is not None:
            await app.state.notifier.close()
        for client in (app.state.twitch, app.state.kick):
            if client is not None:
                try:
                    await client.close()
                except Exception as exc:  # noqa: BLE001
                    logger.error("Error closing %s client: %s", client.LABEL, exc)
        TwitchApiClient.reset_instance()
        KickApiClient.reset_instance()

    return app


app = create_app()


def run() -> None:
    """Console entry point: validate configuration, then serve with uvicorn."""
    try:
        settings.validate_required()
    except ConfigurationError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
