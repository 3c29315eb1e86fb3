from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from relay_manager import RelayManager, find_ffmpeg
from events import RelayNotifier
from errors import RelayError, UpstreamProtocolError
from models import RelayEvent, StartRelayRequest, WebhookSubscription, HealthCheck
from config import settings, VERSION

logger = logging.getLogger(__name__)

notifier = RelayNotifier()
relay_manager = RelayManager(notifier=notifier)


def log_relay_event(event: RelayEvent):
    details = ", ".join(f"{k}={v}" for k, v in event.data.items() if k != "last_logs")
    logger.info(f"Relay {event.event_type.value}: {event.channel} ({details})")


notifier.add_listener(log_relay_event)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("kick-relay starting up...")
    await notifier.start()

    yield

    logger.info("kick-relay shutting down...")
    await relay_manager.shutdown()
    await notifier.close()


app = FastAPI(
    title="kick-relay",
    version=VERSION,
    description="Relay a live Twitch channel to a Kick stream with live status and ffmpeg telemetry",
    lifespan=lifespan,
    docs_url=settings.DOCS_URL,
    redoc_url=settings.REDOC_URL,
    openapi_url=settings.OPENAPI_URL,
)

# The operator UI may be served from a different origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def relay_http_error(error: RelayError) -> HTTPException:
    """Translate a relay error into an HTTP response, hiding upstream protocol detail."""
    if isinstance(error, UpstreamProtocolError):
        return HTTPException(
            status_code=error.status_code,
            detail="Could not retrieve Twitch stream. Upstream request failed.")
    return HTTPException(status_code=error.status_code, detail=error.message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Unreadable start requests are client errors (400); other routes keep FastAPI's 422."""
    if request.url.path != "/api/stream":
        return await request_validation_exception_handler(request, exc)

    logger.warning(f"Rejected start request: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request body: twitchUsername and kickStreamKey must be strings"},
    )


@app.get("/")
async def root():
    return {
        "message": "kick-relay",
        "version": VERSION,
        "relay_active": relay_manager.store.active,
    }


@app.post("/api/stream")
async def start_stream(request: StartRelayRequest):
    """Resolve the Twitch channel and start relaying it to Kick"""
    try:
        session = await relay_manager.start(
            request.twitch_username,
            request.kick_stream_key,
            request.quality,
        )
        return {"success": True, "message": "Stream started", "session": session}
    except RelayError as e:
        if isinstance(e, UpstreamProtocolError):
            logger.error(f"Error starting stream: {e.message}")
        raise relay_http_error(e)
    except Exception as e:
        logger.error(f"Error starting stream: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.delete("/api/stream")
async def stop_stream():
    """Kill the active relay"""
    try:
        await relay_manager.stop()
        return {"success": True, "message": "Stream stopped"}
    except RelayError as e:
        raise relay_http_error(e)
    except Exception as e:
        logger.error(f"Error stopping stream: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.get("/api/stream")
async def get_stream_status():
    """Current relay state, latest ffmpeg metrics and recent ffmpeg output"""
    return relay_manager.get_status().to_dict()


@app.get("/health", response_model=HealthCheck)
async def health_check():
    """Health check endpoint"""
    return HealthCheck(
        status="healthy",
        version=VERSION,
        ffmpeg=relay_manager.ffmpeg_path or find_ffmpeg(),
        relay_active=relay_manager.store.active,
    )


@app.post("/webhooks")
async def subscribe_webhook(webhook: WebhookSubscription):
    """Notify an endpoint of relay lifecycle events"""
    created = notifier.subscribe(webhook)
    return {"created": created, "webhook": webhook.summary()}


@app.get("/webhooks")
async def list_webhooks():
    return {"webhooks": [wh.summary() for wh in notifier.webhooks]}


@app.delete("/webhooks")
async def unsubscribe_webhook(webhook_url: str = Query(..., description="Webhook URL to remove")):
    if not notifier.unsubscribe(webhook_url):
        raise HTTPException(status_code=404, detail="Webhook not found")
    return {"message": "Webhook removed successfully"}
