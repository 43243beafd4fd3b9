from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import reload_settings, settings
from .credentials import resolve_credentials
from .dispatcher import BroadcastDispatcher
from .logging_setup import RequestLogMiddleware, init_logging
from .metrics import LAT, REQS, SUBSCRIPTIONS, router as metrics_router
from .models import Health, NotifyRequest, PublicKey, SubscribeRequest
from .registry import SubscriptionRegistry
from .transport import WebPushTransport

logger = logging.getLogger(__name__)


def default_message() -> str:
    stamp = datetime.now(timezone.utc).strftime("%d %b %y %H:%M %Z")
    return f"Hello from pushcast! It's {stamp}"


@asynccontextmanager
async def lifespan(app: FastAPI):
    reload_settings()
    # CredentialGenerationError propagates and aborts startup
    credentials = resolve_credentials(settings.VAPID_PRIVATE_KEY)
    registry = SubscriptionRegistry()
    transport = WebPushTransport(
        subject=settings.VAPID_SUBJECT,
        ttl=settings.VAPID_TTL,
        timeout=settings.DELIVERY_TIMEOUT_SECONDS,
    )
    dispatcher = BroadcastDispatcher(
        registry,
        transport,
        credentials,
        concurrency=settings.DELIVERY_CONCURRENCY,
        history=settings.BROADCAST_HISTORY,
    )
    app.state.credentials = credentials
    app.state.registry = registry
    app.state.dispatcher = dispatcher
    SUBSCRIPTIONS.set(0)
    try:
        yield
    finally:
        await dispatcher.aclose(settings.SHUTDOWN_GRACE_SECONDS)
        transport.close()


init_logging(settings.LOG_LEVEL)

app = FastAPI(title="pushcast", version=__version__, lifespan=lifespan)
app.add_middleware(RequestLogMiddleware)
app.include_router(metrics_router())

origins = [o.strip() for o in settings.CORS_ALLOW_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def _metrics(request: Request, call_next):
    method = request.method
    path = request.url.path
    start = time.time()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration = time.time() - start
        REQS.labels(method, path, str(status_code)).inc()
        LAT.labels(method, path).observe(duration)


@app.exception_handler(RequestValidationError)
async def _invalid_body(request: Request, exc: RequestValidationError):
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse({"detail": "Invalid request body"}, status_code=400)


@app.get("/health", response_model=Health)
def health(request: Request):
    return Health(
        status="ok",
        time=datetime.now(timezone.utc).isoformat(),
        subscriptions=len(request.app.state.registry),
    )


@app.get("/vapid-public-key", response_model=PublicKey)
def vapid_public_key(request: Request):
    return PublicKey(publicKey=request.app.state.credentials.public_key)


@app.post("/subscribe")
def subscribe(body: SubscribeRequest, request: Request):
    registry = request.app.state.registry
    registry.register(body.subscription)
    SUBSCRIPTIONS.set(len(registry))
    logger.info("Subscription with endpoint %s saved", body.subscription.endpoint)
    return Response(status_code=200)


@app.post("/notify-all")
async def notify_all(body: NotifyRequest, request: Request):
    message = body.message if body.message is not None else default_message()
    handle = request.app.state.dispatcher.dispatch(message.encode("utf-8"))
    return Response(status_code=200, headers={"X-Broadcast-ID": handle.job_id})
