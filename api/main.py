"""
Dispatch & Delivery Assignment Engine — FastAPI Backend
Center-scoped order dispatch, delivery tracking and proof of delivery.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError

from config import settings
from db.database import engine, create_all
from routers import orders, drivers, vehicles, logistics, notifications
from services import dispatch_events
from services.errors import DispatchError

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("dispatch")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Dispatch API starting...")
    if settings.DB_CREATE_ALL:
        await create_all()
    yield
    await dispatch_events.drain_webhooks(timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    await engine.dispose()
    logger.info("Dispatch API shut down.")


app = FastAPI(
    title="Dispatch & Delivery API",
    description="Order dispatch, driver/vehicle assignment and delivery tracking backend",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ───────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error Handlers ─────────────────────────────────────────

@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError):
    if exc.http_status >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.detail)
    else:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.detail)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "kind": "Validation",
            "detail": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("%s %s -> unique/foreign key violation: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=409,
        content={"error": "Conflict", "kind": "Conflict", "detail": "Conflicting write, state has changed"},
    )


@app.exception_handler(DBAPIError)
async def store_error_handler(request: Request, exc: DBAPIError):
    logger.error("%s %s -> store unavailable: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"error": "StoreFailure", "kind": "StoreFailure", "detail": "Persistence layer unavailable, retry"},
    )


# ── Routers ────────────────────────────────────────────────
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(drivers.router, prefix="/api/drivers", tags=["Drivers"])
app.include_router(vehicles.router, prefix="/api/vehicles", tags=["Vehicles"])
app.include_router(logistics.router, prefix="/api/logistics", tags=["Logistics"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "Dispatch API"}


@app.get("/health/db")
async def health_db():
    """Verify the store answers."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok", "dialect": engine.dialect.name}
    except DBAPIError as e:
        logger.error("DB health check failed: %s", e)
        return JSONResponse(status_code=503, content={"status": "error", "detail": str(e.orig)})
