# Application entrypoint: configures logging, middleware, error handlers, startup routines, and API routers.
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
import threading
import time
import traceback

from .db import Base, engine
from .errors import BusyError, DomainError
from .logging_config import setup_logging
from .redis_client import redis_status
from .routes.agents import router as agents_router
from .routes.auth import router as auth_router
from .routes.bookings import router as bookings_router
from .routes.commissions import router as commissions_router
from .routes.profile import router as profile_router
from .routes.properties import router as properties_router
from .routes.sales import router as sales_router
from .routes.storage import router as storage_router
from .sweepers import sweep_stale_otps

setup_logging()
logger = logging.getLogger("estatedesk.main")

APP_ENV = os.getenv("APP_ENV", "production").lower()
# 0 disables the sweeper (tests)
OTP_SWEEP_INTERVAL_SECONDS = int(os.getenv("OTP_SWEEP_INTERVAL_SECONDS", "300"))


def _start_otp_sweeper(interval_seconds: int) -> None:
    """
    Launch a daemon thread that periodically deletes used and expired OTP rows.

    Behavior:
    - Call sweep_stale_otps()
    - Sleep for `interval_seconds`
    Errors are logged and the next interval tries again.
    """
    def _loop() -> None:
        while True:
            try:
                sweep_stale_otps()
            except Exception:
                logger.exception("otp.sweep_failed")
            time.sleep(interval_seconds)

    t = threading.Thread(target=_loop, name="otp-sweeper", daemon=True)
    t.start()


# Parse CORS origins from a comma-separated env var.
# Note: '*' cannot be used with allow_credentials=True; we fall back to explicit localhost origins for dev.
def _parse_cors_origins(env_value: str | None) -> list[str]:
    default_dev_origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    if not env_value:
        return default_dev_origins

    origins = [o.strip() for o in env_value.split(",") if o.strip()]
    if "*" in origins:
        return default_dev_origins

    return origins


app = FastAPI(title="EstateDesk API", version="0.1.0")
allow_list = _parse_cors_origins(os.getenv("CORS_ORIGINS"))

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    headers = None
    if isinstance(exc, BusyError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request.failed", extra={"path": request.url.path, "method": request.method})
    content = {"detail": "Internal server error"}
    if APP_ENV == "development":
        content["error"] = str(exc)
        content["traceback"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


@app.on_event("startup")
def on_startup() -> None:
    # For local SQLite, auto-create tables; production DBs rely on Alembic migrations.
    if os.getenv("DATABASE_URL", "sqlite:///./data.db").startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    if OTP_SWEEP_INTERVAL_SECONDS > 0:
        _start_otp_sweeper(interval_seconds=OTP_SWEEP_INTERVAL_SECONDS)


# Simple liveness endpoint for container orchestrators and uptime checks
@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok", "redis": redis_status()}


# Mount application routers
app.include_router(auth_router, prefix="/api", tags=["auth"])
app.include_router(profile_router, prefix="/api", tags=["profile"])
app.include_router(agents_router, prefix="/api", tags=["agents"])
app.include_router(properties_router, prefix="/api", tags=["properties"])
app.include_router(bookings_router, prefix="/api", tags=["bookings"])
app.include_router(sales_router, prefix="/api", tags=["sales"])
app.include_router(commissions_router, prefix="/api", tags=["commissions"])
app.include_router(storage_router, prefix="/api", tags=["storage"])
