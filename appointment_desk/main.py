import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import date, datetime

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from appointment_desk.api.routes import appointments, auth, requests, slots
from appointment_desk.core.config import _ENV_FILE, settings
from appointment_desk.core.db import async_session_maker
from appointment_desk.core.errors import SchedulingConflict, SchedulingError
from appointment_desk.services.appointment_service import delete_past_appointments
from appointment_desk.services.request_service import (
    purge_expired_rejections,
    reconcile_approved_requests,
)

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


async def run_housekeeping(now: datetime | None = None) -> None:
    """Purge expired rejections, then repair unmaterialized approvals.

    Past appointments are only swept when APPOINTMENT_RETENTION_DAYS is set.
    """
    now = now or datetime.now()
    try:
        async with async_session_maker() as session:
            try:
                rejected = await purge_expired_rejections(
                    session, now, settings.rejected_request_retention_hours
                )
                past = 0
                if settings.appointment_retention_days is not None:
                    past = await delete_past_appointments(
                        session, now.date(), settings.appointment_retention_days
                    )
                restored, reverted = await reconcile_approved_requests(session)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        if rejected or past or restored or reverted:
            logger.info(
                "Housekeeping: %d rejected request(s) and %d past appointment(s) deleted; "
                "%d approval(s) restored, %d reverted",
                rejected,
                past,
                restored,
                reverted,
            )
    except Exception as e:
        logger.exception("Housekeeping failed: %s", e)


async def _housekeeping_loop() -> None:
    while True:
        await asyncio.sleep(settings.purge_interval_seconds)
        await run_housekeeping()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    logger.info(
        "Working day %s-%s; housekeeping on startup and every %ds",
        settings.work_day_start,
        settings.work_day_end,
        settings.purge_interval_seconds,
    )
    if not settings.email_enabled:
        logger.warning("SMTP not configured; decision emails will not be sent")
    await run_housekeeping()
    task = asyncio.create_task(_housekeeping_loop())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    title="Appointment Desk API",
    description="Appointments, appointment requests and availability for the decision-maker's calendar",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Refresh-Token"],
)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(slots.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(requests.router, prefix="/api/v1")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type, X-Refresh-Token",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    content: dict = {"detail": exc.message}
    if isinstance(exc, SchedulingConflict):
        content["conflicting_appointment_id"] = exc.conflicting_id
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and query params are 400s, like any other validation failure."""
    errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"detail": errors},
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return actual error in JSON; include CORS so 500 responses are not blocked by browser."""
    headers = _cors_headers(request.headers.get("origin"))
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": f"{type(exc).__name__}: {str(exc)}"},
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "today": date.today().isoformat()}
