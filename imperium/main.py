import asyncio
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from imperium.config import settings
from imperium.dependencies import build_container, close_container
from imperium.logging_config import get_logger, setup_logging
from imperium.routers import ai, calls, health, inbox, leads, webhooks
from imperium.services.health_service import run_connection_checks

setup_logging(settings.log_level)

app = FastAPI(
    title="Imperium CRM Core",
    description="Omni-channel lead intake, unified inbox, calls and AI assistant",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhooks.router)
app.include_router(leads.router)
app.include_router(inbox.router)
app.include_router(calls.router)
app.include_router(ai.router)
app.include_router(health.router)

HTTP_ERROR_CODES = {400: "validation_error", 401: "unauthorized", 403: "forbidden", 404: "not_found"}


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": str(exc.detail),
            "error_code": HTTP_ERROR_CODES.get(exc.status_code, "error"),
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid request", "error_code": "validation_error", "details": details},
    )


health_logger = get_logger("health_poller")
_health_poller_task: asyncio.Task | None = None


def _is_env_enabled(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _is_health_poller_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.health_poller_enabled and _is_env_enabled(os.environ.get("HEALTH_POLLER_ENABLED"), default=True)


def _run_checks_once(container) -> list:
    db = container.session_factory()
    try:
        return run_connection_checks(db, container.providers, container.telephony)
    finally:
        db.close()


async def _health_poller_loop(container) -> None:
    while True:
        try:
            await asyncio.sleep(max(container.settings.health_poll_interval_seconds, 1.0))
            results = await asyncio.to_thread(_run_checks_once, container)
            health_logger.info(
                "Connection checks finished",
                extra={"context": {r.service: r.status for r in results}},
            )
        except asyncio.CancelledError:
            break
        except Exception as exc:
            health_logger.error(
                "Health poller loop failed",
                extra={"context": {"error": str(exc)}},
            )


@app.on_event("startup")
async def startup() -> None:
    global _health_poller_task
    if getattr(app.state, "container", None) is None:
        app.state.container = build_container(settings)
    if not _is_health_poller_enabled():
        return
    if _health_poller_task is None or _health_poller_task.done():
        _health_poller_task = asyncio.create_task(_health_poller_loop(app.state.container))
        health_logger.info("Health poller started")


@app.on_event("shutdown")
async def shutdown() -> None:
    global _health_poller_task
    if _health_poller_task is not None:
        _health_poller_task.cancel()
        try:
            await _health_poller_task
        except asyncio.CancelledError:
            pass
        _health_poller_task = None
    close_container(getattr(app.state, "container", None))
    app.state.container = None
