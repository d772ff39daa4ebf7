import logging.config
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.metrics import router as metrics_router
from app.api.routes import router as api_router
from app.api.ws import router as ws_router
from app.config import get_settings
from app.core.errors import ApiError, api_error_handler
from hearth.realtime import shutdown_realtime, startup_realtime

settings = get_settings()


def build_logging_config(debug: bool) -> dict[str, Any]:
    """Console logging; the realtime relay and mailer get their own level."""

    level = "DEBUG" if debug else "INFO"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": "%(asctime)s %(levelname)-7s %(name)s: %(message)s"},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "console"},
        },
        "root": {"handlers": ["console"], "level": level},
        "loggers": {
            "hearth.realtime": {"handlers": ["console"], "level": level, "propagate": False},
            "app.core.mailer": {"level": "INFO"},
            "sqlalchemy.engine": {"level": "WARNING"},
        },
    }


logging.config.dictConfig(build_logging_config(settings.debug))

app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin).rstrip("/") for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(ApiError, api_error_handler)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report the first invalid field the same way service errors are reported."""

    first = exc.errors()[0] if exc.errors() else {}
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    body: dict[str, str] = {"error": str(first.get("msg", "Invalid request."))}
    if location:
        body["path"] = ".".join(location)
    return JSONResponse(status_code=400, content=body)


@app.get("/health", tags=["system"])
def health_check() -> dict[str, str]:
    """Liveness probe used by the load balancer."""
    return {"status": "ok", "environment": settings.environment}


@app.on_event("startup")
async def _startup() -> None:
    await startup_realtime()


@app.on_event("shutdown")
async def _shutdown() -> None:
    await shutdown_realtime()


app.include_router(api_router, prefix="/api")
app.include_router(ws_router)
app.include_router(metrics_router)
