from contextlib import asynccontextmanager
from datetime import datetime
import logging
import os

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.datastructures import Headers
from sqlmodel import Session, text

from database import create_db, engine
import models  # noqa: F401 (registers tables before create_db)
from routers.analytics import router as analytics_router
from routers.assistant import router as assistant_router
from routers.export import router as export_router
from routers.family import router as family_router
from routers.interactions import router as interactions_router
from routers.medicines import router as medicines_router
from routers.reminders import router as reminders_router
from services.errors import ProviderError, ValidationError
from services.reference_store import seed_reference_medicines

logging.basicConfig(
    level=os.getenv("MEDASSIST_LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("medassist")

CORS_ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


class EmptyPreflightCORSMiddleware(CORSMiddleware):
    """Answers successful preflights with an empty 200 body instead of Starlette's "OK"."""

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        if response.status_code != 200:
            return response
        headers = {
            key: value
            for key, value in response.headers.items()
            if key not in ("content-length", "content-type")
        }
        return Response(status_code=200, headers=headers)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db()
    if os.getenv("MEDASSIST_SEED_REFERENCE", "1") == "1":
        seed_reference_medicines(engine)
    yield


app = FastAPI(title="MedAssist", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    EmptyPreflightCORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=CORS_ALLOWED_HEADERS,
)


def _invalid_input(details) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid input", "details": jsonable_encoder(details)},
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _invalid_input(exc.details)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]
    return _invalid_input(details)


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    logger.warning("AI provider failure on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled server error for %s %s", request.method, request.url.path)
    # Runs outside CORSMiddleware, so the header is set here.
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
        headers={"Access-Control-Allow-Origin": "*"},
    )


@app.middleware("http")
async def no_cache_api_responses(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith(
        (
            "/medicines",
            "/reminders",
            "/family",
            "/analytics",
            "/export",
            "/import",
        )
    ):
        response.headers["Cache-Control"] = "no-store, max-age=0"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
    return response


app.include_router(interactions_router)
app.include_router(assistant_router)
app.include_router(medicines_router)
app.include_router(reminders_router)
app.include_router(family_router)
app.include_router(analytics_router)
app.include_router(export_router)


@app.get("/health")
def health():
    try:
        with Session(engine) as session:
            session.exec(text("SELECT 1"))
        return {
            "status": "ok",
            "database": "connected",
            "timestamp": datetime.utcnow().isoformat(),
        }
    except Exception:
        logger.exception("Health check failed")
        return JSONResponse(status_code=500, content={"status": "error"})
