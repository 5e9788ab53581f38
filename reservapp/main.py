import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Import models so every table is registered with Base before create_all
from . import models  # noqa: F401
from .config import ENVIRONMENT
from .database import Base, engine
from .domain.admin.router import router as admin_router
from .domain.auth.router import profile_router
from .domain.auth.router import router as auth_router
from .domain.billing.router import plans_router
from .domain.billing.router import router as subscriptions_router
from .domain.reservations.router import resources_router
from .domain.reservations.router import router as reservations_router
from .domain.webhooks.router import router as webhooks_router
from .security_headers import SecurityHeadersMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 Reservapp API starting ({ENVIRONMENT})")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("✅ Database schema ready")
    except Exception as e:
        # Several uvicorn workers may race to create the same tables
        if "already exists" in str(e) or "duplicate key" in str(e):
            logger.info("ℹ️ Tables were created by another worker")
        else:
            logger.error(f"❌ Failed to create database tables: {e}")

    yield
    logger.info("👋 Reservapp API shutting down")


app = FastAPI(title="Reservapp API", version="1.0.0", lifespan=lifespan)


# ============================================================================
# ERROR HANDLING
# ============================================================================


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Render validation failures as 400 with one entry per invalid field"""
    details = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        message = error.get("msg", "")
        # Pydantic prefixes messages raised from validators
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        details.append({"field": ".".join(loc), "message": message})

    logger.warning(f"Validation error for {request.url.path}: {details}")
    return JSONResponse(status_code=400, content={"error": "Datos inválidos", "details": details})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Services raise HTTPException with either a message string or a dict
    already shaped as {"error": ..., "details": ...}.
    """
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} - Unhandled error: {exc}")
    return JSONResponse(status_code=500, content={"error": "Error interno del servidor"})


# ============================================================================
# MIDDLEWARE
# ============================================================================


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"])
    logger.info("Security headers enabled")
else:
    logger.warning("Security headers DISABLED - only use in development!")


# CORS Configuration
# Cookie sessions need explicit origins
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

# Routes
app.include_router(auth_router)
app.include_router(profile_router)
app.include_router(plans_router)
app.include_router(subscriptions_router)
app.include_router(resources_router)
app.include_router(reservations_router)
app.include_router(admin_router)
app.include_router(webhooks_router)


@app.get("/")
def root():
    return {"message": "Reservapp API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
