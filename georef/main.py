# georef/main.py
"""
GeoRef PSGC - Geographic reference hierarchy service
Main Application Entry Point
"""
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from georef.core.config import settings
from georef.core.exceptions import BackendUnavailableError, CodeNotFoundError, InvalidCodeError
from georef.core.logging_config import setup_logging
from georef.api.v1 import psgc

load_dotenv()

logger = logging.getLogger(__name__)


# ========================================
# LIFESPAN EVENT
# ========================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    setup_logging(settings.LOG_LEVEL)

    logger.info("=" * 60)
    logger.info(f"🚀 {settings.PROJECT_NAME} {settings.VERSION} ({settings.ENVIRONMENT})")

    routes_api = []
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            methods = ", ".join(sorted(route.methods - {"HEAD", "OPTIONS"}))
            if methods and route.path.startswith("/api/"):
                routes_api.append(f"  {methods:12} {route.path}")

    logger.info("🔌 API routes:")
    for route in sorted(set(routes_api)):
        logger.info(route)
    logger.info("=" * 60)

    yield

    logger.info("👋 Server stopped")


# ========================================
# CREATE APP
# ========================================
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    lifespan=lifespan
)


# ========================================
# MIDDLEWARE - CORS
# ========================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========================================
# DOMAIN ERRORS → HTTP
# ========================================
@app.exception_handler(InvalidCodeError)
async def invalid_code_handler(request: Request, exc: InvalidCodeError):
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "error": "invalid_code", "code": exc.code}
    )


@app.exception_handler(CodeNotFoundError)
async def not_found_handler(request: Request, exc: CodeNotFoundError):
    return JSONResponse(status_code=404, content=exc.to_dict())


@app.exception_handler(BackendUnavailableError)
async def backend_unavailable_handler(request: Request, exc: BackendUnavailableError):
    logger.error(f"[API] ❌ {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Geographic data backend unavailable", "error": "backend_unavailable"}
    )


# ========================================
# ROUTERS API (prefix /api/v1)
# ========================================
app.include_router(psgc.router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health():
    """Health check"""
    return {"status": "healthy", "app": settings.APP_NAME.lower()}
