from datetime import datetime, timezone
from fastapi import FastAPI, Depends, Request, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
import os
import logging

from ..database.connection import DatabaseManager, get_db
from ..errors import ValidationFailed
from ..timesheet.meta_fields import UnknownMetaFieldError
from .routes import auth, configuration, timesheets

API_VERSION = "1.0.0"

# Configure logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

# Initialize FastAPI app with metadata
app = FastAPI(
    title="Timesheets API",
    description="Time tracking API: timesheet records with running timers, rates, rounding, "
                "tags, meta-fields and role based access control.",
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "Authentication",
            "description": "Login and current user"
        },
        {
            "name": "Timesheets",
            "description": "Timesheet records, running entries and their actions"
        },
        {
            "name": "Configuration",
            "description": "Timesheet rules: long running limit, active entries and rounding"
        }
    ]
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("ALLOWED_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"code": status_code, "message": message, **extra})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as {code, message}."""
    response = _error(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(ValidationFailed)
async def validation_failed_handler(request: Request, exc: ValidationFailed):
    """Render field validation errors as a 400 response."""
    return _error(status.HTTP_400_BAD_REQUEST, exc.message, errors=exc.errors)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Render malformed request data like field validation errors."""
    errors = {}
    for error in exc.errors():
        names = [str(part) for part in error.get("loc", ()) if isinstance(part, str) and part not in ("body", "query", "path")]
        field = names[-1] if names else "body"
        errors.setdefault(field, []).append(error.get("msg", "This value is not valid."))
    return _error(status.HTTP_400_BAD_REQUEST, ValidationFailed.message, errors=errors)


@app.exception_handler(UnknownMetaFieldError)
async def unknown_meta_field_handler(request: Request, exc: UnknownMetaFieldError):
    logger.error(f"Unknown meta-field '{exc.name}' requested")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize database and perform startup tasks."""
    logger.info("Starting up Timesheets API...")

    try:
        DatabaseManager.init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Perform cleanup tasks on shutdown."""
    logger.info("Shutting down Timesheets API...")


# Health check endpoint
@app.get("/", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns basic API status and version information.
    """
    return {
        "message": "Timesheets API is healthy",
        "version": API_VERSION,
        "status": "operational"
    }


@app.get("/health", tags=["Health"])
def detailed_health_check(db: Session = Depends(get_db)):
    """
    Detailed health check endpoint.

    Returns health status including database connectivity.
    """
    try:
        db.execute(text("SELECT 1")).scalar()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service unhealthy - database connection failed"
        )

    return {
        "status": "healthy",
        "version": API_VERSION,
        "database": "connected",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


# Include routers
app.include_router(auth.router, prefix="/api")
app.include_router(configuration.router, prefix="/api")
app.include_router(timesheets.router, prefix="/api")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "timesheets_api.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
