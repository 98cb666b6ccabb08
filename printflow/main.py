"""
PrintFlow - print shop queue service

FastAPI application entry point.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import observability modules
from printflow.config import settings
from printflow.errors import PrintFlowError
from printflow.logging_config import configure_logging, get_logger
from printflow.sentry_config import configure_sentry, capture_exception
from printflow.middleware.logging import LoggingMiddleware
from printflow.routes.metrics import router as metrics_router

# Import route modules
from printflow.routes.student import router as student_router
from printflow.routes.vendor import router as vendor_router
from printflow.routes.payments import router as payments_router
from printflow.routes.admin import router as admin_router
from printflow.routes.realtime import router as realtime_router
from printflow.services.broadcaster import broadcaster
from printflow.services.queue_engine import drain_background_tasks

# Initialize logging first
configure_logging()

# Initialize Sentry (if SENTRY_DSN is set)
configure_sentry()

logger = get_logger(component="app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Let pending pickup SMS finish, then hang up on realtime clients.
    await drain_background_tasks()
    await broadcaster.close()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Print shop queue: uploads, payment admission, FIFO positions and live updates",
    lifespan=lifespan,
)

# Add logging middleware FIRST (runs before other middleware)
app.add_middleware(LoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PrintFlowError)
async def printflow_error_handler(request: Request, exc: PrintFlowError):
    """Map domain errors to their HTTP status with a JSON body."""
    if exc.status_code >= 500:
        logger.error("collaborator_failed", route=request.url.path, code=exc.code, error=exc.message)
        capture_exception(exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include metrics endpoint FIRST (so it's always available)
app.include_router(metrics_router)

app.include_router(student_router)
app.include_router(vendor_router)
app.include_router(payments_router)
app.include_router(admin_router)
app.include_router(realtime_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "database": "connected"
    }
