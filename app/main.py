from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from pymongo.errors import PyMongoError
from app.config import settings
from app.database import Database
from app.routers import health_router
from app.features.clinic.router import router as clinic_router
from app.features.visits.router import router as visits_router
from app.features.prescriptions.router import router as prescriptions_router
from app.features.notifications.socket import sio, socket_app
from app.features.notifications.service import NotificationService
from app.core.logging import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI application."""
    # Startup
    logger.info("Starting Clinic Flow API...")
    await Database.connect_db()
    
    # Set Socket.IO reference for clinic channel broadcasts
    NotificationService.set_socketio(sio)
    
    logger.info("Application started successfully")
    
    yield
    
    # Shutdown
    logger.info("Shutting down...")
    NotificationService.set_socketio(None)
    await Database.close_db()
    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Clinic check-in, visit and prescription workflow API",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies in the same shape as service validation errors."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg')}" if location else first.get("msg", "Invalid request")
    
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"error": "validation_error", "message": message}},
    )


@app.exception_handler(PyMongoError)
async def storage_error_handler(request: Request, exc: PyMongoError):
    """Surface unexpected storage failures as a server fault for the caller to retry."""
    logger.exception(f"Storage failure on {request.method} {request.url.path}: {type(exc).__name__}")
    
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": {"error": "server_error", "message": "Storage failure, please retry"}},
    )


# Register routers
app.include_router(health_router)
app.include_router(clinic_router, prefix=settings.API_V1_PREFIX)
app.include_router(visits_router, prefix=settings.API_V1_PREFIX)
app.include_router(prescriptions_router, prefix=settings.API_V1_PREFIX)

# Mount Socket.IO application
app.mount("/socket.io", socket_app)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Welcome to Clinic Flow API",
        "version": "1.0.0",
        "docs": "/docs",
        "socket.io": "/socket.io",
    }
