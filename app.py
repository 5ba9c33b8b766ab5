"""
Complaint Box API: student, faculty and admin identities with JWT auth
and email-verified admin login.
"""
import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi_mail import FastMail, ConnectionConfig
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

import config
from auth.security import get_secret_key
from core.exceptions import ComplaintBoxError
from core.logger import logger
from database.connection import Database
from middleware.security import SecurityHeadersMiddleware, setup_cors
from middleware.auth_middleware import AuthRequiredMiddleware
from services.expiry_sweeper import run_expiry_sweeper
from services.notification_queue import NotificationQueue
from routers.auth import router as auth_router
from routers.users import router as users_router


def _create_mail_queue():
    """Build FastMail and its delivery queue, or None when SMTP is not configured."""
    if not (config.SMTP_USER and config.SMTP_PASSWORD):
        logger.warning("SMTP credentials not set (SMTP_USER/SMTP_PASSWORD). Verification emails will not be sent.")
        return None

    mail_conf = ConnectionConfig(
        MAIL_USERNAME=config.SMTP_USER,
        MAIL_PASSWORD=config.SMTP_PASSWORD,
        MAIL_FROM=config.SMTP_FROM_EMAIL or config.SMTP_USER,
        MAIL_FROM_NAME=config.SMTP_FROM_NAME,
        MAIL_PORT=config.SMTP_PORT,
        MAIL_SERVER=config.SMTP_HOST,
        MAIL_STARTTLS=config.SMTP_USE_TLS,
        MAIL_SSL_TLS=config.SMTP_USE_SSL,
        USE_CREDENTIALS=True,
        VALIDATE_CERTS=True,
    )
    mail = FastMail(mail_conf)
    logger.info("FastAPI-Mail initialized successfully")
    return NotificationQueue(sender=mail.send_message)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan events for FastAPI app.
    Check the signing key, initialize the database, start mail delivery and the expiry sweeper.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {config.APP_NAME}...")
    logger.info("=" * 60)

    # Refuse to start without a usable signing key
    get_secret_key()

    # Initialize database
    try:
        config.db = Database(
            database_url=config.DATABASE_URL,
            pool_size=config.DB_POOL_SIZE,
            max_overflow=config.DB_MAX_OVERFLOW
        )
        # Create tables if they don't exist
        config.db.create_tables()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}", exc_info=True)
        raise

    try:
        app.state.notifications = _create_mail_queue()
    except Exception as e:
        logger.error(f"Failed to initialize FastAPI-Mail: {e}", exc_info=True)
        app.state.notifications = None
    if app.state.notifications is not None:
        app.state.notifications.start()

    sweeper = asyncio.create_task(run_expiry_sweeper())

    logger.info("=" * 60)
    logger.info("Server ready!")
    logger.info(f"Environment: {config.ENVIRONMENT}")
    logger.info(f"API Docs: http://localhost:8000/docs")
    logger.info("=" * 60)

    yield

    # Cleanup on shutdown
    logger.info("Shutting down...")
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass
    if app.state.notifications is not None:
        await app.state.notifications.stop()
    if config.db:
        config.db.dispose()


# Initialize FastAPI app
app = FastAPI(
    title=config.APP_NAME,
    description="Complaint Box identity and authentication API",
    version=config.APP_VERSION,
    lifespan=lifespan
)

# Setup security middleware
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(AuthRequiredMiddleware)
setup_cors(app, config.CORS_ORIGINS)

# Include routers
app.include_router(auth_router)
app.include_router(users_router)


# Exception handlers
@app.exception_handler(ComplaintBoxError)
async def complaint_box_error_handler(request: Request, exc: ComplaintBoxError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    message = str(first.get("msg", "Invalid input"))
    # pydantic prefixes messages raised from validators
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or None
    body = {"status": "error", "code": "VALIDATION_ERROR", "error": message}
    if field:
        body["details"] = {"field": field}
    return JSONResponse(status_code=400, content=body)


def _server_error(exc: Exception) -> JSONResponse:
    body = {"status": "error", "code": "INTERNAL_ERROR", "error": "Internal server error"}
    if config.ENVIRONMENT == "development":
        body["detail"] = str(exc)
    return JSONResponse(status_code=500, content=body)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return _server_error(exc)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return _server_error(exc)


@app.get("/")
async def root():
    """Root endpoint with API information. Public endpoint."""
    return {
        "message": config.APP_NAME,
        "version": config.APP_VERSION,
        "environment": config.ENVIRONMENT,
        "endpoints": {
            "signup": "POST /api/auth/signup",
            "login": "POST /api/auth/login",
            "admin_login": "PATCH /api/auth/admin/send-code -> PATCH /api/auth/admin/verify-code -> POST /api/auth/admin/login",
            "users": "GET /api/users"
        },
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring. Public endpoint."""
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "checks": {}
    }

    # Check database
    try:
        if config.db is None:
            health_status["checks"]["database"] = {"status": "error", "error": "not initialized"}
            health_status["status"] = "degraded"
        else:
            with config.db.get_session() as db:
                db.execute(text("SELECT 1"))
            health_status["checks"]["database"] = {"status": "ok"}
    except SQLAlchemyError as e:
        health_status["checks"]["database"] = {"status": "error", "error": str(e)}
        health_status["status"] = "degraded"

    mail_queue = getattr(app.state, "notifications", None)
    health_status["checks"]["mail"] = {"enabled": mail_queue is not None}

    return health_status


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
