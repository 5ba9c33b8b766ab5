"""
Authentication middleware that flags protected requests arriving without credentials.
Actual validation is done by FastAPI dependencies (auth.dependencies).
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from typing import List, Optional

from core.logger import logger

# Routes that don't require authentication
PUBLIC_ROUTES: List[str] = [
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/api/auth/signup",
    "/api/auth/login",
    "/api/auth/admin/send-code",
    "/api/auth/admin/verify-code",
    "/api/auth/admin/login",
]


class AuthRequiredMiddleware(BaseHTTPMiddleware):
    """
    Log requests to protected routes that carry no Authorization header.

    Requests are never blocked here; the dependencies return the proper error.
    """

    def __init__(self, app, public_routes: Optional[List[str]] = None):
        """
        Initialize authentication middleware.

        Args:
            app: FastAPI application
            public_routes: Paths (prefixes) that don't require auth
        """
        super().__init__(app)
        self.public_routes = public_routes or PUBLIC_ROUTES

    def is_public(self, path: str) -> bool:
        return path == "/" or any(path.startswith(route) for route in self.public_routes)

    async def dispatch(self, request: Request, call_next):
        """Process request with authentication check."""
        path = request.url.path

        if request.method != "OPTIONS" and not self.is_public(path):
            if not request.headers.get("authorization"):
                client = request.client.host if request.client else "unknown"
                logger.warning(f"Request without authentication headers: {request.method} {path} from {client}")

        return await call_next(request)
