"""Portal exceptions and the handlers that turn them into JSON responses."""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging import get_logger

logger = get_logger(__name__)


class PortalError(Exception):
    """Base exception carrying an HTTP status code."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(PortalError):
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(PortalError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(PortalError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(PortalError):
    status_code = status.HTTP_404_NOT_FOUND


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    """Last line of defence: log anything unhandled and answer a generic 500."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception", path=request.url.path,
                         error_type=type(e).__name__, error=str(e), exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Internal server error"}
            )


def register_error_handlers(app: FastAPI) -> None:
    """Register exception handlers that render ``{"error": message}``."""

    @app.exception_handler(PortalError)
    async def handle_portal_error(request: Request, exc: PortalError):
        if exc.status_code >= 500:
            logger.error("Request failed", path=request.url.path, error=exc.message)
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(_request: Request, exc: StarletteHTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code,
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else "Invalid request"
        return JSONResponse({"error": message}, status_code=status.HTTP_400_BAD_REQUEST)
