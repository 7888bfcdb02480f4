from typing import Sequence

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from logging_config import get_logger

logger = get_logger(__name__)


class GatewayError(Exception):
    status_code = 500
    error = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


class OriginDenied(GatewayError):
    status_code = 403
    error = "CORS Error"

    def __init__(self, origin: str, allowed_origins: Sequence[str]):
        super().__init__("Origin not allowed")
        self.origin = origin
        self.allowed_origins = list(allowed_origins)

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["yourOrigin"] = self.origin
        body["allowedOrigins"] = self.allowed_origins
        return body


class PayloadTooLarge(GatewayError):
    status_code = 413
    error = "Payload Too Large"

    def __init__(self, limit: int):
        super().__init__(f"Request body exceeds the {limit} byte limit")
        self.limit = limit

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["limit"] = self.limit
        return body


class DomainError(GatewayError):
    """Raised by handler groups to answer with their own status and message."""

    def __init__(self, status_code: int, error: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.error = error


def error_response(exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.error}: {exc.message}")
    return error_response(exc)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error for {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error", "message": "An unexpected error occurred"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
