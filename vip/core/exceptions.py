"""
Global Exception Handling

Provides the service exception hierarchy and the FastAPI handlers that
turn it into structured error responses.
"""

import traceback
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from vip.core.logging import get_logger, request_id_var

logger = get_logger(__name__)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# Custom Exceptions
# =============================================================================

class VipBaseException(Exception):
    """Base exception for the variant service."""

    def __init__(
        self,
        message: str,
        code: int = 500,
        stage: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.stage = stage
        self.details = details or {}
        super().__init__(self.message)


class StorageError(VipBaseException):
    """Raised when an object store operation fails."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("code", 502)
        kwargs.setdefault("stage", "storage")
        super().__init__(message, **kwargs)


class ObjectNotFoundError(StorageError):
    """Raised when the requested object does not exist in the store."""

    def __init__(self, bucket: str, name: str, **kwargs):
        super().__init__(f"Object '{bucket}/{name}' not found", code=404, **kwargs)
        self.details["bucket"] = bucket
        self.details["name"] = name


class ImageDecodeError(VipBaseException):
    """Raised when the original bytes cannot be decoded as an image."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code=422, stage="decode", **kwargs)


class UnsupportedFormatError(VipBaseException):
    """Raised when a decoded image has no output encoder."""

    def __init__(self, image_format: str, **kwargs):
        super().__init__(
            f"Cannot encode images of format '{image_format}'",
            code=415,
            stage="encode",
            **kwargs
        )
        self.details["format"] = image_format


class TransformError(VipBaseException):
    """Raised when resize or crop fails on a decoded image."""

    def __init__(self, message: str, stage: str = "transform", **kwargs):
        super().__init__(message, code=500, stage=stage, **kwargs)


# =============================================================================
# Exception Handlers
# =============================================================================

def register_exception_handlers(app: FastAPI):
    """Register custom exception handlers with FastAPI app."""

    @app.exception_handler(VipBaseException)
    async def vip_exception_handler(request: Request, exc: VipBaseException):
        log = logger.warning if exc.code < 500 else logger.error
        log(
            "vip_exception",
            error=exc.message,
            error_type=type(exc).__name__,
            code=exc.code,
            stage=exc.stage,
            details=exc.details,
            path=str(request.url.path)
        )

        return JSONResponse(
            status_code=exc.code,
            content={
                "error": exc.message,
                "request_id": request_id_var.get(),
                "code": exc.code,
                "stage": exc.stage,
                "details": exc.details,
                "timestamp": _utc_timestamp()
            }
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
            traceback=traceback.format_exc()
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "request_id": request_id_var.get(),
                "code": 500,
                "timestamp": _utc_timestamp()
            }
        )
