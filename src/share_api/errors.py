"""Exception taxonomy for the share service and the handlers that translate it to HTTP responses."""

import logging

import pydantic
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ShareError(Exception):
    """Base class for every error raised by storage, registry and gateway."""


class StorageWriteError(ShareError):
    """Disk I/O failed while saving or removing a file."""

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} failed: {reason}")


class FileNotFound(ShareError):
    """The storage key does not name a stored file."""

    def __init__(self, storage_key: str):
        self.storage_key = storage_key
        super().__init__(f"File '{storage_key}' not found")


class InvalidKey(ShareError):
    """The storage key is malformed or tries to escape the upload directory."""

    def __init__(self, storage_key: str):
        self.storage_key = storage_key
        super().__init__(f"Invalid storage key: {storage_key!r}")


class EnumerationError(ShareError):
    """The upload directory could not be listed."""


async def handle_invalid_key(request: Request, exc: InvalidKey) -> JSONResponse:
    logger.warning("Rejected request for %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "invalid key"})


async def handle_file_not_found(request: Request, exc: FileNotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "not found"})


async def handle_storage_write_error(request: Request, exc: StorageWriteError) -> JSONResponse:
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": f"{exc.operation} failed"},
    )


async def handle_request_validation_errors(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed requests (e.g. an upload without a file field) as a 400."""
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}" for error in errors
    )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message or "bad request"})


async def handle_pydantic_validation_errors(request: Request, exc: pydantic.ValidationError) -> JSONResponse:
    errors = exc.errors()
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "invalid response", "detail": [{"msg": error["msg"]} for error in errors]},
    )


async def handle_broad_exceptions(request: Request, call_next):
    """Handle any exception that propagates out of a route handler."""
    try:
        return await call_next(request)
    except Exception as err:
        logger.exception(err)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "internal server error"},
        )
