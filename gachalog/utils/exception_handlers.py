from typing import cast

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from gachalog.core.exceptions import GachaSourceError, StoreConflictError
from gachalog.schemas.common import APIResponse


def _error_response(status_code: int, message: str, data: object = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=APIResponse(status="error", message=message, data=data).model_dump(),
    )


def http_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    exc = cast(HTTPException, exc)
    return _error_response(exc.status_code, exc.detail)


def validation_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    exc = cast(RequestValidationError, exc)
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        [{"loc": err["loc"], "msg": err["msg"], "type": err["type"]} for err in exc.errors()],
    )


def gacha_source_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    exc = cast(GachaSourceError, exc)
    logger.warning(f"Record service error (status={exc.status_code}, code={exc.code}): {exc}")
    return _error_response(
        status.HTTP_502_BAD_GATEWAY,
        exc.message,
        {"upstreamStatus": exc.status_code, "upstreamCode": exc.code},
    )


def store_conflict_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    return _error_response(status.HTTP_409_CONFLICT, str(exc))


def general_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error: {exc}")
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


EXCEPTION_HANDLERS = {
    HTTPException: http_exception_handler,
    RequestValidationError: validation_exception_handler,
    GachaSourceError: gacha_source_exception_handler,
    StoreConflictError: store_conflict_exception_handler,
    Exception: general_exception_handler,
}
