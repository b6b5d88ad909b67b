"""
campushub.api.errors — Domain error → HTTP response mapping
=============================================================

Every error body has the same shape: ``{"detail": str, "code": str}``.

==========================  ======
Error                       Status
==========================  ======
BusinessRuleRejection       409
Forbidden                   403
NotFound                    404
ValidationError             422
ConsistencyViolation        500
Database unavailable        503 (``Retry-After``)
==========================  ======
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, IntegrityError

from campushub.errors import (
    BusinessRuleRejection,
    CampusHubError,
    ConsistencyViolation,
    Forbidden,
    NotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = "5"


def status_for(exc: CampusHubError) -> int:
    if isinstance(exc, Forbidden):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, BusinessRuleRejection):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, NotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ValidationError):
        return 422
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _body(detail: str, code: str) -> dict:
    return {"detail": detail, "code": code}


async def domain_error_handler(request: Request, exc: CampusHubError) -> JSONResponse:
    status_code = status_for(exc)
    if isinstance(exc, ConsistencyViolation):
        logger.error("Consistency violation on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content=_body(exc.message, exc.code))


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=_body("Request conflicts with existing data", "conflict"),
    )


async def database_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    logger.exception("Database unavailable on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_body("Database unavailable, retry later", "store_unavailable"),
        headers={"Retry-After": RETRY_AFTER_SECONDS},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CampusHubError, domain_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(DBAPIError, database_error_handler)
