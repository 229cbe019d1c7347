from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from restaurant_ledger.core.logging import get_logger
from restaurant_ledger.services.exceptions import (
    ConflictError,
    DomainValidationError,
    InsufficientPointsError,
    PartialRedemptionError,
    ResourceNotFoundError,
    ServiceError,
    UnavailableError,
)

logger = get_logger("restaurant_ledger.errors")


def _body(exc: ServiceError) -> dict:
    return {"detail": exc.detail, **exc.diagnostics()}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        # Campos faltantes o mal formados: 400, como el resto de errores de entrada.
        errors = [
            {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"detail": "Invalid request", "errors": errors})

    @app.exception_handler(ResourceNotFoundError)
    async def handle_not_found(_: Request, exc: ResourceNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content=_body(exc))

    @app.exception_handler(DomainValidationError)
    async def handle_validation(_: Request, exc: DomainValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_body(exc))

    @app.exception_handler(ConflictError)
    async def handle_conflict(_: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content=_body(exc))

    @app.exception_handler(InsufficientPointsError)
    async def handle_insufficient_points(_: Request, exc: InsufficientPointsError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_body(exc))

    @app.exception_handler(PartialRedemptionError)
    async def handle_partial_redemption(request: Request, exc: PartialRedemptionError) -> JSONResponse:
        logger.error(
            "Partial redemption reported to client",
            extra={"path": request.url.path, "redemption_id": exc.redemption_id},
        )
        return JSONResponse(status_code=500, content=_body(exc))

    @app.exception_handler(UnavailableError)
    async def handle_unavailable(request: Request, exc: UnavailableError) -> JSONResponse:
        logger.error("Record store unavailable", extra={"path": request.url.path, "detail": exc.detail})
        return JSONResponse(status_code=500, content=_body(exc))

    @app.exception_handler(ServiceError)
    async def handle_service_error(_: Request, exc: ServiceError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_body(exc))
