# restaurant_ledger/services/exceptions.py
from typing import Any

from restaurant_ledger.db.record_store import ConditionFailedError, StoreError, StoreUnavailableError


class ServiceError(Exception):
    """Clase base para errores de la capa de servicio."""

    retriable: bool = False

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)

    def diagnostics(self) -> dict[str, Any]:
        """Extra fields rendered next to ``detail`` in error bodies."""
        return {}


class DomainValidationError(ServiceError):
    """Entrada de dominio inválida."""
    pass


class ResourceNotFoundError(ServiceError):
    """Recurso no encontrado."""
    pass


class ConflictError(ServiceError):
    """Conflicto de estado en la operación."""
    pass


class InsufficientPointsError(ServiceError):
    """Lanzada cuando el cliente no tiene puntos suficientes para canjear."""

    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient points: {available} available, {requested} requested")

    def diagnostics(self) -> dict[str, Any]:
        return {"available": self.available, "requested": self.requested}


class PartialRedemptionError(ServiceError):
    """Some batched ledger writes applied and others did not; safe to retry."""

    retriable = True

    def __init__(self, redemption_id: str, applied: list[str], failed: list[str]):
        self.redemption_id = redemption_id
        self.applied = applied
        self.failed = failed
        super().__init__("Redemption was only partially applied; retry with the same redemptionId")

    def diagnostics(self) -> dict[str, Any]:
        return {
            "retriable": True,
            "redemptionId": self.redemption_id,
            "applied": self.applied,
            "failed": self.failed,
        }


class UnavailableError(ServiceError):
    """El almacenamiento no respondió a tiempo o rechazó la operación."""

    retriable = True

    def diagnostics(self) -> dict[str, Any]:
        return {"retriable": True}


def from_store_error(exc: StoreError, action: str) -> ServiceError:
    """Traduce un error del almacenamiento a la taxonomía de la capa de servicio."""
    if isinstance(exc, ConditionFailedError):
        return ConflictError(f"Conflict while {action}")
    if isinstance(exc, StoreUnavailableError):
        return UnavailableError(f"Record store unavailable while {action}")
    return UnavailableError(f"Record store error while {action}")
