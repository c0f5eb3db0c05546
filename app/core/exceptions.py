"""
Errores de dominio del sistema.

Los servicios lanzan estas excepciones y un único manejador registrado en la
aplicación las convierte en respuestas JSON con el código HTTP adecuado.
"""
from typing import Any, Dict, Optional


class GymDomainError(Exception):
    """Error base de las reglas de negocio."""
    status_code = 400
    code = "DOMAIN_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"detail": self.message, "code": self.code}
        payload.update(self.details)
        return payload


class ValidationError(GymDomainError):
    """Entrada mal formada o fuera de rango."""
    status_code = 422
    code = "VALIDATION_ERROR"


class NotFoundError(GymDomainError):
    """La entidad referenciada no existe."""
    status_code = 404
    code = "NOT_FOUND"


class CapacityExceededError(GymDomainError):
    """La sesión está completa; se ofrece la lista de espera."""
    status_code = 409
    code = "CAPACITY_EXCEEDED"

    def __init__(self, message: str, waitlist_entry_id: Optional[int] = None,
                 waitlist_position: Optional[int] = None):
        details = {}
        if waitlist_entry_id is not None:
            details = {
                "waitlist_entry_id": waitlist_entry_id,
                "waitlist_position": waitlist_position,
            }
        super().__init__(message, details)
        self.waitlist_entry_id = waitlist_entry_id
        self.waitlist_position = waitlist_position


class InsufficientCreditsError(GymDomainError):
    status_code = 402
    code = "INSUFFICIENT_CREDITS"


class DiscountCodeInvalidError(GymDomainError):
    """Código inactivo, fuera de vigencia o agotado."""
    status_code = 400
    code = "DISCOUNT_CODE_INVALID"

    INACTIVE = "INACTIVE"
    NOT_STARTED = "NOT_STARTED"
    EXPIRED = "EXPIRED"
    EXHAUSTED = "EXHAUSTED"

    def __init__(self, message: str, reason: str):
        super().__init__(message, {"reason": reason})
        self.reason = reason


class ConflictError(GymDomainError):
    status_code = 409
    code = "CONFLICT"


class StateTransitionError(GymDomainError):
    """El cambio de estado solicitado no es alcanzable desde el estado actual."""
    status_code = 409
    code = "INVALID_STATE_TRANSITION"

    def __init__(self, message: str, current: Any = None, requested: Any = None):
        super().__init__(message, {
            "from": getattr(current, "value", current),
            "to": getattr(requested, "value", requested),
        })
        self.current = current
        self.requested = requested


class AccessDeniedError(GymDomainError):
    status_code = 403
    code = "ACCESS_DENIED"
