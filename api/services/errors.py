"""
Dispatch error taxonomy.

Every business-rule failure raised by the services is a DispatchError carrying
a kind (what the caller may do about it), a stable code (which rule failed)
and context (which resource). Routers never translate these by hand; the
handler registered in main.py renders them as JSON.
"""

from typing import Any

VALIDATION = "Validation"
NOT_FOUND = "NotFound"
CONFLICT = "Conflict"
STORE_FAILURE = "StoreFailure"

HTTP_STATUS_BY_KIND = {
    VALIDATION: 422,
    NOT_FOUND: 404,
    CONFLICT: 409,
    STORE_FAILURE: 503,
}


class DispatchError(Exception):
    kind = CONFLICT
    code = "DispatchError"

    def __init__(self, detail: str, **context: Any):
        self.detail = detail
        self.context = context
        super().__init__(detail)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict:
        body = {"error": self.code, "kind": self.kind, "detail": self.detail}
        body.update({k: str(v) if v is not None else None for k, v in self.context.items()})
        return body


# ── Validation ─────────────────────────────────────────────

class ValidationFailed(DispatchError):
    kind = VALIDATION
    code = "ValidationError"


# ── NotFound ───────────────────────────────────────────────

class NotFound(DispatchError):
    kind = NOT_FOUND
    code = "NotFound"


class OrderNotFound(NotFound):
    code = "OrderNotFound"


class DriverNotFound(NotFound):
    code = "DriverNotFound"


class VehicleNotFound(NotFound):
    code = "VehicleNotFound"


class DeliveryNotFound(NotFound):
    code = "DeliveryNotFound"


class NotificationNotFound(NotFound):
    code = "NotificationNotFound"


# ── Conflict ───────────────────────────────────────────────

class OrderNotDispatchable(DispatchError):
    code = "OrderNotDispatchable"


class DriverCenterMismatch(DispatchError):
    code = "DriverCenterMismatch"


class VehicleCenterMismatch(DispatchError):
    code = "VehicleCenterMismatch"


class DriverIneligible(DispatchError):
    code = "DriverIneligible"


class VehicleIneligible(DispatchError):
    code = "VehicleIneligible"


class ResourceAlreadyAssigned(DispatchError):
    code = "ResourceAlreadyAssigned"


class InvalidTransition(DispatchError):
    code = "InvalidTransition"

    def __init__(self, detail: str, current_status: str | None = None, requested_status: str | None = None, **context: Any):
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(detail, current_status=current_status, requested_status=requested_status, **context)


class DuplicateResource(DispatchError):
    code = "DuplicateResource"


# ── StoreFailure ───────────────────────────────────────────

class StoreFailure(DispatchError):
    kind = STORE_FAILURE
    code = "StoreFailure"
