"""Fencehook exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from FencehookError for easy catching.

Delivery failures (non-2xx responses, timeouts, connection errors) are
recorded on the delivery record and never raised to the event producer.
StorageError is the one class that propagates out of dispatch.
"""

from __future__ import annotations


class FencehookError(Exception):
    """Base exception for all Fencehook errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "fencehook_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(FencehookError):
    """Invalid input provided.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(FencehookError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "webhook", "delivery").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(FencehookError):
    """Storage operation failed.

    Raised when a delivery record or webhook cannot be read or persisted.
    Losing a record silently would break at-least-once delivery, so this
    propagates to the caller of dispatch.
    """

    code: str = "storage_error"


class ConfigurationError(FencehookError):
    """Configuration error.

    Raised when required configuration is missing or invalid.
    """

    code: str = "configuration_error"


class TransportError(FencehookError):
    """Outbound HTTP call failed before a response was received.

    Attributes:
        timed_out: True if the call exceeded its timeout.
    """

    code: str = "transport_error"

    def __init__(self, message: str, timed_out: bool = False) -> None:
        self.timed_out = timed_out
        super().__init__(message)


class DeliveryStateError(FencehookError):
    """Illegal delivery record transition.

    Raised when something tries to mutate a record that is already
    terminal (success or failed).

    Attributes:
        delivery_id: ID of the record.
        status: Its current status.
    """

    code: str = "delivery_state_error"

    def __init__(self, delivery_id: str, status: str) -> None:
        self.delivery_id = delivery_id
        self.status = status
        super().__init__(f"delivery {delivery_id} is {status} and cannot change")


class ClaimLostError(FencehookError):
    """A delivery record's claim was taken over by another holder.

    Raised when a write carries a lease that no longer matches the stored
    one, which happens once the lease expired and another cycle claimed
    the record.

    Attributes:
        delivery_id: ID of the record.
    """

    code: str = "claim_lost"

    def __init__(self, delivery_id: str) -> None:
        self.delivery_id = delivery_id
        super().__init__(f"claim on delivery {delivery_id} is held by another worker")
