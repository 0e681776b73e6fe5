"""Error taxonomy for the matching engine."""

from typing import Optional


class VectorNodeError(Exception):
    """Base class for every error raised by the engine."""


class NotFoundError(VectorNodeError):
    """Referenced shipment, bid or carrier does not exist or is not visible to the caller."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidStateError(VectorNodeError):
    """A transition was attempted from a state that does not allow it."""

    def __init__(self, message: str, current_state: Optional[str] = None):
        self.current_state = current_state
        if current_state is not None:
            message = f"{message} (current state: {current_state})"
        super().__init__(message)


class ValidationError(VectorNodeError):
    """Malformed input, e.g. a negative bid price."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)
