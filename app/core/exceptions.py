from typing import List, Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFoundError(ServiceError):
    """Referenced school year, course, subject, student or period does not exist."""

    def __init__(self, entity: str, entity_id: Optional[object] = None, message: Optional[str] = None) -> None:
        if message is None:
            message = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(message, status.HTTP_404_NOT_FOUND)
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class ValidationFailure(ServiceError):
    """Malformed input. `errors` holds one message per offending item (e.g. per decision)."""

    def __init__(self, message: str, errors: Optional[List[object]] = None) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)
        self.errors = errors or []


class TransactionFailure(ServiceError):
    """A unit of work was aborted and rolled back. Retryable failures map to 503."""

    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(
            message,
            status.HTTP_503_SERVICE_UNAVAILABLE if retryable else status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        self.retryable = retryable
