"""Exception hierarchy for the rentledger engine."""

from typing import Any


class RentLedgerError(Exception):
    """Base exception for rentledger errors."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(RentLedgerError):
    """Malformed input such as an inverted date range or a non-string id."""

    pass


class ConsistencyError(RentLedgerError):
    """An aggregation produced figures that violate an accounting identity."""

    pass


class ExternalServiceError(RentLedgerError):
    """A delegate (filing gateway, renderer, artifact store) failed."""

    def __init__(
        self,
        service: str,
        message: str = "External service error",
        status_code: int | None = None,
        details: Any = None,
    ):
        super().__init__(f"{service}: {message}", details=details)
        self.service = service
        self.status_code = status_code


class NotFoundError(RentLedgerError):
    """A referenced entity does not exist."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} not found: {identifier}")
        self.resource = resource
        self.identifier = identifier
