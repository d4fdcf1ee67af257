"""Centralized exception hierarchy for the events service.

Provides a structured exception hierarchy for consistent error handling
across the application. All exceptions inherit from PolymarketError.
"""


class PolymarketError(Exception):
    """Base exception for all events service errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class APIError(PolymarketError):
    """Error from external API call."""

    def __init__(self, message: str, status_code: int = None, response: str = None):
        super().__init__(message, {"status_code": status_code})
        self.status_code = status_code
        self.response = response


class AuthenticationError(APIError):
    """Authentication failed (HTTP 401/403)."""

    def __init__(self, message: str = "Unauthenticated."):
        super().__init__(message, status_code=401)


class PriceFetchAborted(PolymarketError):
    """The surrounding request was cancelled while prices were being fetched.

    Not an error condition: the price oracle stops issuing requests and
    falls back to default quotes for whatever is still unpriced.
    """

    def __init__(self, message: str = "Price fetch aborted"):
        super().__init__(message)


class DataValidationError(PolymarketError):
    """Invalid data from API, database or request parameters."""

    def __init__(self, message: str, field: str = None, value=None):
        super().__init__(message, {"field": field, "value": value})
        self.field = field
        self.value = value


class InvalidFilterError(DataValidationError):
    """A list filter value is outside the accepted set."""


class ConfigurationError(PolymarketError):
    """Invalid or missing configuration."""

    def __init__(self, message: str, setting: str = None):
        super().__init__(message, {"setting": setting})
        self.setting = setting


class PersistenceError(PolymarketError):
    """The database rejected an upsert batch under the fail-fast policy."""

    def __init__(self, message: str, entity: str = None, rows: int = None):
        super().__init__(message, {"entity": entity, "rows": rows})
        self.entity = entity
        self.rows = rows


class NoEventsFoundError(PolymarketError):
    """A sync run completed without receiving a single upstream event."""

    def __init__(self, message: str = "Failed to fetch polymarket events or no events found"):
        super().__init__(message)
