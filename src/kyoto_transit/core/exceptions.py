"""Custom exceptions for Kyoto transit search."""

from pydantic import ValidationError as PydanticValidationError


class TransitSearchError(Exception):
    """Base exception for transit search errors."""

    pass


class ValidationError(TransitSearchError):
    """Raised when request validation fails."""

    @classmethod
    def from_pydantic(cls, error: PydanticValidationError) -> "ValidationError":
        """Wrap a pydantic error, keeping only its first message."""
        details = error.errors()
        if not details:
            return cls(str(error))
        first = details[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid value")
        return cls(f"{location}: {message}" if location else message)


class ConfigurationError(TransitSearchError):
    """Raised when reference data or settings are missing or unusable."""

    pass


class StopNotFoundError(TransitSearchError):
    """Raised when a stop or place name cannot be found."""

    pass


class RouteNotFoundError(TransitSearchError):
    """Raised when no route can be found between two places."""

    pass


class ScrapingError(TransitSearchError):
    """Raised when the upstream site returns an unusable response."""

    pass


class NetworkError(TransitSearchError):
    """Raised when there's a network-related error."""

    pass
