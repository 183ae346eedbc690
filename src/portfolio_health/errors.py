"""Custom exception types for the portfolio health engine."""


class PortfolioHealthError(Exception):
    """Base exception for all recoverable portfolio health errors."""


class ConfigurationError(PortfolioHealthError):
    """Raised when runtime configuration values are missing or invalid."""


class AuthenticationError(PortfolioHealthError):
    """Raised when credentials required by an external integration are unavailable."""


class ApiError(PortfolioHealthError):
    """Raised when an upstream API request fails or returns an unexpected response."""


class NotFoundError(PortfolioHealthError):
    """Raised when a referenced project, metrics record, or suggestion does not exist."""


class DataValidationError(PortfolioHealthError):
    """Raised when stored or incoming data does not meet expected constraints."""


class InvalidTransitionError(DataValidationError):
    """Raised when a suggestion status change is not an allowed transition."""
