"""
Domain-specific exception hierarchy for the appointment slot search.
"""


class QuickFindError(Exception):
    """Base class for all application-level errors."""


class SearchValidationError(QuickFindError):
    """Raised when a search request is rejected before any search work starts."""


class DataUnavailableError(QuickFindError):
    """Raised when practice data cannot be fetched from a collaborator."""
