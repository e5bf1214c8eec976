"""Custom exception types for consistent error handling."""


class StoreUnavailableError(Exception):
    """Raised when Firestore queries fail or are unavailable."""


class InvalidInputError(Exception):
    """Raised when request input or filter validation fails."""


class NotFoundError(Exception):
    """Raised when a referenced user or request does not exist."""


class ConflictError(Exception):
    """Raised when a write would violate a uniqueness rule."""
