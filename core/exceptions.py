"""Custom exception classes for SpendAI."""


class SpendAIError(Exception):
    """Base exception for SpendAI."""
    pass


class NotFoundError(SpendAIError):
    """Requested record does not exist or belongs to another user."""
    pass


class ValidationError(SpendAIError):
    """Request data failed a business rule."""
    pass
