"""Common exceptions for domain, repository and integration layers."""
from __future__ import annotations


class GeoOrderServiceError(Exception):
    """Base error for the service layer."""


class ValidationError(GeoOrderServiceError):
    """Raised when caller input is malformed or incomplete."""


class RepositoryError(GeoOrderServiceError):
    """Raised when repository operations fail."""


class NotFoundError(RepositoryError):
    """Raised when requested entity is missing or owned by someone else."""


class ConflictError(GeoOrderServiceError):
    """Raised when an operation conflicts with the current resource state."""


class InvalidStatusTransitionError(ConflictError):
    """Raised when an entity attempts an unsupported status change."""


class ProviderError(GeoOrderServiceError):
    """Raised when the remote geospatial provider call fails."""

    def __init__(self, message: str, *, status: int | None = None):
        super().__init__(message)
        self.status = status


class ProviderUnavailableError(ProviderError):
    """Timeout, network failure or 5xx from the provider."""


class ProviderRequestError(ProviderError):
    """The provider rejected the request (4xx) or answered with an unusable body."""


class DeliveryFailedError(GeoOrderServiceError):
    """Raised when a webhook could not be delivered."""

    def __init__(self, message: str, *, delivery_id=None, attempts: int = 0):
        super().__init__(message)
        self.delivery_id = delivery_id
        self.attempts = attempts


class SubscriptionLimitError(GeoOrderServiceError):
    """Raised when the event broadcaster has no room for more listeners."""
