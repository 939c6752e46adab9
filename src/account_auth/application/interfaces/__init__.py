"""Application interfaces (ports) implemented by the infrastructure layer."""

from .exceptions import (
    ConcurrencyError,
    DuplicateEntityError,
    EntityNotFoundError,
    RepositoryError,
)
from .notifications import DeliveryResult, INotificationSender, NotificationPayload
from .repositories import IAccountRepository, IOtpChallengeRepository
from .social import ISocialIdentityVerifier, SocialIdentity

__all__ = [
    "ConcurrencyError",
    "DeliveryResult",
    "DuplicateEntityError",
    "EntityNotFoundError",
    "IAccountRepository",
    "INotificationSender",
    "IOtpChallengeRepository",
    "ISocialIdentityVerifier",
    "NotificationPayload",
    "RepositoryError",
    "SocialIdentity",
]
