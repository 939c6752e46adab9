"""Repository implementations: in-memory for tests and development, SQLAlchemy for deployments."""

from .memory import InMemoryAccountRepository, InMemoryOtpChallengeRepository
from .models import AccountModel, Base, OtpChallengeModel
from .sqlalchemy_repositories import (
    SQLAlchemyAccountRepository,
    SQLAlchemyOtpChallengeRepository,
)

__all__ = [
    "AccountModel",
    "Base",
    "InMemoryAccountRepository",
    "InMemoryOtpChallengeRepository",
    "OtpChallengeModel",
    "SQLAlchemyAccountRepository",
    "SQLAlchemyOtpChallengeRepository",
]
