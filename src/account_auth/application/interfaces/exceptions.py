"""
Errors raised by account and OTP challenge repositories.

Storage backends map their driver errors onto these so the auth services can
tell a missing account or a uniqueness clash apart from an outage.
"""

from typing import Any


class RepositoryError(Exception):
    """Storage failed; `cause` keeps the driver error when there is one."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class EntityNotFoundError(RepositoryError):
    """The account or challenge id passed to an update no longer exists."""

    def __init__(self, entity_type: str, identifier: str) -> None:
        super().__init__(f"No {entity_type} stored under '{identifier}'")
        self.entity_type = entity_type
        self.identifier = identifier


class DuplicateEntityError(RepositoryError):
    """A write collided with a unique email, phone or social identity."""

    def __init__(self, entity_type: str, field: str, value: Any) -> None:
        super().__init__(f"{entity_type} {field} '{value}' is already taken")
        self.entity_type = entity_type
        self.field = field
        self.value = value


class ConcurrencyError(RepositoryError):
    """A compare-and-set write lost to other writers on every retry."""

    def __init__(self, entity_type: str, identifier: str) -> None:
        super().__init__(f"{entity_type} '{identifier}' kept changing under concurrent writers")
        self.entity_type = entity_type
        self.identifier = identifier
