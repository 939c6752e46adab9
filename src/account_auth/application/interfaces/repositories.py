"""
Repository Interface Definitions

Defines the contracts that infrastructure repositories must implement.
Following the Repository pattern and clean architecture principles.

Both repositories must apply conditional updates atomically: the predicate is
evaluated and the mutation applied against the same stored state, so two
concurrent writers for one record serialize instead of overwriting each other.
"""

# Standard library imports
from abc import abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

# Local imports
from account_auth.domain.entities import Account, OtpChallenge
from account_auth.domain.value_objects import OtpPurpose, PhoneNumber

AccountPredicate = Callable[[Account], bool]
AccountMutation = Callable[[Account], None]
ChallengePredicate = Callable[[OtpChallenge], bool]
ChallengeMutation = Callable[[OtpChallenge], None]


class IAccountRepository(Protocol):
    """
    Account repository interface.

    Defines operations for persisting and retrieving Account entities.
    Returned accounts are detached copies; changing them has no effect until
    passed through atomic_update.
    """

    @abstractmethod
    def find_by_id(self, account_id: str) -> Account | None:
        """
        Retrieve an account by its ID.

        Raises:
            RepositoryError: If retrieval operation fails
        """
        ...

    @abstractmethod
    def find_by_email(self, email: str) -> Account | None:
        """
        Retrieve an account by its normalized primary email.

        Raises:
            RepositoryError: If retrieval operation fails
        """
        ...

    @abstractmethod
    def find_by_phone(self, phone: PhoneNumber) -> Account | None:
        """
        Retrieve an account by its primary phone number (compared in e164 form).

        Raises:
            RepositoryError: If retrieval operation fails
        """
        ...

    @abstractmethod
    def find_by_social_id(self, provider: str, social_id: str) -> Account | None:
        """
        Retrieve an account linked to a federated identity.

        Raises:
            RepositoryError: If retrieval operation fails
        """
        ...

    @abstractmethod
    def is_identifier_taken(
        self,
        email: str | None = None,
        phone: PhoneNumber | None = None,
        exclude_account_id: str | None = None,
    ) -> bool:
        """
        Check whether a primary email or phone belongs to an account.

        Args:
            email: Normalized email to look up
            phone: Phone number to look up
            exclude_account_id: Account allowed to hold the identifier

        Raises:
            RepositoryError: If retrieval operation fails
        """
        ...

    @abstractmethod
    def create(self, account: Account) -> Account:
        """
        Persist a new account.

        Returns:
            The stored account

        Raises:
            DuplicateEntityError: If email, phone or social identity is taken
            RepositoryError: If save operation fails
        """
        ...

    @abstractmethod
    def atomic_update(
        self, account_id: str, predicate: AccountPredicate, mutation: AccountMutation
    ) -> Account | None:
        """
        Apply a mutation if the predicate holds for the current stored state.

        Args:
            account_id: Account to update
            predicate: Checked against a fresh copy of the stored account
            mutation: Applied in place to that copy when the predicate holds

        Returns:
            The updated account, or None when the predicate rejected the update

        Raises:
            EntityNotFoundError: If the account does not exist
            DuplicateEntityError: If the mutation collides with a unique field
            ConcurrencyError: If the update could not be applied atomically
        """
        ...


class IOtpChallengeRepository(Protocol):
    """
    OTP challenge repository interface.

    Indexes challenges by (identifier, purpose), pointing at the latest one.
    """

    @abstractmethod
    def replace_active(self, challenge: OtpChallenge) -> OtpChallenge | None:
        """
        Store a new challenge and supersede any active one for the same key.

        Both steps happen atomically so concurrent generators cannot each
        believe they own the active challenge.

        Returns:
            The challenge that was superseded, if any

        Raises:
            RepositoryError: If save operation fails
        """
        ...

    @abstractmethod
    def get_latest(self, identifier: str, purpose: OtpPurpose) -> OtpChallenge | None:
        """
        Retrieve the most recent non-superseded challenge for a key.

        Raises:
            RepositoryError: If retrieval operation fails
        """
        ...

    @abstractmethod
    def find_superseded(
        self, identifier: str, purpose: OtpPurpose, code: str
    ) -> OtpChallenge | None:
        """
        Retrieve a superseded challenge for a key carrying the given code.

        Raises:
            RepositoryError: If retrieval operation fails
        """
        ...

    @abstractmethod
    def atomic_update(
        self, challenge_id: str, predicate: ChallengePredicate, mutation: ChallengeMutation
    ) -> OtpChallenge | None:
        """
        Apply a mutation if the predicate holds for the stored challenge.

        Returns:
            The updated challenge, or None when the predicate rejected it or the
            challenge no longer exists

        Raises:
            RepositoryError: If update operation fails
        """
        ...

    @abstractmethod
    def delete_expired(self, before: datetime) -> int:
        """
        Delete challenges no longer usable whose lifetime ended before the cutoff.

        Covers expired, consumed and superseded challenges. Idempotent.

        Returns:
            Number of challenges removed

        Raises:
            RepositoryError: If delete operation fails
        """
        ...
