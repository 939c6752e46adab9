"""
In-memory repository implementations.

Used in development and tests. A single re-entrant lock per repository
serializes every read-check-write, which makes predicate updates atomic
within one process. Entities are copied on the way in and out so callers
never hold references into the store.
"""

# Standard library imports
import copy
import logging
import threading
from datetime import UTC, datetime

# Local imports
from account_auth.application.interfaces import (
    DuplicateEntityError,
    EntityNotFoundError,
)
from account_auth.application.interfaces.repositories import (
    AccountMutation,
    AccountPredicate,
    ChallengeMutation,
    ChallengePredicate,
)
from account_auth.domain.entities import Account, OtpChallenge
from account_auth.domain.value_objects import OtpPurpose, PhoneNumber

logger = logging.getLogger(__name__)


class InMemoryAccountRepository:
    """In-memory implementation of IAccountRepository."""

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self._lock = threading.RLock()

    def find_by_id(self, account_id: str) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            return copy.deepcopy(account) if account else None

    def find_by_email(self, email: str) -> Account | None:
        with self._lock:
            for account in self._accounts.values():
                if account.email == email:
                    return copy.deepcopy(account)
            return None

    def find_by_phone(self, phone: PhoneNumber) -> Account | None:
        with self._lock:
            for account in self._accounts.values():
                if account.phone_e164 == phone.e164:
                    return copy.deepcopy(account)
            return None

    def find_by_social_id(self, provider: str, social_id: str) -> Account | None:
        with self._lock:
            for account in self._accounts.values():
                if account.social_provider == provider and account.social_id == social_id:
                    return copy.deepcopy(account)
            return None

    def is_identifier_taken(
        self,
        email: str | None = None,
        phone: PhoneNumber | None = None,
        exclude_account_id: str | None = None,
    ) -> bool:
        with self._lock:
            for account in self._accounts.values():
                if account.id == exclude_account_id:
                    continue
                if email and account.email == email:
                    return True
                if phone and account.phone_e164 == phone.e164:
                    return True
            return False

    def create(self, account: Account) -> Account:
        with self._lock:
            if account.id in self._accounts:
                raise DuplicateEntityError("Account", "id", account.id)
            self._check_unique(account)
            self._accounts[account.id] = copy.deepcopy(account)
            logger.debug(f"Created account {account.id}")
            return copy.deepcopy(account)

    def atomic_update(
        self, account_id: str, predicate: AccountPredicate, mutation: AccountMutation
    ) -> Account | None:
        with self._lock:
            stored = self._accounts.get(account_id)
            if stored is None:
                raise EntityNotFoundError("Account", account_id)

            working = copy.deepcopy(stored)
            if not predicate(working):
                return None

            mutation(working)
            self._check_unique(working)
            working.version = stored.version + 1
            self._accounts[account_id] = working
            return copy.deepcopy(working)

    def _check_unique(self, candidate: Account) -> None:
        phone = candidate.phone_e164
        for other in self._accounts.values():
            if other.id == candidate.id:
                continue
            if candidate.email and other.email == candidate.email:
                raise DuplicateEntityError("Account", "email", candidate.email)
            if phone and other.phone_e164 == phone:
                raise DuplicateEntityError("Account", "phone", phone)
            if (
                candidate.social_id
                and other.social_provider == candidate.social_provider
                and other.social_id == candidate.social_id
            ):
                raise DuplicateEntityError("Account", "social_id", candidate.social_id)


class InMemoryOtpChallengeRepository:
    """In-memory implementation of IOtpChallengeRepository."""

    def __init__(self) -> None:
        self._challenges: dict[str, OtpChallenge] = {}
        # (identifier, purpose) -> id of the latest challenge
        self._latest: dict[tuple[str, OtpPurpose], str] = {}
        self._lock = threading.RLock()

    def replace_active(self, challenge: OtpChallenge) -> OtpChallenge | None:
        with self._lock:
            superseded = None
            previous_id = self._latest.get(challenge.key)
            previous = self._challenges.get(previous_id) if previous_id else None
            if previous is not None and previous.superseded_at is None:
                previous.superseded_at = datetime.now(UTC)
                superseded = copy.deepcopy(previous)

            self._challenges[challenge.id] = copy.deepcopy(challenge)
            self._latest[challenge.key] = challenge.id
            return superseded

    def get_latest(self, identifier: str, purpose: OtpPurpose) -> OtpChallenge | None:
        with self._lock:
            challenge_id = self._latest.get((identifier, purpose))
            challenge = self._challenges.get(challenge_id) if challenge_id else None
            if challenge is None or challenge.superseded_at is not None:
                return None
            return copy.deepcopy(challenge)

    def find_superseded(
        self, identifier: str, purpose: OtpPurpose, code: str
    ) -> OtpChallenge | None:
        with self._lock:
            for challenge in self._challenges.values():
                if (
                    challenge.key == (identifier, purpose)
                    and challenge.superseded_at is not None
                    and challenge.code == code
                ):
                    return copy.deepcopy(challenge)
            return None

    def atomic_update(
        self, challenge_id: str, predicate: ChallengePredicate, mutation: ChallengeMutation
    ) -> OtpChallenge | None:
        with self._lock:
            stored = self._challenges.get(challenge_id)
            if stored is None:
                return None

            working = copy.deepcopy(stored)
            if not predicate(working):
                return None

            mutation(working)
            self._challenges[challenge_id] = working
            return copy.deepcopy(working)

    def delete_expired(self, before: datetime) -> int:
        with self._lock:
            stale = [
                challenge_id
                for challenge_id, challenge in self._challenges.items()
                if _is_stale(challenge, before)
            ]
            for challenge_id in stale:
                challenge = self._challenges.pop(challenge_id)
                if self._latest.get(challenge.key) == challenge_id:
                    del self._latest[challenge.key]
            return len(stale)


def _is_stale(challenge: OtpChallenge, before: datetime) -> bool:
    """A challenge is stale once its usable life ended before the cutoff."""
    if challenge.expires_at < before:
        return True
    if challenge.consumed_at is not None and challenge.consumed_at < before:
        return True
    return challenge.superseded_at is not None and challenge.superseded_at < before
