"""
Credential store.

Handles password hashing, verification, strength checking
and rehashing of stored credentials.
"""

import logging
import re
import secrets
from collections.abc import Iterable
from dataclasses import dataclass, field

import bcrypt

from account_auth.application.config import SecurityConfig
from account_auth.domain.exceptions import CurrentPasswordIncorrect, NoPasswordSet

logger = logging.getLogger(__name__)

# bcrypt only reads the first 72 bytes of a password
_BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """Bcrypt password hashing utility."""

    def __init__(self, rounds: int = 12) -> None:
        """Initialize with bcrypt rounds (cost factor)."""
        self.rounds = rounds

    def hash(self, password: str) -> str:
        """Hash a password using bcrypt."""
        salt = bcrypt.gensalt(rounds=self.rounds)
        hashed = bcrypt.hashpw(_encode(password), salt)
        return hashed.decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against its hash; malformed hashes never match."""
        try:
            return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
        except (ValueError, TypeError) as e:
            logger.error(f"Password verification failed: {e}")
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        """Check if password needs rehashing with updated rounds."""
        # $2b$<rounds>$<salt+hash>
        hash_parts = password_hash.split("$")
        if len(hash_parts) >= 3 and hash_parts[2].isdigit():
            return int(hash_parts[2]) < self.rounds
        return False


@dataclass
class PasswordStrength:
    """Outcome of a password policy check."""

    valid: bool
    reasons: list[str] = field(default_factory=list)


class PasswordValidator:
    """Password strength validator."""

    COMMON_PASSWORDS = {
        "password",
        "123456",
        "12345678",
        "password123",
        "password1",
        "admin",
        "letmein",
        "qwerty",
        "monkey",
        "dragon",
        "baseball",
        "iloveyou",
        "trustno1",
        "1234567",
        "welcome",
        "login",
        "admin123",
        "abc123",
    }

    # Words that may not appear anywhere in a password
    DENYLISTED_WORDS = ("password", "123456", "qwerty", "admin", "letmein", "welcome")

    SPECIAL_CHARACTERS = r"[!@#$%^&*()_+\-=\[\]{}|;:,.<>?/~`'\"\\]"

    def __init__(self, min_length: int = 8, max_length: int = 128) -> None:
        self.min_length = min_length
        self.max_length = max_length

    def validate(self, password: str, personal_info: Iterable[str | None] = ()) -> PasswordStrength:
        """
        Validate password strength.

        Args:
            password: Candidate password
            personal_info: Names and email local part that must not appear in it

        Returns:
            PasswordStrength with one reason per unmet rule
        """
        errors = []

        # Length check
        if len(password) < self.min_length:
            errors.append(f"Password must be at least {self.min_length} characters long")
        if len(password) > self.max_length:
            errors.append(f"Password must not exceed {self.max_length} characters")

        # Complexity checks
        if not re.search(r"[A-Z]", password):
            errors.append("Password must contain at least one uppercase letter")
        if not re.search(r"[a-z]", password):
            errors.append("Password must contain at least one lowercase letter")
        if not re.search(r"\d", password):
            errors.append("Password must contain at least one number")
        if not re.search(self.SPECIAL_CHARACTERS, password):
            errors.append("Password must contain at least one special character")
        if re.search(r"\s", password):
            errors.append("Password must not contain whitespace")

        # Common password check
        lowered = password.lower()
        if lowered in self.COMMON_PASSWORDS or any(
            word in lowered for word in self.DENYLISTED_WORDS
        ):
            errors.append("Password is too common")

        if self._contains_personal_info(lowered, personal_info):
            errors.append("Password must not contain personal information")

        return PasswordStrength(valid=not errors, reasons=errors)

    @staticmethod
    def _contains_personal_info(lowered: str, personal_info: Iterable[str | None]) -> bool:
        for value in personal_info:
            if not value:
                continue
            fragment = value.split("@", 1)[0].strip().lower()
            if len(fragment) >= 3 and fragment in lowered:
                return True
        return False


class CredentialStore:
    """
    Password credential store.

    Wraps hashing and policy checks. verify_or_dummy performs exactly one bcrypt
    comparison whether or not a hash exists, so unknown accounts, social-only
    accounts and wrong passwords take the same time to reject.
    """

    def __init__(self, config: SecurityConfig | None = None) -> None:
        config = config or SecurityConfig()
        self.hasher = PasswordHasher(rounds=config.bcrypt_rounds)
        self.validator = PasswordValidator(
            min_length=config.password_min_length, max_length=config.password_max_length
        )
        self._dummy_hash = self.hasher.hash(secrets.token_urlsafe(24))

    def hash(self, password: str) -> str:
        """Hash a password."""
        return self.hasher.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against its hash."""
        return self.hasher.verify(password, password_hash)

    def verify_or_dummy(self, password: str, password_hash: str | None) -> bool:
        """Verify against the stored hash, or burn one comparison when there is none."""
        if not password_hash:
            self.hasher.verify(password, self._dummy_hash)
            return False
        return self.hasher.verify(password, password_hash)

    def verify_current(self, password: str, password_hash: str | None) -> None:
        """
        Re-authenticate a signed-in account before a sensitive change.

        Raises:
            NoPasswordSet: If the account has no password
            CurrentPasswordIncorrect: If the password does not match
        """
        matched = self.verify_or_dummy(password, password_hash)
        if not password_hash:
            raise NoPasswordSet()
        if not matched:
            raise CurrentPasswordIncorrect()

    def validate_strength(
        self, password: str, personal_info: Iterable[str | None] = ()
    ) -> PasswordStrength:
        """Validate password strength."""
        return self.validator.validate(password, personal_info)

    def needs_rehash(self, password_hash: str) -> bool:
        """Check if password needs rehashing."""
        return self.hasher.needs_rehash(password_hash)
