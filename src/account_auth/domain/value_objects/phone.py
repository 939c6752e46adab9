"""Phone number value object for account contact data."""

# Standard library imports
import re
from typing import ClassVar


class PhoneNumber:
    """Immutable phone number split into country code and subscriber digits."""

    _COUNTRY_CODE: ClassVar[re.Pattern[str]] = re.compile(r"^\+\d{1,4}$")
    _FULL_NUMBER: ClassVar[re.Pattern[str]] = re.compile(r"^(\+\d{1,4})(\d{4,14})$")
    _SEPARATORS: ClassVar[re.Pattern[str]] = re.compile(r"[\s\-().]")

    def __init__(self, country_code: str, number: str) -> None:
        """Initialize PhoneNumber with validation.

        Args:
            country_code: Country calling code including the leading '+'
            number: Subscriber number, separators allowed

        Raises:
            ValueError: If either part is malformed
        """
        country_code = (country_code or "").strip()
        if country_code and not country_code.startswith("+"):
            country_code = f"+{country_code}"
        if not self._COUNTRY_CODE.match(country_code):
            raise ValueError(f"Invalid country code: {country_code!r}")

        digits = self._SEPARATORS.sub("", number or "")
        if not digits.isdigit() or not 4 <= len(digits) <= 14:
            raise ValueError("Phone number must contain 4 to 14 digits")

        self._country_code = country_code
        self._number = digits

    @classmethod
    def parse(cls, value: str, country_code: str | None = None) -> "PhoneNumber":
        """
        Parse user input into a phone number.

        Accepts either a separate country code plus local digits, or a single
        '+CCNNNN' string when no country code is given.
        """
        cleaned = cls._SEPARATORS.sub("", (value or "").strip())
        if country_code:
            return cls(country_code, cleaned)

        match = cls._FULL_NUMBER.match(cleaned)
        if not match:
            raise ValueError("Phone number must include a country code, e.g. +14155550100")
        # The split is only a guess without a numbering plan; equality uses e164.
        return cls(match.group(1), match.group(2))

    @property
    def country_code(self) -> str:
        return self._country_code

    @property
    def number(self) -> str:
        return self._number

    @property
    def e164(self) -> str:
        """Identifier form used for OTP keys and delivery."""
        return f"{self._country_code}{self._number}"

    def matches(self, country_code: str | None, number: str | None) -> bool:
        """Check whether stored country code and number refer to this phone."""
        if not country_code or not number:
            return False
        try:
            return PhoneNumber(country_code, number) == self
        except ValueError:
            return False

    def masked(self) -> str:
        """Masked form safe for responses and logs."""
        return f"{self._country_code}{'*' * (len(self._number) - 2)}{self._number[-2:]}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PhoneNumber):
            return False
        return self.e164 == other.e164

    def __hash__(self) -> int:
        return hash(self.e164)

    def __str__(self) -> str:
        return self.e164

    def __repr__(self) -> str:
        return f"PhoneNumber({self._country_code!r}, {self._number!r})"


def mask_email(email: str) -> str:
    """Mask the local part of an email address, keeping the first character."""
    local, _, domain = email.partition("@")
    if not domain:
        return "***"
    return f"{local[:1]}***@{domain}"


def mask_identifier(identifier: str) -> str:
    """Mask an email address or e164 phone number for responses and logs."""
    if "@" in identifier:
        return mask_email(identifier)
    if len(identifier) <= 5:
        return "***"
    return f"{identifier[:3]}***{identifier[-2:]}"
