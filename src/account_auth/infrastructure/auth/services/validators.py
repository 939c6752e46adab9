"""
Input normalisation shared by the account use cases.

Emails are normalised with email-validator, phones are parsed into
PhoneNumber, and login-style identifiers are classified as one or the other.
"""

from datetime import UTC, date, datetime

from email_validator import EmailNotValidError, validate_email

from account_auth.domain.exceptions import InvalidInput
from account_auth.domain.value_objects import ContactChannel, PhoneNumber

MAX_AGE_YEARS = 120
MAX_NAME_LENGTH = 50


def normalize_email(email: str) -> str:
    """Validate and normalize email address."""
    try:
        valid = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise InvalidInput(f"Invalid email: {e!s}", field="email")
    return valid.normalized.lower()


def parse_phone(phone: str, country_code: str | None = None) -> PhoneNumber:
    """Parse a phone number, with or without a separate country code."""
    try:
        return PhoneNumber.parse(phone, country_code)
    except ValueError as e:
        raise InvalidInput(str(e), field="phone")


def classify_identifier(
    identifier: str, country_code: str | None = None
) -> tuple[ContactChannel, str]:
    """
    Work out whether an identifier is an email or a phone number.

    Returns:
        The contact channel and the normalized identifier (lowercase email
        or e164 phone)
    """
    value = (identifier or "").strip()
    if not value:
        raise InvalidInput("Email or phone number is required", field="identifier")
    if "@" in value:
        return ContactChannel.EMAIL, normalize_email(value)
    return ContactChannel.PHONE, parse_phone(value, country_code).e164


def age_on(date_of_birth: date, today: date) -> int:
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


def validate_date_of_birth(date_of_birth: date, minimum_age: int) -> None:
    """Reject birth dates that are in the future, too recent or implausibly old."""
    today = datetime.now(UTC).date()
    if date_of_birth > today:
        raise InvalidInput("Date of birth cannot be in the future", field="date_of_birth")
    age = age_on(date_of_birth, today)
    if age < minimum_age:
        raise InvalidInput(
            f"You must be at least {minimum_age} years old", field="date_of_birth"
        )
    if age > MAX_AGE_YEARS:
        raise InvalidInput("Please enter a valid date of birth", field="date_of_birth")


def clean_name(value: str, field: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise InvalidInput(f"{field.replace('_', ' ').capitalize()} cannot be empty", field=field)
    if len(cleaned) > MAX_NAME_LENGTH:
        raise InvalidInput(
            f"{field.replace('_', ' ').capitalize()} must be at most {MAX_NAME_LENGTH} characters",
            field=field,
        )
    return cleaned
