"""Global pytest configuration and fixtures."""

# Standard library imports
from collections.abc import Callable

# Third-party imports
import pytest

# Local imports
from account_auth.application.config import (
    ApplicationConfig,
    DatabaseConfig,
    Environment,
    OtpConfig,
    SecurityConfig,
    TokenConfig,
)
from account_auth.domain.entities import Account
from account_auth.domain.value_objects import (
    AuthenticatedPrincipal,
    AuthType,
    VerificationStatus,
)
from account_auth.infrastructure.auth.jwt_signer import JWTSigner
from account_auth.infrastructure.auth.services import CredentialStore, OtpEngine
from account_auth.infrastructure.auth.token_service import TokenService
from account_auth.infrastructure.bootstrap import MEMORY_DATABASE_URL, build_account_service
from account_auth.infrastructure.notifications import ConsoleNotificationSender
from account_auth.infrastructure.persistence import (
    InMemoryAccountRepository,
    InMemoryOtpChallengeRepository,
)
from tests.helpers import TEST_PASSWORD


@pytest.fixture
def security_config() -> SecurityConfig:
    """Security settings with the cheapest bcrypt cost."""
    return SecurityConfig(bcrypt_rounds=4)


@pytest.fixture
def token_config() -> TokenConfig:
    return TokenConfig(secret="unit-test-signing-secret-0123456789abcdef")


@pytest.fixture
def otp_config() -> OtpConfig:
    return OtpConfig()


@pytest.fixture
def app_config(security_config, token_config, otp_config) -> ApplicationConfig:
    """Application configuration wired for in-process tests."""
    return ApplicationConfig(
        environment=Environment.TESTING,
        security=security_config,
        tokens=token_config,
        otp=otp_config,
        database=DatabaseConfig(url=MEMORY_DATABASE_URL),
    )


@pytest.fixture
def accounts() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def challenges() -> InMemoryOtpChallengeRepository:
    return InMemoryOtpChallengeRepository()


@pytest.fixture
def sender() -> ConsoleNotificationSender:
    """Mock sender; delivered codes are read back from its outbox."""
    return ConsoleNotificationSender()


@pytest.fixture
def credentials(security_config) -> CredentialStore:
    return CredentialStore(security_config)


@pytest.fixture
def signer(token_config) -> JWTSigner:
    return JWTSigner(token_config, Environment.TESTING)


@pytest.fixture
def token_service(signer, accounts, token_config) -> TokenService:
    return TokenService(signer, accounts, token_config)


@pytest.fixture
def otp_engine(challenges, sender, otp_config) -> OtpEngine:
    return OtpEngine(challenges, sender, otp_config, notification_timeout=1.0)


@pytest.fixture
def account_service(app_config, accounts, challenges, sender):
    """Fully wired AccountService over in-memory storage."""
    return build_account_service(
        app_config, accounts=accounts, challenges=challenges, sender=sender, social_verifiers={}
    )


@pytest.fixture
def last_code(sender) -> Callable[[str], str]:
    """Return the most recent code delivered to a destination."""

    def _last_code(destination: str) -> str:
        for notification in reversed(sender.outbox):
            if notification.destination == destination:
                return notification.payload.code
        raise AssertionError(f"No code was delivered to {destination}")

    return _last_code


@pytest.fixture
def make_account(accounts, credentials) -> Callable[..., Account]:
    """Create a stored account; email and phone are verified unless overridden."""

    def _make_account(
        email: str | None = "jane@example.com",
        phone: str | None = "4155550100",
        country_code: str | None = "+1",
        password: str | None = TEST_PASSWORD,
        verified: bool = True,
        **fields,
    ) -> Account:
        status = VerificationStatus.VERIFIED if verified else VerificationStatus.UNVERIFIED
        account = Account(
            email=email,
            phone=phone,
            country_code=country_code if phone else None,
            email_status=status if email else VerificationStatus.UNVERIFIED,
            phone_status=status if phone else VerificationStatus.UNVERIFIED,
            password_hash=credentials.hash(password) if password else None,
            auth_type=AuthType.EMAIL if email else AuthType.PHONE,
            **fields,
        )
        return accounts.create(account)

    return _make_account


@pytest.fixture
def principal_for(accounts) -> Callable[[str], AuthenticatedPrincipal]:
    """Build the principal a fresh access token would resolve to."""

    def _principal_for(account_id: str) -> AuthenticatedPrincipal:
        account = accounts.find_by_id(account_id)
        assert account is not None
        return AuthenticatedPrincipal(account_id=account.id, token_version=account.token_version)

    return _principal_for
