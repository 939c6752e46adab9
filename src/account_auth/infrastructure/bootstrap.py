"""
Composition root.

Builds a fully wired AccountService from ApplicationConfig. Collaborators can
be passed in to replace the configured ones (tests use in-memory repositories
and a console sender).
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from account_auth.application.config import (
    ApplicationConfig,
    DatabaseConfig,
    Environment,
    get_config,
)
from account_auth.application.interfaces import (
    IAccountRepository,
    INotificationSender,
    IOtpChallengeRepository,
    ISocialIdentityVerifier,
)
from account_auth.domain.value_objects import SocialProvider

from .auth.jwt_signer import JWTSigner
from .auth.services.account_service import AccountService
from .auth.services.otp_engine import OtpEngine
from .auth.services.password_service import CredentialStore
from .auth.token_service import TokenService
from .notifications import build_notification_sender
from .persistence import (
    Base,
    InMemoryAccountRepository,
    InMemoryOtpChallengeRepository,
    SQLAlchemyAccountRepository,
    SQLAlchemyOtpChallengeRepository,
)
from .rate_limiting import RateLimitStorage, RedisRateLimitStorage
from .social import build_social_verifiers

logger = logging.getLogger(__name__)

MEMORY_DATABASE_URL = "memory://"


def build_repositories(
    config: DatabaseConfig,
) -> tuple[IAccountRepository, IOtpChallengeRepository]:
    """
    Build the account and challenge repositories for a database URL.

    ``memory://`` selects the in-process repositories; anything else is
    handed to SQLAlchemy and the tables are created if missing.
    """
    if config.url == MEMORY_DATABASE_URL:
        logger.info("Using in-memory repositories")
        return InMemoryAccountRepository(), InMemoryOtpChallengeRepository()

    kwargs: dict[str, object] = {"echo": config.echo}
    if config.url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in config.url or config.url == "sqlite://":
            kwargs["poolclass"] = StaticPool

    engine = create_engine(config.url, **kwargs)
    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    logger.info(f"Using SQL repositories at {config.url.split('@')[-1]}")
    return (
        SQLAlchemyAccountRepository(session_factory, config.max_update_retries),
        SQLAlchemyOtpChallengeRepository(session_factory, config.max_update_retries),
    )


def build_rate_limit_storage(config: ApplicationConfig) -> RateLimitStorage | None:
    """Shared counter storage for OTP rate limits; None keeps counters in process."""
    if config.otp.rate_limit_backend != "redis":
        return None
    return RedisRateLimitStorage(redis_url=config.redis.url, key_prefix=config.redis.key_prefix)


def build_account_service(
    config: ApplicationConfig | None = None,
    accounts: IAccountRepository | None = None,
    challenges: IOtpChallengeRepository | None = None,
    sender: INotificationSender | None = None,
    social_verifiers: dict[SocialProvider, ISocialIdentityVerifier] | None = None,
    rate_limit_storage: RateLimitStorage | None = None,
) -> AccountService:
    """
    Wire an AccountService.

    Args:
        config: Application configuration; defaults to get_config()
        accounts: Account repository override
        challenges: OTP challenge repository override
        sender: Notification sender override
        social_verifiers: Social verifier overrides
        rate_limit_storage: Rate limit storage override

    Returns:
        Ready-to-use AccountService
    """
    config = config or get_config()

    if accounts is None or challenges is None:
        built_accounts, built_challenges = build_repositories(config.database)
        accounts = accounts or built_accounts
        challenges = challenges or built_challenges

    if sender is None:
        sender = build_notification_sender(
            config.notifications,
            reveal_codes=config.environment is Environment.DEVELOPMENT,
        )
    if social_verifiers is None:
        social_verifiers = dict(build_social_verifiers(config.social))
    if rate_limit_storage is None:
        rate_limit_storage = build_rate_limit_storage(config)

    credentials = CredentialStore(config.security)
    signer = JWTSigner(config.tokens, config.environment)
    tokens = TokenService(signer, accounts, config.tokens)
    otp = OtpEngine(
        challenges,
        sender,
        config.otp,
        notification_timeout=config.notifications.timeout_seconds,
        rate_limit_storage=rate_limit_storage,
    )

    logger.info(
        f"Account service ready (environment={config.environment.value}, "
        f"providers={sorted(provider.value for provider in social_verifiers)})"
    )
    return AccountService(
        accounts,
        credentials,
        tokens,
        otp,
        social_verifiers=social_verifiers,
        config=config.security,
        issuer_name=config.notifications.app_name,
    )
