"""
Application Configuration - Central configuration management.

This module provides configuration management for the authentication
services, read from environment variables (and a local .env file).
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Environment(Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass
class SecurityConfig:
    """Password hashing, policy and lockout configuration."""

    bcrypt_rounds: int = 12
    password_min_length: int = 8
    password_max_length: int = 128
    max_login_attempts: int = 5
    lockout_minutes: int = 30
    login_requires_verified_contact: bool = True
    minimum_age_years: int = 13

    @classmethod
    def from_env(cls) -> "SecurityConfig":
        """Create configuration from environment variables."""
        return cls(
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "12")),
            password_min_length=int(os.getenv("PASSWORD_MIN_LENGTH", "8")),
            password_max_length=int(os.getenv("PASSWORD_MAX_LENGTH", "128")),
            max_login_attempts=int(os.getenv("MAX_LOGIN_ATTEMPTS", "5")),
            lockout_minutes=int(os.getenv("LOCKOUT_MINUTES", "30")),
            login_requires_verified_contact=_env_bool("LOGIN_REQUIRES_VERIFIED_CONTACT", "true"),
            minimum_age_years=int(os.getenv("MINIMUM_AGE_YEARS", "13")),
        )


@dataclass
class TokenConfig:
    """JWT signing and lifetime configuration."""

    algorithm: str = "HS256"
    secret: str = ""
    private_key_path: str | None = None
    public_key_path: str | None = None
    issuer: str = "account-auth"
    audience: str = "account-auth-users"
    access_token_minutes: int = 15
    refresh_token_days: int = 7
    two_factor_token_minutes: int = 10

    @classmethod
    def from_env(cls) -> "TokenConfig":
        """Create configuration from environment variables."""
        return cls(
            algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            secret=os.getenv("JWT_SECRET", ""),
            private_key_path=os.getenv("JWT_PRIVATE_KEY_PATH") or None,
            public_key_path=os.getenv("JWT_PUBLIC_KEY_PATH") or None,
            issuer=os.getenv("JWT_ISSUER", "account-auth"),
            audience=os.getenv("JWT_AUDIENCE", "account-auth-users"),
            access_token_minutes=int(os.getenv("ACCESS_TOKEN_MINUTES", "15")),
            refresh_token_days=int(os.getenv("REFRESH_TOKEN_DAYS", "7")),
            two_factor_token_minutes=int(os.getenv("TWO_FACTOR_TOKEN_MINUTES", "10")),
        )


@dataclass
class OtpConfig:
    """One-time passcode configuration."""

    length: int = 6
    ttl_minutes: int = 2
    max_attempts: int = 5
    rate_limit: int = 3
    rate_window: str = "5min"
    rate_limit_backend: str = "memory"
    resend_cooldown_seconds: int = 60
    retention_minutes: int = 60

    @classmethod
    def from_env(cls) -> "OtpConfig":
        """Create configuration from environment variables."""
        return cls(
            length=int(os.getenv("OTP_LENGTH", "6")),
            ttl_minutes=int(os.getenv("OTP_EXPIRY_MINUTES", "2")),
            max_attempts=int(os.getenv("OTP_MAX_ATTEMPTS", "5")),
            rate_limit=int(os.getenv("OTP_RATE_LIMIT", "3")),
            rate_window=os.getenv("OTP_RATE_WINDOW", "5min"),
            rate_limit_backend=os.getenv("OTP_RATE_LIMIT_BACKEND", "memory"),
            resend_cooldown_seconds=int(os.getenv("OTP_RESEND_COOLDOWN_SECONDS", "60")),
            retention_minutes=int(os.getenv("OTP_RETENTION_MINUTES", "60")),
        )


@dataclass
class NotificationConfig:
    """Email and SMS delivery configuration."""

    timeout_seconds: float = 10.0
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    email_from: str = "no-reply@localhost"
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""
    app_name: str = "Account Auth"

    @classmethod
    def from_env(cls) -> "NotificationConfig":
        """Create configuration from environment variables."""
        return cls(
            timeout_seconds=float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10")),
            smtp_host=os.getenv("SMTP_HOST", ""),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_username=os.getenv("SMTP_USERNAME", ""),
            smtp_password=os.getenv("SMTP_PASSWORD", ""),
            email_from=os.getenv("EMAIL_FROM", "no-reply@localhost"),
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID", ""),
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN", ""),
            twilio_from_number=os.getenv("TWILIO_FROM_NUMBER", ""),
            app_name=os.getenv("APP_NAME", "Account Auth"),
        )

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_host)

    @property
    def sms_configured(self) -> bool:
        return bool(
            self.twilio_account_sid and self.twilio_auth_token and self.twilio_from_number
        )


@dataclass
class SocialConfig:
    """OAuth client configuration for social login."""

    google_client_id: str = ""
    google_client_secret: str = ""
    github_client_id: str = ""
    github_client_secret: str = ""
    timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> "SocialConfig":
        """Create configuration from environment variables."""
        return cls(
            google_client_id=os.getenv("GOOGLE_CLIENT_ID", ""),
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", ""),
            github_client_id=os.getenv("GITHUB_CLIENT_ID", ""),
            github_client_secret=os.getenv("GITHUB_CLIENT_SECRET", ""),
            timeout_seconds=float(os.getenv("SOCIAL_TIMEOUT_SECONDS", "10")),
        )


@dataclass
class DatabaseConfig:
    """Database configuration."""

    url: str = "sqlite:///./account_auth.db"
    echo: bool = False
    max_update_retries: int = 5

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Create configuration from environment variables."""
        return cls(
            url=os.getenv("DATABASE_URL", "sqlite:///./account_auth.db"),
            echo=_env_bool("DB_ECHO", "false"),
            max_update_retries=int(os.getenv("DB_MAX_UPDATE_RETRIES", "5")),
        )


@dataclass
class RedisConfig:
    """Redis configuration for shared rate-limit counters."""

    url: str = "redis://localhost:6379/0"
    key_prefix: str = "account_auth:rl:"

    @classmethod
    def from_env(cls) -> "RedisConfig":
        """Create configuration from environment variables."""
        return cls(
            url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            key_prefix=os.getenv("REDIS_KEY_PREFIX", "account_auth:rl:"),
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format_type: str = "json"
    file: str | None = None

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Create configuration from environment variables."""
        file_path = os.getenv("LOG_FILE")
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO"),
            format_type=os.getenv("LOG_FORMAT", "json"),
            file=file_path if file_path else None,
        )


@dataclass
class ApplicationConfig:
    """Main application configuration."""

    environment: Environment = Environment.DEVELOPMENT
    security: SecurityConfig = field(default_factory=SecurityConfig)
    tokens: TokenConfig = field(default_factory=TokenConfig)
    otp: OtpConfig = field(default_factory=OtpConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    social: SocialConfig = field(default_factory=SocialConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "ApplicationConfig":
        """Create configuration from environment variables."""
        return cls(
            environment=Environment(os.getenv("ENVIRONMENT", "development")),
            security=SecurityConfig.from_env(),
            tokens=TokenConfig.from_env(),
            otp=OtpConfig.from_env(),
            notifications=NotificationConfig.from_env(),
            social=SocialConfig.from_env(),
            database=DatabaseConfig.from_env(),
            redis=RedisConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary, without secrets."""
        return {
            "environment": self.environment.value,
            "security": {
                "bcrypt_rounds": self.security.bcrypt_rounds,
                "password_min_length": self.security.password_min_length,
                "max_login_attempts": self.security.max_login_attempts,
                "lockout_minutes": self.security.lockout_minutes,
            },
            "tokens": {
                "algorithm": self.tokens.algorithm,
                "issuer": self.tokens.issuer,
                "audience": self.tokens.audience,
                "access_token_minutes": self.tokens.access_token_minutes,
                "refresh_token_days": self.tokens.refresh_token_days,
            },
            "otp": {
                "length": self.otp.length,
                "ttl_minutes": self.otp.ttl_minutes,
                "max_attempts": self.otp.max_attempts,
                "rate_limit": self.otp.rate_limit,
                "rate_window": self.otp.rate_window,
                "rate_limit_backend": self.otp.rate_limit_backend,
            },
            "notifications": {
                "email_configured": self.notifications.email_configured,
                "sms_configured": self.notifications.sms_configured,
            },
            "database": {"url": self.database.url.split("@")[-1], "echo": self.database.echo},
            "logging": {"level": self.logging.level, "format_type": self.logging.format_type},
        }

    def validate(self) -> bool:
        """
        Validate the configuration.

        Returns:
            True if valid, raises exception otherwise
        """
        if self.environment == Environment.PRODUCTION:
            if self.tokens.algorithm.startswith("HS") and len(self.tokens.secret) < 32:
                raise ValueError("JWT_SECRET of at least 32 characters required for production")
            if self.tokens.algorithm.startswith("RS") and not (
                self.tokens.private_key_path and self.tokens.public_key_path
            ):
                raise ValueError("JWT key paths required for production")
            if self.security.bcrypt_rounds < 10:
                raise ValueError("BCRYPT_ROUNDS below 10 is not allowed in production")
            if self.database.echo:
                raise ValueError("Database echo should be disabled in production")

        if self.otp.length < 4 or self.otp.length > 10:
            raise ValueError("OTP length must be between 4 and 10 digits")
        if self.otp.max_attempts < 1:
            raise ValueError("OTP max attempts must be positive")
        if self.otp.rate_limit_backend not in ("memory", "redis"):
            raise ValueError("OTP rate limit backend must be 'memory' or 'redis'")
        if self.security.password_min_length > self.security.password_max_length:
            raise ValueError("Password minimum length exceeds maximum length")

        return True


# Global configuration singleton
_config: ApplicationConfig | None = None


def get_config() -> ApplicationConfig:
    """
    Get the application configuration singleton.

    Returns:
        ApplicationConfig: The application configuration
    """
    global _config
    if _config is None:
        _config = ApplicationConfig.from_env()
        _config.validate()
    return _config


def set_config(config: ApplicationConfig) -> None:
    """
    Set the application configuration.

    Args:
        config: The new configuration
    """
    global _config
    _config = config


def reset_config() -> None:
    """Reset the configuration singleton."""
    global _config
    _config = None
