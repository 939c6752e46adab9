"""
Database models for accounts and OTP challenges.

Timestamps are stored timezone aware where the backend supports it; rows
read back from backends that drop the offset are treated as UTC.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AccountModel(Base):  # type: ignore[valid-type, misc]
    """Account row; ``version`` backs optimistic compare-and-set updates."""

    __tablename__ = "accounts"

    id = Column(String(32), primary_key=True)

    # Contact channels
    email = Column(String(255), unique=True, nullable=True, index=True)
    country_code = Column(String(5), nullable=True)
    phone = Column(String(20), nullable=True)
    email_status = Column(String(20), nullable=False, default="unverified")
    phone_status = Column(String(20), nullable=False, default="unverified")
    pending_email = Column(String(255), nullable=True)
    pending_country_code = Column(String(5), nullable=True)
    pending_phone = Column(String(20), nullable=True)

    # Credentials and sessions
    password_hash = Column(String(255), nullable=True)
    token_version = Column(Integer, nullable=False, default=1)
    login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime(timezone=True), nullable=True)
    last_password_change_at = Column(DateTime(timezone=True), nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    # Second factor
    two_factor_status = Column(String(20), nullable=False, default="disabled")
    two_factor_method = Column(String(20), nullable=True)
    two_factor_secret = Column(String(64), nullable=True)
    last_totp_step = Column(Integer, nullable=True)

    # Federation
    auth_type = Column(String(20), nullable=False, default="email")
    social_provider = Column(String(20), nullable=True)
    social_id = Column(String(255), nullable=True)

    # Profile
    first_name = Column(String(100))
    last_name = Column(String(100))
    avatar_url = Column(Text)
    date_of_birth = Column(Date, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("country_code", "phone", name="uq_account_phone"),
        UniqueConstraint("social_provider", "social_id", name="uq_account_social"),
    )


class OtpChallengeModel(Base):  # type: ignore[valid-type, misc]
    """
    OTP challenge row; superseded rows are kept until the cleanup sweep.

    ``uq_otp_active`` allows a single unsuperseded row per (identifier, purpose).
    """

    __tablename__ = "otp_challenges"

    id = Column(String(32), primary_key=True)
    identifier = Column(String(255), nullable=False)
    purpose = Column(String(30), nullable=False)
    channel = Column(String(10), nullable=False)
    code = Column(String(16), nullable=False)
    account_id = Column(String(32), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    consumed_at = Column(DateTime(timezone=True), nullable=True)
    superseded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_otp_key", "identifier", "purpose"),
        Index(
            "uq_otp_active",
            "identifier",
            "purpose",
            unique=True,
            sqlite_where=text("superseded_at IS NULL"),
            postgresql_where=text("superseded_at IS NULL"),
        ),
        Index("idx_otp_expires", "expires_at"),
    )
