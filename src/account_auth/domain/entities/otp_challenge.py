"""
OTP Challenge Entity - Ephemeral one-time passcode record
"""

from __future__ import annotations

# Standard library imports
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from uuid import uuid4

from ..value_objects import DeliveryChannel, OtpPurpose


class ChallengeState(Enum):
    """Lifecycle state of a single challenge"""

    ACTIVE = "active"
    CONSUMED = "consumed"
    EXPIRED = "expired"
    SUPERSEDED = "superseded"


@dataclass
class OtpChallenge:
    """
    One-time passcode challenge for an (identifier, purpose) key.

    Only the latest challenge for a key can be active. Older ones are marked
    superseded and kept for audit until the cleanup sweep removes them.
    """

    identifier: str
    purpose: OtpPurpose
    code: str
    expires_at: datetime
    channel: DeliveryChannel = DeliveryChannel.EMAIL
    account_id: str | None = None

    id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    consumed_at: datetime | None = None
    superseded_at: datetime | None = None
    attempts: int = 0

    @classmethod
    def issue(
        cls,
        identifier: str,
        purpose: OtpPurpose,
        code: str,
        ttl: timedelta,
        channel: DeliveryChannel,
        account_id: str | None = None,
    ) -> OtpChallenge:
        now = datetime.now(UTC)
        return cls(
            identifier=identifier,
            purpose=purpose,
            code=code,
            channel=channel,
            account_id=account_id,
            created_at=now,
            expires_at=now + ttl,
        )

    @property
    def key(self) -> tuple[str, OtpPurpose]:
        return self.identifier, self.purpose

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expires_at

    def state(self, now: datetime | None = None) -> ChallengeState:
        if self.consumed_at is not None:
            return ChallengeState.CONSUMED
        if self.superseded_at is not None:
            return ChallengeState.SUPERSEDED
        if self.is_expired(now):
            return ChallengeState.EXPIRED
        return ChallengeState.ACTIVE

    def is_active(self, now: datetime | None = None) -> bool:
        return self.state(now) is ChallengeState.ACTIVE
