"""
One-time passcode engine.

Generates, delivers, validates and expires OTP challenges keyed by
(identifier, purpose), and throttles issuance per purpose class.
"""

import asyncio
import hmac
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from account_auth.application.config import OtpConfig
from account_auth.application.interfaces import (
    DeliveryResult,
    INotificationSender,
    IOtpChallengeRepository,
    NotificationPayload,
    RepositoryError,
)
from account_auth.domain.entities import OtpChallenge
from account_auth.domain.exceptions import (
    DependencyFailure,
    OtpAlreadyConsumed,
    OtpAttemptsExceeded,
    OtpExpired,
    OtpMismatch,
    OtpNotFound,
    RateLimited,
)
from account_auth.domain.value_objects import DeliveryChannel, OtpPurpose, PurposeClass

from ...monitoring import log_security_event
from ...rate_limiting import (
    RateLimitAlgorithm,
    RateLimitAlgorithmType,
    RateLimitRule,
    RateLimitStorage,
    RateLimitStorageError,
    create_rate_limiter,
)

logger = logging.getLogger(__name__)


@dataclass
class OtpHandle:
    """Outcome of issuing a challenge; never carries the code itself."""

    challenge_id: str
    identifier: str
    purpose: OtpPurpose
    channel: DeliveryChannel
    expires_at: datetime
    delivered: bool
    delivery_error: str | None = None
    superseded_previous: bool = False


class OtpEngine:
    """
    OTP engine.

    Invariants:
    - at most one active challenge per (identifier, purpose)
    - a challenge is consumed at most once
    - a failed delivery never rolls back the stored challenge
    """

    def __init__(
        self,
        challenges: IOtpChallengeRepository,
        sender: INotificationSender,
        config: OtpConfig | None = None,
        notification_timeout: float = 10.0,
        rate_limit_storage: RateLimitStorage | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            challenges: Challenge repository
            sender: Notification sender used to deliver codes
            config: OTP settings
            notification_timeout: Seconds to wait for a delivery before giving up
            rate_limit_storage: Shared counter storage; when given, fixed windows
                are counted there, otherwise an in-process sliding window is used
        """
        self.challenges = challenges
        self.sender = sender
        self.config = config or OtpConfig()
        self.notification_timeout = notification_timeout
        self.ttl = timedelta(minutes=self.config.ttl_minutes)

        algorithm = (
            RateLimitAlgorithmType.FIXED_WINDOW
            if rate_limit_storage is not None
            else RateLimitAlgorithmType.SLIDING_WINDOW
        )
        self.rate_limiters: dict[PurposeClass, RateLimitAlgorithm] = {
            purpose_class: create_rate_limiter(
                RateLimitRule(
                    limit=self.config.rate_limit,
                    window=self.config.rate_window,
                    algorithm=algorithm,
                    identifier=f"otp:{purpose_class.value}",
                    description=f"OTP issuance for {purpose_class.value}",
                ),
                rate_limit_storage,
            )
            for purpose_class in PurposeClass
        }
        # One resend request per identifier per cooldown, known or not
        self.cooldown_limiter = create_rate_limiter(
            RateLimitRule(
                limit=1,
                window=max(self.config.resend_cooldown_seconds, 1),
                algorithm=algorithm,
                identifier="otp:cooldown",
                description="OTP resend cooldown",
            ),
            rate_limit_storage,
        )

    def generate_code(self) -> str:
        """Generate a numeric code from a CSPRNG."""
        return "".join(secrets.choice(string.digits) for _ in range(self.config.length))

    async def generate_and_send(
        self,
        identifier: str,
        purpose: OtpPurpose,
        channel: DeliveryChannel,
        destination: str | None = None,
        account_id: str | None = None,
        enforce_cooldown: bool = False,
    ) -> OtpHandle:
        """
        Issue a new challenge for (identifier, purpose) and deliver it.

        Args:
            identifier: Normalized email or e164 phone the challenge is keyed by
            purpose: Why the code is issued
            channel: Delivery channel
            destination: Where to deliver; defaults to the identifier
            account_id: Owning account, if any
            enforce_cooldown: Take the identifier's resend slot first, rejecting
                requests inside the resend cooldown

        Returns:
            OtpHandle describing the stored challenge and delivery outcome

        Raises:
            RateLimited: If the cooldown or the purpose class window is exhausted
            DependencyFailure: If storage is unavailable
        """
        if enforce_cooldown:
            self.check_cooldown(identifier)
        self.check_rate_limit(identifier, purpose)

        challenge = OtpChallenge.issue(
            identifier=identifier,
            purpose=purpose,
            code=self.generate_code(),
            ttl=self.ttl,
            channel=channel,
            account_id=account_id,
        )
        try:
            superseded = self.challenges.replace_active(challenge)
        except RepositoryError as e:
            logger.error(f"Failed to store OTP challenge for {purpose.value}: {e}")
            raise DependencyFailure("Verification code storage unavailable", "otp_repository", e)

        result = await self._deliver(channel, destination or identifier, challenge)

        log_security_event(
            "otp_sent",
            account_id=account_id,
            success=result.delivered,
            purpose=purpose.value,
            channel=channel.value,
            delivery_error=result.error,
        )
        return OtpHandle(
            challenge_id=challenge.id,
            identifier=identifier,
            purpose=purpose,
            channel=channel,
            expires_at=challenge.expires_at,
            delivered=result.delivered,
            delivery_error=result.error,
            superseded_previous=superseded is not None,
        )

    async def _deliver(
        self, channel: DeliveryChannel, destination: str, challenge: OtpChallenge
    ) -> DeliveryResult:
        payload = NotificationPayload(
            purpose=challenge.purpose,
            code=challenge.code,
            expires_in_minutes=self.config.ttl_minutes,
        )
        try:
            return await asyncio.wait_for(
                self.sender.send(channel, destination, payload), timeout=self.notification_timeout
            )
        except TimeoutError:
            logger.warning(
                f"OTP delivery over {channel.value} timed out after {self.notification_timeout}s"
            )
            return DeliveryResult(delivered=False, error="Delivery timed out")
        except Exception as e:
            # Delivery is best effort; the challenge stays valid for resend
            logger.error(f"OTP delivery over {channel.value} failed: {e}", exc_info=True)
            return DeliveryResult(delivered=False, error=str(e))

    def check_cooldown(self, identifier: str) -> None:
        """
        Take the identifier's resend slot for the cooldown period.

        Counted per requested identifier whether or not it belongs to an
        account, so a second request inside the cooldown is rejected the same
        way for both.

        Raises:
            RateLimited: If the identifier already used its slot
            DependencyFailure: If rate limit storage is unavailable
        """
        cooldown = self.config.resend_cooldown_seconds
        if cooldown <= 0:
            return
        try:
            result = self.cooldown_limiter.check_rate_limit(identifier)
        except RateLimitStorageError as e:
            logger.error(f"Rate limit storage failure: {e}")
            raise DependencyFailure("Rate limit storage unavailable", "rate_limit_storage", e)
        if not result.allowed:
            raise RateLimited(
                f"Please wait {cooldown} seconds before requesting another code",
                retry_after=result.retry_after,
            )

    def check_rate_limit(self, identifier: str, purpose: OtpPurpose) -> None:
        """Consume one request from the purpose class window, raising RateLimited when exhausted."""
        limiter = self.rate_limiters[purpose.purpose_class]
        try:
            result = limiter.check_rate_limit(identifier)
        except RateLimitStorageError as e:
            logger.error(f"Rate limit storage failure: {e}")
            raise DependencyFailure("Rate limit storage unavailable", "rate_limit_storage", e)

        if not result.allowed:
            log_security_event(
                "otp_rate_limited",
                success=False,
                purpose_class=purpose.purpose_class.value,
                retry_after=result.retry_after,
            )
            raise RateLimited(
                "Too many verification code requests. Please try again later.",
                retry_after=result.retry_after,
            )

    def validate(self, identifier: str, purpose: OtpPurpose, code: str) -> OtpChallenge:
        """
        Consume the active challenge for (identifier, purpose) if the code matches.

        Returns:
            The consumed challenge

        Raises:
            OtpNotFound: No challenge for the key, or the code is a superseded one
            OtpExpired: The challenge is past its expiry
            OtpAlreadyConsumed: The challenge was already used
            OtpAttemptsExceeded: The attempt ceiling was reached
            OtpMismatch: The code is wrong
            DependencyFailure: If storage is unavailable
        """
        try:
            return self._validate(identifier, purpose, code or "")
        except RepositoryError as e:
            raise DependencyFailure("Verification code storage unavailable", "otp_repository", e)

    def _validate(self, identifier: str, purpose: OtpPurpose, code: str) -> OtpChallenge:
        latest = self.challenges.get_latest(identifier, purpose)
        if latest is None:
            raise OtpNotFound()
        self._raise_if_unusable(latest)

        max_attempts = self.config.max_attempts
        if hmac.compare_digest(latest.code.encode(), code.encode()):

            def consume(challenge: OtpChallenge) -> None:
                challenge.consumed_at = datetime.now(UTC)

            consumed = self.challenges.atomic_update(latest.id, self._usable, consume)
            if consumed is not None:
                log_security_event(
                    "otp_verified", account_id=consumed.account_id, purpose=purpose.value
                )
                return consumed

            # Lost the race or the challenge changed underneath us
            current = self.challenges.get_latest(identifier, purpose)
            if current is None or current.id != latest.id:
                raise OtpNotFound()
            self._raise_if_unusable(current)
            raise OtpAlreadyConsumed()

        def count_attempt(challenge: OtpChallenge) -> None:
            challenge.attempts += 1

        updated = self.challenges.atomic_update(latest.id, self._usable, count_attempt)
        log_security_event(
            "otp_failed", account_id=latest.account_id, success=False, purpose=purpose.value
        )

        if self.challenges.find_superseded(identifier, purpose, code) is not None:
            raise OtpNotFound()
        if updated is None:
            current = self.challenges.get_latest(identifier, purpose)
            if current is None:
                raise OtpNotFound()
            self._raise_if_unusable(current)
            raise OtpMismatch(attempts_remaining=max(0, max_attempts - current.attempts))
        if updated.attempts >= max_attempts:
            raise OtpAttemptsExceeded()
        raise OtpMismatch(attempts_remaining=max_attempts - updated.attempts)

    def _usable(self, challenge: OtpChallenge) -> bool:
        return challenge.is_active() and challenge.attempts < self.config.max_attempts

    def _raise_if_unusable(self, challenge: OtpChallenge) -> None:
        if challenge.consumed_at is not None:
            raise OtpAlreadyConsumed()
        if challenge.superseded_at is not None:
            raise OtpNotFound()
        if challenge.is_expired():
            raise OtpExpired()
        if challenge.attempts >= self.config.max_attempts:
            raise OtpAttemptsExceeded()

    def cleanup_expired(self) -> int:
        """
        Delete challenges that can no longer be used and are past retention.

        Idempotent. Also prunes rate limiter state.

        Returns:
            Number of challenges removed
        """
        cutoff = datetime.now(UTC) - timedelta(minutes=self.config.retention_minutes)
        try:
            removed = self.challenges.delete_expired(cutoff)
        except RepositoryError as e:
            raise DependencyFailure("Verification code storage unavailable", "otp_repository", e)

        for limiter in (*self.rate_limiters.values(), self.cooldown_limiter):
            limiter.cleanup_expired()

        if removed:
            logger.info(f"Removed {removed} stale OTP challenges")
        return removed
