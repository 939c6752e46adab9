"""
Notification Interface Definitions

Defines the contract for delivering one-time passcodes over email or SMS.
"""

# Standard library imports
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, Protocol

# Local imports
from account_auth.domain.value_objects import DeliveryChannel, OtpPurpose


@dataclass
class NotificationPayload:
    """Content handed to a sender; rendering is the sender's concern."""

    purpose: OtpPurpose
    code: str
    expires_in_minutes: int
    subject: str = ""
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class DeliveryResult:
    """Outcome of a delivery attempt."""

    delivered: bool
    provider_message_id: str | None = None
    error: str | None = None


class INotificationSender(Protocol):
    """
    Notification sender interface.

    Errors are reported through DeliveryResult; a raised exception is treated
    the same way by callers and never affects OTP state.
    """

    @abstractmethod
    async def send(
        self, channel: DeliveryChannel, destination: str, payload: NotificationPayload
    ) -> DeliveryResult:
        """
        Deliver a payload to a destination.

        Args:
            channel: Email or SMS
            destination: Email address or e164 phone number
            payload: Code and purpose to deliver

        Returns:
            Delivery outcome
        """
        ...
