"""Email and SMS delivery of one-time passcodes."""

from .senders import (
    CompositeNotificationSender,
    ConsoleNotificationSender,
    SentNotification,
    SmtpEmailSender,
    TwilioSmsSender,
    build_notification_sender,
)

__all__ = [
    "CompositeNotificationSender",
    "ConsoleNotificationSender",
    "SentNotification",
    "SmtpEmailSender",
    "TwilioSmsSender",
    "build_notification_sender",
]
