"""Domain entities."""

from .account import Account
from .otp_challenge import ChallengeState, OtpChallenge

__all__ = ["Account", "ChallengeState", "OtpChallenge"]
