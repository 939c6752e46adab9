"""Infrastructure Layer for the account authentication services.

Concrete implementations of the application layer interfaces:
- In-memory and SQLAlchemy repositories with atomic conditional updates
- Email and SMS notification senders
- Social identity verifiers for Google and GitHub
- Token signing, OTP, verification and 2FA services
- Rate limiting and structured logging
"""
