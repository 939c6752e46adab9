"""
Domain Layer - Accounts, OTP challenges and authentication rules

This layer contains:
- Entities: Account and OtpChallenge records with identity
- Value Objects: Phone numbers, principals and the enumerations shared by services
- Exceptions: The typed failure taxonomy raised by every service

No external dependencies allowed in this layer.
"""
