"""
Application Layer - Contracts and configuration

This layer contains:
- Interfaces: Repository, notification and identity-provider contracts
- Config: Environment driven settings for every service
"""
