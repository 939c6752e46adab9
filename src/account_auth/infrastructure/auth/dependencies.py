"""FastAPI dependency providers."""

from ..bootstrap import build_account_service
from .services.account_service import AccountService

_service: AccountService | None = None


def get_account_service() -> AccountService:
    """Get the process-wide account service, building it from configuration on first use."""
    global _service
    if _service is None:
        _service = build_account_service()
    return _service


def set_account_service(service: AccountService | None) -> None:
    """Install (or clear, with None) the account service used by the endpoints."""
    global _service
    _service = service
