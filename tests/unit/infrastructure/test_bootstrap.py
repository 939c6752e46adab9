"""
Unit tests for the composition root.
"""

from unittest.mock import patch

import pytest

from account_auth.application.config import ApplicationConfig, OtpConfig, RedisConfig
from account_auth.domain.value_objects import PurposeClass
from account_auth.infrastructure.auth.types import RegistrationRequest
from account_auth.infrastructure.bootstrap import (
    build_account_service,
    build_rate_limit_storage,
)
from account_auth.infrastructure.notifications import CompositeNotificationSender
from account_auth.infrastructure.persistence import InMemoryAccountRepository
from account_auth.infrastructure.rate_limiting import (
    FixedWindowRateLimit,
    MemoryRateLimitStorage,
    SlidingWindowRateLimit,
)


class TestBuildRateLimitStorage:
    def test_memory_backend_keeps_counters_in_process(self):
        assert build_rate_limit_storage(ApplicationConfig()) is None

    def test_redis_backend(self):
        config = ApplicationConfig(
            otp=OtpConfig(rate_limit_backend="redis"),
            redis=RedisConfig(url="redis://cache:6379/2", key_prefix="test:"),
        )

        with patch("account_auth.infrastructure.bootstrap.RedisRateLimitStorage") as storage:
            assert build_rate_limit_storage(config) is storage.return_value

        storage.assert_called_once_with(redis_url="redis://cache:6379/2", key_prefix="test:")


class TestBuildAccountService:
    def test_defaults_from_configuration(self, app_config):
        service = build_account_service(app_config)

        assert isinstance(service.accounts, InMemoryAccountRepository)
        assert isinstance(service.otp.sender, CompositeNotificationSender)
        assert service.auth_service.social_verifiers == {}
        assert isinstance(
            service.otp.rate_limiters[PurposeClass.VERIFICATION], SlidingWindowRateLimit
        )

    def test_shared_storage_selects_fixed_windows(self, app_config):
        service = build_account_service(
            app_config, rate_limit_storage=MemoryRateLimitStorage()
        )

        assert all(
            isinstance(limiter, FixedWindowRateLimit)
            for limiter in service.otp.rate_limiters.values()
        )

    @pytest.mark.asyncio
    async def test_wired_service_registers(self, app_config):
        service = build_account_service(app_config)

        result = await service.register(
            RegistrationRequest(password="Test@1234", email="jane@example.com")
        )

        assert service.accounts.find_by_id(result.account_id) is not None
        assert result.verification.delivered
