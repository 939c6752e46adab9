"""
Repository contract tests.

Every behavior the services rely on is checked against the in-memory
repositories and against SQLAlchemy on an in-memory SQLite database.
"""

from datetime import UTC, date, datetime, timedelta

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.exc import IntegrityError

from account_auth.application.config import DatabaseConfig
from account_auth.application.interfaces import DuplicateEntityError, EntityNotFoundError
from account_auth.domain.entities import Account, OtpChallenge
from account_auth.domain.value_objects import (
    DeliveryChannel,
    OtpPurpose,
    PhoneNumber,
    TwoFactorMethod,
    TwoFactorStatus,
    VerificationStatus,
)
from account_auth.infrastructure.bootstrap import MEMORY_DATABASE_URL, build_repositories
from account_auth.infrastructure.persistence.models import OtpChallengeModel

pytestmark = pytest.mark.integration


@pytest.fixture(params=[MEMORY_DATABASE_URL, "sqlite://"], ids=["memory", "sqlite"])
def repositories(request):
    return build_repositories(DatabaseConfig(url=request.param))


@pytest.fixture
def account_repo(repositories):
    return repositories[0]


@pytest.fixture
def challenge_repo(repositories):
    return repositories[1]


def _account(**fields) -> Account:
    defaults = {"email": "jane@example.com", "country_code": "+1", "phone": "4155550100"}
    return Account(**{**defaults, **fields})


def _challenge(code: str = "123456", ttl: timedelta = timedelta(minutes=2), **fields):
    return OtpChallenge.issue(
        identifier=fields.pop("identifier", "jane@example.com"),
        purpose=fields.pop("purpose", OtpPurpose.EMAIL_VERIFY),
        code=code,
        ttl=ttl,
        channel=DeliveryChannel.EMAIL,
        **fields,
    )


class TestAccountRepository:
    def test_create_and_find(self, account_repo):
        account = _account(
            first_name="Jane",
            date_of_birth=date(1990, 5, 17),
            two_factor_status=TwoFactorStatus.ENABLED,
            two_factor_method=TwoFactorMethod.SMS,
            last_totp_step=58_000_000,
        )
        account_repo.create(account)

        by_id = account_repo.find_by_id(account.id)
        assert by_id.email == "jane@example.com"
        assert by_id.first_name == "Jane"
        assert by_id.date_of_birth == date(1990, 5, 17)
        assert by_id.two_factor_method is TwoFactorMethod.SMS
        assert by_id.last_totp_step == 58_000_000
        assert by_id.created_at.tzinfo is not None

        assert account_repo.find_by_email("jane@example.com").id == account.id
        assert account_repo.find_by_phone(PhoneNumber("+1", "4155550100")).id == account.id
        assert account_repo.find_by_email("nobody@example.com") is None
        assert account_repo.find_by_id("missing") is None

    def test_find_by_social_id(self, account_repo):
        account = _account(
            email=None, country_code=None, phone=None, social_provider="github", social_id="42"
        )
        account_repo.create(account)

        assert account_repo.find_by_social_id("github", "42").id == account.id
        assert account_repo.find_by_social_id("google", "42") is None

    @pytest.mark.parametrize(
        "fields",
        [
            {"phone": "4155550111"},
            {"email": "other@example.com"},
        ],
        ids=["same-email", "same-phone"],
    )
    def test_unique_identifiers(self, account_repo, fields):
        account_repo.create(_account())

        with pytest.raises(DuplicateEntityError):
            account_repo.create(_account(**fields))

    def test_is_identifier_taken(self, account_repo):
        account = account_repo.create(_account())
        phone = PhoneNumber("+1", "4155550100")

        assert account_repo.is_identifier_taken(email="jane@example.com")
        assert account_repo.is_identifier_taken(phone=phone)
        assert not account_repo.is_identifier_taken(email="new@example.com")
        assert not account_repo.is_identifier_taken(
            email="jane@example.com", exclude_account_id=account.id
        )

    def test_atomic_update(self, account_repo):
        account = account_repo.create(_account())

        def verify_email(current):
            current.email_status = VerificationStatus.VERIFIED

        updated = account_repo.atomic_update(account.id, lambda _: True, verify_email)

        assert updated.email_status is VerificationStatus.VERIFIED
        assert updated.version == account.version + 1
        assert account_repo.find_by_id(account.id).is_email_verified

    def test_rejected_predicate_leaves_row(self, account_repo):
        account = account_repo.create(_account())

        def bump(current):
            current.token_version += 1

        assert account_repo.atomic_update(account.id, lambda _: False, bump) is None
        assert account_repo.find_by_id(account.id).token_version == 1

    def test_update_missing_account(self, account_repo):
        with pytest.raises(EntityNotFoundError):
            account_repo.atomic_update("missing", lambda _: True, lambda _: None)

    def test_update_collision(self, account_repo):
        account_repo.create(_account())
        other = account_repo.create(_account(email="other@example.com", phone="4155550111"))

        def take_email(current):
            current.email = "jane@example.com"

        with pytest.raises(DuplicateEntityError):
            account_repo.atomic_update(other.id, lambda _: True, take_email)
        assert account_repo.find_by_id(other.id).email == "other@example.com"

    def test_returned_accounts_are_detached(self, account_repo):
        account = account_repo.create(_account())

        loaded = account_repo.find_by_id(account.id)
        loaded.email = "changed@example.com"

        assert account_repo.find_by_id(account.id).email == "jane@example.com"


class TestOtpChallengeRepository:
    def test_replace_active_supersedes(self, challenge_repo):
        first = _challenge("111111")
        assert challenge_repo.replace_active(first) is None

        second = _challenge("222222")
        superseded = challenge_repo.replace_active(second)

        assert superseded.id == first.id
        latest = challenge_repo.get_latest("jane@example.com", OtpPurpose.EMAIL_VERIFY)
        assert latest.id == second.id
        assert latest.code == "222222"
        found = challenge_repo.find_superseded(
            "jane@example.com", OtpPurpose.EMAIL_VERIFY, "111111"
        )
        assert found.id == first.id

    def test_keys_are_per_purpose(self, challenge_repo):
        challenge_repo.replace_active(_challenge(purpose=OtpPurpose.EMAIL_VERIFY))
        challenge_repo.replace_active(_challenge(purpose=OtpPurpose.PASSWORD_RESET))

        assert challenge_repo.get_latest("jane@example.com", OtpPurpose.EMAIL_VERIFY)
        assert challenge_repo.get_latest("jane@example.com", OtpPurpose.PASSWORD_RESET)
        assert challenge_repo.get_latest("jane@example.com", OtpPurpose.TWO_FA_LOGIN) is None

    def test_atomic_update(self, challenge_repo):
        challenge = _challenge()
        challenge_repo.replace_active(challenge)

        def consume(current):
            current.consumed_at = datetime.now(UTC)

        def unconsumed(current):
            return current.consumed_at is None

        assert challenge_repo.atomic_update(challenge.id, unconsumed, consume).consumed_at
        assert challenge_repo.atomic_update(challenge.id, unconsumed, consume) is None
        assert challenge_repo.atomic_update("missing", unconsumed, consume) is None

    def test_delete_expired(self, challenge_repo):
        challenge_repo.replace_active(_challenge(ttl=timedelta(minutes=-5)))
        active = _challenge(purpose=OtpPurpose.PASSWORD_RESET)
        challenge_repo.replace_active(active)

        removed = challenge_repo.delete_expired(datetime.now(UTC) - timedelta(minutes=1))

        assert removed == 1
        assert challenge_repo.get_latest("jane@example.com", OtpPurpose.EMAIL_VERIFY) is None
        assert (
            challenge_repo.get_latest("jane@example.com", OtpPurpose.PASSWORD_RESET).id
            == active.id
        )
        assert challenge_repo.delete_expired(datetime.now(UTC) - timedelta(minutes=1)) == 0


class TestSQLActiveChallengeUniqueness:
    """A single active challenge per key even when writers interleave."""

    @pytest.fixture
    def sql_challenges(self, tmp_path):
        _, challenges = build_repositories(DatabaseConfig(url=f"sqlite:///{tmp_path}/auth.db"))
        return challenges

    @staticmethod
    def _insert_active(session_factory, challenge: OtpChallenge) -> None:
        with session_factory() as session:
            session.add(
                OtpChallengeModel(
                    id=challenge.id,
                    identifier=challenge.identifier,
                    purpose=challenge.purpose.value,
                    channel=challenge.channel.value,
                    code=challenge.code,
                    expires_at=challenge.expires_at,
                )
            )
            session.commit()

    @staticmethod
    def _active_rows(session_factory) -> int:
        with session_factory() as session:
            return session.scalar(
                select(func.count())
                .select_from(OtpChallengeModel)
                .where(OtpChallengeModel.superseded_at.is_(None))
            )

    def test_second_active_row_is_rejected(self, sql_challenges):
        sql_challenges.replace_active(_challenge("111111"))

        with pytest.raises(IntegrityError):
            self._insert_active(sql_challenges.session_factory, _challenge("222222"))

        assert self._active_rows(sql_challenges.session_factory) == 1

    def test_interleaved_writer_is_superseded(self, sql_challenges):
        session_factory = sql_challenges.session_factory
        rival = _challenge("111111")
        inserted = []

        def insert_rival_first(session, flush_context, instances):
            # Lands between replace_active's read and its insert
            if not inserted:
                inserted.append(rival.id)
                self._insert_active(session_factory, rival)

        event.listen(session_factory, "before_flush", insert_rival_first)
        try:
            superseded = sql_challenges.replace_active(_challenge("222222"))
        finally:
            event.remove(session_factory, "before_flush", insert_rival_first)

        assert inserted == [rival.id]
        assert superseded.id == rival.id
        assert self._active_rows(session_factory) == 1
        latest = sql_challenges.get_latest("jane@example.com", OtpPurpose.EMAIL_VERIFY)
        assert latest.code == "222222"
