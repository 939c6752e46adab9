"""
SQLAlchemy Repository Implementations

Concrete implementations of IAccountRepository and IOtpChallengeRepository.
Handles persistence, retrieval and mapping between domain entities and
database rows.

Conditional updates use optimistic compare-and-set: the row is read, the
predicate and mutation run in Python, and the write only lands if the row
still matches what was read. Lost races are retried a bounded number of
times.
"""

# Standard library imports
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

# Local imports
from account_auth.application.interfaces import (
    ConcurrencyError,
    DuplicateEntityError,
    EntityNotFoundError,
    RepositoryError,
)
from account_auth.application.interfaces.repositories import (
    AccountMutation,
    AccountPredicate,
    ChallengeMutation,
    ChallengePredicate,
)
from account_auth.domain.entities import Account, OtpChallenge
from account_auth.domain.value_objects import (
    AuthType,
    DeliveryChannel,
    OtpPurpose,
    PhoneNumber,
    TwoFactorMethod,
    TwoFactorStatus,
    VerificationStatus,
)

from .models import AccountModel, OtpChallengeModel

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def _aware(value: datetime | None) -> datetime | None:
    """Treat naive timestamps read back from the database as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _duplicate_field(error: IntegrityError) -> str:
    message = str(error.orig).lower()
    if "social" in message:
        return "social_id"
    if "phone" in message:
        return "phone"
    return "email"


# Account mapping -----------------------------------------------------------------


def _to_account(row: AccountModel) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        country_code=row.country_code,
        phone=row.phone,
        email_status=VerificationStatus(row.email_status),
        phone_status=VerificationStatus(row.phone_status),
        pending_email=row.pending_email,
        pending_country_code=row.pending_country_code,
        pending_phone=row.pending_phone,
        password_hash=row.password_hash,
        token_version=row.token_version,
        login_attempts=row.login_attempts,
        locked_until=_aware(row.locked_until),
        last_password_change_at=_aware(row.last_password_change_at),
        last_login_at=_aware(row.last_login_at),
        two_factor_status=TwoFactorStatus(row.two_factor_status),
        two_factor_method=TwoFactorMethod(row.two_factor_method) if row.two_factor_method else None,
        two_factor_secret=row.two_factor_secret,
        last_totp_step=row.last_totp_step,
        auth_type=AuthType(row.auth_type),
        social_provider=row.social_provider,
        social_id=row.social_id,
        first_name=row.first_name,
        last_name=row.last_name,
        avatar_url=row.avatar_url,
        date_of_birth=row.date_of_birth,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        version=row.version,
    )


def _account_values(account: Account) -> dict[str, Any]:
    return {
        "email": account.email,
        "country_code": account.country_code,
        "phone": account.phone,
        "email_status": account.email_status.value,
        "phone_status": account.phone_status.value,
        "pending_email": account.pending_email,
        "pending_country_code": account.pending_country_code,
        "pending_phone": account.pending_phone,
        "password_hash": account.password_hash,
        "token_version": account.token_version,
        "login_attempts": account.login_attempts,
        "locked_until": account.locked_until,
        "last_password_change_at": account.last_password_change_at,
        "last_login_at": account.last_login_at,
        "two_factor_status": account.two_factor_status.value,
        "two_factor_method": account.two_factor_method.value
        if account.two_factor_method
        else None,
        "two_factor_secret": account.two_factor_secret,
        "last_totp_step": account.last_totp_step,
        "auth_type": account.auth_type.value,
        "social_provider": account.social_provider,
        "social_id": account.social_id,
        "first_name": account.first_name,
        "last_name": account.last_name,
        "avatar_url": account.avatar_url,
        "date_of_birth": account.date_of_birth,
        "created_at": account.created_at,
        "updated_at": account.updated_at,
    }


# Challenge mapping ---------------------------------------------------------------


def _to_challenge(row: OtpChallengeModel) -> OtpChallenge:
    return OtpChallenge(
        id=row.id,
        identifier=row.identifier,
        purpose=OtpPurpose(row.purpose),
        channel=DeliveryChannel(row.channel),
        code=row.code,
        account_id=row.account_id,
        attempts=row.attempts,
        created_at=_aware(row.created_at),
        expires_at=_aware(row.expires_at),
        consumed_at=_aware(row.consumed_at),
        superseded_at=_aware(row.superseded_at),
    )


def _challenge_values(challenge: OtpChallenge) -> dict[str, Any]:
    return {
        "identifier": challenge.identifier,
        "purpose": challenge.purpose.value,
        "channel": challenge.channel.value,
        "code": challenge.code,
        "account_id": challenge.account_id,
        "attempts": challenge.attempts,
        "created_at": challenge.created_at,
        "expires_at": challenge.expires_at,
        "consumed_at": challenge.consumed_at,
        "superseded_at": challenge.superseded_at,
    }


class SQLAlchemyAccountRepository:
    """
    SQLAlchemy implementation of IAccountRepository.

    Maps between Account domain entities and ``accounts`` rows.
    """

    def __init__(self, session_factory: SessionFactory, max_update_retries: int = 5) -> None:
        """
        Initialize repository.

        Args:
            session_factory: Callable returning a new Session (a sessionmaker)
            max_update_retries: Compare-and-set attempts before giving up
        """
        self.session_factory = session_factory
        self.max_update_retries = max_update_retries

    def _find_one(self, *criteria: Any) -> Account | None:
        try:
            with self.session_factory() as session:
                row = session.scalars(select(AccountModel).where(*criteria).limit(1)).first()
                return _to_account(row) if row else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to load account: {e}")
            raise RepositoryError(f"Failed to load account: {e}", e) from e

    def find_by_id(self, account_id: str) -> Account | None:
        return self._find_one(AccountModel.id == account_id)

    def find_by_email(self, email: str) -> Account | None:
        return self._find_one(AccountModel.email == email)

    def find_by_phone(self, phone: PhoneNumber) -> Account | None:
        return self._find_one(AccountModel.country_code + AccountModel.phone == phone.e164)

    def find_by_social_id(self, provider: str, social_id: str) -> Account | None:
        return self._find_one(
            AccountModel.social_provider == provider, AccountModel.social_id == social_id
        )

    def is_identifier_taken(
        self,
        email: str | None = None,
        phone: PhoneNumber | None = None,
        exclude_account_id: str | None = None,
    ) -> bool:
        conditions = []
        if email:
            conditions.append(AccountModel.email == email)
        if phone:
            conditions.append(AccountModel.country_code + AccountModel.phone == phone.e164)
        if not conditions:
            return False

        query = select(func.count()).select_from(AccountModel).where(or_(*conditions))
        if exclude_account_id:
            query = query.where(AccountModel.id != exclude_account_id)

        try:
            with self.session_factory() as session:
                return bool(session.scalar(query))
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to check identifier: {e}", e) from e

    def create(self, account: Account) -> Account:
        try:
            with self.session_factory() as session:
                session.add(
                    AccountModel(id=account.id, version=account.version, **_account_values(account))
                )
                session.commit()
                logger.debug(f"Inserted account {account.id}")
                return account
        except IntegrityError as e:
            raise DuplicateEntityError("Account", _duplicate_field(e), account.id) from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to create account {account.id}: {e}")
            raise RepositoryError(f"Failed to create account: {e}", e) from e

    def atomic_update(
        self, account_id: str, predicate: AccountPredicate, mutation: AccountMutation
    ) -> Account | None:
        try:
            for attempt in range(1, self.max_update_retries + 1):
                with self.session_factory() as session:
                    row = session.get(AccountModel, account_id)
                    if row is None:
                        raise EntityNotFoundError("Account", account_id)

                    account = _to_account(row)
                    seen_version = row.version
                    if not predicate(account):
                        return None

                    mutation(account)
                    statement = (
                        update(AccountModel)
                        .where(AccountModel.id == account_id, AccountModel.version == seen_version)
                        .values(version=seen_version + 1, **_account_values(account))
                        .execution_options(synchronize_session=False)
                    )
                    try:
                        result = session.execute(statement)
                        session.commit()
                    except IntegrityError as e:
                        session.rollback()
                        field = _duplicate_field(e)
                        raise DuplicateEntityError("Account", field, account_id) from e

                    if result.rowcount == 1:
                        account.version = seen_version + 1
                        return account

                logger.debug(f"Account {account_id} changed concurrently, retry {attempt}")
        except SQLAlchemyError as e:
            logger.error(f"Failed to update account {account_id}: {e}")
            raise RepositoryError(f"Failed to update account: {e}", e) from e

        raise ConcurrencyError("Account", account_id)


class SQLAlchemyOtpChallengeRepository:
    """
    SQLAlchemy implementation of IOtpChallengeRepository.

    Maps between OtpChallenge domain entities and ``otp_challenges`` rows.
    """

    def __init__(self, session_factory: SessionFactory, max_update_retries: int = 5) -> None:
        self.session_factory = session_factory
        self.max_update_retries = max_update_retries

    def replace_active(self, challenge: OtpChallenge) -> OtpChallenge | None:
        """
        Store a challenge as the only active one for its key.

        ``uq_otp_active`` rejects the insert when a concurrent call stored an
        active row first; the call then retries and supersedes that row.
        """
        try:
            for attempt in range(1, self.max_update_retries + 1):
                with self.session_factory() as session:
                    previous = session.scalars(
                        select(OtpChallengeModel)
                        .where(
                            OtpChallengeModel.identifier == challenge.identifier,
                            OtpChallengeModel.purpose == challenge.purpose.value,
                            OtpChallengeModel.superseded_at.is_(None),
                        )
                        .order_by(OtpChallengeModel.created_at.desc())
                        .with_for_update()
                    ).all()

                    now = datetime.now(UTC)
                    for row in previous:
                        row.superseded_at = now
                    # Superseded rows leave the unique index before the insert
                    session.flush()

                    session.add(OtpChallengeModel(id=challenge.id, **_challenge_values(challenge)))
                    try:
                        session.commit()
                    except IntegrityError:
                        session.rollback()
                        logger.debug(
                            f"Active {challenge.purpose.value} challenge stored concurrently, "
                            f"retry {attempt}"
                        )
                        continue
                    return _to_challenge(previous[0]) if previous else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to store challenge for {challenge.purpose.value}: {e}")
            raise RepositoryError(f"Failed to store challenge: {e}", e) from e

        raise ConcurrencyError("OtpChallenge", challenge.id)

    def get_latest(self, identifier: str, purpose: OtpPurpose) -> OtpChallenge | None:
        try:
            with self.session_factory() as session:
                row = session.scalars(
                    select(OtpChallengeModel)
                    .where(
                        OtpChallengeModel.identifier == identifier,
                        OtpChallengeModel.purpose == purpose.value,
                        OtpChallengeModel.superseded_at.is_(None),
                    )
                    .order_by(OtpChallengeModel.created_at.desc())
                    .limit(1)
                ).first()
                return _to_challenge(row) if row else None
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to load challenge: {e}", e) from e

    def find_superseded(
        self, identifier: str, purpose: OtpPurpose, code: str
    ) -> OtpChallenge | None:
        try:
            with self.session_factory() as session:
                row = session.scalars(
                    select(OtpChallengeModel)
                    .where(
                        OtpChallengeModel.identifier == identifier,
                        OtpChallengeModel.purpose == purpose.value,
                        OtpChallengeModel.superseded_at.is_not(None),
                        OtpChallengeModel.code == code,
                    )
                    .limit(1)
                ).first()
                return _to_challenge(row) if row else None
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to load challenge: {e}", e) from e

    def atomic_update(
        self, challenge_id: str, predicate: ChallengePredicate, mutation: ChallengeMutation
    ) -> OtpChallenge | None:
        try:
            for _ in range(self.max_update_retries):
                with self.session_factory() as session:
                    row = session.get(OtpChallengeModel, challenge_id)
                    if row is None:
                        return None

                    challenge = _to_challenge(row)
                    if not predicate(challenge):
                        return None
                    seen_attempts = row.attempts
                    seen_consumed = row.consumed_at
                    seen_superseded = row.superseded_at

                    mutation(challenge)
                    conditions = [
                        OtpChallengeModel.id == challenge_id,
                        OtpChallengeModel.attempts == seen_attempts,
                    ]
                    if seen_consumed is None:
                        conditions.append(OtpChallengeModel.consumed_at.is_(None))
                    if seen_superseded is None:
                        conditions.append(OtpChallengeModel.superseded_at.is_(None))

                    result = session.execute(
                        update(OtpChallengeModel)
                        .where(*conditions)
                        .values(**_challenge_values(challenge))
                        .execution_options(synchronize_session=False)
                    )
                    session.commit()
                    if result.rowcount == 1:
                        return challenge
        except SQLAlchemyError as e:
            logger.error(f"Failed to update challenge {challenge_id}: {e}")
            raise RepositoryError(f"Failed to update challenge: {e}", e) from e

        raise ConcurrencyError("OtpChallenge", challenge_id)

    def delete_expired(self, before: datetime) -> int:
        try:
            with self.session_factory() as session:
                result = session.execute(
                    delete(OtpChallengeModel).where(
                        or_(
                            OtpChallengeModel.expires_at < before,
                            OtpChallengeModel.consumed_at < before,
                            OtpChallengeModel.superseded_at < before,
                        )
                    )
                )
                session.commit()
                return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete expired challenges: {e}")
            raise RepositoryError(f"Failed to delete expired challenges: {e}", e) from e
