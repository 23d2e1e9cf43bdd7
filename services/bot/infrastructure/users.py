"""User repository implementation using SQLAlchemy."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from sqlalchemy import Column, DateTime, Integer, Numeric, String, case, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from services.bot.application.interfaces import IdProvider, UserRepository
from services.bot.domain.session import SessionStatus
from services.bot.domain.user import NewUser, User, UserRole
from services.bot.infrastructure.db import Base
from services.bot.infrastructure.sessions import swap_status

LOGGER = logging.getLogger(__name__)


class UserRecord(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    display_id = Column(String, unique=True, nullable=False, index=True)
    address = Column(String, nullable=False, index=True)
    full_name = Column(String, nullable=False)
    age = Column(Integer, nullable=True)
    gender = Column(String, nullable=True)
    role = Column(String, nullable=False)
    balance = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    created_at = Column(DateTime(timezone=True), nullable=False)


class SqlUserRepository(UserRepository):
    """SQLAlchemy implementation of UserRepository."""

    def __init__(
        self,
        session_factory,
        display_id_provider: IdProvider,
        *,
        max_display_id_attempts: int = 5,
    ) -> None:
        self._session_factory = session_factory
        self._display_ids = display_id_provider
        self._max_attempts = max_display_id_attempts

    def create(self, new_user: NewUser) -> User:
        """Create a user, retrying when the generated display id is taken."""
        return self._insert(new_user)

    def register_for_session(
        self,
        new_user: NewUser,
        *,
        session_id: str,
        expected: SessionStatus,
        status: SessionStatus,
    ) -> User | None:
        """Create a user and bind it to the session while moving the session
        from ``expected`` to ``status``, all in one transaction.

        Returns None, and keeps no user row, when the session has already left
        ``expected``.
        """

        def bind(db: Session, record: UserRecord) -> bool:
            return swap_status(
                db,
                session_id,
                expected=expected,
                status=status,
                selected_user_id=record.user_id,
            )

        return self._insert(new_user, bind=bind)

    def _insert(
        self,
        new_user: NewUser,
        bind: Callable[[Session, UserRecord], bool] | None = None,
    ) -> User | None:
        for attempt in range(1, self._max_attempts + 1):
            record = UserRecord(
                display_id=self._display_ids.generate(),
                address=new_user.address,
                full_name=new_user.full_name,
                age=new_user.age,
                gender=new_user.gender.value,
                role=new_user.role.value,
                balance=Decimal("0.00"),
                created_at=datetime.now(timezone.utc),
            )
            with self._session_factory() as db:
                db.add(record)
                try:
                    db.flush()
                except IntegrityError:
                    db.rollback()
                    LOGGER.warning(
                        "Display id %s already taken (attempt %d)",
                        record.display_id,
                        attempt,
                    )
                    continue
                if bind is not None and not bind(db, record):
                    db.rollback()
                    return None
                db.commit()
                db.refresh(record)
                return user_to_domain(record)
        raise RuntimeError(
            f"Could not allocate a unique display id after {self._max_attempts} attempts"
        )

    def get_by_id(self, user_id: int) -> User | None:
        """Get user by ID."""
        with self._session_factory() as db:
            record = db.get(UserRecord, user_id)
            if record is None:
                return None
            return user_to_domain(record)

    def get_by_display_id(self, display_id: str, *, address: str) -> User | None:
        """Get a user by display id, only if it belongs to ``address``."""
        with self._session_factory() as db:
            record = (
                db.query(UserRecord)
                .filter(
                    UserRecord.display_id == display_id,
                    UserRecord.address == address,
                )
                .one_or_none()
            )
            if record is None:
                return None
            return user_to_domain(record)

    def list_by_address(self, address: str) -> list[User]:
        """Primary account first, then dependents in creation order."""
        primary_first = case((UserRecord.role == UserRole.PRIMARY.value, 0), else_=1)
        with self._session_factory() as db:
            records = (
                db.query(UserRecord)
                .filter(UserRecord.address == address)
                .order_by(primary_first, UserRecord.created_at, UserRecord.user_id)
                .all()
            )
            return [user_to_domain(record) for record in records]

    def credit_balance(self, user_id: int, amount: Decimal) -> User:
        with self._session_factory() as db:
            apply_credit(db, user_id, amount)
            db.commit()
            record = db.get(UserRecord, user_id)
            return user_to_domain(record)


def apply_credit(db: Session, user_id: int, amount: Decimal) -> None:
    """Add ``amount`` to the stored balance inside the caller's transaction."""
    result = db.execute(
        update(UserRecord)
        .where(UserRecord.user_id == user_id)
        .values(balance=UserRecord.balance + amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ValueError(f"User {user_id} not found")


def user_to_domain(record: UserRecord) -> User:
    return User(
        user_id=record.user_id,
        display_id=record.display_id,
        address=record.address,
        full_name=record.full_name,
        age=record.age,
        gender=record.gender,
        role=UserRole(record.role),
        balance=Decimal(record.balance).quantize(Decimal("0.01")),
        created_at=record.created_at,
    )
