from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, DateTime, Float, Integer, Numeric, String
from sqlalchemy.orm import Session

from sehat.bmi.classification import BmiStatus, classify_bmi
from sehat.payload.measurement import Measurement

from services.bot.application.interfaces import ReportLedger
from services.bot.domain.report import Report, Settlement
from services.bot.domain.session import SessionEvent, SessionStatus, next_status
from services.bot.infrastructure.db import Base
from services.bot.infrastructure.sessions import swap_status
from services.bot.infrastructure.users import UserRecord, apply_credit, user_to_domain

LOGGER = logging.getLogger(__name__)

PAID = "paid"
SETTLES_FROM = SessionStatus.AWAITING_PAYMENT
SETTLES_TO = next_status(SETTLES_FROM, SessionEvent.PAYMENT_CONFIRMED)


class MeasurementRecord(Base):
    __tablename__ = "user_bmi_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    height = Column(Float, nullable=False)
    weight = Column(Float, nullable=False)
    bmi = Column(Float, nullable=False)
    payment_status = Column(String, nullable=False)
    machine_id = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class ReportRecord(Base):
    __tablename__ = "reports"

    report_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    patient_name = Column(String, nullable=False)
    height = Column(Float, nullable=False)
    weight = Column(Float, nullable=False)
    bmi = Column(Float, nullable=False)
    bmi_status = Column(String, nullable=False)
    machine_id = Column(String, nullable=False)
    fee = Column(Numeric(10, 2), nullable=False)
    transaction_ref = Column(String, nullable=False, unique=True)
    payment_method = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class SqlReportLedger(ReportLedger):
    """Writes paid measurements and their reports.

    ``settle_session`` is the path used by the conversation: the session's
    status swap, the wallet credit, the measurement and the report share one
    transaction, and nothing is written unless the swap succeeds.
    """

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def record_completion(
        self,
        *,
        user_id: int,
        measurement: Measurement,
        fee: Decimal,
        transaction_ref: str,
        payment_method: str,
    ) -> Report:
        with self._session_factory() as db:
            user = _require_user(db, user_id)
            report = _write_completion(
                db,
                user,
                measurement=measurement,
                fee=fee,
                transaction_ref=transaction_ref,
                payment_method=payment_method,
            )
            db.commit()
            return _report_to_domain(report)

    def settle_session(
        self,
        *,
        session_id: str,
        user_id: int,
        measurement: Measurement,
        fee: Decimal,
        transaction_ref: str,
        payment_method: str,
    ) -> Settlement | None:
        with self._session_factory() as db:
            if not swap_status(
                db, session_id, expected=SETTLES_FROM, status=SETTLES_TO
            ):
                db.rollback()
                LOGGER.warning(
                    "Session %s is no longer awaiting payment; skipping settlement",
                    session_id,
                )
                return None

            apply_credit(db, user_id, fee)
            user = _require_user(db, user_id)
            report = _write_completion(
                db,
                user,
                measurement=measurement,
                fee=fee,
                transaction_ref=transaction_ref,
                payment_method=payment_method,
            )
            db.commit()
            db.refresh(user)
            LOGGER.info(
                "Settled session %s: credited %s to user %s, report %s (%s)",
                session_id,
                fee,
                user_id,
                report.report_id,
                transaction_ref,
            )
            return Settlement(report=_report_to_domain(report), user=user_to_domain(user))


def _require_user(db: Session, user_id: int) -> UserRecord:
    user = db.get(UserRecord, user_id)
    if user is None:
        raise ValueError(f"User {user_id} not found for report generation")
    return user


def _write_completion(
    db: Session,
    user: UserRecord,
    *,
    measurement: Measurement,
    fee: Decimal,
    transaction_ref: str,
    payment_method: str,
) -> ReportRecord:
    now = datetime.now(timezone.utc)
    db.add(
        MeasurementRecord(
            user_id=user.user_id,
            height=measurement.height,
            weight=measurement.weight,
            bmi=measurement.bmi,
            payment_status=PAID,
            machine_id=measurement.machine_id,
            created_at=now,
        )
    )
    report = ReportRecord(
        user_id=user.user_id,
        patient_name=user.full_name,
        height=measurement.height,
        weight=measurement.weight,
        bmi=measurement.bmi,
        bmi_status=classify_bmi(measurement.bmi).value,
        machine_id=measurement.machine_id,
        fee=fee,
        transaction_ref=transaction_ref,
        payment_method=payment_method,
        created_at=now,
    )
    db.add(report)
    db.flush()
    return report


def _report_to_domain(record: ReportRecord) -> Report:
    return Report(
        report_id=record.report_id,
        user_id=record.user_id,
        patient_name=record.patient_name,
        height=record.height,
        weight=record.weight,
        bmi=record.bmi,
        bmi_status=BmiStatus(record.bmi_status),
        machine_id=record.machine_id,
        fee=Decimal(record.fee).quantize(Decimal("0.01")),
        transaction_ref=record.transaction_ref,
        payment_method=record.payment_method,
        created_at=record.created_at,
    )
