from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sehat.bmi.classification import BmiStatus

from services.bot.domain.user import User


@dataclass(frozen=True)
class Report:
    report_id: int
    user_id: int
    patient_name: str
    height: float
    weight: float
    bmi: float
    bmi_status: BmiStatus
    machine_id: str
    fee: Decimal
    transaction_ref: str
    payment_method: str
    created_at: datetime


@dataclass(frozen=True)
class Settlement:
    """Outcome of a confirmed payment: the stored report and the credited user."""

    report: Report
    user: User
