"""User domain model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class UserRole(str, Enum):
    """First profile registered for an address is the primary account."""

    PRIMARY = "SuperUser"
    DEPENDENT = "FamilyUser"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"

    @classmethod
    def parse(cls, text: str) -> "Gender | None":
        normalized = text.strip().lower()
        for gender in cls:
            if gender.value.lower() == normalized:
                return gender
        return None


@dataclass(frozen=True)
class NewUser:
    """Profile collected during registration, before it is persisted."""

    address: str
    full_name: str
    age: int
    gender: Gender
    role: UserRole


@dataclass(frozen=True)
class User:
    """User entity."""

    user_id: int
    display_id: str
    address: str
    full_name: str
    age: int | None
    gender: str | None
    role: UserRole
    balance: Decimal
    created_at: datetime
