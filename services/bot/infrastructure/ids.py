from __future__ import annotations

import secrets
import uuid


class UuidIdProvider:
    def __init__(self, prefix: str = "") -> None:
        self._prefix = prefix

    def generate(self) -> str:
        return f"{self._prefix}{uuid.uuid4()}"


class DisplayIdProvider:
    """Short human-readable ids such as ``UID-0421937``."""

    def __init__(self, prefix: str = "UID-", digits: int = 7) -> None:
        self._prefix = prefix
        self._digits = digits

    def generate(self) -> str:
        number = secrets.randbelow(10**self._digits)
        return f"{self._prefix}{number:0{self._digits}d}"
