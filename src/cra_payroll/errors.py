"""Base exception for the payroll deduction engine.

Concrete errors live next to the code that raises them and all derive
from PayrollEngineError so callers can catch the whole family.
"""

from __future__ import annotations


class PayrollEngineError(Exception):
    """Base class for engine errors."""


class RecordNotFoundError(PayrollEngineError):
    """Raised when a stored record cannot be found by key."""

    def __init__(self, kind: str, key: object):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")
