"""
Error types for the cohort demography engine.

Three families are kept apart because callers react to them differently:

- ConfigError: forcing files or settings are missing or malformed. Raised
  at initialization; nothing built from the bad input is usable.
- ConsistencyError: an internal bookkeeping check failed (mass pools that
  should agree do not, a state-vector slice has the wrong width). The run
  must stop.
- PreconditionViolation: a caller broke a usage contract, e.g. asked the
  climate provider for an earlier time than it already served.

Example:
    try:
        climate = ClimateProvider.initialize("met.csv", "co2.csv")
    except ConfigError as e:
        print(f"Bad forcing input '{e.parameter}': {e.reason}")
"""

from __future__ import annotations


class PlantFateError(Exception):
    """Base class for all errors raised by plantfate."""

    pass


class ConfigError(PlantFateError):
    """Raised when forcing data or configuration cannot be used.

    Attributes:
        parameter: The file path or setting that is at fault.
        reason: Why it was rejected.
    """

    def __init__(self, parameter: str, reason: str):
        self.parameter = parameter
        self.reason = reason
        super().__init__(f"Invalid configuration for '{parameter}': {reason}")


class ConsistencyError(PlantFateError):
    """Raised when two independent bookkeeping paths disagree.

    Attributes:
        quantity: Name of the quantity that failed the check.
        expected: Value from the reference computation.
        got: Value from the tracked computation.
    """

    def __init__(self, quantity: str, expected: object, got: object):
        self.quantity = quantity
        self.expected = expected
        self.got = got
        super().__init__(
            f"Consistency check failed for '{quantity}':\n"
            f"  Expected: {expected}\n"
            f"  Got: {got}"
        )


class PreconditionViolation(PlantFateError):
    """Raised when an operation is called in a way its contract forbids.

    Attributes:
        operation: The operation that was misused.
        reason: What was wrong with the call.
    """

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Precondition violated in {operation}: {reason}")
