"""
Tests for the error hierarchy.
"""

import pytest

from plantfate.errors import (
    ConfigError,
    ConsistencyError,
    PlantFateError,
    PreconditionViolation,
)


class TestErrors:
    def test_config_error(self) -> None:
        e = ConfigError("met_file", "could not open forcing file")
        assert e.parameter == "met_file"
        assert e.reason == "could not open forcing file"
        assert "met_file" in str(e)
        assert "could not open forcing file" in str(e)

    def test_consistency_error(self) -> None:
        e = ConsistencyError("total_mass", 1.0, 1.5)
        assert (e.quantity, e.expected, e.got) == ("total_mass", 1.0, 1.5)
        assert "Expected: 1.0" in str(e)
        assert "Got: 1.5" in str(e)

    def test_precondition_violation(self) -> None:
        e = PreconditionViolation("ClimateProvider.state_at", "time moved backwards")
        assert e.operation == "ClimateProvider.state_at"
        assert str(e).startswith("Precondition violated in ClimateProvider.state_at")

    @pytest.mark.parametrize("error_type", [ConfigError, ConsistencyError, PreconditionViolation])
    def test_hierarchy(self, error_type: type) -> None:
        assert issubclass(error_type, PlantFateError)
        assert not issubclass(error_type, ValueError)
