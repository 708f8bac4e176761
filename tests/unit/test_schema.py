"""Unit tests for core schema definitions.

Tests cover:
- Violation construction and defaults
- Flattening validator error maps into Violations
- Validator protocol compliance of the per-kind validators
"""

from typing import Any, Dict, List

import pytest

from kubecomposer.core.schema import Validator, Violation, violations_from_errors
from kubecomposer.k8s.models import Namespace
from kubecomposer.k8s.validators import VALIDATORS, ValidationContext

# ============================================================================
# Test Fixtures and Mock Implementations
# ============================================================================


def mock_validator_passing(resource: Any, context: Any) -> Dict[str, str]:
    """Mock validator that always passes."""
    return {}


def mock_validator_failing(resource: Any, context: Any) -> Dict[str, str]:
    """Mock validator that reports one field."""
    return {"name": "Name is required."}


# ============================================================================
# Tests for Violation
# ============================================================================


class TestViolation:
    """Tests for Violation dataclass."""

    def test_violation_creation(self):
        """Test basic violation creation with defaults."""
        violation = Violation(id="jobs[0].name", message="Job name is required.", path=["jobs", "0", "name"])

        assert violation.id == "jobs[0].name"
        assert violation.severity == "error"

    def test_violation_is_frozen(self):
        """Test that violations cannot be modified."""
        violation = Violation(id="x", message="m", path=[])

        with pytest.raises(AttributeError):
            violation.message = "other"

    def test_violation_with_warning_severity(self):
        """Test violation with non-default severity."""
        violation = Violation(id="x", message="m", path=[], severity="warning")

        assert violation.severity == "warning"


class TestViolationsFromErrors:
    """Tests for flattening error maps."""

    def test_one_violation_per_entry_in_order(self):
        """Test that each error entry becomes a Violation, keeping order."""
        errors = {"name": "Job name is required.", "container-image-0": "Container image is required."}

        violations = violations_from_errors("jobs", 2, errors)

        assert [v.id for v in violations] == ["jobs[2].name", "jobs[2].container-image-0"]
        assert violations[1].path == ["jobs", "2", "container-image-0"]
        assert violations[1].message == "Container image is required."

    def test_empty_errors(self):
        """Test that a valid record yields no violations."""
        assert violations_from_errors("roles", 0, {}) == []


# ============================================================================
# Tests for Validator Protocol
# ============================================================================


class TestValidatorProtocol:
    """Tests for Validator interface."""

    def test_mock_validators_callable(self):
        """Test that plain functions satisfy the Validator shape."""
        validators: List[Validator] = [mock_validator_passing, mock_validator_failing]

        results = [validator(Namespace(name="data"), None) for validator in validators]

        assert results == [{}, {"name": "Name is required."}]

    def test_registered_validators_return_maps(self):
        """Test that every registered validator accepts a default record."""
        context = ValidationContext()
        for record_type, validator in VALIDATORS.items():
            errors = validator(record_type(), context)
            assert isinstance(errors, dict)
            assert all(isinstance(message, str) for message in errors.values())
