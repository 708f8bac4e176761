"""
Core schema definitions for violations and validators.

These domain-agnostic protocols and dataclasses form the foundation
of the kubecomposer validation layer.
"""

from kubecomposer.core.schema.validator import Validator
from kubecomposer.core.schema.violation import Violation, violations_from_errors

__all__ = [
    "Validator",
    "Violation",
    "violations_from_errors",
]
