"""Validator protocol for per-kind field checks."""

from typing import Any, Dict, Protocol


class Validator(Protocol):
    """Field validation function interface.

    A validator is a callable that checks one resource record against its
    surrounding project data and returns an error map. Validators are:

    - Pure: no I/O, no mutation of the record or the context
    - Total: user mistakes are reported, never raised
    - Deterministic: the same input always yields the same mapping

    Example:
        def validate_namespace(namespace, context) -> Dict[str, str]:
            errors = {}
            if not namespace.name:
                errors["name"] = "Namespace name is required."
            return errors
    """

    def __call__(self, resource: Any, context: Any) -> Dict[str, str]:
        """Check a resource and return its error map.

        Args:
            resource: The record to verify (type depends on kind)
            context: Read-only snapshot of sibling collections

        Returns:
            Field-path -> message mapping.
            Empty dict if the resource passes all checks.
        """
        ...
