"""Violation model for representing project-wide validation failures."""

from dataclasses import dataclass
from typing import Dict, List


@dataclass(frozen=True)
class Violation:
    """Represents one failed field check inside a project.

    Violations are produced by the aggregate checker by flattening the
    per-resource error maps, so that a whole project can be reported as one
    list.

    Attributes:
        id: Unique identifier for the violation (e.g., "jobs[0].container-image-0")
        message: Human-readable description of the violation
        path: Location path as list of strings (e.g., ["jobs", "0", "container-image-0"])
        severity: Severity level - "error", "warning", or "info"
    """

    id: str
    message: str
    path: List[str]
    severity: str = "error"


def violations_from_errors(collection: str, index: int, errors: Dict[str, str]) -> List[Violation]:
    """Convert a validator error map into Violations.

    Args:
        collection: Project collection name (e.g., "roles")
        index: Position of the resource in its collection
        errors: Field-path -> message mapping returned by a validator

    Returns:
        One Violation per error entry, in the error map's order
    """
    return [
        Violation(
            id=f"{collection}[{index}].{field_path}",
            message=message,
            path=[collection, str(index), field_path],
        )
        for field_path, message in errors.items()
    ]
