"""Shared helpers for reading loosely-typed manifest and project data.

Both the manifest loader and the project file reader receive nested
dicts/lists from a YAML or JSON parser. These helpers coerce one value at a
time and raise ProjectFormatError with the value's location when the shape is
wrong, so callers can read fields in a straight line.
"""

from typing import Any, Optional, Tuple

from kubecomposer.core.errors import ProjectFormatError
from kubecomposer.k8s.models import KeyValueMap


def expect_mapping(value: Any, path: str) -> dict:
    """Return ``value`` as a dict; a missing value reads as an empty mapping.

    Raises:
        ProjectFormatError: If ``value`` is present but not a mapping
    """
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ProjectFormatError(f"expected a mapping, got {type(value).__name__}", path=path)
    return value


def expect_list(value: Any, path: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ProjectFormatError(f"expected a list, got {type(value).__name__}", path=path)
    return value


def as_str(value: Any, path: str, default: str = "") -> str:
    """Read a string field. Numbers are accepted and converted, booleans are not."""
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ProjectFormatError(f"expected a string, got {type(value).__name__}", path=path)
    return str(value)


def as_int(value: Any, path: str, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ProjectFormatError(f"expected an integer, got {type(value).__name__}", path=path)
    return int(value)


def as_optional_int(value: Any, path: str) -> Optional[int]:
    if value is None:
        return None
    return as_int(value, path, 0)


def as_optional_bool(value: Any, path: str) -> Optional[bool]:
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ProjectFormatError(f"expected true or false, got {type(value).__name__}", path=path)
    return value


def as_bool(value: Any, path: str, default: bool = False) -> bool:
    result = as_optional_bool(value, path)
    return default if result is None else result


def as_str_tuple(value: Any, path: str) -> Tuple[str, ...]:
    return tuple(as_str(item, f"{path}[{i}]") for i, item in enumerate(expect_list(value, path)))


def as_key_value_map(value: Any, path: str) -> KeyValueMap:
    """Read a string -> string mapping (labels, data) preserving its order."""
    mapping = expect_mapping(value, path)
    return KeyValueMap.from_pairs(
        (str(key), as_str(item, f"{path}.{key}")) for key, item in mapping.items()
    )
