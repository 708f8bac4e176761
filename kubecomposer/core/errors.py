"""kubecomposer exceptions for programmer and input-format errors.

User mistakes in field values are never raised: validators report them as
field-path -> message maps. The exceptions below cover the remaining cases.
"""

from typing import Any, Optional


class ContractError(Exception):
    """Raised when a core operation is called outside its contract.

    This is a programmer error, not a user error. Examples:
    - A RoleBinding handed to binding-specific logic without a roleRef
    - A record type the serializer or validator dispatch does not know

    Attributes:
        message: Description of the violated contract
        resource: The record that triggered the failure (optional)
    """

    def __init__(self, message: str, resource: Optional[Any] = None) -> None:
        """Initialize ContractError exception.

        Args:
            message: Error message describing the violated contract
            resource: The offending record (optional)
        """
        super().__init__(message)
        self.resource = resource


class ProjectFormatError(Exception):
    """Raised when a project or manifest file cannot be turned into models.

    This exception covers input-format failures such as:
    - Unparseable YAML or JSON
    - Unknown or missing ``kind``
    - Fields with the wrong shape (a list where a mapping is expected)

    Attributes:
        message: Description of the failure
        path: Location of the bad value, e.g. "jobs[0].containers" (optional)
        details: Additional debugging information (optional)
    """

    def __init__(
        self, message: str, path: Optional[str] = None, details: Optional[str] = None
    ) -> None:
        """Initialize ProjectFormatError exception.

        Args:
            message: Error message describing the failure
            path: Location of the offending value (optional)
            details: Additional details for debugging (optional)
        """
        super().__init__(message if path is None else f"{path}: {message}")
        self.path = path
        self.details = details
