"""
Domain Layer Base Classes.

The domain layer contains pure business logic with no external dependencies.
This makes business rules:
- Easy to test (no mocking needed)
- Reusable across the HTTP handlers and services
- Clear and self-documenting

Example Usage:
    class EmailRequestValidator(Validator):
        def validate(self, data: dict) -> List[ValidationError]:
            # Pure checks here
            ...
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass
class ValidationError:
    """A validation error with field and message."""
    field: str
    message: str
    code: str = "invalid"


class Validator(ABC):
    """
    Abstract base class for validators.

    Validators check that data meets business requirements before processing.
    """

    @abstractmethod
    def validate(self, data: Dict[str, Any]) -> List[ValidationError]:
        """
        Validate the data and return any errors.

        Args:
            data: The data to validate

        Returns:
            List of ValidationError objects (empty if valid)
        """
        pass

    def is_valid(self, data: Dict[str, Any]) -> bool:
        """Check if data is valid."""
        return len(self.validate(data)) == 0


def require_fields(data: Any, fields: List[str], prefix: str = "") -> List[ValidationError]:
    """Report every field that is absent, None or blank in `data`."""
    if not isinstance(data, dict):
        return [ValidationError(field=prefix.rstrip(".") or "body", message="must be an object", code="type")]

    errors = []
    for name in fields:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append(ValidationError(field=f"{prefix}{name}", message="is required", code="missing"))
    return errors


def require_text(
    data: Dict[str, Any],
    fields: List[str],
    prefix: str = "",
    single_line: bool = True,
) -> List[ValidationError]:
    """
    Report fields of `data` that are set but not strings.

    With single_line, strings containing CR or LF are reported too; such values
    end up in mail headers.
    """
    errors = []
    for name in fields:
        value = data.get(name)
        if value is None:
            continue
        if not isinstance(value, str):
            errors.append(ValidationError(field=f"{prefix}{name}", message="must be a string", code="type"))
        elif single_line and ("\r" in value or "\n" in value):
            errors.append(ValidationError(field=f"{prefix}{name}", message="must not contain line breaks", code="invalid"))
    return errors
