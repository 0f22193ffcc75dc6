"""Structured error types and result classes for the dynaform runtime.

Four kinds of failure exist in the engine and each has its own shape:
- Configuration errors: collected into a ConfigValidationResult; raising is
  left to the caller (DynamicFormError / InvalidConfigError)
- Navigation errors: returned as NavigationResult(success=False), never raised
- Evaluation errors: logged by the evaluator and treated as False
- Field validation errors: FieldError entries produced by the value
  validation engine, keyed by dot-notation path

Result classes are frozen dataclasses with to_dict/from_dict so that they can
be handed to renderers or serialized as-is.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dynaform.types import FieldErrorCode, FormMode


class DynamicFormError(Exception):
    """Raised for invalid form configuration when the caller asks to fail fast.

    Attributes:
        errors: Individual human-readable error messages
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors or [])
        super().__init__(message)


class InvalidConfigError(DynamicFormError):
    """Raised when a raw configuration dict does not match FORM_CONFIG_SCHEMA.

    Attributes:
        path: Dot-notation location of the first offending node
    """

    def __init__(self, message: str, path: str = "", errors: Optional[List[str]] = None):
        self.path = path
        super().__init__(message, errors)


class UnknownFieldTypeError(DynamicFormError):
    """Raised when a field type has no registered definition."""

    def __init__(self, field_type: str):
        self.field_type = field_type
        super().__init__(f"No field type registered for '{field_type}'", [field_type])


@dataclass(frozen=True)
class FieldError:
    """Per-field validation error details.

    Attributes:
        path: Dot-notation field path (e.g., "address.city", "contacts[0].email")
        code: Validation error code, also the validationMessages lookup key
        message: Human-readable error description
        params: Parameters of the failed validator (e.g., {"min": 3})

    Examples:
        >>> err = FieldError(
        ...     path="email",
        ...     code=FieldErrorCode.EMAIL,
        ...     message="Please enter a valid email address",
        ... )
        >>> err.to_dict()["code"]
        'email'
    """
    path: str
    code: FieldErrorCode
    message: str
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "path": self.path,
            "code": self.code.value if isinstance(self.code, FieldErrorCode) else self.code,
            "message": self.message,
        }
        if self.params:
            result["params"] = dict(self.params)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldError":
        """Create FieldError from dict."""
        code = data["code"]
        if isinstance(code, str):
            try:
                code = FieldErrorCode(code)
            except ValueError:
                code = FieldErrorCode.CUSTOM
        return cls(
            path=data["path"],
            code=code,
            message=data["message"],
            params=data.get("params", {}),
        )


@dataclass(frozen=True)
class NavigationResult:
    """Outcome of a page navigation attempt.

    Navigation failures are expected user-interaction edge cases, so they are
    reported through this result instead of exceptions.

    Attributes:
        success: Whether the navigation was performed (or was a no-op)
        new_page_index: Page index after the attempt
        error: Failure reason when success is False

    Examples:
        >>> NavigationResult(success=False, new_page_index=2, error="Already on the last page").to_dict()
        {'success': False, 'newPageIndex': 2, 'error': 'Already on the last page'}
    """
    success: bool
    new_page_index: int
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "success": self.success,
            "newPageIndex": self.new_page_index,
        }
        if self.error is not None:
            result["error"] = self.error
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NavigationResult":
        """Create NavigationResult from dict."""
        return cls(
            success=data["success"],
            new_page_index=data["newPageIndex"],
            error=data.get("error"),
        )


@dataclass(frozen=True)
class ConfigValidationResult:
    """Result of statically validating a form configuration.

    Attributes:
        mode: Detected form mode
        errors: Problems that make the configuration unusable
        warnings: Problems worth surfacing during development only

    Examples:
        >>> result = ConfigValidationResult(mode=FormMode.INVALID, errors=["bad"])
        >>> result.is_valid
        False
    """
    mode: FormMode
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "mode": self.mode.value if isinstance(self.mode, FormMode) else self.mode,
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfigValidationResult":
        """Create ConfigValidationResult from dict."""
        mode = data["mode"]
        if isinstance(mode, str):
            mode = FormMode(mode)
        return cls(
            mode=mode,
            errors=list(data.get("errors", [])),
            warnings=list(data.get("warnings", [])),
        )


__all__ = [
    "DynamicFormError",
    "InvalidConfigError",
    "UnknownFieldTypeError",
    "FieldError",
    "NavigationResult",
    "ConfigValidationResult",
]
