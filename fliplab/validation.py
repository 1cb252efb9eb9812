"""
Request validation for FlipLab search.

Validation never raises for bad user input: it returns a ValidationResult
holding either the normalized value or a ValidationError naming the field.
"""

from dataclasses import dataclass
from typing import Any, Generic, Mapping, Optional, TypeVar
from urllib.parse import urlparse

from pydantic import ValidationError as PydanticValidationError

from fliplab.error_handling.errors import ValidationError
from fliplab.models import SearchRequest

T = TypeVar("T")

# Python attribute name -> wire name, for error reporting
_WIRE_NAMES = {
    name: (info.alias or name) for name, info in SearchRequest.model_fields.items()
}


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    """Either a normalized value or the reason it was rejected."""
    value: Optional[T] = None
    error: Optional[ValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> T:
        """Return the value, or raise the ValidationError."""
        if self.error is not None:
            raise self.error
        return self.value


class RequestValidator:
    """Validates and normalizes search requests and item URLs."""

    def validate(self, raw: Any) -> ValidationResult[SearchRequest]:
        """Validate a raw search request.

        Trims the query and fills defaults (``limit=20``,
        ``sortBy=relevance``). Re-validating a normalized request returns an
        equal request.

        Args:
            raw: Mapping with camelCase or snake_case keys, or a SearchRequest

        Returns:
            ValidationResult with the normalized SearchRequest or the first error
        """
        if isinstance(raw, SearchRequest):
            raw = raw.model_dump(by_alias=True)

        if not isinstance(raw, Mapping):
            return ValidationResult(error=ValidationError("body", "Search request must be an object"))

        try:
            return ValidationResult(value=SearchRequest.model_validate(dict(raw)))
        except PydanticValidationError as e:
            return ValidationResult(error=self._first_error(e))

    def validate_item_url(self, raw: Any) -> ValidationResult[str]:
        """Validate an item URL: must be an absolute http(s) URL."""
        if not isinstance(raw, str) or not raw.strip():
            return ValidationResult(error=ValidationError("url", "URL is required"))

        url = raw.strip()
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return ValidationResult(error=ValidationError("url", "URL must be a valid absolute http(s) URI"))

        return ValidationResult(value=url)

    def _first_error(self, error: PydanticValidationError) -> ValidationError:
        details = error.errors()[0]
        loc = details.get("loc") or ("body",)
        field = str(loc[0])
        field = _WIRE_NAMES.get(field, field)
        reason = details.get("msg", "Invalid value")
        # Strip pydantic's "Value error, " prefix from custom validator messages
        if reason.startswith("Value error, "):
            reason = reason[len("Value error, "):]
        if details.get("type") == "missing":
            reason = f"{field} is required"
        return ValidationError(field, reason)


def validate_search_request(raw: Any) -> ValidationResult[SearchRequest]:
    """Module-level shortcut for ``RequestValidator().validate``."""
    return RequestValidator().validate(raw)
