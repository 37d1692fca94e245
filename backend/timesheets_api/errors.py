"""
API error types not covered by ``HTTPException``.
"""
from typing import Dict, List, Optional


class ValidationFailed(Exception):
    """Field level validation errors, rendered as a 400 response."""

    message = "Validation Failed"

    def __init__(self, errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(self.message)
        self.errors: Dict[str, List[str]] = errors or {}


class ValidationErrors:
    """Collects field errors before raising them together."""

    def __init__(self):
        self._errors: Dict[str, List[str]] = {}

    def add(self, field: str, message: str):
        self._errors.setdefault(field, []).append(message)

    def __contains__(self, field: str) -> bool:
        return field in self._errors

    def __bool__(self) -> bool:
        return bool(self._errors)

    def raise_if_any(self):
        if self._errors:
            raise ValidationFailed(dict(self._errors))
