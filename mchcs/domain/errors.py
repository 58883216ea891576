"""
Exception hierarchy for rule evaluation.

Provides specific exception types for the failure categories a rule can
report, with structured error information.
"""

from typing import Any


class EvaluationError(Exception):
    """Base exception for all rule evaluation errors."""

    def __init__(
        self,
        message: str,
        code: str = "EVALUATION_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(EvaluationError):
    """A program or concept name could not be resolved against the dictionary.

    Fatal for the whole batch: the dictionary is presumed misconfigured.
    """

    def __init__(
        self, message: str, name: str = "unknown", details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details={"name": name, **(details or {})},
        )
        self.name = name


class MissingDemographicError(EvaluationError):
    """A patient has no resolvable birth date. Non-fatal, per patient."""

    def __init__(self, patient_id: Any, field: str = "birth_date") -> None:
        super().__init__(
            message=f"Patient {patient_id} has no {field}",
            code="MISSING_DEMOGRAPHIC",
            details={"patient_id": patient_id, "field": field},
        )
        self.patient_id = patient_id
        self.field = field
