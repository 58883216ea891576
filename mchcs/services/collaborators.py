"""
Collaborator contracts for cohort rule evaluation.

Key patterns:
- Protocol-based dependency injection (no process-wide service registry)
- Generic Result type for expected per-patient failures
- Immutable evaluation context supplied fresh per call
"""

from collections.abc import Collection, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Generic, Protocol, TypeVar

import structlog

from mchcs.domain.models import ConceptRef, Observation, PatientId

# Configure structured logging (production-ready observability)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

# Generic Result type for explicit error handling
ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=BaseException)


class Result(Generic[ValueT, ErrorT]):
    """
    Explicit error handling without exceptions for expected failures.

    Used where a failure is ordinary data (a patient missing a birth date)
    rather than a fault that should abort the batch.
    """

    def __init__(self, value: ValueT | None = None, error: ErrorT | None = None) -> None:
        if value is not None and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is None and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = value
        self._error: ErrorT | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error:
            raise self._error
        return self._value  # type: ignore

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error


class ConceptResolver(Protocol):
    """Resolves symbolic dictionary names (concepts and programs)."""

    async def resolve(self, name: str) -> ConceptRef:
        """
        Resolve ``name`` to a collaborator handle.

        Raises:
            ConfigurationError: if the dictionary does not know ``name``.
        """
        ...


class SurvivalFilter(Protocol):
    async def alive_as_of(self, cohort: Collection[PatientId], now: datetime) -> set[PatientId]: ...


class EnrollmentFilter(Protocol):
    async def enrolled_as_of(
        self, program: ConceptRef, cohort: Collection[PatientId], now: datetime
    ) -> set[PatientId]:
        """Return the members of ``cohort`` actively enrolled in ``program`` at ``now``."""
        ...


class ObservationStore(Protocol):
    """
    Bulk lookup of the most recent observation per patient for one concept.

    One call covers the whole cohort. Patients without an observation map to
    None or are left out of the mapping; the ordering used to pick "latest"
    belongs to the store.
    """

    async def latest_observation(
        self, concept: ConceptRef, cohort: Collection[PatientId], now: datetime
    ) -> Mapping[PatientId, Observation | None]: ...


class DemographicsStore(Protocol):
    async def birth_date(self, patient_id: PatientId) -> date | datetime | None: ...


@dataclass(frozen=True)
class EvaluationContext:
    """
    Everything one evaluation call needs: the evaluation instant and the
    collaborators to read clinical data from.

    Never mutated during a call; safe to share read-only across concurrent
    evaluations of different cohorts.
    """

    now: datetime
    concepts: ConceptResolver
    survival: SurvivalFilter
    enrollment: EnrollmentFilter
    observations: ObservationStore
    demographics: DemographicsStore
