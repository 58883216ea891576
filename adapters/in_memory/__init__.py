"""In-memory collaborators for rule evaluation: fixtures, demos and tests."""

from .stores import (
    DictionaryConceptResolver,
    Enrollment,
    InMemoryDemographicsStore,
    InMemoryEnrollmentFilter,
    InMemoryObservationStore,
    InMemorySurvivalFilter,
)

__all__ = [
    "DictionaryConceptResolver",
    "Enrollment",
    "InMemoryDemographicsStore",
    "InMemoryEnrollmentFilter",
    "InMemoryObservationStore",
    "InMemorySurvivalFilter",
]
