"""
Shared fixtures: a fixed evaluation instant and a builder that assembles
in-memory collaborators patient by patient.
"""

from datetime import UTC, date, datetime, timedelta

import pytest
from dateutil.relativedelta import relativedelta

from adapters.in_memory import (
    DictionaryConceptResolver,
    Enrollment,
    InMemoryDemographicsStore,
    InMemoryEnrollmentFilter,
    InMemoryObservationStore,
    InMemorySurvivalFilter,
)
from mchcs.domain.models import Observation, PatientId
from mchcs.services import EvaluationContext

NOW = datetime(2026, 10, 19, 9, 30, tzinfo=UTC)

_DEFAULT_AGE = timedelta(weeks=8)


class CohortBuilder:
    """Fluent builder for a cohort of patients with in-memory clinical data."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now
        self.resolver = DictionaryConceptResolver()
        self.program = self.resolver.ref("MCHCS")
        self.hiv_status = self.resolver.ref("CHILDS_CURRENT_HIV_STATUS")
        self.hiv_exposed = self.resolver.ref("EXPOSURE_TO_HIV")
        self.pcr_quantitative = self.resolver.ref("HIV_DNA_POLYMERASE_CHAIN_REACTION")
        self.pcr_qualitative = self.resolver.ref("HIV_DNA_POLYMERASE_CHAIN_REACTION_QUALITATIVE")

        self.enrollments: list[Enrollment] = []
        self.observations = InMemoryObservationStore()
        self.demographics = InMemoryDemographicsStore()
        self.survival = InMemorySurvivalFilter()
        self.patient_ids: list[PatientId] = []

    def patient(
        self,
        patient_id: PatientId,
        *,
        enrolled: bool = True,
        exposed: bool = True,
        age: timedelta | relativedelta | None = _DEFAULT_AGE,
        birth_date: date | datetime | None = None,
        quantitative_pcr: bool = False,
        qualitative_pcr: bool = False,
        died_on: datetime | None = None,
    ) -> "CohortBuilder":
        """Add a patient; defaults describe a child who is due for the test."""
        self.patient_ids.append(patient_id)
        if birth_date is None and age is not None:
            birth_date = self.now - age
        self.demographics.birth_dates[patient_id] = birth_date

        if enrolled:
            self.enrollments.append(
                Enrollment(
                    patient_id=patient_id,
                    program=self.program,
                    enrolled_on=self.now - timedelta(weeks=2),
                )
            )
        if exposed:
            self.observations.add(
                Observation(
                    patient_id=patient_id,
                    concept=self.hiv_status,
                    obs_datetime=self.now - timedelta(days=5),
                    value_coded=self.hiv_exposed,
                )
            )
        if quantitative_pcr:
            self.observations.add(
                Observation(
                    patient_id=patient_id,
                    concept=self.pcr_quantitative,
                    obs_datetime=self.now - timedelta(days=2),
                    value_numeric=0.0,
                )
            )
        if qualitative_pcr:
            self.observations.add(
                Observation(
                    patient_id=patient_id,
                    concept=self.pcr_qualitative,
                    obs_datetime=self.now - timedelta(days=2),
                    value_text="NEGATIVE",
                )
            )
        if died_on is not None:
            self.survival.death_dates[patient_id] = died_on
        return self

    def context(self, **overrides: object) -> EvaluationContext:
        collaborators: dict[str, object] = {
            "now": self.now,
            "concepts": self.resolver,
            "survival": self.survival,
            "enrollment": InMemoryEnrollmentFilter(self.enrollments),
            "observations": self.observations,
            "demographics": self.demographics,
        }
        collaborators.update(overrides)
        return EvaluationContext(**collaborators)  # type: ignore[arg-type]


@pytest.fixture
def builder() -> CohortBuilder:
    return CohortBuilder()


@pytest.fixture(scope="session")
def make_builder() -> type[CohortBuilder]:
    """Builder factory, usable from hypothesis tests where function fixtures are not."""
    return CohortBuilder
