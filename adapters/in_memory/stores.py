"""
In-memory implementations of the rule evaluation collaborators.

These play the part a concept dictionary, a patient registry and an
observation table would play in production. They hold plain Python data
and implement the collaborator protocols structurally.
"""

from collections.abc import Collection, Iterable, Mapping
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

from mchcs.domain.age import as_instant
from mchcs.domain.errors import ConfigurationError
from mchcs.domain.models import ConceptRef, Observation, PatientId
from mchcs.services.collaborators import logger

# Names the PCR-test-due rule reads, mapped to demo handles
DEFAULT_DICTIONARY: dict[str, str] = {
    "MCHCS": "program:mchcs",
    "CHILDS_CURRENT_HIV_STATUS": "concept:childs-current-hiv-status",
    "EXPOSURE_TO_HIV": "concept:exposure-to-hiv",
    "HIV_DNA_POLYMERASE_CHAIN_REACTION": "concept:hiv-dna-pcr",
    "HIV_DNA_POLYMERASE_CHAIN_REACTION_QUALITATIVE": "concept:hiv-dna-pcr-qualitative",
}


class DictionaryConceptResolver:
    """Resolves symbolic names against a fixed name → handle dictionary."""

    def __init__(self, dictionary: Mapping[str, str] | None = None) -> None:
        self._dictionary = dict(DEFAULT_DICTIONARY if dictionary is None else dictionary)
        self.logger = logger.bind(collaborator="concept_resolver")

    def ref(self, name: str) -> ConceptRef:
        """Synchronous lookup, handy when building fixtures."""
        handle = self._dictionary.get(name)
        if handle is None:
            self.logger.error("concept_not_found", name=name)
            raise ConfigurationError(f"Unknown dictionary name: {name}", name=name)
        return ConceptRef(name=name, handle=handle)

    async def resolve(self, name: str) -> ConceptRef:
        return self.ref(name)


class InMemorySurvivalFilter:
    """Patients are alive unless a death date at or before ``now`` is recorded."""

    def __init__(self, death_dates: Mapping[PatientId, date | datetime] | None = None) -> None:
        self.death_dates = dict(death_dates or {})

    async def alive_as_of(self, cohort: Collection[PatientId], now: datetime) -> set[PatientId]:
        return {
            pid
            for pid in cohort
            if pid not in self.death_dates or as_instant(self.death_dates[pid], now) > now
        }


class Enrollment(BaseModel):
    """One program enrollment; active from ``enrolled_on`` until ``completed_on``."""

    model_config = ConfigDict(frozen=True)

    patient_id: PatientId
    program: ConceptRef
    enrolled_on: datetime
    completed_on: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        if as_instant(self.enrolled_on, now) > now:
            return False
        return self.completed_on is None or as_instant(self.completed_on, now) > now


class InMemoryEnrollmentFilter:
    def __init__(self, enrollments: Iterable[Enrollment] = ()) -> None:
        self.enrollments = list(enrollments)

    async def enrolled_as_of(
        self, program: ConceptRef, cohort: Collection[PatientId], now: datetime
    ) -> set[PatientId]:
        members = set(cohort)
        return {
            e.patient_id
            for e in self.enrollments
            if e.patient_id in members and program.same_as(e.program) and e.is_active(now)
        }


class InMemoryObservationStore:
    """
    Observation table with "last observation" lookups.

    Observations dated after ``now`` are ignored. When two observations share
    the latest date, the one added later wins.
    """

    def __init__(self, observations: Iterable[Observation] = ()) -> None:
        self.observations = list(observations)
        self.call_count = 0

    def add(self, observation: Observation) -> None:
        self.observations.append(observation)

    async def latest_observation(
        self, concept: ConceptRef, cohort: Collection[PatientId], now: datetime
    ) -> dict[PatientId, Observation | None]:
        self.call_count += 1
        latest: dict[PatientId, Observation | None] = {pid: None for pid in cohort}
        for obs in self.observations:
            if obs.patient_id not in latest or not concept.same_as(obs.concept):
                continue
            if as_instant(obs.obs_datetime, now) > now:
                continue
            current = latest[obs.patient_id]
            if current is None or obs.obs_datetime >= current.obs_datetime:
                latest[obs.patient_id] = obs
        return latest


class InMemoryDemographicsStore:
    def __init__(
        self, birth_dates: Mapping[PatientId, date | datetime | None] | None = None
    ) -> None:
        self.birth_dates = dict(birth_dates or {})
        self.lookups: list[PatientId] = []

    async def birth_date(self, patient_id: PatientId) -> date | datetime | None:
        self.lookups.append(patient_id)
        return self.birth_dates.get(patient_id)
