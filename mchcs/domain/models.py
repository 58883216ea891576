"""
Domain models for cohort rule evaluation.

These models represent the clinical facts the rules consume and the results
they produce. They use Pydantic for validation and are all immutable.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# Opaque patient identifier, stable across one batch
PatientId = int | str


class ConceptRef(BaseModel):
    """A dictionary concept (or program) resolved to a collaborator handle."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, description="Symbolic dictionary name")
    handle: str = Field(min_length=1, description="Collaborator-specific identifier")

    def same_as(self, other: "ConceptRef | None") -> bool:
        return other is not None and other.handle == self.handle


class Observation(BaseModel):
    """A single timestamped clinical fact attached to a patient."""

    model_config = ConfigDict(frozen=True)

    patient_id: PatientId
    concept: ConceptRef
    obs_datetime: datetime
    value_coded: ConceptRef | None = None
    value_numeric: float | None = None
    value_text: str | None = None

    def is_coded_as(self, concept: ConceptRef) -> bool:
        """True when the coded answer of this observation is ``concept``."""
        return concept.same_as(self.value_coded)


class EligibilityResult(BaseModel):
    """Per-patient outcome of a rule, paired with the instant it was computed."""

    model_config = ConfigDict(frozen=True)

    patient_id: PatientId
    is_eligible: bool
    evaluated_at: datetime
    rule: str = Field(description="Flag message of the rule that produced the result")


class PatientFlag(BaseModel):
    """Display flag raised for a patient whose rule evaluated to true."""

    model_config = ConfigDict(frozen=True)

    patient_id: PatientId
    message: str
    raised_at: datetime
