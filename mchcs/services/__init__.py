"""
Core services for the application.

This package contains the rule evaluator and the collaborator contracts it
reads clinical data through.
"""

from .collaborators import (
    ConceptResolver,
    DemographicsStore,
    EnrollmentFilter,
    EvaluationContext,
    ObservationStore,
    Result,
    SurvivalFilter,
)
from .rule_evaluator import ResolvedConcepts, RuleEvaluator

__all__ = [
    "ConceptResolver",
    "DemographicsStore",
    "EnrollmentFilter",
    "EvaluationContext",
    "ObservationStore",
    "ResolvedConcepts",
    "Result",
    "RuleEvaluator",
    "SurvivalFilter",
]
