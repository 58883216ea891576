"""
PCR-test-due rule for children in the MCH child-services program.

A child is due for an HIV DNA PCR test when all of the following hold at the
evaluation instant:
- alive and actively enrolled in the MCH-CS program
- latest HIV status observation is coded as "exposed to HIV"
- no PCR result recorded yet (neither quantitative nor qualitative reading)
- at least 6 completed weeks and at most 9 completed months old

Data is fetched in bulk, once per concept or filter, never per patient; only
the birth date is looked up per enrolled patient. Resolution and bulk-fetch
failures abort the whole call. A missing birth date only makes that one
patient ineligible.
"""

import asyncio
import time
from collections.abc import Awaitable, Collection, Mapping
from datetime import date, datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict

from mchcs.config import EvaluatorConfig
from mchcs.domain.age import PatientAge, age_at
from mchcs.domain.errors import MissingDemographicError
from mchcs.domain.models import ConceptRef, EligibilityResult, Observation, PatientFlag, PatientId
from mchcs.services.collaborators import EvaluationContext, Result, logger

T = TypeVar("T")


class ResolvedConcepts(BaseModel):
    """Dictionary handles resolved once per call and shared by every patient."""

    model_config = ConfigDict(frozen=True)

    program: ConceptRef
    hiv_status: ConceptRef
    hiv_exposed: ConceptRef
    pcr_quantitative: ConceptRef
    pcr_qualitative: ConceptRef


class RuleEvaluator:
    """
    Evaluates the PCR-test-due rule over a cohort.

    Stateless between calls: one instance can serve concurrent evaluations.
    """

    FLAG_MESSAGE = "Due For PCR Test"

    def __init__(self, config: EvaluatorConfig | None = None) -> None:
        self.config = config or EvaluatorConfig()
        self.logger = logger.bind(component="rule_evaluator", rule=self.FLAG_MESSAGE)

    @classmethod
    def flag_message(cls) -> str:
        return cls.FLAG_MESSAGE

    async def evaluate(
        self, cohort: Collection[PatientId], context: EvaluationContext
    ) -> dict[PatientId, EligibilityResult]:
        """
        Decide, for every cohort member, whether a PCR test is currently due.

        Args:
            cohort: Patient ids to evaluate. May be empty.
            context: Evaluation instant and collaborators.

        Returns:
            Exactly one EligibilityResult per distinct cohort member.

        Raises:
            ConfigurationError: if the program or a concept cannot be resolved.
            Exception: any collaborator failure or timeout, unchanged.
        """
        start_time = time.perf_counter()
        patients = list(dict.fromkeys(cohort))
        log = self.logger.bind(cohort_size=len(patients), now=context.now.isoformat())
        log.debug("rule_evaluation_started")

        try:
            concepts = await self.resolve_concepts(context)
            if not patients:
                log.debug("rule_evaluation_skipped_empty_cohort")
                return {}

            # One bulk call per concept, alongside the alive/enrolled narrowing
            latest = context.observations.latest_observation
            enrolled, status_obs, quantitative_obs, qualitative_obs = await self._gather(
                self._alive_and_enrolled(patients, concepts.program, context),
                self._call(latest(concepts.hiv_status, patients, context.now)),
                self._call(latest(concepts.pcr_quantitative, patients, context.now)),
                self._call(latest(concepts.pcr_qualitative, patients, context.now)),
            )
            birth_dates = await self._birth_dates(
                [pid for pid in patients if pid in enrolled], context
            )
        except Exception as e:
            log.exception("rule_evaluation_failed", error=str(e))
            raise

        results: dict[PatientId, EligibilityResult] = {}
        for patient_id in patients:
            is_eligible = patient_id in enrolled and self._decide(
                patient_id,
                concepts,
                status_obs.get(patient_id),
                quantitative_obs.get(patient_id),
                qualitative_obs.get(patient_id),
                birth_dates.get(patient_id),
                context.now,
            )
            results[patient_id] = EligibilityResult(
                patient_id=patient_id,
                is_eligible=is_eligible,
                evaluated_at=context.now,
                rule=self.FLAG_MESSAGE,
            )

        log.info(
            "rule_evaluation_completed",
            enrolled=len(enrolled),
            eligible=sum(1 for r in results.values() if r.is_eligible),
            duration_seconds=round(time.perf_counter() - start_time, 3),
        )
        return results

    async def resolve_concepts(self, context: EvaluationContext) -> ResolvedConcepts:
        """Resolve the program and every concept the rule reads, all or nothing."""
        cfg = self.config
        program, hiv_status, hiv_exposed, pcr_quantitative, pcr_qualitative = await self._gather(
            self._call(context.concepts.resolve(cfg.program_name)),
            self._call(context.concepts.resolve(cfg.hiv_status_concept)),
            self._call(context.concepts.resolve(cfg.hiv_exposed_concept)),
            self._call(context.concepts.resolve(cfg.pcr_quantitative_concept)),
            self._call(context.concepts.resolve(cfg.pcr_qualitative_concept)),
        )
        return ResolvedConcepts(
            program=program,
            hiv_status=hiv_status,
            hiv_exposed=hiv_exposed,
            pcr_quantitative=pcr_quantitative,
            pcr_qualitative=pcr_qualitative,
        )

    @staticmethod
    def patient_age(
        patient_id: PatientId, birth_date: date | datetime | None, now: datetime
    ) -> Result[PatientAge, MissingDemographicError]:
        if birth_date is None:
            return Result.err(MissingDemographicError(patient_id))
        return Result.ok(age_at(birth_date, now))

    def is_within_age_window(self, age: PatientAge) -> bool:
        if age.is_negative:
            return False
        return age.weeks >= self.config.min_age_weeks and age.months <= self.config.max_age_months

    def flags(self, results: Mapping[PatientId, EligibilityResult]) -> list[PatientFlag]:
        """One display flag per eligible patient, ordered by patient id."""
        return [
            PatientFlag(
                patient_id=r.patient_id, message=self.FLAG_MESSAGE, raised_at=r.evaluated_at
            )
            for r in sorted(results.values(), key=lambda r: str(r.patient_id))
            if r.is_eligible
        ]

    def summarise(self, results: Mapping[PatientId, EligibilityResult]) -> dict[str, Any]:
        """
        Build a compact summary dict suitable for JSON API responses.

        Example output:
        {
            "rule": "Due For PCR Test",
            "total": 3,
            "eligible": 1,
            "ineligible": 2,
            "flagged_patients": [42],
            "evaluated_at": "2026-10-19T08:00:00+00:00"
        }
        """
        flags = self.flags(results)
        evaluated_at = next((r.evaluated_at for r in results.values()), None)
        return {
            "rule": self.FLAG_MESSAGE,
            "total": len(results),
            "eligible": len(flags),
            "ineligible": len(results) - len(flags),
            "flagged_patients": [f.patient_id for f in flags],
            "evaluated_at": evaluated_at.isoformat() if evaluated_at else None,
        }

    def _decide(
        self,
        patient_id: PatientId,
        concepts: ResolvedConcepts,
        status_obs: Observation | None,
        quantitative_obs: Observation | None,
        qualitative_obs: Observation | None,
        birth_date: date | datetime | None,
        now: datetime,
    ) -> bool:
        age = self.patient_age(patient_id, birth_date, now)
        if age.is_err():
            self.logger.warning("missing_birth_date", patient_id=patient_id)
            return False

        has_exposure_record = status_obs is not None and status_obs.is_coded_as(
            concepts.hiv_exposed
        )
        has_no_prior_test = quantitative_obs is None and qualitative_obs is None
        return has_exposure_record and has_no_prior_test and self.is_within_age_window(age.unwrap())

    async def _alive_and_enrolled(
        self, patients: list[PatientId], program: ConceptRef, context: EvaluationContext
    ) -> set[PatientId]:
        alive = set(await self._call(context.survival.alive_as_of(patients, context.now)))
        if not alive:
            return set()
        enrolled = await self._call(context.enrollment.enrolled_as_of(program, alive, context.now))
        return alive.intersection(enrolled)

    async def _birth_dates(
        self, patients: list[PatientId], context: EvaluationContext
    ) -> dict[PatientId, date | datetime | None]:
        semaphore = asyncio.Semaphore(self.config.max_concurrent_lookups)

        async def lookup(patient_id: PatientId) -> tuple[PatientId, date | datetime | None]:
            async with semaphore:
                return patient_id, await self._call(context.demographics.birth_date(patient_id))

        return dict(await self._gather(*(lookup(pid) for pid in patients)))

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self.config.collaborator_timeout_seconds)

    async def _gather(self, *coros: Awaitable[Any]) -> list[Any]:
        """
        Run coroutines under one TaskGroup.

        The first failure cancels the rest and is re-raised as itself rather
        than wrapped in an ExceptionGroup.
        """
        try:
            async with asyncio.TaskGroup() as task_group:
                tasks = [task_group.create_task(coro) for coro in coros]  # type: ignore[arg-type]
        except ExceptionGroup as group:
            raise group.exceptions[0]
        return [task.result() for task in tasks]
