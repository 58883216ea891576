"""
Demonstration run of the PCR-test-due rule over a small sample cohort.

Builds in-memory collaborators for a handful of typical patients, evaluates
the rule and prints the outcome.

Run with: uv run python demo.py
"""

import asyncio
from datetime import UTC, datetime, timedelta

from dateutil.relativedelta import relativedelta
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adapters.in_memory import (
    DictionaryConceptResolver,
    Enrollment,
    InMemoryDemographicsStore,
    InMemoryEnrollmentFilter,
    InMemoryObservationStore,
    InMemorySurvivalFilter,
)
from mchcs.config import configure_logging, get_config
from mchcs.domain.models import Observation
from mchcs.services import EvaluationContext, RuleEvaluator

console = Console()

# patient id -> (description, enrolled, exposed, prior pcr, birth date offset)
SCENARIOS = {
    1: ("Exposed, 8 weeks, untested", True, True, False, timedelta(weeks=8)),
    2: ("Exposed, untested, not enrolled", False, True, False, timedelta(weeks=8)),
    3: ("Exposed, 5 weeks old", True, True, False, timedelta(weeks=5)),
    4: ("Exposed, 10 months old", True, True, False, relativedelta(months=10)),
    5: ("Exposed, already tested", True, True, True, timedelta(weeks=12)),
    6: ("No HIV status recorded", True, False, False, timedelta(weeks=12)),
    7: ("Exposed, no birth date", True, True, False, None),
}


def build_context(now: datetime) -> EvaluationContext:
    """Create in-memory collaborators populated from SCENARIOS."""
    resolver = DictionaryConceptResolver()
    program = resolver.ref("MCHCS")
    status = resolver.ref("CHILDS_CURRENT_HIV_STATUS")
    exposed = resolver.ref("EXPOSURE_TO_HIV")
    pcr = resolver.ref("HIV_DNA_POLYMERASE_CHAIN_REACTION")

    enrollments = []
    observations = []
    birth_dates = {}
    for pid, (_, enrolled, is_exposed, tested, age) in SCENARIOS.items():
        birth_dates[pid] = now - age if age is not None else None
        if enrolled:
            enrollments.append(
                Enrollment(patient_id=pid, program=program, enrolled_on=now - timedelta(weeks=4))
            )
        if is_exposed:
            observations.append(
                Observation(
                    patient_id=pid,
                    concept=status,
                    obs_datetime=now - timedelta(days=3),
                    value_coded=exposed,
                )
            )
        if tested:
            observations.append(
                Observation(
                    patient_id=pid,
                    concept=pcr,
                    obs_datetime=now - timedelta(days=1),
                    value_numeric=0.0,
                )
            )

    return EvaluationContext(
        now=now,
        concepts=resolver,
        survival=InMemorySurvivalFilter(),
        enrollment=InMemoryEnrollmentFilter(enrollments),
        observations=InMemoryObservationStore(observations),
        demographics=InMemoryDemographicsStore(birth_dates),
    )


async def main() -> None:
    config = get_config()
    configure_logging(config.logging)

    now = datetime.now(UTC)
    evaluator = RuleEvaluator(config.evaluator)

    console.print(Panel(f"Evaluating rule: {evaluator.flag_message()}", style="blue"))
    results = await evaluator.evaluate(SCENARIOS.keys(), build_context(now))

    table = Table(title=f"Cohort evaluated at {now:%Y-%m-%d %H:%M}")
    table.add_column("Patient", justify="right")
    table.add_column("Scenario")
    table.add_column("Due", justify="center")
    for pid, result in results.items():
        table.add_row(
            str(pid),
            SCENARIOS[pid][0],
            "[green]yes[/green]" if result.is_eligible else "[dim]no[/dim]",
        )
    console.print(table)

    summary = evaluator.summarise(results)
    console.print(
        f"{summary['eligible']} of {summary['total']} patients flagged: "
        f"{summary['flagged_patients']}"
    )


if __name__ == "__main__":
    asyncio.run(main())
