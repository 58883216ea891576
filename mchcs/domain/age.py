"""
Age arithmetic for paediatric rules.

Ages are counted in completed units: a child is 6 weeks old only once the
full sixth week has elapsed, and N months old only once the Nth monthly
anniversary of the birth date has been reached.
"""

from datetime import date, datetime, time, timedelta

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, ConfigDict

_ONE_WEEK = timedelta(weeks=1)


class PatientAge(BaseModel):
    """Age of a patient at an instant, in completed weeks and months."""

    model_config = ConfigDict(frozen=True)

    weeks: int
    months: int

    @property
    def is_negative(self) -> bool:
        return self.weeks < 0 or self.months < 0


def as_instant(value: date | datetime, like: datetime) -> datetime:
    """Align ``value`` with ``like`` so the two can be subtracted.

    Dates become midnight in the timezone of ``like``; naive datetimes borrow
    its timezone.
    """
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=like.tzinfo)
    if value.tzinfo is None and like.tzinfo is not None:
        return value.replace(tzinfo=like.tzinfo)
    if value.tzinfo is not None and like.tzinfo is None:
        return value.replace(tzinfo=None)
    return value


def completed_weeks(start: datetime, end: datetime) -> int:
    """Whole weeks from ``start`` to ``end``, truncated toward zero."""
    elapsed = end - start
    if elapsed < timedelta(0):
        return -((start - end) // _ONE_WEEK)
    return elapsed // _ONE_WEEK


def completed_months(start: datetime, end: datetime) -> int:
    """Whole calendar months from ``start`` to ``end``, truncated toward zero."""
    delta = relativedelta(end, start)
    return delta.years * 12 + delta.months


def age_at(birth: date | datetime, now: datetime) -> PatientAge:
    born = as_instant(birth, now)
    return PatientAge(weeks=completed_weeks(born, now), months=completed_months(born, now))
