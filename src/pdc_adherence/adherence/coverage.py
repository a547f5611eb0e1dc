from dataclasses import dataclass
from datetime import date, timedelta
import typing as t

import pandas as pd

from ..errors import InvariantViolation
from ..ingest.records import DoseRecord

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class ShiftedDose:
  dose: DoseRecord
  effective_start: date
  effective_end: date

  @property
  def shifted(self) -> bool:
    return self.effective_start != self.dose.fill_date


@dataclass(frozen=True)
class CoverageCalendar:
  """Covered days of one drug for one patient, over [window_start, window_end]."""
  window_start: date
  window_end: date
  covered_dates: t.FrozenSet[date]
  intervals: t.Tuple[ShiftedDose, ...] = ()

  @property
  def window_days(self) -> int:
    return (self.window_end - self.window_start).days + 1

  @property
  def covered_days(self) -> int:
    return len(self.covered_dates)

  def window_dates(self) -> t.Set[date]:
    return day_range(self.window_start, self.window_end)

  def gap_dates(self) -> t.List[date]:
    return sorted(self.window_dates() - self.covered_dates)


def day_range(start: date, end: date) -> t.Set[date]:
  return set(pd.date_range(start, end, freq="D").date)


def sort_doses(doses: t.Iterable[DoseRecord]) -> t.List[DoseRecord]:
  # equal fill dates keep source order
  return sorted(doses, key=lambda d: d.sort_key)


def build_coverage_calendar(doses: t.Sequence[DoseRecord]) -> CoverageCalendar:
  """Resolve one drug's fills into non-overlapping supply intervals.

  Fills are walked in chronological order. A fill that arrives on or
  before the day the previous supply runs out starts the day after it,
  so each day is covered by at most one fill.
  """
  if not doses:
    raise InvariantViolation("cannot build a coverage calendar from an empty dose list")

  covered: t.Set[date] = set()
  intervals = []
  prior_end = None
  window_start = window_end = None

  for dose in sort_doses(doses):
    start = dose.fill_date
    if prior_end is not None and start <= prior_end:
      start = prior_end + ONE_DAY
    end = start + timedelta(days=dose.days_supply - 1)

    covered.update(day_range(start, end))
    intervals.append(ShiftedDose(dose=dose, effective_start=start, effective_end=end))
    prior_end = end

    window_start = start if window_start is None else min(window_start, start)
    window_end = end if window_end is None else max(window_end, end)

  return CoverageCalendar(
    window_start=window_start,
    window_end=window_end,
    covered_dates=frozenset(covered),
    intervals=tuple(intervals),
  )
