from dataclasses import dataclass, field
from datetime import date
import typing as t

from ..errors import InvariantViolation
from ..ingest.ledger import PatientLedger
from .coverage import CoverageCalendar, build_coverage_calendar


@dataclass(frozen=True)
class AdherenceResult:
  patient_id: str
  overall_adherence: float
  drug_adherence: t.Dict[str, float] = field(default_factory=dict)


def drug_ratio(calendar: CoverageCalendar) -> float:
  return calendar.covered_days / calendar.window_days


def aggregate_adherence(patient_id: str, calendars: t.Mapping[str, CoverageCalendar]) -> AdherenceResult:
  """Per-drug PDC plus an overall PDC over the union of every drug's window.

  A day counts once in the overall numerator if any drug covers it, and
  once in the denominator if it falls inside any drug's window.
  """
  if not calendars:
    raise InvariantViolation(f"patient {patient_id} has no drugs to aggregate")

  drug_adherence = {}
  all_covered: t.Set[date] = set()
  all_window: t.Set[date] = set()
  for drug in sorted(calendars):
    cal = calendars[drug]
    drug_adherence[drug] = drug_ratio(cal)
    all_covered |= cal.covered_dates
    all_window |= cal.window_dates()

  return AdherenceResult(
    patient_id=patient_id,
    overall_adherence=len(all_covered & all_window) / len(all_window),
    drug_adherence=drug_adherence,
  )


def build_calendars(ledger: PatientLedger) -> t.Dict[str, CoverageCalendar]:
  return {drug: build_coverage_calendar(doses) for drug, doses in ledger.doses_by_drug.items()}


def compute_patient(ledger: PatientLedger) -> AdherenceResult:
  # every drug's calendar is finished before the overall ratio is taken
  return aggregate_adherence(ledger.patient_id, build_calendars(ledger))
