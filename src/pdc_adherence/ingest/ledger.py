from dataclasses import dataclass, field
import typing as t
import logging

from .records import DoseRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatientLedger:
    patient_id: str
    doses_by_drug: t.Dict[str, t.Tuple[DoseRecord, ...]] = field(default_factory=dict)

    @property
    def drug_names(self) -> t.List[str]:
        return sorted(self.doses_by_drug)


def build_ledgers(records: t.Iterable[DoseRecord]) -> t.Dict[str, PatientLedger]:
    """Fold dose records into one ledger per patient.

    Records are grouped by patient then by drug in the order they arrive;
    nothing is deduplicated. Sequences are frozen to tuples once every
    record has been seen, so no computation task can mutate a ledger.
    """
    grouped: t.Dict[str, t.Dict[str, t.List[DoseRecord]]] = {}
    for rec in records:
        by_drug = grouped.setdefault(rec.patient_id, {})
        by_drug.setdefault(rec.drug_name, []).append(rec)

    ledgers = {
        pid: PatientLedger(
            patient_id=pid,
            doses_by_drug={drug: tuple(doses) for drug, doses in by_drug.items()},
        )
        for pid, by_drug in grouped.items()
    }
    logger.info("Built %d patient ledgers", len(ledgers))
    return ledgers


def find_duplicate_doses(records: t.Iterable[DoseRecord]) -> t.List[t.Tuple[DoseRecord, int]]:
    """Return (dose, count) for every dispensing event that appears more than once."""
    counts: t.Dict[t.Tuple, t.List[DoseRecord]] = {}
    for rec in records:
        key = (rec.patient_id, rec.drug_name, rec.fill_date, rec.days_supply)
        counts.setdefault(key, []).append(rec)
    return [(recs[0], len(recs)) for recs in counts.values() if len(recs) > 1]
