"""Tests for the per-patient fan-out."""

import pytest

from pdc_adherence.adherence.aggregate import AdherenceResult
from pdc_adherence.adherence.batch import (
    PatientFailure,
    chunk_ledgers,
    compute_adherence,
    resolve_workers,
    run_patient,
    split_outcomes,
)
from pdc_adherence.ingest.ledger import PatientLedger, build_ledgers


@pytest.fixture
def many_ledgers(make_dose):
    doses = []
    for i in range(12):
        pid = f"P{i:02d}"
        doses += [
            make_dose(1, 30, drug="A", patient=pid),
            make_dose(20 + i, 30, drug="A", patient=pid),
            make_dose(10, 5 + i, drug="B", patient=pid),
            make_dose(40 + 2 * i, 7, drug="B", patient=pid),
        ]
    return build_ledgers(doses)


class TestComputeAdherence:
    def test_one_outcome_per_patient(self, many_ledgers):
        outcomes = compute_adherence(many_ledgers, workers=1, progress=False)
        assert set(outcomes) == set(many_ledgers)
        assert all(isinstance(o, AdherenceResult) for o in outcomes.values())

    def test_worker_count_does_not_change_results(self, many_ledgers):
        serial = compute_adherence(many_ledgers, workers=1, progress=False)
        parallel = compute_adherence(many_ledgers, workers=3, progress=False)
        assert parallel == serial

    def test_failure_is_isolated(self, many_ledgers):
        ledgers = dict(many_ledgers)
        ledgers["BAD"] = PatientLedger(patient_id="BAD", doses_by_drug={})
        outcomes = compute_adherence(ledgers, workers=2, progress=False)
        assert isinstance(outcomes["BAD"], PatientFailure)
        assert outcomes["BAD"].error_type == "InvariantViolation"
        results, failures = split_outcomes(outcomes)
        assert set(failures) == {"BAD"}
        assert len(results) == len(many_ledgers)

    @pytest.mark.parametrize("chunksize", [1, 4, 50])
    def test_chunksize_does_not_change_results(self, many_ledgers, chunksize):
        serial = compute_adherence(many_ledgers, workers=1, progress=False)
        chunked = compute_adherence(many_ledgers, workers=3, progress=False, chunksize=chunksize)
        assert chunked == serial

    def test_failure_is_isolated_within_chunk(self, many_ledgers):
        ledgers = dict(many_ledgers)
        ledgers["BAD"] = PatientLedger(patient_id="BAD", doses_by_drug={})
        outcomes = compute_adherence(ledgers, workers=2, progress=False, chunksize=5)
        results, failures = split_outcomes(outcomes)
        assert set(failures) == {"BAD"}
        assert set(results) == set(many_ledgers)

    def test_empty_batch(self):
        assert compute_adherence({}, workers=4, progress=False) == {}


class TestRunPatient:
    def test_failure_value(self):
        outcome = run_patient(PatientLedger(patient_id="X", doses_by_drug={"A": ()}))
        assert outcome == PatientFailure(
            patient_id="X",
            error_type="InvariantViolation",
            message="cannot build a coverage calendar from an empty dose list",
        )


class TestChunkLedgers:
    def test_sizes(self, many_ledgers):
        chunks = chunk_ledgers(many_ledgers, 5)
        assert [len(c) for c in chunks] == [5, 5, 2]
        assert [l.patient_id for c in chunks for l in c] == list(many_ledgers)

    def test_rejects_zero(self, many_ledgers):
        with pytest.raises(ValueError):
            chunk_ledgers(many_ledgers, 0)


class TestResolveWorkers:
    def test_default_uses_cpus(self):
        assert resolve_workers(None) >= 1

    def test_explicit(self):
        assert resolve_workers(3) == 3

    def test_rejects_zero(self):
        with pytest.raises(ValueError):
            resolve_workers(0)
