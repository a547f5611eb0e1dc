"""Tests for writing adherence results."""

import pandas as pd
import pytest

from pdc_adherence.adherence.aggregate import AdherenceResult
from pdc_adherence.adherence.batch import PatientFailure
from pdc_adherence.errors import ExportError
from pdc_adherence.export.results import (
    DRUG_LEVEL_COLUMNS,
    SUMMARY_COLUMNS,
    results_frame,
    write_results,
)


@pytest.fixture
def outcomes():
    return {
        "P2": AdherenceResult("P2", 2 / 3, {"B": 0.5, "A": 1.0}),
        "P1": AdherenceResult("P1", 1.0, {"A": 1.0}),
        "P3": PatientFailure("P3", "InvariantViolation", "patient P3 has no drugs to aggregate"),
    }


class TestResultsFrame:
    def test_summary_layout(self, outcomes):
        df = results_frame(outcomes)
        assert list(df.columns) == SUMMARY_COLUMNS
        assert df["patient_id"].tolist() == ["P1", "P2", "P3"]
        assert df["overall_adherence"].iloc[1] == pytest.approx(0.666667)
        assert pd.isna(df["overall_adherence"].iloc[2])
        assert df["error"].iloc[2].startswith("InvariantViolation")

    def test_drug_level_layout(self, outcomes):
        df = results_frame(outcomes, drug_level=True)
        assert list(df.columns) == DRUG_LEVEL_COLUMNS
        p2 = df[df["patient_id"] == "P2"]
        assert p2["drug_name"].tolist() == ["A", "B"]
        assert p2["drug_adherence"].tolist() == [1.0, 0.5]
        assert p2["overall_adherence"].nunique() == 1
        assert len(df) == 4

    def test_precision(self, outcomes):
        df = results_frame(outcomes, float_precision=2)
        assert df["overall_adherence"].iloc[1] == 0.67

    def test_empty(self):
        df = results_frame({}, drug_level=True)
        assert df.empty
        assert list(df.columns) == DRUG_LEVEL_COLUMNS


class TestWriteResults:
    def test_writes_csv(self, outcomes, tmp_path):
        path = write_results(outcomes, tmp_path / "out" / "pdc.csv", drug_level=True)
        df = pd.read_csv(path, dtype={"patient_id": str})
        assert len(df) == 4
        assert set(df["patient_id"]) == {"P1", "P2", "P3"}

    def test_unwritable_destination(self, outcomes, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(ExportError):
            write_results(outcomes, blocker / "pdc.csv")
