"""Shared test fixtures for pdc_adherence tests."""

from datetime import date, timedelta

import pytest

from pdc_adherence.ingest.records import DoseRecord

DAY1 = date(2023, 1, 1)


def day(n: int) -> date:
    """Calendar date of study day n (day 1 is DAY1)."""
    return DAY1 + timedelta(days=n - 1)


@pytest.fixture
def make_dose():
    """Factory for DoseRecords; fill is given as a study day number."""
    counter = {"n": 0}

    def _make(fill, days_supply, drug="ATORVASTATIN", patient="P1", record_no=None):
        if record_no is None:
            record_no = counter["n"]
        counter["n"] += 1
        return DoseRecord(
            patient_id=patient,
            drug_name=drug,
            fill_date=day(fill) if isinstance(fill, int) else fill,
            days_supply=days_supply,
            record_no=record_no,
        )

    return _make


@pytest.fixture
def write_csv(tmp_path):
    """Write rows (header first) to a CSV file and return its path."""

    def _write(rows, name="doses.csv"):
        path = tmp_path / name
        path.write_text("\n".join(",".join(r) for r in rows) + "\n")
        return path

    return _write


@pytest.fixture
def sample_csv(write_csv):
    return write_csv([
        ("patient_id", "drug_name", "days_supply", "fill_date"),
        ("P1", "LISINOPRIL", "30", "01/01/2023"),
        ("P1", "LISINOPRIL", "30", "01/20/2023"),
        ("P1", "METFORMIN", "10", "01/01/2023"),
        ("P1", "METFORMIN", "10", "01/21/2023"),
        ("P2", "LISINOPRIL", "5", "03/01/2023"),
        ("P2", "LISINOPRIL", "5", "03/10/2023"),
    ])
