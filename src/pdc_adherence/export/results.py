from pathlib import Path
import typing as t
import logging

import pandas as pd

from ..adherence.batch import PatientFailure, PatientOutcome
from ..errors import ExportError

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = ["patient_id", "overall_adherence", "error"]
DRUG_LEVEL_COLUMNS = ["patient_id", "drug_name", "drug_adherence", "overall_adherence", "error"]
DEFAULT_FLOAT_PRECISION = 6


def _rows(outcome: PatientOutcome, drug_level: bool) -> t.List[dict]:
    if isinstance(outcome, PatientFailure):
        error = f"{outcome.error_type}: {outcome.message}"
        row = {"patient_id": outcome.patient_id, "overall_adherence": None, "error": error}
        if drug_level:
            row.update(drug_name=None, drug_adherence=None)
        return [row]

    if not drug_level:
        return [{"patient_id": outcome.patient_id, "overall_adherence": outcome.overall_adherence, "error": None}]

    return [
        {
            "patient_id": outcome.patient_id,
            "drug_name": drug,
            "drug_adherence": ratio,
            "overall_adherence": outcome.overall_adherence,
            "error": None,
        }
        for drug, ratio in outcome.drug_adherence.items()
    ]


def results_frame(
    outcomes: t.Mapping[str, PatientOutcome],
    drug_level: bool = False,
    float_precision: int = DEFAULT_FLOAT_PRECISION,
) -> pd.DataFrame:
    """Flatten outcomes into the export table.

    Summary layout has one row per patient; drug-level layout has one row
    per (patient, drug) and repeats the overall ratio on each row.
    """
    columns = DRUG_LEVEL_COLUMNS if drug_level else SUMMARY_COLUMNS
    rows = [row for outcome in outcomes.values() for row in _rows(outcome, drug_level)]
    df = pd.DataFrame(rows, columns=columns)

    sort_cols = ["patient_id", "drug_name"] if drug_level else ["patient_id"]
    df = df.sort_values(sort_cols, na_position="first", kind="mergesort").reset_index(drop=True)

    ratio_cols = [c for c in ("drug_adherence", "overall_adherence") if c in df.columns]
    df[ratio_cols] = df[ratio_cols].astype("float64").round(float_precision)
    return df


def write_results(
    outcomes: t.Mapping[str, PatientOutcome],
    path: Path,
    drug_level: bool = False,
    float_precision: int = DEFAULT_FLOAT_PRECISION,
    delimiter: str = ",",
) -> Path:
    path = Path(path)
    df = results_frame(outcomes, drug_level=drug_level, float_precision=float_precision)
    try:
        if path.parent and not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(path, index=False, sep=delimiter, compression="infer")
    except OSError as exc:
        raise ExportError(f"could not write results to {path}: {exc}") from exc

    logger.info("Wrote %d rows to %s", len(df), path)
    return path

