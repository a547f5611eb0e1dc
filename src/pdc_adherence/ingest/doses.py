from pathlib import Path
import typing as t
import logging

import numpy as np
import pandas as pd

from ..errors import ParseError
from .constants import (
    BAD_RECORD_POLICIES, DAYS_SUPPLY_REGEX, DEFAULT_BAD_RECORD_POLICY, DEFAULT_COLUMNS,
    DEFAULT_DATE_FORMAT, DEFAULT_DELIMITER, DEFAULT_ENCODING, DOSE_FIELDS, FIRST_DATA_LINE,
)
from .ledger import find_duplicate_doses
from .records import DoseRecord

logger = logging.getLogger(__name__)


def read_dose_table(
    path: Path,
    delimiter: str = DEFAULT_DELIMITER,
    encoding: str = DEFAULT_ENCODING,
) -> pd.DataFrame:
    """
    Load the raw dispensing table.
    - every column is read as text, nothing is coerced to NaN
    - any failure to open or tokenize the source is a ParseError
    """
    path = Path(path)
    if not path.exists():
        raise ParseError(f"dose file {path} does not exist")
    if not path.is_file():
        raise ParseError(f"dose file {path} is not a regular file")

    try:
        raw = pd.read_csv(
            path,
            sep=delimiter,
            dtype=str,
            keep_default_na=False,
            encoding=encoding,
            skipinitialspace=True,
            compression="infer",
        )
    except pd.errors.EmptyDataError as exc:
        raise ParseError(f"dose file {path} is empty") from exc
    except pd.errors.ParserError as exc:
        raise ParseError(f"dose file {path} is not valid delimited text: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise ParseError(f"dose file {path} is not {encoding} text: {exc}") from exc
    except OSError as exc:
        raise ParseError(f"dose file {path} could not be read: {exc}") from exc

    return raw


def configure_dose_table(raw: pd.DataFrame, columns: t.Optional[t.Dict[str, str]] = None) -> pd.DataFrame:
    """ Select and rename the dose columns
        - header names are matched after strip/lower
        - output columns are the canonical DOSE_FIELDS, values stripped
        - a `line` column keeps the source line number of every row
    """
    columns = {**DEFAULT_COLUMNS, **(columns or {})}
    header: t.Dict[str, t.List[str]] = {}
    for c in raw.columns:
        header.setdefault(str(c).strip().lower(), []).append(c)

    wanted = [columns[field].strip().lower() for field in DOSE_FIELDS]
    ambiguous = [header[key] for key in wanted if len(header.get(key, [])) > 1]
    if ambiguous:
        raise ParseError(f"dose table has ambiguous columns: {ambiguous}")

    missing = [f"{field} ({columns[field]!r})" for field in DOSE_FIELDS
               if columns[field].strip().lower() not in header]
    if missing:
        raise ParseError(f"dose table missing columns: {', '.join(missing)}")

    doses = (
        raw.loc[:, [header[key][0] for key in wanted]]
        .set_axis(DOSE_FIELDS, axis=1)
        .copy(deep=True)
    )
    for col in DOSE_FIELDS:
        doses[col] = doses[col].fillna("").astype(str).str.strip()
    doses["line"] = np.arange(FIRST_DATA_LINE, FIRST_DATA_LINE + len(doses))
    return doses.reset_index(drop=True)


def _row_problems(doses: pd.DataFrame, date_format: str) -> t.Tuple[pd.Series, pd.Series, pd.Series]:
    """Parse fill dates / days supply and describe what is wrong with each row ('' when fine)."""
    fill_date = pd.to_datetime(doses["fill_date"], format=date_format, errors="coerce")
    supply_ok = doses["days_supply"].str.fullmatch(DAYS_SUPPLY_REGEX).fillna(False).astype(bool)
    days_supply = pd.to_numeric(doses["days_supply"].where(supply_ok, "0"), errors="coerce").fillna(0)

    problems = pd.Series("", index=doses.index, dtype="object")

    def flag(mask, message):
        mask = mask & (problems == "")
        problems.loc[mask] = message if isinstance(message, str) else message[mask]

    for col in DOSE_FIELDS:
        flag(doses[col] == "", f"missing required field {col!r}")
    flag(fill_date.isna(),
         "malformed fill_date " + doses["fill_date"].map(repr) + f" (expected {date_format})")
    flag(~supply_ok,
         "days_supply " + doses["days_supply"].map(repr) + " is not an unsigned integer")
    flag(days_supply < 1, "days_supply must be at least 1, got " + doses["days_supply"].map(repr))

    return problems, fill_date, days_supply


def parse_dose_frame(
    doses: pd.DataFrame,
    date_format: str = DEFAULT_DATE_FORMAT,
    on_bad_record: str = DEFAULT_BAD_RECORD_POLICY,
) -> t.List[DoseRecord]:
    """Turn a configured dose table into DoseRecords.

    With on_bad_record="reject" the first bad row raises ParseError; with
    "skip" bad rows are logged and dropped.
    """
    if on_bad_record not in BAD_RECORD_POLICIES:
        raise ValueError(f"on_bad_record must be one of {BAD_RECORD_POLICIES}, got {on_bad_record!r}")

    problems, fill_date, days_supply = _row_problems(doses, date_format)
    bad_rows = np.flatnonzero((problems != "").to_numpy())
    if bad_rows.size:
        if on_bad_record == "reject":
            first = bad_rows[0]
            raise ParseError(problems.iloc[first], line=int(doses["line"].iloc[first]))
        for i in bad_rows:
            logger.warning("Skipping dose record at line %d: %s", int(doses["line"].iloc[i]), problems.iloc[i])

    good = np.flatnonzero((problems == "").to_numpy())
    records = [
        DoseRecord(
            patient_id=str(doses["patient_id"].iloc[i]),
            drug_name=str(doses["drug_name"].iloc[i]),
            fill_date=fill_date.iloc[i].date(),
            days_supply=int(days_supply.iloc[i]),
            record_no=int(i),
        )
        for i in good
    ]
    return records


def load_dose_records(
    path: Path,
    date_format: str = DEFAULT_DATE_FORMAT,
    delimiter: str = DEFAULT_DELIMITER,
    encoding: str = DEFAULT_ENCODING,
    columns: t.Optional[t.Dict[str, str]] = None,
    on_bad_record: str = DEFAULT_BAD_RECORD_POLICY,
) -> t.List[DoseRecord]:
    raw = read_dose_table(path, delimiter=delimiter, encoding=encoding)
    doses = configure_dose_table(raw, columns=columns)
    records = parse_dose_frame(doses, date_format=date_format, on_bad_record=on_bad_record)

    for dose, count in find_duplicate_doses(records):
        logger.warning(
            "Patient %s has %d identical %s fills on %s (%d days); all are kept",
            dose.patient_id, count, dose.drug_name, dose.fill_date.isoformat(), dose.days_supply,
        )
    logger.info("Loaded %d dose records from %s", len(records), path)
    return records
