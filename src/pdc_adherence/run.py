from pathlib import Path
import argparse
import logging
import sys

from .config import load_config
from .errors import AdherenceError
from .ingest.doses import load_dose_records
from .ingest.ledger import build_ledgers
from .adherence.batch import compute_adherence, split_outcomes
from .export.results import write_results


def run_compute(args, cfg):
    records = load_dose_records(
        args.input,
        date_format=cfg.ingest.date_format,
        delimiter=cfg.ingest.delimiter,
        encoding=cfg.ingest.encoding,
        columns=cfg.ingest.columns,
        on_bad_record=cfg.ingest.on_bad_record,
    )
    ledgers = build_ledgers(records)
    outcomes = compute_adherence(ledgers, workers=cfg.batch.workers, progress=cfg.batch.progress,
                                  chunksize=cfg.batch.chunksize)
    write_results(
        outcomes, args.output,
        drug_level=cfg.export.drug_level,
        float_precision=cfg.export.float_precision,
    )

    results, failures = split_outcomes(outcomes)
    print(f"Wrote adherence to {args.output}")
    print(f"Rows: doses={len(records)}, patients={len(results)}, failed={len(failures)}")
    for pid in sorted(failures):
        print(f"  {pid}: {failures[pid].error_type}: {failures[pid].message}", file=sys.stderr)
    return 0


def apply_overrides(cfg, args):
    if args.drug_level:
        cfg.export.drug_level = True
    if args.workers is not None:
        cfg.batch.workers = args.workers
    if args.chunksize is not None:
        cfg.batch.chunksize = args.chunksize
    if args.skip_bad_records:
        cfg.ingest.on_bad_record = "skip"
    if args.no_progress:
        cfg.batch.progress = False
    return cfg


def _positive_int(val: str) -> int:
    n = int(val)
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Proportion of Days Covered from pharmacy fill records")
    parser.add_argument("input", type=Path, help="Delimited dose file (patient_id, drug_name, days_supply, fill_date).")
    parser.add_argument("output", type=Path, help="Where to write the adherence CSV.")
    parser.add_argument("--drug-level", "-d", action="store_true", help="Write one row per patient and drug.")
    parser.add_argument("--config", "-c", type=str, default=None, help="YAML config file.")
    parser.add_argument("--workers", "-w", type=_positive_int, default=None, help="Worker processes (default: all CPUs).")
    parser.add_argument("--chunksize", type=_positive_int, default=None, help="Patients per worker task (default: 1).")
    parser.add_argument("--skip-bad-records", action="store_true", help="Drop unparseable records instead of failing.")
    parser.add_argument("--no-progress", action="store_true", help="Hide the progress bar.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at INFO level.")
    parser.set_defaults(func=run_compute)
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        cfg = apply_overrides(load_config(args.config), args)
        return args.func(args, cfg)
    except AdherenceError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
