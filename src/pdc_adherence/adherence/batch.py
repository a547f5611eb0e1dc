from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
import typing as t
import logging
import os

from tqdm import tqdm

from ..ingest.ledger import PatientLedger
from .aggregate import AdherenceResult, compute_patient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatientFailure:
  patient_id: str
  error_type: str
  message: str


PatientOutcome = t.Union[AdherenceResult, PatientFailure]


def _failure(patient_id: str, exc: BaseException) -> PatientFailure:
  logger.error("Patient %s failed: %s: %s", patient_id, type(exc).__name__, exc)
  return PatientFailure(patient_id=patient_id, error_type=type(exc).__name__, message=str(exc))


def run_patient(ledger: PatientLedger) -> PatientOutcome:
  """Compute one patient; any error stays with that patient."""
  try:
    return compute_patient(ledger)
  except Exception as exc:
    return _failure(ledger.patient_id, exc)


def run_chunk(ledgers: t.Sequence[PatientLedger]) -> t.List[t.Tuple[str, PatientOutcome]]:
  return [(ledger.patient_id, run_patient(ledger)) for ledger in ledgers]


def chunk_ledgers(ledgers: t.Mapping[str, PatientLedger], chunksize: int) -> t.List[t.List[PatientLedger]]:
  if chunksize < 1:
    raise ValueError(f"chunksize must be at least 1, got {chunksize}")
  items = list(ledgers.values())
  return [items[i:i + chunksize] for i in range(0, len(items), chunksize)]


def resolve_workers(workers: t.Optional[int]) -> int:
  if workers is None:
    return os.cpu_count() or 1
  if workers < 1:
    raise ValueError(f"workers must be at least 1, got {workers}")
  return workers


def compute_adherence(
  ledgers: t.Mapping[str, PatientLedger],
  workers: t.Optional[int] = None,
  progress: bool = True,
  chunksize: int = 1,
) -> t.Dict[str, PatientOutcome]:
  """Fan every patient out to a worker and gather one outcome per patient.

  Patients share nothing, so the outcome for a patient is the same no
  matter how many workers run or in which order they finish. With
  workers=1 everything runs in this process; otherwise each task carries
  up to `chunksize` patients.
  """
  workers = resolve_workers(workers)
  chunks = chunk_ledgers(ledgers, chunksize)
  outcomes: t.Dict[str, PatientOutcome] = {}
  prog_bar = tqdm(total=len(ledgers), desc="Computing adherence", unit="patient", disable=not progress)

  try:
    if workers == 1 or len(ledgers) <= 1:
      for pid, ledger in ledgers.items():
        outcomes[pid] = run_patient(ledger)
        prog_bar.update(1)
    else:
      executor = ProcessPoolExecutor(max_workers=min(workers, len(chunks)))
      try:
        futures = {executor.submit(run_chunk, chunk): chunk for chunk in chunks}
        for fut in as_completed(futures):
          chunk = futures[fut]
          try:
            outcomes.update(fut.result())
          except Exception as exc:
            # the worker itself died (e.g. BrokenProcessPool), not the computation
            for ledger in chunk:
              outcomes[ledger.patient_id] = _failure(ledger.patient_id, exc)
          prog_bar.update(len(chunk))
      except KeyboardInterrupt:
        # patients already running finish; nothing new starts
        executor.shutdown(wait=True, cancel_futures=True)
        raise
      finally:
        executor.shutdown(wait=True)
  finally:
    prog_bar.close()

  n_failed = sum(isinstance(o, PatientFailure) for o in outcomes.values())
  if n_failed:
    logger.warning("%d of %d patients failed", n_failed, len(outcomes))
  return outcomes


def split_outcomes(outcomes: t.Mapping[str, PatientOutcome]) -> t.Tuple[t.Dict[str, AdherenceResult], t.Dict[str, PatientFailure]]:
  results = {pid: o for pid, o in outcomes.items() if isinstance(o, AdherenceResult)}
  failures = {pid: o for pid, o in outcomes.items() if isinstance(o, PatientFailure)}
  return results, failures
