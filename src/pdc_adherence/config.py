from dataclasses import dataclass, field
from pathlib import Path
import typing as t
import yaml

from .errors import ConfigError
from .ingest.constants import (
    BAD_RECORD_POLICIES, DEFAULT_BAD_RECORD_POLICY, DEFAULT_COLUMNS, DEFAULT_DATE_FORMAT,
    DEFAULT_DELIMITER, DEFAULT_ENCODING,
)
from .export.results import DEFAULT_FLOAT_PRECISION

@dataclass
class IngestConfig:
    date_format: str = DEFAULT_DATE_FORMAT
    delimiter: str = DEFAULT_DELIMITER
    encoding: str = DEFAULT_ENCODING
    on_bad_record: str = DEFAULT_BAD_RECORD_POLICY
    columns: t.Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_COLUMNS))

@dataclass
class BatchConfig:
    workers: t.Optional[int] = None
    chunksize: int = 1
    progress: bool = True

@dataclass
class ExportConfig:
    drug_level: bool = False
    float_precision: int = DEFAULT_FLOAT_PRECISION

@dataclass
class Config:
    ingest: IngestConfig = field(default_factory=IngestConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    export: ExportConfig = field(default_factory=ExportConfig)


def _apply_yaml(obj, data: t.Optional[dict] = None):
    if not isinstance(data or {}, dict):
        raise ConfigError(f"expected a mapping for {type(obj).__name__}, got {data!r}")
    for key, val in (data or {}).items():
        if val is None or not hasattr(obj, key):
            continue
        current = getattr(obj, key)
        if hasattr(current, "__dataclass_fields__"):
            _apply_yaml(current, val or {})
            continue
        if key == "columns":
            if not isinstance(val, dict):
                raise ConfigError(f"ingest.columns must be a mapping, got {val!r}")
            unknown = set(val) - set(DEFAULT_COLUMNS)
            if unknown:
                raise ConfigError(f"ingest.columns has unknown fields: {sorted(unknown)}")
            setattr(obj, key, {**current, **{k: str(v) for k, v in val.items()}})
        else:
            setattr(obj, key, val)
    return obj


def _is_int(val) -> bool:
    return isinstance(val, int) and not isinstance(val, bool)


def _require(ok: bool, name: str, expected: str, val) -> None:
    if not ok:
        raise ConfigError(f"{name} must be {expected}, got {val!r}")


def validate_config(cfg: Config) -> Config:
    for name in ("date_format", "delimiter", "encoding"):
        val = getattr(cfg.ingest, name)
        _require(isinstance(val, str) and val != "", f"ingest.{name}", "a non-empty string", val)
    _require(isinstance(cfg.batch.progress, bool), "batch.progress", "true or false", cfg.batch.progress)
    _require(isinstance(cfg.export.drug_level, bool), "export.drug_level", "true or false", cfg.export.drug_level)
    _require(_is_int(cfg.batch.chunksize) and cfg.batch.chunksize >= 1, "batch.chunksize", "a positive integer", cfg.batch.chunksize)
    if cfg.ingest.on_bad_record not in BAD_RECORD_POLICIES:
        raise ConfigError(f"ingest.on_bad_record must be one of {BAD_RECORD_POLICIES}, got {cfg.ingest.on_bad_record!r}")
    if cfg.batch.workers is not None and (not _is_int(cfg.batch.workers) or cfg.batch.workers < 1):
        raise ConfigError(f"batch.workers must be a positive integer, got {cfg.batch.workers!r}")
    if not _is_int(cfg.export.float_precision) or cfg.export.float_precision < 0:
        raise ConfigError(f"export.float_precision must be a non-negative integer, got {cfg.export.float_precision!r}")
    return cfg


def load_config(path: t.Optional[t.Union[str, Path]] = None) -> Config:
    """Load a YAML config on top of the defaults; no path means defaults only."""
    cfg = Config()
    if path is None:
        return cfg

    cfg_path = Path(path).expanduser()
    if cfg_path.suffix not in (".yaml", ".yml"):
        cfg_path = cfg_path.with_name(f"{cfg_path.name}.yaml")
    if not cfg_path.exists():
        raise ConfigError(f"The config file {cfg_path} does not exist.")

    try:
        data = yaml.safe_load(cfg_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"The config file {cfg_path} is not valid YAML: {exc}") from exc

    _apply_yaml(cfg, data)
    return validate_config(cfg)
