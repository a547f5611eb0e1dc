import typing as t


class AdherenceError(Exception):
    """Base class for every error raised by pdc_adherence."""


class ParseError(AdherenceError):
    """A dose record (or the whole source) could not be ingested."""

    def __init__(self, message: str, line: t.Optional[int] = None):
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class InvariantViolation(AdherenceError):
    """The core received input the ingestion layer should never produce."""


class ExportError(AdherenceError):
    """Results could not be written to the destination."""


class ConfigError(AdherenceError):
    """The configuration file is missing or malformed."""
