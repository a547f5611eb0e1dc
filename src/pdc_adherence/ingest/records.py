from dataclasses import dataclass, field
from datetime import date, datetime

from ..errors import ParseError


@dataclass(frozen=True)
class DoseRecord:
    """One dispensing event: `days_supply` days of `drug_name` filled on `fill_date`."""

    patient_id: str
    drug_name: str
    fill_date: date
    days_supply: int
    record_no: int = field(default=0, compare=False)  # position in the source, used for ordering ties

    def __post_init__(self):
        if isinstance(self.days_supply, bool) or not isinstance(self.days_supply, int):
            raise ParseError(f"days_supply must be an integer, got {self.days_supply!r}")
        if self.days_supply < 1:
            raise ParseError(f"days_supply must be at least 1, got {self.days_supply}")
        if not isinstance(self.fill_date, date) or isinstance(self.fill_date, datetime):
            raise ParseError(f"fill_date must be a date, got {self.fill_date!r}")

    @property
    def sort_key(self):
        return (self.fill_date, self.record_no)
