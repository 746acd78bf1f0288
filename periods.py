from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional

from errors import ValidationError


@dataclass(frozen=True, order=True)
class YearMonth:
    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValidationError(f"Invalid month: {self.month}")
        if not 1 <= self.year <= 9999:
            raise ValidationError(f"Invalid year: {self.year}")

    @classmethod
    def of(cls, value: date) -> "YearMonth":
        return cls(value.year, value.month)

    @classmethod
    def parse(cls, value: str) -> "YearMonth":
        """Parse a ``YYYY-MM`` string."""
        try:
            year_raw, month_raw = value.strip().split("-")
            year, month = int(year_raw), int(month_raw)
        except (AttributeError, ValueError) as exc:
            raise ValidationError(f"Invalid month '{value}', expected YYYY-MM") from exc
        return cls(year, month)

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        if self.month == 12:
            return date(self.year, 12, 31)
        return date(self.year, self.month + 1, 1) - date.resolution

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def add(self, count: int) -> "YearMonth":
        month_index = (self.year * 12) + (self.month - 1) + count
        return YearMonth(month_index // 12, (month_index % 12) + 1)

    def next(self) -> "YearMonth":
        return self.add(1)

    def __str__(self) -> str:
        return self.label


def validate_range(start: date, end: date) -> None:
    if start > end:
        raise ValidationError("Start date must be before or equal to end date")


def iter_months(start: date, end: date) -> Iterator[YearMonth]:
    """Every calendar month touched by ``[start, end]``, oldest first."""
    current = YearMonth.of(start)
    last = YearMonth.of(end)
    if current > last:
        return
    while True:
        yield current
        if current == last:
            break
        current = current.next()


def current_month(today: Optional[date] = None) -> YearMonth:
    return YearMonth.of(today or date.today())
