"""Physical cash count for the drawer."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from daily_closing.money import ZERO, round_money, to_decimal


@dataclass(frozen=True)
class DenominationLine:
    """One row of the printable cash breakdown."""

    denomination: int
    count: Decimal
    amount: Decimal


class CashTally:
    """Sums a denomination -> count table into the counted cash total.

    Negative counts are accepted as given; rejecting them is the form
    layer's job.
    """

    def __init__(self, denominations: Iterable[int]):
        self.denominations: tuple[int, ...] = tuple(int(d) for d in denominations)

    def _count(self, counts: Mapping[Any, Any], denomination: int) -> Decimal:
        # Counts arrive keyed by "500" from stored JSON and by 500 from code.
        if denomination in counts:
            return to_decimal(counts[denomination])
        return to_decimal(counts.get(str(denomination)))

    def normalize(self, counts: Mapping[Any, Any] | None) -> dict[str, Decimal]:
        """Return a count for every configured denomination, missing as 0."""
        counts = counts or {}
        return {str(d): self._count(counts, d) for d in self.denominations}

    def breakdown(self, counts: Mapping[Any, Any] | None) -> list[DenominationLine]:
        """Per-denomination line values in configured order."""
        counts = counts or {}
        lines = []
        for denomination in self.denominations:
            count = self._count(counts, denomination)
            lines.append(
                DenominationLine(
                    denomination=denomination,
                    count=count,
                    amount=round_money(count * denomination),
                )
            )
        return lines

    def total(self, counts: Mapping[Any, Any] | None) -> Decimal:
        """Counted cash: sum of denomination x count, rounded."""
        counts = counts or {}
        total = ZERO
        for denomination in self.denominations:
            total += self._count(counts, denomination) * denomination
        return round_money(total)
