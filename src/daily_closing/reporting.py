"""Range reporting over closings and sibling ledger records.

Every fold here is a plain sum over the records inside an inclusive date
range. Sums commute, so the result does not depend on record order, and
folding day by day gives the same totals as folding the whole range.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass, field, fields
from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import structlog

from daily_closing.config.settings import DEFAULT_CARD_NETWORKS, DEFAULT_TERMINAL_IDS
from daily_closing.models import (
    DailyClosing,
    ExpenseRecord,
    PurchaseRecord,
    SalaryTransaction,
    SalaryTransactionType,
)
from daily_closing.money import VAT_RATE, ZERO, round_money, split_vat, to_decimal
from daily_closing.terminals import TerminalAggregator

if TYPE_CHECKING:
    from daily_closing.events import ChangeEvent, ChangePublisher
    from daily_closing.store import ClosingRecordStore

logger = structlog.get_logger(__name__)

MAX_CHART_DAYS = 30
DEFAULT_CHART_DAYS = 7


@dataclass(frozen=True)
class DateRange:
    """Inclusive ``[start, end]``; a missing bound leaves that side open."""

    start: date | None = None
    end: date | None = None

    @property
    def is_open(self) -> bool:
        return self.start is None or self.end is None

    def contains(self, day: date) -> bool:
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True

    @classmethod
    def for_month(cls, month: str) -> DateRange:
        """Range covering a ``YYYY-MM`` month."""
        year, month_num = (int(part) for part in month.split("-"))
        last_day = calendar.monthrange(year, month_num)[1]
        return cls(date(year, month_num, 1), date(year, month_num, last_day))

    @classmethod
    def last_days(cls, days: int, end: date) -> DateRange:
        return cls(end - timedelta(days=days - 1), end)


@dataclass(frozen=True)
class ClosingTotals:
    """Sums of the closing figures shown on the closings list footer."""

    gross_before_discount: Decimal = ZERO
    discount: Decimal = ZERO
    total_system: Decimal = ZERO
    tips: Decimal = ZERO
    net_income: Decimal = ZERO
    cash_actual: Decimal = ZERO
    card_actual: Decimal = ZERO
    variance: Decimal = ZERO
    count: int = 0

    @classmethod
    def of(cls, closing: DailyClosing) -> ClosingTotals:
        return cls(
            gross_before_discount=closing.total_system + closing.discount_amount,
            discount=closing.discount_amount,
            total_system=closing.total_system,
            tips=closing.tips,
            net_income=closing.total_system - closing.tips,
            cash_actual=closing.cash_actual,
            card_actual=closing.card_actual,
            variance=closing.variance,
            count=1,
        )

    def __add__(self, other: ClosingTotals) -> ClosingTotals:
        if not isinstance(other, ClosingTotals):
            return NotImplemented
        return ClosingTotals(
            **{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)}
        )

    def add(self, closing: DailyClosing) -> ClosingTotals:
        return self + ClosingTotals.of(closing)

    def rounded(self) -> ClosingTotals:
        values: dict[str, Any] = {
            f.name: round_money(getattr(self, f.name)) for f in fields(self) if f.name != "count"
        }
        return ClosingTotals(**values, count=self.count)


@dataclass(frozen=True)
class DayPoint:
    """One day of the sales vs outgoings chart."""

    day: date
    sales: Decimal
    outgoings: Decimal

    @property
    def label(self) -> str:
        return f"{self.day:%b} {self.day.day}"


@dataclass(frozen=True)
class TerminalRow:
    """Card settlements of one terminal, per network."""

    terminal_id: str
    networks: dict[str, Decimal]
    total: Decimal


@dataclass(frozen=True)
class TerminalSummary:
    """Terminal x network table over a range, with its footer totals."""

    rows: list[TerminalRow]
    network_totals: dict[str, Decimal]
    grand_total: Decimal


@dataclass(frozen=True)
class TerminalDay:
    """One day of a single terminal's settlement history."""

    day: date
    networks: dict[str, Decimal]
    total: Decimal


@dataclass(frozen=True)
class DashboardStats:
    total_sales: Decimal
    total_cash_sales: Decimal
    total_purchases: Decimal
    total_outgoings: Decimal


@dataclass(frozen=True)
class SupplierSummary:
    supplier_name: str
    total_net: Decimal
    total_vat: Decimal
    grand_total: Decimal


@dataclass(frozen=True)
class EmployeePayroll:
    """Payroll movements of one employee over a range."""

    employee_id: str
    totals: dict[SalaryTransactionType, Decimal] = field(default_factory=dict)

    def _total(self, kind: SalaryTransactionType) -> Decimal:
        return self.totals.get(kind, ZERO)

    @property
    def loans(self) -> Decimal:
        return self._total(SalaryTransactionType.LOAN)

    @property
    def bonuses(self) -> Decimal:
        return self._total(SalaryTransactionType.BONUS)

    @property
    def total_deductions(self) -> Decimal:
        return round_money(
            self._total(SalaryTransactionType.LOAN)
            + self._total(SalaryTransactionType.DEDUCTION)
            + self._total(SalaryTransactionType.MEAL)
            + self._total(SalaryTransactionType.SHORTAGE)
        )

    @property
    def is_paid(self) -> bool:
        return SalaryTransactionType.SALARY_PAYMENT in self.totals

    def net_salary(self, base_salary: Any) -> Decimal:
        """Base salary plus bonuses minus every deduction type."""
        return round_money(to_decimal(base_salary) + self.bonuses - self.total_deductions)


def _sum(values: Iterable[Decimal]) -> Decimal:
    return round_money(sum(values, ZERO))


class RangeAggregator:
    """Folds ledger records over date ranges for dashboards and reports."""

    SORT_KEYS = {
        "date": lambda c: c.date,
        "gross_before": lambda c: c.total_system + c.discount_amount,
        "net_income": lambda c: c.total_system - c.tips,
        "discount": lambda c: c.discount_amount,
        "total_system": lambda c: c.total_system,
        "tips": lambda c: c.tips,
        "cash_actual": lambda c: c.cash_actual,
        "card_actual": lambda c: c.card_actual,
        "variance": lambda c: c.variance,
    }

    def __init__(
        self, vat_rate: Decimal = VAT_RATE, terminals: TerminalAggregator | None = None
    ):
        self.vat_rate = vat_rate
        self.terminals = terminals or TerminalAggregator(
            DEFAULT_TERMINAL_IDS, DEFAULT_CARD_NETWORKS
        )

    @staticmethod
    def in_range(records: Iterable[Any], date_range: DateRange | None) -> list[Any]:
        if date_range is None:
            return list(records)
        return [r for r in records if date_range.contains(r.date)]

    def summarize(
        self, closings: Iterable[DailyClosing], date_range: DateRange | None = None
    ) -> ClosingTotals:
        """Totals of every closing in range."""
        totals = ClosingTotals()
        for closing in self.in_range(closings, date_range):
            totals = totals.add(closing)
        return totals.rounded()

    def dashboard(
        self,
        closings: Iterable[DailyClosing],
        purchases: Iterable[PurchaseRecord],
        expenses: Iterable[ExpenseRecord],
        date_range: DateRange | None = None,
    ) -> DashboardStats:
        """Headline sales, cash and outgoing figures."""
        closings = self.in_range(closings, date_range)
        purchases = self.in_range(purchases, date_range)
        expenses = self.in_range(expenses, date_range)

        total_purchases = _sum(p.amount for p in purchases)
        total_expenses = _sum(e.amount + e.tax_amount for e in expenses)
        return DashboardStats(
            total_sales=_sum(c.gross_sales or c.total_system for c in closings),
            total_cash_sales=_sum(c.cash_actual for c in closings),
            total_purchases=total_purchases,
            total_outgoings=round_money(total_purchases + total_expenses),
        )

    def daily_series(
        self,
        closings: Iterable[DailyClosing],
        purchases: Iterable[PurchaseRecord],
        expenses: Iterable[ExpenseRecord],
        date_range: DateRange | None = None,
        today: date | None = None,
    ) -> list[DayPoint]:
        """Per-day sales and outgoings for charting.

        An open range charts the last seven days up to ``today``; a closed
        range charts at most its last thirty days.
        """
        if date_range is None or date_range.is_open:
            date_range = DateRange.last_days(DEFAULT_CHART_DAYS, today or date.today())
        start, end = date_range.start, date_range.end
        days = min((end - start).days + 1, MAX_CHART_DAYS)

        sales_by_day: dict[date, Decimal] = {}
        for c in closings:
            sales_by_day[c.date] = sales_by_day.get(c.date, ZERO) + (c.gross_sales or c.total_system)
        outgoings_by_day: dict[date, Decimal] = {}
        for p in purchases:
            outgoings_by_day[p.date] = outgoings_by_day.get(p.date, ZERO) + p.amount
        for e in expenses:
            outgoings_by_day[e.date] = outgoings_by_day.get(e.date, ZERO) + e.amount + e.tax_amount

        series = []
        for offset in range(days - 1, -1, -1):
            day = end - timedelta(days=offset)
            series.append(
                DayPoint(
                    day=day,
                    sales=round_money(sales_by_day.get(day, ZERO)),
                    outgoings=round_money(outgoings_by_day.get(day, ZERO)),
                )
            )
        return series

    def monthly_purchases(
        self, purchases: Iterable[PurchaseRecord], month: str
    ) -> list[SupplierSummary]:
        """Per-supplier net/VAT/total for a ``YYYY-MM`` month, largest first."""
        grouped: dict[str, list[Decimal]] = {}
        for p in self.in_range(purchases, DateRange.for_month(month)):
            name = p.party_name or "Unspecified supplier"
            if p.is_tax_exempt:
                net, vat = p.amount, ZERO
            else:
                net = p.amount / (1 + self.vat_rate)
                vat = p.amount - net
            sums = grouped.setdefault(name, [ZERO, ZERO, ZERO])
            sums[0] += net
            sums[1] += vat
            sums[2] += p.amount

        summaries = [
            SupplierSummary(name, round_money(net), round_money(vat), round_money(total))
            for name, (net, vat, total) in grouped.items()
        ]
        return sorted(summaries, key=lambda s: s.grand_total, reverse=True)

    def tax_report(
        self, purchases: Iterable[PurchaseRecord], date_range: DateRange | None = None
    ) -> list[dict[str, Any]]:
        """Per-invoice VAT lines for the purchases tax report, oldest first."""
        rows = []
        for p in sorted(self.in_range(purchases, date_range), key=lambda p: p.date):
            net, vat = split_vat(p.amount, self.vat_rate, exempt=p.is_tax_exempt)
            rows.append(
                {
                    "supplier": p.party_name,
                    "date": p.date,
                    "invoice_number": p.invoice_number or p.id,
                    "tax_number": p.tax_number,
                    "net": net,
                    "vat": vat,
                    "total": round_money(p.amount),
                }
            )
        return rows

    def payroll_summary(
        self, transactions: Iterable[SalaryTransaction], date_range: DateRange | None = None
    ) -> dict[str, EmployeePayroll]:
        """Per-employee totals by salary transaction type."""
        totals: dict[str, dict[SalaryTransactionType, Decimal]] = {}
        for t in self.in_range(transactions, date_range):
            per_type = totals.setdefault(t.employee_id, {})
            per_type[t.type] = per_type.get(t.type, ZERO) + t.amount
        return {
            employee_id: EmployeePayroll(
                employee_id, {k: round_money(v) for k, v in per_type.items()}
            )
            for employee_id, per_type in totals.items()
        }

    def terminal_summary(
        self, closings: Iterable[DailyClosing], date_range: DateRange | None = None
    ) -> TerminalSummary:
        """Card settlements per registered terminal and network over a range.

        Every registered terminal gets a row, idle ones included.
        """
        nets = self.terminals.card_networks
        sums = {t: dict.fromkeys(nets, ZERO) for t in self.terminals.terminal_ids}
        for closing in self.in_range(closings, date_range):
            grid = self.terminals.normalize(closing.details.terminal_details)
            for terminal_id, row in grid.items():
                for net, amount in row.items():
                    sums[terminal_id][net] += amount

        rows = [
            TerminalRow(
                terminal_id=terminal_id,
                networks={net: round_money(v) for net, v in per_net.items()},
                total=_sum(per_net.values()),
            )
            for terminal_id, per_net in sums.items()
        ]
        return TerminalSummary(
            rows=rows,
            network_totals={net: _sum(r.networks[net] for r in rows) for net in nets},
            grand_total=_sum(r.total for r in rows),
        )

    def terminal_history(
        self,
        closings: Iterable[DailyClosing],
        terminal_id: str,
        date_range: DateRange | None = None,
    ) -> list[TerminalDay]:
        """Days on which one terminal settled anything, in the order given.

        Closings without entries for the terminal, or whose entries sum to
        zero, are left out.
        """
        history = []
        for closing in self.in_range(closings, date_range):
            row = (closing.details.terminal_details or {}).get(terminal_id)
            if not row:
                continue
            networks = {net: round_money(row.get(net)) for net in self.terminals.card_networks}
            total = _sum(networks.values())
            if total == 0:
                continue
            history.append(TerminalDay(closing.date, networks, total))
        return history

    def sort_closings(
        self, closings: Iterable[DailyClosing], key: str, descending: bool = False
    ) -> list[DailyClosing]:
        """Sort closings by a column, including the derived ``gross_before``
        and ``net_income`` columns."""
        if key not in self.SORT_KEYS:
            raise ValueError(f"Unknown sort key: {key}")
        return sorted(closings, key=self.SORT_KEYS[key], reverse=descending)


class LiveClosingFeed:
    """Keeps a closings snapshot and its totals fresh.

    Any change event on the closings collection triggers a full re-fetch;
    events carry no diff, and refreshes may land out of order.
    """

    def __init__(
        self,
        store: ClosingRecordStore,
        publisher: ChangePublisher,
        aggregator: RangeAggregator | None = None,
        date_range: DateRange | None = None,
    ):
        self._store = store
        self._publisher = publisher
        self.aggregator = aggregator or RangeAggregator()
        self.date_range = date_range
        self.closings: list[DailyClosing] = []
        self.totals = ClosingTotals()
        self.refresh_count = 0
        self._requested = 0
        self._applied = 0
        self._logger = logger.bind(component="live_closing_feed")

    def start(self) -> None:
        self._publisher.subscribe(self._store.collection, self._on_change)

    def stop(self) -> None:
        self._publisher.unsubscribe(self._store.collection, self._on_change)

    async def _on_change(self, event: ChangeEvent) -> None:
        self._logger.debug("change_received", type=event.event_type.value, record_id=event.record_id)
        await self.refresh()

    async def refresh(self) -> ClosingTotals:
        """Re-fetch and re-total; a fetch overtaken by a later one is dropped."""
        self._requested += 1
        seq = self._requested
        closings = await self._store.list_closings()
        if seq < self._applied:
            self._logger.debug("stale_refresh_dropped", seq=seq, applied=self._applied)
            return self.totals

        self._applied = seq
        self.closings = closings
        self.totals = self.aggregator.summarize(closings, self.date_range)
        self.refresh_count += 1
        return self.totals
