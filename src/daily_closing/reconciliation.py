"""Daily closing reconciliation.

Combines the counted drawer and terminal totals with the POS Z-report to
produce the day's system totals, VAT/discount/tip decomposition and the
signed variance.

Order of computation:

1. POS cash and POS card credits (sum of the card networks).
2. Settled system total = cash + credits. The terminal has already netted
   the discount out of this figure.
3. Gross before discount = settled total + reported discount.
4. Net sales and VAT are extracted from the gross *before* discount.
5. Net revenue = settled total - tips.
6. Variance = counted total - settled total (positive means overage).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from daily_closing.cash import CashTally
from daily_closing.models import ClosingDetails, DailyClosing, VarianceKind
from daily_closing.money import ZERO, VAT_RATE, calculate_net_from_gross, round_money, to_decimal
from daily_closing.terminals import TerminalAggregator, TerminalEntries

if TYPE_CHECKING:
    from daily_closing.config.settings import Settings


@dataclass(frozen=True)
class POSFigures:
    """Figures the operator copies from the terminal's Z-report."""

    cash: Decimal = ZERO
    cards: dict[str, Decimal] = field(default_factory=dict)
    discount: Decimal = ZERO
    tips: Decimal = ZERO

    @classmethod
    def from_mapping(
        cls, data: Mapping[str, Any] | None, card_networks: tuple[str, ...] | list[str]
    ) -> POSFigures:
        """Build from form or stored ``posInputs`` values; absent means 0."""
        data = data or {}
        return cls(
            cash=to_decimal(data.get("cash")),
            cards={net: to_decimal(data.get(net)) for net in card_networks},
            discount=to_decimal(data.get("discount")),
            tips=to_decimal(data.get("tips")),
        )

    def card(self, network: str) -> Decimal:
        return self.cards.get(network, ZERO)

    def to_dict(self) -> dict[str, Decimal]:
        return {"cash": self.cash, **self.cards, "discount": self.discount, "tips": self.tips}


@dataclass(frozen=True)
class InstrumentVariance:
    """Counted vs reported amount for one payment instrument."""

    instrument: str
    actual: Decimal
    system: Decimal

    @property
    def variance(self) -> Decimal:
        return round_money(self.actual - self.system)

    @property
    def kind(self) -> VarianceKind:
        return VarianceKind.of(self.variance)


@dataclass(frozen=True)
class Reconciliation:
    """Result of reconciling one business day."""

    cash_actual: Decimal
    card_actual: Decimal
    total_actual: Decimal

    total_pos_cash: Decimal
    total_pos_credits: Decimal
    total_system_net: Decimal

    discount: Decimal
    tips: Decimal
    gross_before_discount: Decimal
    net_sales: Decimal
    vat_amount: Decimal
    net_revenue_final: Decimal
    variance: Decimal

    instruments: tuple[InstrumentVariance, ...]
    details: ClosingDetails

    @property
    def has_data(self) -> bool:
        """False when neither side of the reconciliation holds any amount."""
        return not (self.total_actual == 0 and self.total_system_net == 0)

    @property
    def variance_kind(self) -> VarianceKind:
        return VarianceKind.of(self.variance)

    @property
    def card_variance(self) -> Decimal:
        return round_money(self.card_actual - self.total_pos_credits)

    def instrument(self, name: str) -> InstrumentVariance | None:
        for item in self.instruments:
            if item.instrument == name:
                return item
        return None

    def to_closing(self, closing_id: str, business_date: date, created_at: datetime) -> DailyClosing:
        """Build the persisted record for this reconciliation."""
        return DailyClosing(
            id=closing_id,
            date=business_date,
            created_at=created_at,
            cash_actual=self.cash_actual,
            card_actual=self.card_actual,
            total_actual=self.total_actual,
            cash_system=self.total_pos_cash,
            card_system=self.total_pos_credits,
            total_system=self.total_system_net,
            variance=self.variance,
            net_sales=self.net_sales,
            vat_amount=self.vat_amount,
            discount_amount=self.discount,
            gross_sales=self.total_system_net,
            tips=self.tips,
            details=self.details,
        )


class ReconciliationEngine:
    """Pure arithmetic over one day's counted and reported figures."""

    def __init__(
        self,
        cash_tally: CashTally,
        terminal_aggregator: TerminalAggregator,
        vat_rate: Decimal = VAT_RATE,
    ):
        self.cash_tally = cash_tally
        self.terminals = terminal_aggregator
        self.vat_rate = to_decimal(vat_rate)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ReconciliationEngine:
        """Build an engine from the configured denominations, terminals and VAT rate."""
        if settings is None:
            from daily_closing.config.settings import get_settings

            settings = get_settings()
        return cls(
            cash_tally=CashTally(settings.denominations),
            terminal_aggregator=TerminalAggregator(settings.terminal_ids, settings.card_networks),
            vat_rate=settings.vat_rate,
        )

    @property
    def card_networks(self) -> tuple[str, ...]:
        return self.terminals.card_networks

    def pos_figures(self, data: Mapping[str, Any] | None) -> POSFigures:
        return POSFigures.from_mapping(data, self.card_networks)

    def reconcile(
        self,
        cash_counts: Mapping[Any, Any] | None,
        terminal_entries: TerminalEntries | None,
        pos: POSFigures | Mapping[str, Any] | None,
    ) -> Reconciliation:
        """Reconcile counted cash/cards against the POS-reported figures."""
        if not isinstance(pos, POSFigures):
            pos = self.pos_figures(pos)

        cash_actual = self.cash_tally.total(cash_counts)
        card_actual = self.terminals.total(terminal_entries)
        network_actuals = self.terminals.network_subtotals(terminal_entries)

        total_pos_cash = pos.cash
        total_pos_credits = round_money(sum((pos.card(n) for n in self.card_networks), ZERO))
        total_system_net = round_money(total_pos_cash + total_pos_credits)

        gross_before_discount = round_money(total_system_net + pos.discount)
        net_sales = calculate_net_from_gross(gross_before_discount, self.vat_rate)
        vat_amount = round_money(gross_before_discount - net_sales)

        net_revenue_final = round_money(total_system_net - pos.tips)
        total_actual = round_money(cash_actual + card_actual)
        variance = round_money(total_actual - total_system_net)

        instruments = (InstrumentVariance("cash", cash_actual, total_pos_cash),) + tuple(
            InstrumentVariance(n, network_actuals[n], pos.card(n)) for n in self.card_networks
        )

        details = ClosingDetails(
            cash_denominations=self.cash_tally.normalize(cash_counts),
            card_reconcile=network_actuals,
            pos_inputs=pos.to_dict(),
            terminal_details=self.terminals.normalize(terminal_entries),
        )

        return Reconciliation(
            cash_actual=cash_actual,
            card_actual=card_actual,
            total_actual=total_actual,
            total_pos_cash=total_pos_cash,
            total_pos_credits=total_pos_credits,
            total_system_net=total_system_net,
            discount=pos.discount,
            tips=pos.tips,
            gross_before_discount=gross_before_discount,
            net_sales=net_sales,
            vat_amount=vat_amount,
            net_revenue_final=net_revenue_final,
            variance=variance,
            instruments=instruments,
            details=details,
        )
