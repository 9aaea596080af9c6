"""Ledger records: the persisted daily closing and its sibling records.

Amounts are ``Decimal`` in memory and JSON numbers on the wire. The wire
shape uses the store's camelCase column names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from daily_closing.money import ZERO, round_money, to_decimal


class VarianceKind(str, Enum):
    """How the counted total compares to what the POS reported."""

    OVERAGE = "overage"
    SHORTAGE = "shortage"
    BALANCED = "balanced"

    @classmethod
    def of(cls, variance: Decimal) -> VarianceKind:
        if variance > 0:
            return cls.OVERAGE
        if variance < 0:
            return cls.SHORTAGE
        return cls.BALANCED


class SalaryTransactionType(str, Enum):
    """Payroll movements recorded against an employee."""

    LOAN = "loan"
    DEDUCTION = "deduction"
    MEAL = "meal"
    SHORTAGE = "shortage"
    BONUS = "bonus"
    SALARY_PAYMENT = "salary_payment"


def _number(value: Decimal) -> int | float:
    """Render a Decimal as the JSON number the store expects."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _decimal_map(raw: Any) -> dict[str, Decimal]:
    if not isinstance(raw, dict):
        return {}
    return {str(k): to_decimal(v) for k, v in raw.items()}


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not value:
        return datetime.now(UTC)
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class ClosingDetails:
    """Raw inputs kept for audit, recompute and the printable breakdown."""

    cash_denominations: dict[str, Decimal] = field(default_factory=dict)
    card_reconcile: dict[str, Decimal] = field(default_factory=dict)
    pos_inputs: dict[str, Decimal] = field(default_factory=dict)
    terminal_details: dict[str, dict[str, Decimal]] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "cashDenominations": {k: _number(v) for k, v in self.cash_denominations.items()},
            "cardReconcile": {k: _number(v) for k, v in self.card_reconcile.items()},
            "posInputs": {k: _number(v) for k, v in self.pos_inputs.items()},
        }
        if self.terminal_details is not None:
            data["terminalDetails"] = {
                terminal_id: {k: _number(v) for k, v in row.items()}
                for terminal_id, row in self.terminal_details.items()
            }
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ClosingDetails:
        data = data or {}
        terminals = data.get("terminalDetails")
        return cls(
            cash_denominations=_decimal_map(data.get("cashDenominations")),
            card_reconcile=_decimal_map(data.get("cardReconcile")),
            pos_inputs=_decimal_map(data.get("posInputs")),
            terminal_details=(
                {str(t): _decimal_map(row) for t, row in terminals.items()}
                if isinstance(terminals, dict)
                else None
            ),
        )


@dataclass
class DailyClosing:
    """A reconciled business day as persisted in the store."""

    id: str
    date: date
    created_at: datetime

    cash_actual: Decimal
    card_actual: Decimal
    total_actual: Decimal

    cash_system: Decimal
    card_system: Decimal
    total_system: Decimal

    variance: Decimal
    net_sales: Decimal
    vat_amount: Decimal
    discount_amount: Decimal
    gross_sales: Decimal
    tips: Decimal

    details: ClosingDetails = field(default_factory=ClosingDetails)

    @property
    def gross_before_discount(self) -> Decimal:
        return round_money(self.total_system + self.discount_amount)

    @property
    def net_income(self) -> Decimal:
        return round_money(self.total_system - self.tips)

    @property
    def variance_kind(self) -> VarianceKind:
        return VarianceKind.of(self.variance)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the store's row shape."""
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "createdAt": self.created_at.isoformat(),
            "cashActual": _number(self.cash_actual),
            "cardActual": _number(self.card_actual),
            "totalActual": _number(self.total_actual),
            "cashSystem": _number(self.cash_system),
            "cardSystem": _number(self.card_system),
            "totalSystem": _number(self.total_system),
            "variance": _number(self.variance),
            "netSales": _number(self.net_sales),
            "vatAmount": _number(self.vat_amount),
            "discountAmount": _number(self.discount_amount),
            "grossSales": _number(self.gross_sales),
            "tips": _number(self.tips),
            "details": self.details.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DailyClosing:
        """Parse a stored row; numeric fields missing from old rows read as 0."""
        total_system = to_decimal(data.get("totalSystem"))
        return cls(
            id=str(data["id"]),
            date=_parse_date(data["date"]),
            created_at=_parse_timestamp(data.get("createdAt")),
            cash_actual=to_decimal(data.get("cashActual")),
            card_actual=to_decimal(data.get("cardActual")),
            total_actual=to_decimal(data.get("totalActual")),
            cash_system=to_decimal(data.get("cashSystem")),
            card_system=to_decimal(data.get("cardSystem")),
            total_system=total_system,
            variance=to_decimal(data.get("variance")),
            net_sales=to_decimal(data.get("netSales")),
            vat_amount=to_decimal(data.get("vatAmount")),
            discount_amount=to_decimal(data.get("discountAmount")),
            gross_sales=to_decimal(data.get("grossSales") or total_system),
            tips=to_decimal(data.get("tips")),
            details=ClosingDetails.from_dict(data.get("details")),
        )


@dataclass(frozen=True)
class PurchaseRecord:
    """Supplier invoice; ``amount`` includes VAT unless tax exempt."""

    id: str
    date: date
    amount: Decimal
    party_name: str = ""
    is_tax_exempt: bool = False
    invoice_number: str | None = None
    tax_number: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PurchaseRecord:
        return cls(
            id=str(data["id"]),
            date=_parse_date(data["date"]),
            amount=to_decimal(data.get("amount")),
            party_name=data.get("partyName") or "",
            is_tax_exempt=bool(data.get("isTaxExempt")),
            invoice_number=data.get("invoiceNumber"),
            tax_number=data.get("taxNumber"),
        )


@dataclass(frozen=True)
class ExpenseRecord:
    """General expense (rent, utilities, fees) with optional separate VAT."""

    id: str
    date: date
    amount: Decimal
    tax_amount: Decimal = ZERO
    category: str = "other"
    description: str = ""

    @property
    def total(self) -> Decimal:
        return round_money(self.amount + self.tax_amount)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExpenseRecord:
        return cls(
            id=str(data["id"]),
            date=_parse_date(data["date"]),
            amount=to_decimal(data.get("amount")),
            tax_amount=to_decimal(data.get("taxAmount")),
            category=data.get("category") or "other",
            description=data.get("description") or "",
        )


@dataclass(frozen=True)
class SalaryTransaction:
    """A payroll movement for one employee."""

    id: str
    employee_id: str
    date: date
    amount: Decimal
    type: SalaryTransactionType
    notes: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SalaryTransaction:
        return cls(
            id=str(data["id"]),
            employee_id=str(data["employeeId"]),
            date=_parse_date(data["date"]),
            amount=to_decimal(data.get("amount")),
            type=SalaryTransactionType(data["type"]),
            notes=data.get("notes"),
        )
