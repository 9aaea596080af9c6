"""Daily Closing - point-of-sale closing reconciliation for back-office ledgers."""

__version__ = "0.1.0"

from daily_closing.audit import Actor, AuditAction, BackendAuditLog
from daily_closing.auth import AuthDecision, SharedSecretAuthorizer
from daily_closing.backends import InMemoryBackend, RestBackend
from daily_closing.cash import CashTally
from daily_closing.config import configure_logging, get_settings
from daily_closing.events import ChangeEvent, ChangePublisher, EventType
from daily_closing.exceptions import (
    AuthorizationError,
    ClosingError,
    PersistenceError,
    RecordNotFoundError,
    ValidationError,
)
from daily_closing.models import (
    ClosingDetails,
    DailyClosing,
    ExpenseRecord,
    PurchaseRecord,
    SalaryTransaction,
    SalaryTransactionType,
    VarianceKind,
)
from daily_closing.money import calculate_net_from_gross, calculate_tax, round_money
from daily_closing.reconciliation import (
    POSFigures,
    Reconciliation,
    ReconciliationEngine,
)
from daily_closing.reporting import (
    ClosingTotals,
    DateRange,
    LiveClosingFeed,
    RangeAggregator,
    TerminalSummary,
)
from daily_closing.store import (
    ActionResult,
    ClosingDesk,
    ClosingDraft,
    ClosingRecordStore,
    RecordState,
)
from daily_closing.terminals import TerminalAggregator

__all__ = [
    # Version
    "__version__",
    # Money
    "round_money",
    "calculate_tax",
    "calculate_net_from_gross",
    # Reconciliation
    "CashTally",
    "TerminalAggregator",
    "POSFigures",
    "Reconciliation",
    "ReconciliationEngine",
    # Records
    "ClosingDetails",
    "DailyClosing",
    "ExpenseRecord",
    "PurchaseRecord",
    "SalaryTransaction",
    "SalaryTransactionType",
    "VarianceKind",
    # Store
    "ActionResult",
    "ClosingDesk",
    "ClosingDraft",
    "ClosingRecordStore",
    "RecordState",
    "InMemoryBackend",
    "RestBackend",
    "Actor",
    "AuditAction",
    "BackendAuditLog",
    "AuthDecision",
    "SharedSecretAuthorizer",
    # Events
    "ChangeEvent",
    "ChangePublisher",
    "EventType",
    # Reporting
    "ClosingTotals",
    "DateRange",
    "LiveClosingFeed",
    "RangeAggregator",
    "TerminalSummary",
    # Errors
    "ClosingError",
    "ValidationError",
    "AuthorizationError",
    "PersistenceError",
    "RecordNotFoundError",
    # Config
    "get_settings",
    "configure_logging",
]
