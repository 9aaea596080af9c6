"""Card terminal aggregation.

Card settlements are entered per physical terminal and per card network.
Only the configured terminals are ever aggregated; entries for any other
terminal ID are dropped so that the set of known hardware stays closed.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

import structlog

from daily_closing.money import ZERO, round_money, to_decimal

logger = structlog.get_logger(__name__)

TerminalEntries = Mapping[str, Mapping[str, Any]]


class TerminalAggregator:
    """Sums per-terminal, per-network card amounts."""

    def __init__(self, terminal_ids: Iterable[str], card_networks: Iterable[str]):
        self.terminal_ids: tuple[str, ...] = tuple(str(t) for t in terminal_ids)
        self.card_networks: tuple[str, ...] = tuple(card_networks)
        self._logger = logger.bind(component="terminal_aggregator")

    def _known(self, entries: TerminalEntries | None) -> dict[str, Mapping[str, Any]]:
        entries = entries or {}
        unknown = [str(t) for t in entries if str(t) not in self.terminal_ids]
        if unknown:
            self._logger.debug("unknown_terminals_ignored", terminal_ids=unknown)
        known = {str(t): row for t, row in entries.items() if str(t) in self.terminal_ids}
        return {t: known.get(t) or {} for t in self.terminal_ids}

    def normalize(self, entries: TerminalEntries | None) -> dict[str, dict[str, Decimal]]:
        """Full terminal x network grid with unknown terminals dropped."""
        return {
            terminal_id: {net: to_decimal(row.get(net)) for net in self.card_networks}
            for terminal_id, row in self._known(entries).items()
        }

    def row_subtotals(self, entries: TerminalEntries | None) -> dict[str, Decimal]:
        """Total per known terminal, in configured order."""
        return {
            terminal_id: round_money(sum(row.values(), ZERO))
            for terminal_id, row in self.normalize(entries).items()
        }

    def active_rows(self, entries: TerminalEntries | None) -> dict[str, Decimal]:
        """Row subtotals without the terminals that saw no activity.

        Presentation only; zero rows still count towards the total.
        """
        return {t: amount for t, amount in self.row_subtotals(entries).items() if amount != 0}

    def network_subtotals(self, entries: TerminalEntries | None) -> dict[str, Decimal]:
        """Total per card network across all known terminals."""
        grid = self.normalize(entries)
        return {
            net: round_money(sum((row[net] for row in grid.values()), ZERO))
            for net in self.card_networks
        }

    def total(self, entries: TerminalEntries | None) -> Decimal:
        """Counted card total across every known terminal and network."""
        grid = self.normalize(entries)
        return round_money(sum((sum(row.values(), ZERO) for row in grid.values()), ZERO))
