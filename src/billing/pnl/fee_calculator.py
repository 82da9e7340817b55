"""Profit-share fee computation.

All calculations use Decimal arithmetic exclusively -- no float conversions anywhere.

Only perpetual PnL is fee-bearing:
  - USDT-margined perpetuals (perps_fee)
  - coin-margined perpetuals (invperps_fee)
Spot PnL is reported but never billed.
"""

from decimal import Decimal

from billing.config import FeeSettings
from billing.models import Fees, MarketClass, PnLTotals

_ZERO = Decimal("0")


class FeeCalculator:
    """Applies the profit-share rate to positive aggregated PnL.

    No rounding is applied here; the formatter rounds for output.

    Args:
        fee_settings: Profit-share rate configuration.
    """

    def __init__(self, fee_settings: FeeSettings) -> None:
        self._fees = fee_settings

    def compute_fee(self, total: Decimal) -> Decimal:
        """Fee owed on one market-class total.

        Losses and break-even are never billed (and never credited).

        Args:
            total: Aggregated realized PnL for the class.

        Returns:
            total * profit_share_rate if total > 0, else 0.
        """
        if total > _ZERO:
            return total * self._fees.profit_share_rate
        return _ZERO

    def compute_fees(self, totals: PnLTotals) -> Fees:
        """Fees for both perpetual classes.

        A class whose total is incomplete gets None instead of a fee, so a
        partial total can never turn into a confident invoice line.
        """
        return Fees(
            perps=self._fee_for(totals, MarketClass.LINEAR_PERPETUAL),
            invperps=self._fee_for(totals, MarketClass.INVERSE_PERPETUAL),
        )

    def _fee_for(self, totals: PnLTotals, market_class: MarketClass) -> Decimal | None:
        if not totals.is_complete(market_class):
            return None
        return self.compute_fee(totals.total(market_class))
