"""PnL aggregation and profit-share fees."""

from billing.pnl.aggregator import PnLAggregator, parse_pnl
from billing.pnl.fee_calculator import FeeCalculator

__all__ = ["FeeCalculator", "PnLAggregator", "parse_pnl"]
