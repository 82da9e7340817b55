"""OKX realized-PnL billing: bill aggregation, profit-share fees and reports."""
